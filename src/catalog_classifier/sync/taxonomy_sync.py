"""
taxonomy_sync.py

Sync process:
    1. List every category, subcategory and part type from the taxonomy store
    2. Generate embeddings for each node's own name (level prefix for the
       sentence backend)
    3. Write vector + embedding space tag back to the node

Always full refresh; sync_node() re-embeds a single node after an edit.
"""

import sys
from typing import Dict, Optional

import psycopg2

from catalog_classifier.dbs.taxonomy_db import TaxonomyStore
from catalog_classifier.embedders import BaseEmbedder, SentenceEmbedder
from catalog_classifier.exception import CustomException, StoreUnavailableError
from catalog_classifier.logger import get_logger
from catalog_classifier.models import TaxonomyLevel

logger = get_logger(__name__)

LEVELS = ("category", "subcategory", "parttype")

LEVEL_PREFIXES = {
    "category": "Category: ",
    "subcategory": "Subcategory: ",
    "parttype": "Part type: ",
}


def ensure_schema(conn_str: str):
    """Creates the taxonomy tables (with vector columns) if they don't exist."""
    try:
        with psycopg2.connect(conn_str) as conn:
            with conn.cursor() as cur:
                cur.execute("CREATE EXTENSION IF NOT EXISTS vector;")
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS categories (
                        id SERIAL PRIMARY KEY,
                        name TEXT NOT NULL,
                        embedding vector,
                        embedding_space TEXT
                    );
                """)
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS subcategories (
                        id SERIAL PRIMARY KEY,
                        name TEXT NOT NULL,
                        category_id INTEGER REFERENCES categories(id) ON DELETE CASCADE,
                        embedding vector,
                        embedding_space TEXT
                    );
                """)
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS parttypes (
                        id SERIAL PRIMARY KEY,
                        name TEXT NOT NULL,
                        subcategory_id INTEGER REFERENCES subcategories(id) ON DELETE CASCADE,
                        embedding vector,
                        embedding_space TEXT
                    );
                """)
        logger.info("Taxonomy schema verified.")
    except psycopg2.Error as e:
        logger.error("Failed to create taxonomy schema.")
        raise StoreUnavailableError(e, sys)


class TaxonomyEmbeddingSync:
    def __init__(self, store: TaxonomyStore, embedder: BaseEmbedder, use_prefixes: Optional[bool] = None):
        self.store = store
        self.embedder = embedder
        # Prefixes help the sentence model; hashed tokens would only pick up noise from them.
        self.use_prefixes = isinstance(embedder, SentenceEmbedder) if use_prefixes is None else use_prefixes
        logger.info(f"Initialized TaxonomyEmbeddingSync with {embedder!r}")

    def node_text(self, level: TaxonomyLevel, name: str) -> str:
        prefix = LEVEL_PREFIXES[level] if self.use_prefixes else ""
        return f"{prefix}{name}"

    # ------------------------------------------------------
    # MAIN SYNC
    # ------------------------------------------------------
    def sync(self) -> Dict[str, Dict[str, int]]:
        """
        Full refresh of every taxonomy level.

        Returns:
            {level: {"total": n, "updated": n, "failed": n}}
        """
        logger.info("Starting taxonomy embedding SYNC...")
        summary = {level: self._sync_level(level) for level in LEVELS}

        failed = sum(s["failed"] for s in summary.values())
        updated = sum(s["updated"] for s in summary.values())
        logger.info(f"Taxonomy embedding sync completed: {updated} updated, {failed} failed.")
        return summary

    def _sync_level(self, level: TaxonomyLevel) -> Dict[str, int]:
        nodes = self.store.list_nodes(level)
        counts = {"total": len(nodes), "updated": 0, "failed": 0}
        if not nodes:
            logger.warning(f"No {level} rows to embed.")
            return counts

        logger.info(f"Generating embeddings for {len(nodes)} {level} rows...")
        embeddings = self.embedder.embed_many([self.node_text(level, n.name) for n in nodes])
        if len(embeddings) != len(nodes):
            raise CustomException(f"Mismatch between {level} rows and embeddings count.")

        space = self.embedder.space.key
        for node, embedding in zip(nodes, embeddings):
            try:
                self.store.update_embedding(level, node.id, embedding, space)
                counts["updated"] += 1
            except Exception as e:
                logger.error(f"Failed to update {level} '{node.name}' (id={node.id}): {e}")
                counts["failed"] += 1

        logger.info(f"{level}: {counts['updated']}/{counts['total']} embeddings written.")
        return counts

    # ------------------------------------------------------
    # SINGLE NODE
    # ------------------------------------------------------
    def sync_node(self, level: TaxonomyLevel, node_id) -> bool:
        node = self.store.get_node(level, node_id)
        if node is None:
            logger.warning(f"No {level} with id={node_id}; nothing to embed.")
            return False

        embedding = self.embedder.embed(self.node_text(level, node.name))
        self.store.update_embedding(level, node.id, embedding, self.embedder.space.key)
        logger.info(f"Re-embedded {level} '{node.name}' (id={node.id}).")
        return True
