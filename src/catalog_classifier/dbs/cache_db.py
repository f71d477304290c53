"""
cache_db.py

Persistent store for product classifications (table product_classifications).

Supports point and multi-key lookup by product hash, upsert keyed by hash,
usage tracking and a pgvector nearest-neighbour query over the stored
product embeddings.
"""

import sys
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

import numpy as np
import psycopg2
from psycopg2.extras import RealDictCursor, execute_values

from catalog_classifier.exception import CustomException, StoreUnavailableError
from catalog_classifier.logger import get_logger
from catalog_classifier.models import CacheEntry
from catalog_classifier.utils.load_config import get_settings
from catalog_classifier.utils.vector_math import to_pgvector

logger = get_logger(__name__)

SELECT_COLUMNS = """
    product_hash, product_name, product_description,
    suggested_category, suggested_subcategory, suggested_parttype,
    confidence, validation_reason, embedding::text AS embedding,
    embedding_space, usage_count, last_used_at
"""

UPSERT_SQL = """
    INSERT INTO product_classifications (
        product_hash, product_name, product_description,
        suggested_category, suggested_subcategory, suggested_parttype,
        confidence, validation_reason, embedding, embedding_space
    ) VALUES %s
    ON CONFLICT (product_hash)
    DO UPDATE SET
        product_name = EXCLUDED.product_name,
        product_description = EXCLUDED.product_description,
        suggested_category = EXCLUDED.suggested_category,
        suggested_subcategory = EXCLUDED.suggested_subcategory,
        suggested_parttype = EXCLUDED.suggested_parttype,
        confidence = EXCLUDED.confidence,
        validation_reason = EXCLUDED.validation_reason,
        embedding = EXCLUDED.embedding,
        embedding_space = EXCLUDED.embedding_space;
"""

UPSERT_TEMPLATE = "(%s, %s, %s, %s, %s, %s, %s, %s, %s::vector, %s)"


class CacheStore(ABC):
    @abstractmethod
    def get_by_hash(self, product_hash: str) -> Optional[CacheEntry]: ...

    @abstractmethod
    def get_by_hashes(self, hashes: Sequence[str]) -> List[CacheEntry]: ...

    @abstractmethod
    def upsert_many(self, entries: Sequence[CacheEntry]) -> None: ...

    @abstractmethod
    def find_similar(
        self, embedding: np.ndarray, embedding_space: str, threshold: float, limit: int = 1
    ) -> List[Tuple[CacheEntry, float]]:
        """Nearest entries of the same embedding space with similarity >= threshold, best first."""

    @abstractmethod
    def touch(self, hashes: Sequence[str]) -> None:
        """Increments usage_count and sets last_used_at for each hash."""

    def upsert(self, entry: CacheEntry) -> None:
        self.upsert_many([entry])


class ClassificationCacheDB(CacheStore):
    def __init__(self, conn_str: Optional[str] = None):
        try:
            self.conn_str = conn_str or get_settings().database.conn_str()
            if not self.conn_str:
                raise StoreUnavailableError("Database connection string not found.")

            self._init_db()
            logger.info("Initialized ClassificationCacheDB (Postgres).")
        except StoreUnavailableError:
            raise
        except Exception as e:
            raise CustomException(e, sys)

    def _init_db(self):
        """Creates the classification cache table if it doesn't exist."""
        try:
            with psycopg2.connect(self.conn_str) as conn:
                with conn.cursor() as cur:
                    cur.execute("CREATE EXTENSION IF NOT EXISTS vector;")
                    cur.execute('''
                        CREATE TABLE IF NOT EXISTS product_classifications (
                            id SERIAL PRIMARY KEY,
                            product_hash TEXT NOT NULL UNIQUE,
                            product_name TEXT,
                            product_description TEXT,
                            suggested_category TEXT,
                            suggested_subcategory TEXT,
                            suggested_parttype TEXT,
                            confidence INTEGER DEFAULT 0,
                            validation_reason TEXT,
                            embedding vector,
                            embedding_space TEXT,
                            usage_count INTEGER DEFAULT 0,
                            last_used_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )
                    ''')
            logger.debug("Classification cache schema verified.")
        except psycopg2.Error as e:
            logger.error(f"Failed to initialize classification cache schema: {e}")
            raise StoreUnavailableError(e, sys)

    # ----------------------------------------------------------------------
    # LOOKUPS
    # ----------------------------------------------------------------------
    def get_by_hash(self, product_hash: str) -> Optional[CacheEntry]:
        try:
            with psycopg2.connect(self.conn_str) as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        f"SELECT {SELECT_COLUMNS} FROM product_classifications WHERE product_hash = %s;",
                        (product_hash,),
                    )
                    row = cur.fetchone()
            return CacheEntry(**dict(row)) if row else None
        except psycopg2.Error as e:
            logger.error(f"Cache lookup failed for hash {product_hash[:12]}: {e}")
            raise StoreUnavailableError(e, sys)

    def get_by_hashes(self, hashes: Sequence[str]) -> List[CacheEntry]:
        if not hashes:
            return []
        try:
            with psycopg2.connect(self.conn_str) as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        f"SELECT {SELECT_COLUMNS} FROM product_classifications WHERE product_hash = ANY(%s);",
                        (list(hashes),),
                    )
                    rows = cur.fetchall()
            return [CacheEntry(**dict(row)) for row in rows]
        except psycopg2.Error as e:
            logger.error(f"Multi-key cache lookup failed for {len(hashes)} hashes: {e}")
            raise StoreUnavailableError(e, sys)

    def find_similar(
        self, embedding: np.ndarray, embedding_space: str, threshold: float, limit: int = 1
    ) -> List[Tuple[CacheEntry, float]]:
        query_vec = to_pgvector(embedding)
        try:
            with psycopg2.connect(self.conn_str) as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    # <=> is cosine distance, similarity = 1 - distance.
                    cur.execute(
                        f"""
                        SELECT {SELECT_COLUMNS}, 1 - (embedding <=> %s::vector) AS similarity
                        FROM product_classifications
                        WHERE embedding IS NOT NULL
                          AND embedding_space = %s
                          AND 1 - (embedding <=> %s::vector) >= %s
                        ORDER BY embedding <=> %s::vector ASC
                        LIMIT %s;
                        """,
                        (query_vec, embedding_space, query_vec, threshold, query_vec, limit),
                    )
                    rows = cur.fetchall()
        except psycopg2.Error as e:
            logger.error(f"Similarity search failed: {e}")
            raise StoreUnavailableError(e, sys)

        matches = []
        for row in rows:
            row = dict(row)
            score = float(row.pop("similarity"))
            matches.append((CacheEntry(**row), score))
        return matches

    # ----------------------------------------------------------------------
    # WRITES
    # ----------------------------------------------------------------------
    def upsert_many(self, entries: Sequence[CacheEntry]) -> None:
        if not entries:
            return
        # one row per hash, last write wins
        entries = list({e.product_hash: e for e in entries}.values())
        values = [
            (
                e.product_hash,
                e.product_name,
                e.product_description,
                e.suggested_category,
                e.suggested_subcategory,
                e.suggested_parttype,
                e.confidence,
                e.validation_reason,
                to_pgvector(e.embedding) if e.embedding is not None else None,
                e.embedding_space,
            )
            for e in entries
        ]
        try:
            with psycopg2.connect(self.conn_str) as conn:
                with conn.cursor() as cur:
                    execute_values(cur, UPSERT_SQL, values, template=UPSERT_TEMPLATE)
            logger.debug(f"Upserted {len(values)} cache entries.")
        except psycopg2.Error as e:
            logger.error(f"Failed to upsert {len(values)} cache entries: {e}")
            raise StoreUnavailableError(e, sys)

    def touch(self, hashes: Sequence[str]) -> None:
        if not hashes:
            return
        try:
            with psycopg2.connect(self.conn_str) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE product_classifications
                        SET usage_count = usage_count + 1,
                            last_used_at = CURRENT_TIMESTAMP
                        WHERE product_hash = ANY(%s);
                        """,
                        (list(hashes),),
                    )
        except psycopg2.Error as e:
            logger.error(f"Failed to update usage stats for {len(hashes)} entries: {e}")
            raise StoreUnavailableError(e, sys)
