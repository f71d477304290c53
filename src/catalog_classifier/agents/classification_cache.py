"""
classification_cache.py

Two-tier cache in front of the classifier:
    1. EXACT: SHA-256 of the normalized name + description
    2. SIMILAR: nearest cached product embedding at or above the threshold
       (single-item lookups only; batch lookups are exact-only)

Cache failures never fail a classification: read errors are treated as a
miss and write errors are logged.
"""

import hashlib
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from catalog_classifier.dbs.cache_db import CacheStore
from catalog_classifier.embedders import BaseEmbedder
from catalog_classifier.logger import get_logger
from catalog_classifier.models import CacheEntry, ClassificationResult, ProductInput
from catalog_classifier.utils.load_config import CacheSettings

logger = get_logger(__name__)


def generate_product_hash(name: Optional[str], description: Optional[str]) -> str:
    """Case- and surrounding-whitespace-insensitive digest of a product."""
    text = f"{(name or '').strip().lower()} {(description or '').strip().lower()}"
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class ClassificationCache:
    def __init__(
        self,
        store: CacheStore,
        embedder: BaseEmbedder,
        settings: Optional[CacheSettings] = None,
    ):
        self.backend = store
        self.embedder = embedder
        self.settings = settings or CacheSettings()

    # ----------------------------------------------------------------------
    # SINGLE LOOKUP (exact, then similarity)
    # ----------------------------------------------------------------------
    def lookup(self, name: Optional[str], description: Optional[str]) -> Optional[ClassificationResult]:
        product = ProductInput(name=name, description=description)
        return self.lookup_exact(product) or self.lookup_similar(product)

    def lookup_exact(self, product: ProductInput) -> Optional[ClassificationResult]:
        product_hash = generate_product_hash(product.name, product.description)

        try:
            entry = self.backend.get_by_hash(product_hash)
        except Exception as e:
            logger.warning(f"Exact cache lookup failed, treating as miss: {e}")
            return None

        if entry is None or not entry.is_valid():
            logger.debug(f"No exact match for '{product.name}'")
            return None

        self._touch([product_hash])
        logger.info(f"Cache hit (exact): '{product.name}'")
        return entry.to_result("exact")

    def lookup_similar(
        self, product: ProductInput, embedding: Optional[np.ndarray] = None
    ) -> Optional[ClassificationResult]:
        if not product.text:
            return None

        try:
            if embedding is None:
                embedding = self.embedder.embed(product.text)
            matches = self.backend.find_similar(
                embedding,
                self.embedder.space.key,
                self.settings.similarity_threshold,
                limit=self.settings.similarity_match_count,
            )
        except Exception as e:
            logger.warning(f"Similarity search failed, treating as miss: {e}")
            return None

        for entry, score in matches:
            if score < self.settings.similarity_threshold or not entry.is_valid():
                continue
            self._touch([entry.product_hash])
            logger.info(
                f"Cache hit (similar {score:.1%}): '{product.name}' ~ '{entry.product_name}'"
            )
            return entry.to_result("similar", similarity=score)

        return None

    # ----------------------------------------------------------------------
    # BATCH LOOKUP (exact only)
    # ----------------------------------------------------------------------
    def batch_lookup(self, products: Sequence[ProductInput]) -> Dict[str, CacheEntry]:
        """
        Exact-hash lookup for any number of products.

        Hashes are queried in chunks; a failed chunk is logged and skipped so
        the remaining chunks still contribute. Entries without a category are
        dropped.
        """
        found: Dict[str, CacheEntry] = {}
        if not products:
            return found

        hashes = list(dict.fromkeys(generate_product_hash(p.name, p.description) for p in products))
        chunks = list(_chunks(hashes, self.settings.lookup_chunk_size))
        logger.info(f"Checking cache for {len(products)} products ({len(hashes)} hashes, {len(chunks)} chunks)")

        for i, chunk in enumerate(chunks, start=1):
            try:
                entries = self.backend.get_by_hashes(chunk)
            except Exception as e:
                logger.warning(f"Cache chunk {i}/{len(chunks)} failed, skipping: {e}")
                continue

            for entry in entries:
                if not entry.is_valid():
                    logger.warning(f"Skipping cache entry with empty category for '{entry.product_name}'")
                    continue
                found[entry.product_hash] = entry

        logger.info(f"Found {len(found)} cached classifications out of {len(hashes)} hashes")

        if found:
            self._touch(list(found))
        return found

    # ----------------------------------------------------------------------
    # WRITES
    # ----------------------------------------------------------------------
    def build_entry(
        self,
        product: ProductInput,
        classification: ClassificationResult,
        embedding: Optional[np.ndarray] = None,
    ) -> CacheEntry:
        if embedding is None:
            embedding = self.embedder.embed(product.text)
        return CacheEntry(
            product_hash=generate_product_hash(product.name, product.description),
            product_name=product.name,
            product_description=product.description,
            suggested_category=classification.category,
            suggested_subcategory=classification.subcategory,
            suggested_parttype=classification.part_type,
            confidence=classification.confidence,
            validation_reason=classification.justification or "Semantic classification",
            embedding=embedding,
            embedding_space=self.embedder.space.key,
        )

    def store(
        self,
        product: ProductInput,
        classification: ClassificationResult,
        embedding: Optional[np.ndarray] = None,
    ) -> bool:
        """Upserts by hash. Pass the embedding already computed for classification to skip re-embedding."""
        try:
            self.backend.upsert(self.build_entry(product, classification, embedding))
            logger.debug(f"Cached classification for '{product.name}'")
            return True
        except Exception as e:
            logger.error(f"Failed to cache classification for '{product.name}': {e}")
            return False

    def store_many(self, items: List[tuple]) -> int:
        """Bulk upsert of (product, classification, embedding) tuples. Returns rows written."""
        entries = []
        for product, classification, embedding in items:
            try:
                entries.append(self.build_entry(product, classification, embedding))
            except Exception as e:
                logger.error(f"Failed to prepare cache entry for '{product.name}': {e}")

        if not entries:
            return 0

        try:
            self.backend.upsert_many(entries)
            logger.info(f"Cached {len(entries)} classifications")
            return len(entries)
        except Exception as e:
            logger.error(f"Failed to batch cache {len(entries)} classifications: {e}")
            return 0

    def _touch(self, hashes: List[str]):
        try:
            self.backend.touch(hashes)
        except Exception as e:
            logger.warning(f"Failed to update usage stats for {len(hashes)} entries: {e}")
