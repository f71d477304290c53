"""
memory_store.py

Process-local implementations of the taxonomy and classification cache
stores. Used for local runs without Postgres and throughout the tests.
"""

import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from catalog_classifier.dbs.cache_db import CacheStore
from catalog_classifier.dbs.taxonomy_db import TaxonomyStore
from catalog_classifier.models import CacheEntry, Category, PartType, Subcategory, TaxonomyLevel


def _sort_key(node_id):
    # ints before strings so mixed id types still order deterministically
    return (0, node_id, "") if isinstance(node_id, int) else (1, 0, str(node_id))


class InMemoryTaxonomyStore(TaxonomyStore):
    def __init__(
        self,
        categories: Iterable[Category] = (),
        subcategories: Iterable[Subcategory] = (),
        part_types: Iterable[PartType] = (),
    ):
        self._nodes: Dict[str, Dict] = {
            "category": {c.id: c for c in categories},
            "subcategory": {s.id: s for s in subcategories},
            "parttype": {p.id: p for p in part_types},
        }
        self._lock = threading.Lock()

    def _list(self, level: TaxonomyLevel):
        with self._lock:
            nodes = self._nodes[level]
            return [nodes[k] for k in sorted(nodes, key=_sort_key)]

    def list_categories(self) -> List[Category]:
        return self._list("category")

    def list_subcategories(self) -> List[Subcategory]:
        return self._list("subcategory")

    def list_part_types(self) -> List[PartType]:
        return self._list("parttype")

    def get_category(self, node_id) -> Optional[Category]:
        return self._nodes["category"].get(node_id)

    def get_subcategory(self, node_id) -> Optional[Subcategory]:
        return self._nodes["subcategory"].get(node_id)

    def get_part_type(self, node_id) -> Optional[PartType]:
        return self._nodes["parttype"].get(node_id)

    def update_embedding(self, level: TaxonomyLevel, node_id, embedding: np.ndarray, embedding_space: str) -> None:
        with self._lock:
            node = self._nodes[level].get(node_id)
            if node is None:
                raise KeyError(f"Unknown {level} id={node_id}")
            self._nodes[level][node_id] = node.model_copy(
                update={"embedding": np.asarray(embedding, dtype=np.float32).copy(), "embedding_space": embedding_space}
            )


class InMemoryCacheStore(CacheStore):
    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._entries)

    def get_by_hash(self, product_hash: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(product_hash)
            return entry.model_copy() if entry else None

    def get_by_hashes(self, hashes: Sequence[str]) -> List[CacheEntry]:
        with self._lock:
            return [self._entries[h].model_copy() for h in dict.fromkeys(hashes) if h in self._entries]

    def upsert_many(self, entries: Sequence[CacheEntry]) -> None:
        with self._lock:
            for entry in entries:
                previous = self._entries.get(entry.product_hash)
                stored = entry.model_copy()
                if previous is not None:
                    stored.usage_count = previous.usage_count
                stored.last_used_at = stored.last_used_at or datetime.now()
                self._entries[entry.product_hash] = stored

    def find_similar(
        self, embedding: np.ndarray, embedding_space: str, threshold: float, limit: int = 1
    ) -> List[Tuple[CacheEntry, float]]:
        with self._lock:
            candidates = [
                e for e in self._entries.values()
                if e.embedding is not None
                and e.embedding_space == embedding_space
                and e.embedding.shape == embedding.shape
            ]
            if not candidates:
                return []

            matrix = np.vstack([e.embedding for e in candidates])
            scores = matrix @ np.asarray(embedding, dtype=np.float32)
            # stable sort keeps insertion order among equal scores
            order = np.argsort(-scores, kind="stable")
            return [
                (candidates[i].model_copy(), float(scores[i]))
                for i in order[:limit]
                if scores[i] >= threshold
            ]

    def touch(self, hashes: Sequence[str]) -> None:
        now = datetime.now()
        with self._lock:
            for h in dict.fromkeys(hashes):
                entry = self._entries.get(h)
                if entry is not None:
                    entry.usage_count += 1
                    entry.last_used_at = now
