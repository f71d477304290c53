"""
taxonomy_index.py

In-memory view of the category > subcategory > part type tree used for
matching. Built once per classification session from a TaxonomyStore.

Iteration order of part types is the store's listing order (ascending by
id); the classifier breaks similarity ties by that order.
"""

from typing import Dict, List, Optional

import numpy as np

from catalog_classifier.dbs.taxonomy_db import TaxonomyStore
from catalog_classifier.exception import EmptyTaxonomyError, TaxonomyResolutionError
from catalog_classifier.logger import get_logger
from catalog_classifier.models import Category, EmbeddingSpace, PartType, Subcategory

logger = get_logger(__name__)


class TaxonomyIndex:
    def __init__(
        self,
        categories: List[Category],
        subcategories: List[Subcategory],
        part_types: List[PartType],
        space: Optional[EmbeddingSpace] = None,
    ):
        self.space = space
        self._categories: Dict = {}
        self._subcategories: Dict = {}
        self._part_types: Dict = {}
        self.orphans: List = []
        self._matrix = None
        self._load(categories, subcategories, part_types)

    @classmethod
    def build(cls, store: TaxonomyStore, space: Optional[EmbeddingSpace] = None) -> "TaxonomyIndex":
        """Loads every node from the store and drops orphans."""
        categories = store.list_categories()
        subcategories = store.list_subcategories()
        part_types = store.list_part_types()
        logger.info(
            f"Loaded {len(categories)} categories, {len(subcategories)} subcategories, "
            f"{len(part_types)} part types"
        )
        return cls(categories, subcategories, part_types, space=space)

    # ----------------------------------------------------------------------
    # LOADING
    # ----------------------------------------------------------------------
    def _load(self, categories, subcategories, part_types):
        for cat in categories:
            self._categories[cat.id] = self._checked(cat)

        for sub in subcategories:
            if sub.category_id not in self._categories:
                logger.warning(f"Skipping subcategory '{sub.name}' (id={sub.id}): unknown category_id={sub.category_id}")
                self.orphans.append(sub)
                continue
            self._subcategories[sub.id] = self._checked(sub)

        for pt in part_types:
            if pt.subcategory_id not in self._subcategories:
                logger.warning(f"Skipping part type '{pt.name}' (id={pt.id}): unknown subcategory_id={pt.subcategory_id}")
                self.orphans.append(pt)
                continue
            self._part_types[pt.id] = self._checked(pt)

        with_embeddings = sum(1 for pt in self._part_types.values() if pt.embedding is not None)
        logger.info(
            f"Taxonomy index ready: {len(self._part_types)} part types "
            f"({with_embeddings} with usable embeddings), {len(self.orphans)} orphans excluded"
        )

    def _checked(self, node):
        """Blanks out an embedding that belongs to a different embedding space."""
        if node.embedding is None or self.space is None:
            return node

        reason = None
        if node.embedding.shape != (self.space.dimension,):
            reason = f"dimension {node.embedding.shape[0]} != {self.space.dimension}"
        elif node.embedding_space and node.embedding_space != self.space.key:
            reason = f"space '{node.embedding_space}' != '{self.space.key}'"

        if reason:
            logger.warning(f"Ignoring embedding of {node.level} '{node.name}' (id={node.id}): {reason}")
            return node.model_copy(update={"embedding": None})
        return node

    # ----------------------------------------------------------------------
    # ACCESS
    # ----------------------------------------------------------------------
    def __len__(self):
        return len(self._part_types)

    @property
    def is_empty(self) -> bool:
        return not self._part_types

    def ensure_not_empty(self):
        if self.is_empty:
            raise EmptyTaxonomyError("No part types available for matching. Upload a taxonomy first.")

    def all_part_types(self) -> List[PartType]:
        return list(self._part_types.values())

    def part_type_matrix(self):
        """
        Returns (part_types, matrix) for the part types with usable
        embeddings, rows in index order.
        """
        if self._matrix is None:
            usable = [pt for pt in self._part_types.values() if pt.embedding is not None]
            matrix = np.vstack([pt.embedding for pt in usable]).astype(np.float32) if usable else None
            self._matrix = (usable, matrix)
        return self._matrix

    def subcategory_of(self, part_type_id) -> Subcategory:
        pt = self._part_types.get(part_type_id)
        sub = self._subcategories.get(pt.subcategory_id) if pt else None
        if sub is None:
            raise TaxonomyResolutionError(f"No subcategory for part type id={part_type_id}")
        return sub

    def category_of(self, subcategory_id) -> Category:
        sub = self._subcategories.get(subcategory_id)
        cat = self._categories.get(sub.category_id) if sub else None
        if cat is None:
            raise TaxonomyResolutionError(f"No category for subcategory id={subcategory_id}")
        return cat

    def __repr__(self):
        return (
            f"TaxonomyIndex(categories={len(self._categories)}, subcategories={len(self._subcategories)}, "
            f"part_types={len(self._part_types)}, space='{self.space.key if self.space else None}')"
        )
