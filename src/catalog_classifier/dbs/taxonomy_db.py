"""
taxonomy_db.py

Read access to the three taxonomy tables (categories, subcategories,
parttypes) plus embedding write-back used by the taxonomy sync.

This module intentionally contains:
    - No schema creation logic (see sync.taxonomy_sync)
    - No embedding generation
"""

import sys
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np
import psycopg2
from psycopg2.extras import RealDictCursor

from catalog_classifier.exception import CustomException, StoreUnavailableError
from catalog_classifier.logger import get_logger
from catalog_classifier.models import Category, PartType, Subcategory, TaxonomyLevel
from catalog_classifier.utils.load_config import get_settings
from catalog_classifier.utils.vector_math import to_pgvector

logger = get_logger(__name__)

TABLES = {
    "category": ("categories", Category, "id, name, embedding::text AS embedding, embedding_space"),
    "subcategory": ("subcategories", Subcategory, "id, name, category_id, embedding::text AS embedding, embedding_space"),
    "parttype": ("parttypes", PartType, "id, name, subcategory_id, embedding::text AS embedding, embedding_space"),
}


class TaxonomyStore(ABC):
    """Bulk listing and point lookup of taxonomy nodes. Lists are ordered by id."""

    @abstractmethod
    def list_categories(self) -> List[Category]: ...

    @abstractmethod
    def list_subcategories(self) -> List[Subcategory]: ...

    @abstractmethod
    def list_part_types(self) -> List[PartType]: ...

    @abstractmethod
    def get_category(self, node_id) -> Optional[Category]: ...

    @abstractmethod
    def get_subcategory(self, node_id) -> Optional[Subcategory]: ...

    @abstractmethod
    def get_part_type(self, node_id) -> Optional[PartType]: ...

    @abstractmethod
    def update_embedding(self, level: TaxonomyLevel, node_id, embedding: np.ndarray, embedding_space: str) -> None: ...

    def get_node(self, level: TaxonomyLevel, node_id):
        getter = {
            "category": self.get_category,
            "subcategory": self.get_subcategory,
            "parttype": self.get_part_type,
        }[level]
        return getter(node_id)

    def list_nodes(self, level: TaxonomyLevel):
        lister = {
            "category": self.list_categories,
            "subcategory": self.list_subcategories,
            "parttype": self.list_part_types,
        }[level]
        return lister()


class TaxonomyDB(TaxonomyStore):
    def __init__(self, conn_str: Optional[str] = None):
        try:
            self.conn_str = conn_str or get_settings().database.conn_str()
            if not self.conn_str:
                raise StoreUnavailableError("Database connection string not found.")

            logger.info("Initialized TaxonomyDB (Postgres).")
        except StoreUnavailableError:
            raise
        except Exception as e:
            raise CustomException(e, sys)

    # ----------------------------------------------------------------------
    # QUERIES
    # ----------------------------------------------------------------------
    def _fetch_all(self, level: TaxonomyLevel):
        table, model, columns = TABLES[level]
        try:
            with psycopg2.connect(self.conn_str) as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(f"SELECT {columns} FROM {table} ORDER BY id;")
                    rows = cur.fetchall()
            return [model(**dict(row)) for row in rows]
        except psycopg2.Error as e:
            logger.error(f"Failed to fetch rows from {table}: {e}")
            raise StoreUnavailableError(e, sys)

    def _fetch_one(self, level: TaxonomyLevel, node_id):
        table, model, columns = TABLES[level]
        try:
            with psycopg2.connect(self.conn_str) as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(f"SELECT {columns} FROM {table} WHERE id = %s;", (node_id,))
                    row = cur.fetchone()
            return model(**dict(row)) if row else None
        except psycopg2.Error as e:
            logger.error(f"Failed to fetch {level} id={node_id}: {e}")
            raise StoreUnavailableError(e, sys)

    def list_categories(self) -> List[Category]:
        return self._fetch_all("category")

    def list_subcategories(self) -> List[Subcategory]:
        return self._fetch_all("subcategory")

    def list_part_types(self) -> List[PartType]:
        return self._fetch_all("parttype")

    def get_category(self, node_id) -> Optional[Category]:
        return self._fetch_one("category", node_id)

    def get_subcategory(self, node_id) -> Optional[Subcategory]:
        return self._fetch_one("subcategory", node_id)

    def get_part_type(self, node_id) -> Optional[PartType]:
        return self._fetch_one("parttype", node_id)

    # ----------------------------------------------------------------------
    # EMBEDDING WRITE-BACK
    # ----------------------------------------------------------------------
    def update_embedding(self, level: TaxonomyLevel, node_id, embedding: np.ndarray, embedding_space: str) -> None:
        table = TABLES[level][0]
        try:
            with psycopg2.connect(self.conn_str) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"UPDATE {table} SET embedding = %s::vector, embedding_space = %s WHERE id = %s;",
                        (to_pgvector(embedding), embedding_space, node_id),
                    )
            logger.debug(f"Updated embedding for {level} id={node_id}")
        except psycopg2.Error as e:
            logger.error(f"Failed to update embedding for {level} id={node_id}: {e}")
            raise StoreUnavailableError(e, sys)
