import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from catalog_classifier.logger import get_logger

logger = get_logger(__name__)

CONFIG_ENV_VAR = "CATALOG_CLASSIFIER_CONFIG"


def load_config_file(file_path: Optional[str] = None) -> dict:
    """
    Loads the configuration from the specified YAML file.

    Args:
        file_path (str): Path to the YAML configuration file. Falls back to
            $CATALOG_CLASSIFIER_CONFIG, then ./config.yaml.

    Returns:
        dict: Parsed configuration, empty when no file exists.
    """
    path = Path(file_path or os.getenv(CONFIG_ENV_VAR) or "config.yaml")
    if not path.exists():
        logger.debug(f"No config file at {path}, using defaults.")
        return {}

    with open(path, "r") as file:
        return yaml.safe_load(file) or {}


class EmbeddingSettings(BaseModel):
    backend: Literal["sentence", "hashed"] = "sentence"
    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimension: int = Field(768, gt=0, description="Vector size for the hashed backend")
    hash_rounds: int = Field(5, gt=0)
    hash_decay: float = Field(0.15, ge=0.0, lt=1.0)
    min_token_length: int = Field(3, ge=1)
    batch_size: int = Field(64, gt=0)
    version: str = "v1"


class ClassifierPolicy(BaseModel):
    fallback_enabled: bool = True
    fallback_similarity: float = Field(0.05, ge=0.0, le=1.0)
    good_threshold: int = 30
    weak_threshold: int = 15


class CacheSettings(BaseModel):
    similarity_threshold: float = Field(0.85, ge=0.0, le=1.0)
    lookup_chunk_size: int = Field(500, gt=0)
    similarity_match_count: int = Field(1, gt=0)


class BatchSettings(BaseModel):
    max_workers: int = Field(4, gt=0)
    max_products_per_request: int = Field(500, gt=0)
    wait_for_cache_writes: bool = True


class DatabaseSettings(BaseModel):
    conn_env: str = "DATABASE_URL"

    def conn_str(self) -> Optional[str]:
        return os.getenv(self.conn_env)


class ClassifierSettings(BaseModel):
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    classifier: ClassifierPolicy = Field(default_factory=ClassifierPolicy)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)


def get_settings(file_path: Optional[str] = None) -> ClassifierSettings:
    """Builds validated settings from the YAML sections, defaulting anything missing."""
    config = load_config_file(file_path)
    sections = {
        key: config.get(key) or {}
        for key in ("embedding", "classifier", "cache", "batch", "database")
    }
    return ClassifierSettings(**sections)
