"""
Sentence-transformers encoder with a lazily loaded, shared model.
"""
import sys
import threading
from typing import Dict, List, Optional

import numpy as np

from catalog_classifier.embedders.base import BaseEmbedder
from catalog_classifier.exception import EmbedderLoadError
from catalog_classifier.logger import get_logger

logger = get_logger(__name__)

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


class ModelHandle:
    """
    Loads a SentenceTransformer at most once, on first use.

    Concurrent first calls block on the lock; only one of them loads.
    A failed load is not cached, so a later call may try again.
    """

    def __init__(self, model_name: str = DEFAULT_MODEL, device: str = "cpu"):
        self.model_name = model_name
        self.device = device
        self._model = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._model is not None

    def get(self):
        if self._model is not None:
            return self._model

        with self._lock:
            if self._model is None:
                self._model = self._load()
        return self._model

    def _load(self):
        try:
            from sentence_transformers import SentenceTransformer

            logger.info(f"Loading embedding model: {self.model_name}")
            model = SentenceTransformer(self.model_name, device=self.device)
            logger.info(f"Embedding model loaded: {self.model_name}")
            return model
        except Exception as e:
            logger.error(f"Failed to load SentenceTransformer model {self.model_name}: {e}")
            raise EmbedderLoadError(e, sys)


_shared_handles: Dict[str, ModelHandle] = {}
_shared_lock = threading.Lock()


def shared_model_handle(model_name: str = DEFAULT_MODEL) -> ModelHandle:
    """Process-wide handle per model name."""
    with _shared_lock:
        handle = _shared_handles.get(model_name)
        if handle is None:
            handle = ModelHandle(model_name)
            _shared_handles[model_name] = handle
        return handle


class SentenceEmbedder(BaseEmbedder):
    """Mean-pooled, L2-normalized sentence embeddings (384-d for MiniLM)."""

    def __init__(
        self,
        handle: Optional[ModelHandle] = None,
        batch_size: int = 64,
        version: str = "v1",
    ):
        self.handle = handle or shared_model_handle()
        self.batch_size = batch_size
        short_name = self.handle.model_name.rsplit("/", 1)[-1]
        self.embedder_id = f"{short_name}:{version}"
        self._dimension: Optional[int] = None

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            self._dimension = int(self.handle.get().get_sentence_embedding_dimension())
        return self._dimension

    def _encode(self, texts: List[str]) -> np.ndarray:
        model = self.handle.get()
        logger.debug(f"Encoding {len(texts)} texts in batches of {self.batch_size}")
        embeddings = model.encode(
            texts,
            batch_size=self.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=True,
        )
        return np.asarray(embeddings, dtype=np.float32)
