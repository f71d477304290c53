"""
Base class for all text embedders.
"""
from abc import ABC, abstractmethod
from typing import List, Sequence

import numpy as np

from catalog_classifier.models import EmbeddingSpace


class BaseEmbedder(ABC):
    """
    Maps text to a fixed-length unit vector.

    Implementations must be deterministic for a given version: the cache
    relies on identical text always producing the same vector. Empty or
    non-string input yields the zero vector instead of raising.
    """

    embedder_id: str = "base"

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Embedding dimensionality."""

    @abstractmethod
    def _encode(self, texts: List[str]) -> np.ndarray:
        """Encode non-empty texts into an (N, D) float32 array of unit vectors."""

    @property
    def space(self) -> EmbeddingSpace:
        return EmbeddingSpace(embedder_id=self.embedder_id, dimension=self.dimension)

    def embed(self, text) -> np.ndarray:
        """Encode a single text."""
        return self.embed_many([text])[0]

    def embed_many(self, texts: Sequence) -> np.ndarray:
        """Encode texts, leaving zero rows for empty or non-string entries."""
        output = np.zeros((len(texts), self.dimension), dtype=np.float32)
        positions = [i for i, t in enumerate(texts) if isinstance(t, str) and t.strip()]
        if not positions:
            return output

        encoded = self._encode([texts[i] for i in positions])
        for row, i in enumerate(positions):
            output[i] = encoded[row]
        return output

    def __repr__(self):
        return f"{self.__class__.__name__}(space='{self.space.key}')"
