"""
vector_math.py

Small numpy helpers shared by the embedders, the taxonomy index and the
in-memory cache store. All embeddings are float32 and unit length, so
similarity is a plain dot product.
"""

import json
from typing import Optional, Sequence, Union

import numpy as np

from catalog_classifier.exception import EmbeddingSpaceMismatchError
from catalog_classifier.logger import get_logger

logger = get_logger(__name__)

VectorLike = Union[np.ndarray, Sequence[float], str]


def normalize_rows(matrix) -> np.ndarray:
    matrix = np.asarray(matrix, dtype=np.float32)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


def similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Dot product of two unit vectors. Raises when the dimensions differ."""
    if a.shape != b.shape:
        raise EmbeddingSpaceMismatchError(
            f"Cannot compare embeddings of shape {a.shape} and {b.shape}"
        )
    return float(np.dot(a, b))


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def parse_vector(raw: Optional[VectorLike]) -> Optional[np.ndarray]:
    """
    Converts a stored embedding into a float32 array.

    pgvector columns come back as text like "[0.1,0.2]"; lists and arrays
    pass through. Unparseable or empty values yield None.
    """
    if raw is None:
        return None

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Failed to parse embedding: {e}")
            return None

    vec = np.asarray(raw, dtype=np.float32)
    if vec.ndim != 1 or vec.size == 0:
        return None
    return vec


def to_pgvector(vec) -> str:
    """Serializes a vector to the pgvector text format."""
    return "[" + ",".join(f"{float(x):.8g}" for x in np.asarray(vec).ravel()) + "]"
