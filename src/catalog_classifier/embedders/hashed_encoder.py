"""
Hash-based TF-IDF style encoder.

No model download and fully deterministic, but similarity is purely
lexical: two texts are close only when they share words or n-grams.
"""
import re
from collections import Counter
from typing import List

import numpy as np

from catalog_classifier.embedders.base import BaseEmbedder
from catalog_classifier.utils.vector_math import normalize_rows

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def rolling_hash(token: str, seed: int = 0) -> int:
    """31-multiplier string hash with 32-bit signed overflow, returned as an absolute value."""
    h = seed
    for ch in token:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def tokenize(text: str, min_length: int = 3) -> List[str]:
    """Lowercased alphanumeric words plus underscore-joined bigrams and trigrams."""
    if not text:
        return []

    cleaned = _NON_ALNUM.sub(" ", text.lower())
    words = [w for w in cleaned.split() if len(w) >= min_length]

    tokens = list(words)
    tokens.extend(f"{a}_{b}" for a, b in zip(words, words[1:]))
    tokens.extend(f"{a}_{b}_{c}" for a, b, c in zip(words, words[1:], words[2:]))
    return tokens


class HashedTfidfEmbedder(BaseEmbedder):
    def __init__(
        self,
        dimension: int = 768,
        rounds: int = 5,
        decay: float = 0.15,
        min_token_length: int = 3,
        version: str = "v1",
    ):
        if (rounds - 1) * decay >= 1.0:
            raise ValueError("decay too large: later hash rounds would get non-positive weight")
        self._dimension = dimension
        self.rounds = rounds
        self.decay = decay
        self.min_token_length = min_token_length
        self.embedder_id = f"hashed-tfidf:{version}:r{rounds}:d{decay}:m{min_token_length}"

    @property
    def dimension(self) -> int:
        return self._dimension

    def _encode_one(self, text: str) -> np.ndarray:
        vec = np.zeros(self._dimension, dtype=np.float64)
        tokens = tokenize(text, self.min_token_length)
        if not tokens:
            return vec

        total = len(tokens)
        for token, count in Counter(tokens).items():
            tf = count / total
            for i in range(self.rounds):
                position = rolling_hash(token, i) % self._dimension
                vec[position] += tf * (1 - i * self.decay)
        return vec

    def _encode(self, texts: List[str]) -> np.ndarray:
        matrix = np.vstack([self._encode_one(t) for t in texts])
        return normalize_rows(matrix)
