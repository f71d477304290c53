from typing import Optional

from catalog_classifier.utils.load_config import ClassifierSettings, get_settings

from .base import BaseEmbedder
from .hashed_encoder import HashedTfidfEmbedder
from .sentence_encoder import ModelHandle, SentenceEmbedder, shared_model_handle


def build_embedder(settings: Optional[ClassifierSettings] = None) -> BaseEmbedder:
    """Creates the embedder selected by the `embedding.backend` setting."""
    settings = settings or get_settings()
    cfg = settings.embedding

    if cfg.backend == "hashed":
        return HashedTfidfEmbedder(
            dimension=cfg.dimension,
            rounds=cfg.hash_rounds,
            decay=cfg.hash_decay,
            min_token_length=cfg.min_token_length,
            version=cfg.version,
        )

    return SentenceEmbedder(
        handle=shared_model_handle(cfg.model_name),
        batch_size=cfg.batch_size,
        version=cfg.version,
    )


__all__ = [
    "BaseEmbedder",
    "HashedTfidfEmbedder",
    "SentenceEmbedder",
    "ModelHandle",
    "shared_model_handle",
    "build_embedder",
]
