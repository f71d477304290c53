import pytest

from catalog_classifier.dbs.memory_store import InMemoryCacheStore, InMemoryTaxonomyStore
from catalog_classifier.embedders import HashedTfidfEmbedder
from catalog_classifier.models import Category, PartType, Subcategory
from catalog_classifier.sync.taxonomy_sync import TaxonomyEmbeddingSync
from catalog_classifier.utils.load_config import BatchSettings, ClassifierSettings, EmbeddingSettings


class CountingEmbedder(HashedTfidfEmbedder):
    """Hashed embedder that records every text it actually encodes."""

    def __init__(self, **kwargs):
        super().__init__(dimension=256, **kwargs)
        self.encoded = []

    def _encode(self, texts):
        self.encoded.extend(texts)
        return super()._encode(texts)


@pytest.fixture
def embedder():
    return CountingEmbedder()


@pytest.fixture
def settings():
    return ClassifierSettings(
        embedding=EmbeddingSettings(backend="hashed", dimension=256, batch_size=2),
        batch=BatchSettings(max_workers=2),
    )


@pytest.fixture
def taxonomy_store():
    return InMemoryTaxonomyStore(
        categories=[
            Category(id=1, name="Brake System"),
            Category(id=2, name="Engine"),
        ],
        subcategories=[
            Subcategory(id=10, name="Brake Components", category_id=1),
            Subcategory(id=20, name="Ignition", category_id=2),
            Subcategory(id=21, name="Filters", category_id=2),
        ],
        part_types=[
            PartType(id=100, name="Brake Pads", subcategory_id=10),
            PartType(id=101, name="Brake Rotors", subcategory_id=10),
            PartType(id=200, name="Spark Plug", subcategory_id=20),
            PartType(id=210, name="Oil Filter", subcategory_id=21),
        ],
    )


@pytest.fixture
def synced_store(taxonomy_store):
    """Taxonomy with embeddings generated by a separate embedder of the same space."""
    TaxonomyEmbeddingSync(taxonomy_store, CountingEmbedder()).sync()
    return taxonomy_store


@pytest.fixture
def cache_store():
    return InMemoryCacheStore()
