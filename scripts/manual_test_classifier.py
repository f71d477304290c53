from dotenv import load_dotenv

from catalog_classifier.agents.batch_classifier import BatchClassifier
from catalog_classifier.agents.classification_cache import ClassificationCache
from catalog_classifier.agents.taxonomy_index import TaxonomyIndex
from catalog_classifier.dbs.cache_db import ClassificationCacheDB
from catalog_classifier.dbs.taxonomy_db import TaxonomyDB
from catalog_classifier.embedders import build_embedder
from catalog_classifier.logger import get_logger
from catalog_classifier.utils.load_config import get_settings

load_dotenv()
logger = get_logger(__name__)


def test_classifier():
    settings = get_settings()
    embedder = build_embedder(settings)
    index = TaxonomyIndex.build(TaxonomyDB(), embedder.space)
    cache = ClassificationCache(ClassificationCacheDB(), embedder, settings.cache)

    test_items = [
        ("Heavy-Duty Brake Pads", "Ceramic brake pads for high-performance vehicles"),
        ("Oil Filter", "Spin-on oil filter for 2.0L engines"),
        ("Spark Plug", "Iridium spark plug, pack of 4"),
        ("Wiper Blade", "22 inch beam wiper blade"),
        ("Heavy-Duty Brake Pads", "Ceramic brake pads for high-performance vehicles"),
    ]

    print("\n--- Starting Classification Test ---\n")

    with BatchClassifier(index, cache, embedder, settings=settings) as agent:
        for name, description in test_items:
            result = agent.classify_single({"name": name, "description": description})
            print(f"Input: '{name}' | '{description}'")
            print(f"  Category:    {result.category}")
            print(f"  Subcategory: {result.subcategory}")
            print(f"  Part type:   {result.part_type}")
            print(f"  Confidence:  {result.confidence} ({result.match_type})")
            print("-" * 30)


if __name__ == "__main__":
    test_classifier()
