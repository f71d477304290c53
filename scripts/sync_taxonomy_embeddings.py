import sys

from dotenv import load_dotenv

from catalog_classifier.dbs.taxonomy_db import TaxonomyDB
from catalog_classifier.embedders import build_embedder
from catalog_classifier.logger import get_logger
from catalog_classifier.sync.taxonomy_sync import TaxonomyEmbeddingSync

# Load env vars (DB conn)
load_dotenv()

logger = get_logger(__name__)


def run_sync():
    try:
        logger.info("Starting taxonomy embedding sync (Postgres + Vector)...")

        syncer = TaxonomyEmbeddingSync(TaxonomyDB(), build_embedder())
        summary = syncer.sync()

        failed = sum(level["failed"] for level in summary.values())
        for level, counts in summary.items():
            print(f"{level:<12} {counts['updated']}/{counts['total']} updated, {counts['failed']} failed")

        if failed:
            logger.error(f"{failed} taxonomy embeddings could not be written.")
            sys.exit(1)

        print("SUCCESS: Taxonomy embeddings synced.")

    except Exception as e:
        logger.error(f"Failed to sync taxonomy embeddings: {e}")
        print(f"ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run_sync()
