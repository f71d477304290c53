from dotenv import load_dotenv

from catalog_classifier.dbs.cache_db import ClassificationCacheDB
from catalog_classifier.logger import get_logger
from catalog_classifier.sync.taxonomy_sync import ensure_schema
from catalog_classifier.utils.load_config import get_settings

load_dotenv()
logger = get_logger(__name__)


def setup_pgvector():
    """
    Enables the 'vector' extension and creates the taxonomy tables and the
    product_classifications cache table.
    """
    settings = get_settings()
    conn_str = settings.database.conn_str()
    if not conn_str:
        logger.error(f"{settings.database.conn_env} not found in environment variables.")
        return

    try:
        logger.info("Connecting to Postgres...")
        ensure_schema(conn_str)
        ClassificationCacheDB(conn_str)
        logger.info("pgvector setup completed successfully.")

    except Exception as e:
        logger.error(f"Failed to setup pgvector: {e}")


if __name__ == "__main__":
    setup_pgvector()
