"""
batch_handler.py

Framework-agnostic handler for the batch categorization request:
    {"products": [{"id", "name", "description"}, ...]}

Returns (status, payload) so any HTTP layer can wrap it.
"""

from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from catalog_classifier.agents.batch_classifier import BatchClassifier
from catalog_classifier.exception import (
    EmptyTaxonomyError,
    InvalidRequestError,
    StoreUnavailableError,
)
from catalog_classifier.logger import get_logger
from catalog_classifier.models import ProductInput
from catalog_classifier.utils.load_config import BatchSettings

logger = get_logger(__name__)

Response = Tuple[int, Dict[str, Any]]


def _parse_products(body, settings: BatchSettings):
    products = body.get("products") if isinstance(body, dict) else None
    if not isinstance(products, list):
        raise InvalidRequestError("Invalid request: products array required")

    if len(products) > settings.max_products_per_request:
        raise InvalidRequestError(
            f"Too many products. Maximum {settings.max_products_per_request} per request.",
            details={"maxAllowed": settings.max_products_per_request, "received": len(products)},
        )

    try:
        return [p if isinstance(p, ProductInput) else ProductInput(**p) for p in products]
    except (TypeError, ValidationError) as e:
        raise InvalidRequestError(f"Invalid product entry: {e}")


def handle_batch_request(
    body: Optional[dict],
    classifier_factory: Callable[[], BatchClassifier],
    settings: Optional[BatchSettings] = None,
) -> Response:
    """
    The factory builds a fresh classifier per request; the handler closes it,
    which waits for its pending cache writes.
    """
    settings = settings or BatchSettings()

    try:
        products = _parse_products(body, settings)
    except InvalidRequestError as e:
        logger.warning(f"Rejected batch request: {e}")
        return e.status_code, {"error": str(e), **e.details}

    classifier = None
    try:
        classifier = classifier_factory()
        result = classifier.classify_batch(products)
    except (StoreUnavailableError, EmptyTaxonomyError) as e:
        logger.error(f"Batch categorization failed: {e}")
        return e.status_code, {"error": str(e)}
    finally:
        if classifier is not None:
            classifier.close()

    return 200, result.to_response()
