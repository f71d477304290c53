import os
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from catalog_classifier.agents.batch_classifier import BatchClassifier
from catalog_classifier.agents.classification_cache import ClassificationCache
from catalog_classifier.agents.taxonomy_index import TaxonomyIndex
from catalog_classifier.api.batch_handler import handle_batch_request
from catalog_classifier.dbs.cache_db import ClassificationCacheDB
from catalog_classifier.exception import EmptyTaxonomyError, StoreUnavailableError
from catalog_classifier.utils.load_config import BatchSettings


@pytest.fixture
def agent_factory(synced_store, cache_store, embedder, settings):
    index = TaxonomyIndex.build(synced_store, embedder.space)

    def _factory():
        return BatchClassifier(index, ClassificationCache(cache_store, embedder), embedder, settings=settings)

    return _factory


@pytest.mark.parametrize("body", [None, {}, {"products": "Brake Pads"}, {"products": {"id": 1}}, []])
def test_missing_products_array_is_client_error(body):
    factory = MagicMock()
    status, payload = handle_batch_request(body, factory)

    assert status == 400
    assert payload == {"error": "Invalid request: products array required"}
    factory.assert_not_called()


def test_too_many_products_is_client_error():
    body = {"products": [{"id": i, "name": f"Part {i}"} for i in range(3)]}
    status, payload = handle_batch_request(body, MagicMock(), BatchSettings(max_products_per_request=2))

    assert status == 400
    assert payload["maxAllowed"] == 2
    assert payload["received"] == 3


def test_malformed_product_entry_is_client_error():
    status, payload = handle_batch_request({"products": ["Brake Pads"]}, MagicMock())
    assert status == 400
    assert "Invalid product entry" in payload["error"]


@pytest.mark.parametrize("error", [StoreUnavailableError("taxonomy store unreachable"), EmptyTaxonomyError("no part types")])
def test_backend_failures_are_server_errors(error):
    agent = MagicMock()
    agent.classify_batch.side_effect = error

    status, payload = handle_batch_request({"products": [{"id": 1, "name": "Brake Pads"}]}, lambda: agent)

    assert status == 500
    assert payload == {"error": str(error)}
    agent.close.assert_called_once()


def test_store_failure_while_building_classifier_is_server_error():
    def factory():
        raise StoreUnavailableError("connection refused")

    status, payload = handle_batch_request({"products": []}, factory)
    assert status == 500
    assert payload == {"error": "connection refused"}


def test_successful_batch(agent_factory):
    body = {
        "products": [
            {"id": 1, "name": "Heavy-Duty Brake Pads", "description": "Ceramic brake pads"},
            {"id": 2, "name": "Oil Filter", "description": "spin-on oil filter"},
        ]
    }
    status, payload = handle_batch_request(body, agent_factory)

    assert status == 200
    assert payload["totalRequested"] == 2
    assert payload["totalProcessed"] == 2
    assert sum(payload["qualityStats"].values()) == 2
    assert [p["partType"] for p in payload["categorizedProducts"]] == ["Brake Pads", "Oil Filter"]
    assert payload["categorizedProducts"][1]["category"] == "Engine"


def test_unreachable_cache_database_is_server_error(synced_store, embedder, settings):
    index = TaxonomyIndex.build(synced_store, embedder.space)

    def factory():
        cache = ClassificationCache(ClassificationCacheDB(), embedder, settings.cache)
        return BatchClassifier(index, cache, embedder, settings=settings)

    with patch.dict(os.environ, {"DATABASE_URL": "postgres://nobody:x@127.0.0.1:1/nodb"}):
        with patch("catalog_classifier.dbs.cache_db.psycopg2.connect") as mock_connect:
            mock_connect.side_effect = psycopg2.OperationalError("Connection refused")
            status, payload = handle_batch_request({"products": [{"id": 1, "name": "Brake Pads"}]}, factory)

    assert status == 500
    assert "Connection refused" in payload["error"]


def test_missing_connection_string_is_server_error():
    def factory():
        ClassificationCacheDB()

    with patch.dict(os.environ, {}, clear=True):
        status, payload = handle_batch_request({"products": []}, factory)

    assert status == 500
    assert payload == {"error": "Database connection string not found."}


def test_classifier_is_closed_after_request():
    agent = MagicMock()
    status, _ = handle_batch_request({"products": []}, lambda: agent)

    assert status == 200
    agent.close.assert_called_once()
