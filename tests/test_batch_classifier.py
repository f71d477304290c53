import threading
from unittest.mock import patch

import pytest

from catalog_classifier.agents.batch_classifier import BatchClassifier
from catalog_classifier.agents.classification_cache import ClassificationCache
from catalog_classifier.agents.taxonomy_index import TaxonomyIndex
from catalog_classifier.dbs.memory_store import InMemoryTaxonomyStore
from catalog_classifier.exception import EmptyTaxonomyError, StoreUnavailableError
from catalog_classifier.models import ProductInput

from conftest import CountingEmbedder

PRODUCTS = [
    {"id": 1, "name": "Heavy-Duty Brake Pads", "description": "Ceramic brake pads for high-performance vehicles"},
    {"id": 2, "name": "Iridium Spark Plug", "description": "Long life spark plug"},
    {"id": 3, "name": "heavy-duty brake pads", "description": " Ceramic brake pads for high-performance vehicles "},
]


class FlakyEmbedder(CountingEmbedder):
    """Fails on any text containing BOOM."""

    def _encode(self, texts):
        if any("BOOM" in t for t in texts):
            raise RuntimeError("tokenizer exploded")
        return super()._encode(texts)


@pytest.fixture
def index(synced_store, embedder):
    return TaxonomyIndex.build(synced_store, embedder.space)


@pytest.fixture
def make_agent(index, cache_store, settings):
    agents = []

    def _make(embedder):
        cache = ClassificationCache(cache_store, embedder, settings.cache)
        agent = BatchClassifier(index, cache, embedder, settings=settings)
        agents.append(agent)
        return agent

    yield _make
    for agent in agents:
        agent.close()


# --- Batch ---

def test_batch_results_in_input_order(make_agent, embedder):
    result = make_agent(embedder).classify_batch(PRODUCTS)

    assert [r.id for r in result.results] == [1, 2, 3]
    assert result.results[0].part_type == "Brake Pads"
    assert result.results[0].category == "Brake System"
    assert result.results[1].part_type == "Spark Plug"
    assert result.results[2].part_type == "Brake Pads"
    assert result.stats.total_processed == 3
    assert result.stats.total_requested == 3


def test_duplicates_embedded_once_across_two_runs(make_agent, embedder, cache_store):
    agent = make_agent(embedder)
    duplicate_text = ProductInput(**PRODUCTS[0]).text

    first = agent.classify_batch(PRODUCTS)
    assert embedder.encoded.count(duplicate_text) == 1
    assert len(embedder.encoded) == 2
    assert first.stats.cache_hits == 0
    assert all(r.match_type == "computed" for r in first.results)
    assert len(cache_store) == 2

    second = agent.classify_batch(PRODUCTS)
    assert embedder.encoded.count(duplicate_text) == 1
    assert len(embedder.encoded) == 2
    assert second.stats.cache_hits == 3
    assert all(r.match_type == "exact" for r in second.results)
    assert [r.part_type for r in second.results] == [r.part_type for r in first.results]


def test_bad_row_is_skipped(make_agent):
    products = PRODUCTS + [{"id": 4, "name": "BOOM", "description": "breaks the embedder"}]
    result = make_agent(FlakyEmbedder()).classify_batch(products)

    assert [r.id for r in result.results] == [1, 2, 3]
    assert result.stats.failed == 1
    assert result.stats.total_processed == 3
    assert result.stats.total_requested == 4


def test_empty_text_still_gets_an_assignment(make_agent, embedder):
    result = make_agent(embedder).classify_batch([{"id": "x", "name": None, "description": ""}])
    assert result.stats.total_processed == 1
    assert result.results[0].confidence == 0


def test_cache_write_failure_is_not_fatal(make_agent, embedder, cache_store):
    with patch.object(cache_store, "upsert_many", side_effect=StoreUnavailableError("db down")):
        result = make_agent(embedder).classify_batch(PRODUCTS)

    assert result.stats.total_processed == 3
    assert len(cache_store) == 0


def test_cache_read_failure_falls_through(make_agent, embedder, cache_store):
    with patch.object(cache_store, "get_by_hashes", side_effect=StoreUnavailableError("db down")):
        result = make_agent(embedder).classify_batch(PRODUCTS)

    assert result.stats.total_processed == 3
    assert result.stats.cache_hits == 0


def test_quality_stats_cover_all_results(make_agent, embedder):
    result = make_agent(embedder).classify_batch(PRODUCTS)
    q = result.stats.quality_stats
    assert q.good + q.weak + q.poor == result.stats.total_processed


def test_cancelled_batch_keeps_cached_results(make_agent, embedder):
    agent = make_agent(embedder)
    agent.classify_batch(PRODUCTS[:1])

    cancel = threading.Event()
    cancel.set()
    products = PRODUCTS + [{"id": 5, "name": "Oil Filter", "description": "spin-on"}]
    result = agent.classify_batch(products, cancel_event=cancel)

    assert [r.id for r in result.results] == [1, 3]
    assert result.stats.cancelled == 2
    assert result.stats.failed == 0


def test_progress_callback_reaches_total(make_agent, embedder):
    progress = []
    products = [{"id": i, "name": f"Brake Pads model {i}", "description": ""} for i in range(5)]
    make_agent(embedder).classify_batch(products, progress_callback=lambda done, total: progress.append((done, total)))

    assert progress[-1] == (5, 5)
    assert [done for done, _ in progress] == sorted(done for done, _ in progress)


def test_empty_taxonomy_fails_before_processing(cache_store, embedder, settings):
    index = TaxonomyIndex.build(InMemoryTaxonomyStore(), embedder.space)
    agent = BatchClassifier(index, ClassificationCache(cache_store, embedder), embedder, settings=settings)

    with pytest.raises(EmptyTaxonomyError):
        agent.classify_batch(PRODUCTS)
    assert embedder.encoded == []
    agent.close()


def test_to_response_is_camel_case(make_agent, embedder):
    payload = make_agent(embedder).classify_batch(PRODUCTS).to_response()

    assert set(payload) == {"categorizedProducts", "totalProcessed", "totalRequested", "qualityStats"}
    assert set(payload["qualityStats"]) == {"good", "weak", "poor"}
    assert set(payload["categorizedProducts"][0]) == {"id", "category", "subcategory", "partType", "confidence"}


# --- Single item ---

def test_single_item_computes_then_hits_cache(make_agent, embedder):
    agent = make_agent(embedder)

    computed = agent.classify_single(PRODUCTS[0])
    assert computed.match_type == "computed"
    assert len(embedder.encoded) == 1

    exact = agent.classify_single(PRODUCTS[2])
    assert exact.match_type == "exact"
    assert exact.part_type == computed.part_type
    assert len(embedder.encoded) == 1


def test_single_item_similarity_tier(make_agent, embedder):
    agent = make_agent(embedder)
    agent.classify_single({"name": "Ceramic Brake Pads front axle", "description": ""})

    similar = agent.classify_single({"name": "Ceramic Brake Pads", "description": "front axle"})
    assert similar.match_type == "similar"
    assert similar.similarity >= 85
    # one embedding per call; the cache write reuses it
    assert len(embedder.encoded) == 2
