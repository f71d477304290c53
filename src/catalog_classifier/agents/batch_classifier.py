import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from catalog_classifier.agents.classification_cache import ClassificationCache, generate_product_hash
from catalog_classifier.agents.classifier import TaxonomyClassifier, quality_band
from catalog_classifier.agents.taxonomy_index import TaxonomyIndex
from catalog_classifier.embedders import BaseEmbedder
from catalog_classifier.logger import get_logger
from catalog_classifier.models import (
    BatchResult,
    BatchStats,
    CategorizedProduct,
    ClassificationResult,
    ProductInput,
)
from catalog_classifier.utils.load_config import ClassifierSettings, get_settings

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]
Computed = Tuple[ProductInput, ClassificationResult, np.ndarray]


@dataclass
class ChunkOutcome:
    computed: Dict[str, Computed] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)
    cancelled: List[str] = field(default_factory=list)


class BatchClassifier:
    """
    Orchestrates cache + embedder + classifier over a list of products:
    1. One exact-only cache lookup for the whole batch
    2. Misses (deduplicated by product hash) embedded in chunks and classified
       on a bounded worker pool
    3. New classifications written back to the cache on a writer thread
    4. Per-item confidence plus corpus-level quality stats

    A failing product is skipped and counted; it never aborts the batch.
    """

    def __init__(
        self,
        index: TaxonomyIndex,
        cache: ClassificationCache,
        embedder: BaseEmbedder,
        classifier: Optional[TaxonomyClassifier] = None,
        settings: Optional[ClassifierSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.index = index
        self.cache = cache
        self.embedder = embedder
        self.classifier = classifier or TaxonomyClassifier(self.settings.classifier)
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cache-writer")

    def close(self):
        self._writer.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ----------------------------------------------------------------------
    # BATCH
    # ----------------------------------------------------------------------
    def classify_batch(
        self,
        products: Sequence[Union[ProductInput, dict]],
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> BatchResult:
        # An empty taxonomy fails the whole batch before any work starts.
        self.index.ensure_not_empty()

        products = [p if isinstance(p, ProductInput) else ProductInput(**p) for p in products]
        hashes = [generate_product_hash(p.name, p.description) for p in products]
        logger.info(f"Received {len(products)} products for categorization")

        cached = self.cache.batch_lookup(products)
        resolved: Dict[str, ClassificationResult] = {h: e.to_result("exact") for h, e in cached.items()}

        pending: Dict[str, ProductInput] = {}
        for product, product_hash in zip(products, hashes):
            if product_hash not in resolved and product_hash not in pending:
                pending[product_hash] = product

        logger.info(f"{len(cached)} unique products cached, {len(pending)} to classify")
        outcome = self._compute(pending, cancel_event, progress_callback)

        resolved.update({h: result for h, (_, result, _) in outcome.computed.items()})
        self._write_back(list(outcome.computed.values()))

        return self._assemble(products, hashes, resolved, set(cached), outcome)

    def _compute(
        self,
        pending: Dict[str, ProductInput],
        cancel_event: Optional[threading.Event],
        progress_callback: Optional[ProgressCallback],
    ) -> ChunkOutcome:
        total = ChunkOutcome()
        if not pending:
            return total

        items = list(pending.items())
        size = self.settings.embedding.batch_size
        chunks = [items[i:i + size] for i in range(0, len(items), size)]
        done = 0

        with ThreadPoolExecutor(max_workers=self.settings.batch.max_workers) as pool:
            futures: Dict[Future, list] = {
                pool.submit(self._process_chunk, chunk, cancel_event): chunk for chunk in chunks
            }
            for future in as_completed(futures):
                if cancel_event is not None and cancel_event.is_set():
                    for other in futures:
                        other.cancel()

                if future.cancelled():
                    total.cancelled.extend(h for h, _ in futures[future])
                    continue

                outcome = future.result()
                total.computed.update(outcome.computed)
                total.failed.extend(outcome.failed)
                total.cancelled.extend(outcome.cancelled)

                done += len(futures[future])
                if progress_callback:
                    progress_callback(done, len(items))
                logger.info(f"Progress: {done}/{len(items)}")

        return total

    def _process_chunk(self, chunk, cancel_event: Optional[threading.Event]) -> ChunkOutcome:
        outcome = ChunkOutcome()
        if cancel_event is not None and cancel_event.is_set():
            outcome.cancelled = [h for h, _ in chunk]
            return outcome

        try:
            vectors = self.embedder.embed_many([p.text for _, p in chunk])
        except Exception as e:
            logger.error(f"Batch embedding of {len(chunk)} products failed, retrying one by one: {e}")
            vectors = None

        for i, (product_hash, product) in enumerate(chunk):
            try:
                vec = vectors[i] if vectors is not None else self.embedder.embed(product.text)
                result = self.classifier.classify(vec, self.index)
            except Exception as e:
                logger.warning(f"Skipping product '{product.name}': {e}")
                outcome.failed.append(product_hash)
                continue
            outcome.computed[product_hash] = (product, result, vec)

        return outcome

    # ----------------------------------------------------------------------
    # WRITE-BACK
    # ----------------------------------------------------------------------
    def _write_back(self, items: List[Computed]):
        if not items:
            return

        future = self._writer.submit(self.cache.store_many, items)
        future.add_done_callback(self._log_write_failure)
        if self.settings.batch.wait_for_cache_writes:
            # store_many logs its own errors; waiting only orders writes before the next batch
            future.exception()

    @staticmethod
    def _log_write_failure(future: Future):
        error = future.exception()
        if error is not None:
            logger.error(f"Cache write-back failed: {error}")

    # ----------------------------------------------------------------------
    # RESULTS
    # ----------------------------------------------------------------------
    def _assemble(self, products, hashes, resolved, cached_hashes, outcome: ChunkOutcome) -> BatchResult:
        stats = BatchStats(total_requested=len(products))
        failed = set(outcome.failed)
        cancelled = set(outcome.cancelled)
        results = []

        for product, product_hash in zip(products, hashes):
            result = resolved.get(product_hash)
            if result is None:
                if product_hash in cancelled:
                    stats.cancelled += 1
                else:
                    stats.failed += 1
                continue

            if product_hash in cached_hashes:
                stats.cache_hits += 1

            band = quality_band(result.confidence, self.settings.classifier)
            setattr(stats.quality_stats, band, getattr(stats.quality_stats, band) + 1)
            results.append(CategorizedProduct.from_result(product.id, result))

        stats.total_processed = len(results)
        q = stats.quality_stats
        logger.info(
            f"Categorization complete: {stats.total_processed}/{stats.total_requested} products "
            f"({stats.cache_hits} cached, {stats.failed} failed, {stats.cancelled} cancelled); "
            f"quality: {q.good} good, {q.weak} weak, {q.poor} poor"
        )
        if failed:
            logger.warning(f"{len(failed)} unique products could not be classified")
        return BatchResult(results=results, stats=stats)

    # ----------------------------------------------------------------------
    # SINGLE ITEM
    # ----------------------------------------------------------------------
    def classify_single(self, product: Union[ProductInput, dict]) -> ClassificationResult:
        """
        Interactive path: exact cache tier, then similarity tier, then a fresh
        classification that is written back to the cache.
        """
        if not isinstance(product, ProductInput):
            product = ProductInput(**product)

        hit = self.cache.lookup_exact(product)
        if hit is not None:
            return hit

        self.index.ensure_not_empty()
        embedding = self.embedder.embed(product.text)

        hit = self.cache.lookup_similar(product, embedding)
        if hit is not None:
            return hit

        result = self.classifier.classify(embedding, self.index)
        self._write_back([(product, result, embedding)])
        return result
