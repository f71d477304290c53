import math
from typing import Optional

import numpy as np

from catalog_classifier.agents.taxonomy_index import TaxonomyIndex
from catalog_classifier.exception import EmbeddingSpaceMismatchError, TaxonomyResolutionError
from catalog_classifier.logger import get_logger
from catalog_classifier.models import ClassificationResult, QualityBand
from catalog_classifier.utils.load_config import ClassifierPolicy
from catalog_classifier.utils.vector_math import clamp_unit, similarity

logger = get_logger(__name__)


def quality_band(confidence: int, policy: Optional[ClassifierPolicy] = None) -> QualityBand:
    """Informational band used in batch summaries; never used to reject a result."""
    policy = policy or ClassifierPolicy()
    if confidence >= policy.good_threshold:
        return "good"
    if confidence >= policy.weak_threshold:
        return "weak"
    return "poor"


def to_confidence(*similarities: float) -> int:
    """Rounded (half-up) mean of the similarities, as a 0-100 score."""
    mean = sum(clamp_unit(s) for s in similarities) / len(similarities)
    return int(math.floor(mean * 100 + 0.5))


class TaxonomyClassifier:
    """
    Assigns a product embedding to the closest part type and its ancestors.

    1. Linear scan: dot product against every part type embedding.
    2. Highest similarity wins; ties go to the first part type in index order.
    3. No usable part type embeddings: first part type at the fallback floor
       similarity (when the fallback policy is enabled).
    4. Subcategory and category similarities are computed against their own
       embeddings, not derived from the leaf.
    5. Confidence is the mean of the three similarities.
    """

    def __init__(self, policy: Optional[ClassifierPolicy] = None):
        self.policy = policy or ClassifierPolicy()

    def classify(self, product_embedding: np.ndarray, index: TaxonomyIndex) -> ClassificationResult:
        best_pt, best_pt_sim, used_fallback = self._best_part_type(product_embedding, index)

        # Raises TaxonomyResolutionError for an orphaned leaf; caller skips the product.
        subcategory = index.subcategory_of(best_pt.id)
        category = index.category_of(subcategory.id)

        sub_sim = self._node_similarity(product_embedding, subcategory)
        cat_sim = self._node_similarity(product_embedding, category)

        confidence = to_confidence(cat_sim, sub_sim, best_pt_sim)
        justification = (
            f"Matched part type \"{best_pt.name}\" ({clamp_unit(best_pt_sim):.0%}) under "
            f"\"{category.name} > {subcategory.name}\" "
            f"(category {clamp_unit(cat_sim):.0%}, subcategory {clamp_unit(sub_sim):.0%})"
        )
        if used_fallback:
            justification += "; no part type embeddings available, used first part type"

        return ClassificationResult(
            category=category.name,
            subcategory=subcategory.name,
            part_type=best_pt.name,
            confidence=confidence,
            justification=justification,
            match_type="computed",
        )

    def _best_part_type(self, product_embedding: np.ndarray, index: TaxonomyIndex):
        candidates, matrix = index.part_type_matrix()

        if matrix is not None:
            if product_embedding.shape != (matrix.shape[1],):
                raise EmbeddingSpaceMismatchError(
                    f"Product embedding shape {product_embedding.shape} does not match "
                    f"taxonomy dimension {matrix.shape[1]}"
                )
            scores = matrix @ product_embedding.astype(np.float32)
            best = int(np.argmax(scores))  # first maximum wins
            return candidates[best], float(scores[best]), False

        part_types = index.all_part_types()
        if not self.policy.fallback_enabled or not part_types:
            raise TaxonomyResolutionError("No part type has a usable embedding.")

        logger.warning(
            f"No part type embeddings; falling back to '{part_types[0].name}' "
            f"at similarity {self.policy.fallback_similarity}"
        )
        return part_types[0], self.policy.fallback_similarity, True

    def _node_similarity(self, product_embedding: np.ndarray, node) -> float:
        if node.embedding is None:
            return self.policy.fallback_similarity
        return similarity(product_embedding, node.embedding)
