from datetime import datetime
from typing import Any, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

from catalog_classifier.models.classifier import ClassificationResult, MatchType
from catalog_classifier.utils.vector_math import parse_vector


class CacheEntry(BaseModel):
    """One row of the product_classifications table."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    product_hash: str
    product_name: str = ""
    product_description: str = ""
    suggested_category: Optional[str] = None
    suggested_subcategory: Optional[str] = None
    suggested_parttype: Optional[str] = None
    confidence: int = Field(0, ge=0, le=100)
    validation_reason: str = ""
    embedding: Optional[np.ndarray] = None
    embedding_space: Optional[str] = None
    usage_count: int = 0
    last_used_at: Optional[datetime] = None

    @field_validator("embedding", mode="before")
    @classmethod
    def _parse_embedding(cls, value: Any):
        return parse_vector(value)

    @field_validator("product_name", "product_description", "validation_reason", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return "" if value is None else value

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> int:
        try:
            return max(0, min(100, int(round(float(value)))))
        except (TypeError, ValueError):
            return 0

    def is_valid(self) -> bool:
        """Rows without a category assignment are treated as corrupt."""
        return bool(self.suggested_category and self.suggested_category.strip())

    def to_result(self, match_type: MatchType, similarity: Optional[float] = None) -> ClassificationResult:
        if match_type == "similar":
            percent = round((similarity or 0.0) * 100)
            reason = f"Cached ({percent}% similar to \"{self.product_name}\"): {self.validation_reason}"
        else:
            percent = None
            reason = f"Cached ({match_type}): {self.validation_reason}"

        return ClassificationResult(
            category=self.suggested_category or "",
            subcategory=self.suggested_subcategory or "",
            part_type=self.suggested_parttype or "",
            confidence=self.confidence,
            justification=reason,
            match_type=match_type,
            similarity=percent,
        )
