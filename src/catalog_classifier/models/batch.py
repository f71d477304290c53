from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from catalog_classifier.models.classifier import ClassificationResult, MatchType


class QualityStats(BaseModel):
    good: int = 0
    weak: int = 0
    poor: int = 0


class BatchStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_processed: int = Field(0, alias="totalProcessed")
    total_requested: int = Field(0, alias="totalRequested")
    quality_stats: QualityStats = Field(default_factory=QualityStats, alias="qualityStats")
    cache_hits: int = Field(0, alias="cacheHits")
    failed: int = 0
    cancelled: int = 0


class CategorizedProduct(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[Union[int, str]] = None
    category: str
    subcategory: str
    part_type: str = Field(..., alias="partType")
    confidence: int
    match_type: MatchType = Field("computed", alias="matchType")
    similarity: Optional[int] = None

    @classmethod
    def from_result(cls, product_id, result: ClassificationResult) -> "CategorizedProduct":
        return cls(
            id=product_id,
            category=result.category,
            subcategory=result.subcategory,
            part_type=result.part_type,
            confidence=result.confidence,
            match_type=result.match_type,
            similarity=result.similarity,
        )


class BatchResult(BaseModel):
    results: List[CategorizedProduct] = Field(default_factory=list)
    stats: BatchStats = Field(default_factory=BatchStats)

    def to_response(self) -> dict:
        """Response body in the camelCase wire format."""
        payload = self.stats.model_dump(by_alias=True, include={"total_processed", "total_requested", "quality_stats"})
        payload["categorizedProducts"] = [
            item.model_dump(by_alias=True, include={"id", "category", "subcategory", "part_type", "confidence"})
            for item in self.results
        ]
        return payload
