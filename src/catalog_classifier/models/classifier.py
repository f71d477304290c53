from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

MatchType = Literal["exact", "similar", "computed"]
QualityBand = Literal["good", "weak", "poor"]


class ClassificationResult(BaseModel):
    category: str = Field(..., description="Assigned category name")
    subcategory: str = Field(..., description="Assigned subcategory name")
    part_type: str = Field(..., alias="partType", description="Assigned part type name")
    confidence: int = Field(..., ge=0, le=100, description="Rounded mean of the three level similarities")
    justification: str = Field("", description="Human readable reason for the assignment")
    match_type: MatchType = Field("computed", alias="matchType")
    similarity: Optional[int] = Field(None, ge=0, le=100, description="Similarity to the cached neighbour, in percent")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _check_provenance(self):
        if self.match_type == "similar" and self.similarity is None:
            raise ValueError("similar matches must carry a similarity percentage")
        if self.match_type != "similar" and self.similarity is not None:
            raise ValueError("similarity is only set for similar matches")
        return self
