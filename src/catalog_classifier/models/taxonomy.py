from typing import Any, Literal, Optional, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

from catalog_classifier.utils.vector_math import parse_vector

TaxonomyLevel = Literal["category", "subcategory", "parttype"]
NodeId = Union[int, str]


class TaxonomyNode(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: NodeId
    name: str
    embedding: Optional[np.ndarray] = Field(None, description="Unit vector for the node's own name")
    embedding_space: Optional[str] = Field(None, description="EmbeddingSpace key the vector was generated in")

    @field_validator("embedding", mode="before")
    @classmethod
    def _parse_embedding(cls, value: Any):
        return parse_vector(value)


class Category(TaxonomyNode):
    level: Literal["category"] = "category"


class Subcategory(TaxonomyNode):
    level: Literal["subcategory"] = "subcategory"
    category_id: NodeId


class PartType(TaxonomyNode):
    level: Literal["parttype"] = "parttype"
    subcategory_id: NodeId
