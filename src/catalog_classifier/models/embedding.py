from pydantic import BaseModel, ConfigDict, Field


class EmbeddingSpace(BaseModel):
    """Identifies the embedder (and version) a vector was produced by."""

    model_config = ConfigDict(frozen=True)

    embedder_id: str = Field(..., description="Embedder name and version, e.g. all-MiniLM-L6-v2:v1")
    dimension: int = Field(..., gt=0)

    @property
    def key(self) -> str:
        return f"{self.embedder_id}@{self.dimension}"

    def __str__(self):
        return self.key
