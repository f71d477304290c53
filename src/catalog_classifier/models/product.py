from typing import Any, Optional, Union

from pydantic import BaseModel, field_validator


class ProductInput(BaseModel):
    id: Optional[Union[int, str]] = None
    name: str = ""
    description: str = ""

    @field_validator("name", "description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @property
    def text(self) -> str:
        """Classification text: name and description joined by a space."""
        return f"{self.name} {self.description}".strip()
