"""Assessment catalog models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Criterion(BaseModel):
    """One fixed compliance checkpoint in the assessment catalog."""

    model_config = ConfigDict(frozen=True)

    id: str
    category: str
    name: str
    criteria: str
    standards: str = ""
    evidence_examples: str = ""
    risk: str = ""
    order: int = Field(default=0, ge=0)


class SearchGroup(BaseModel):
    """A batch of categories sharing one topical search query."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    categories: tuple[str, ...]
    search_query: str


class CurrentItem(BaseModel):
    """The criterion currently being processed, for display."""

    id: str
    name: str
    category: str

    @classmethod
    def from_criterion(cls, criterion: Criterion) -> "CurrentItem":
        return cls(id=criterion.id, name=criterion.name, category=criterion.category)
