"""Pydantic data models."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import WORKFLOW_CATEGORY

Category = Literal[
    "prompts",
    "snippets",
    "templates",
    "skills",
    "instructions",
    "chains",
    "contexts",
    "examples",
]

OutputFormat = Literal["full", "body", "prompt_only"]


class ItemMetadata(BaseModel):
    """Frontmatter attached to an item. Every field is optional.

    Unknown keys are kept as extra fields so they survive a save round trip.
    """

    model_config = ConfigDict(extra="allow")

    title: str | None = None
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    aliases: list[str] = Field(default_factory=list)

    @field_validator("title", "description", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("tags", "aliases", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(v).strip() for v in value if v is not None and str(v).strip()]
        return [str(value)]

    @property
    def extra(self) -> dict[str, Any]:
        """Keys that are not one of the known metadata fields."""
        return dict(self.model_extra or {})


class LibraryItem(BaseModel):
    """A single library document (prompt, snippet, template, etc.)."""

    id: str  # e.g. "prompts/planning/prd-generator"
    name: str  # e.g. "prd-generator"
    category: Category
    subcategory: str | None = None

    path: Path
    relative_path: str

    content: str  # full file text
    body: str  # text without the frontmatter block
    metadata: ItemMetadata = Field(default_factory=ItemMetadata)

    searchable_text: str = ""
    modified_at: datetime

    @property
    def title(self) -> str:
        return self.metadata.title or self.name

    @property
    def is_workflow(self) -> bool:
        return self.category == WORKFLOW_CATEGORY

    @property
    def location(self) -> str:
        """Category with subcategory, e.g. "prompts/planning"."""
        if self.subcategory:
            return f"{self.category}/{self.subcategory}"
        return self.category

    def summary(self) -> dict[str, Any]:
        """Lightweight JSON-safe view without the document text."""
        return {
            "id": self.id,
            "name": self.name,
            "title": self.title,
            "category": self.category,
            "subcategory": self.subcategory,
            "description": self.metadata.description,
            "tags": list(self.metadata.tags),
        }


class SaveRequest(BaseModel):
    """Request to persist a new item into the library."""

    category: str
    subcategory: str | None = None
    name: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class Step(BaseModel):
    """One step of a workflow."""

    number: int  # label from the source heading
    title: str
    prompt: str = ""
    expected_output: list[str] = Field(default_factory=list)
    decision_point: str | None = None


class Workflow(BaseModel):
    """A multi-step guide parsed from an item in the workflow category."""

    id: str
    name: str
    description: str = ""
    overview: str = ""
    prerequisites: list[str] = Field(default_factory=list)
    steps: list[Step] = Field(default_factory=list)
    tips: list[str] = Field(default_factory=list)
    item: LibraryItem

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    def step_at(self, position: int) -> Step | None:
        """Return the step at a 1-based position, or None when out of range."""
        if 1 <= position <= len(self.steps):
            return self.steps[position - 1]
        return None

    def summary(self) -> dict[str, Any]:
        """JSON-safe view without the source item."""
        return self.model_dump(mode="json", exclude={"item"})


@dataclass
class SearchEntry:
    """Flat search projection of an item with its precomputed weight."""

    id: str
    text: str
    weight: float


@dataclass
class SearchResult:
    """A ranked search hit."""

    item: LibraryItem
    score: float
    matches: list[str] = field(default_factory=list)


@dataclass
class Suggestion:
    """An item recommended for a detected intent."""

    item: LibraryItem
    reason: str
    confidence: float  # 0-1


@dataclass
class LookupResult:
    """Outcome of looking an item up by name."""

    item: LibraryItem | None
    did_you_mean: list[LibraryItem] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.item is not None
