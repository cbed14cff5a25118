"""Pydantic schemas for externally supplied intent rules."""

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .exceptions import IntentConfigError


class IntentPattern(BaseModel):
    """A rule mapping message keywords to recommended item ids."""

    model_config = ConfigDict(populate_by_name=True)

    keywords: list[str] = Field(min_length=1)
    intent: str = Field(min_length=1)
    suggested_items: list[str] = Field(alias="suggestedItems", min_length=1)
    priority: int = Field(ge=0, le=10)

    @field_validator("keywords")
    @classmethod
    def _lowercase_keywords(cls, value: list[str]) -> list[str]:
        return [kw.lower() for kw in value]


_PATTERNS_ADAPTER = TypeAdapter(list[IntentPattern])


def validate_intent_patterns(data: object, config_path: Path) -> list[IntentPattern]:
    """Validate decoded JSON as a list of intent patterns.

    Raises:
        IntentConfigError: If the data does not match the schema.
    """
    try:
        return _PATTERNS_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise IntentConfigError(f"Invalid intent config: {e}", config_path) from e


def load_intent_patterns(config_path: Path) -> list[IntentPattern]:
    """Read and validate an intents.json file.

    Raises:
        IntentConfigError: If the file cannot be read, decoded, or validated.
    """
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise IntentConfigError(f"Could not read intent config: {e}", config_path) from e
    return validate_intent_patterns(data, config_path)
