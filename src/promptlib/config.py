"""Configuration constants for promptlib."""

import os
from pathlib import Path

from pydantic import BaseModel

# Top-level category folders, in display order
CATEGORIES = (
    "prompts",
    "snippets",
    "templates",
    "skills",
    "instructions",
    "chains",
    "contexts",
    "examples",
)

# Items in this category are parsed into workflows
WORKFLOW_CATEGORY = "chains"

# Search weight multipliers
CATEGORY_WEIGHTS = {
    "prompts": 1.5,
    "chains": 1.4,
    "skills": 1.3,
}
TAG_BONUS = 1.1
DESCRIPTION_BONUS = 1.1

# Files read concurrently per scan batch
SCAN_BATCH_SIZE = 50

# Fuzzy resolution cutoffs
MIN_MATCH_SCORE = 0.5
CHAIN_MATCH_SCORE = 0.6

# Save sanitization
MAX_NAME_LENGTH = 64
PLACEHOLDER_NAME = "unnamed"

DESCRIPTION_MAX_LENGTH = 200

# Watcher debounce window for repeated writes to one path
WATCH_DEBOUNCE_MS = 300

# External intent rules, relative to the library root
INTENTS_CONFIG = Path("config") / "intents.json"

MARKDOWN_SUFFIX = ".md"
EXCLUDED_FILES = ("readme.md",)
EXCLUDED_SUFFIXES = ("_index.md",)

DEFAULT_SEARCH_LIMIT = 10
DEFAULT_SUGGEST_LIMIT = 5
DID_YOU_MEAN_LIMIT = 3


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def get_library_path() -> Path:
    """Get the library root from the environment, defaulting to the cwd."""
    return Path(os.environ.get("AI_LIBRARY_PATH", ".")).expanduser().resolve()


class LibrarySettings(BaseModel):
    """Runtime settings for a library instance."""

    library_path: Path
    read_only: bool = False
    watch: bool = False
    debug: bool = False
    max_search_results: int = DEFAULT_SEARCH_LIMIT

    @classmethod
    def from_env(cls) -> "LibrarySettings":
        """Build settings from AI_LIBRARY_* environment variables."""
        max_results = os.environ.get("AI_LIBRARY_MAX_RESULTS")
        return cls(
            library_path=get_library_path(),
            read_only=_env_flag("AI_LIBRARY_READ_ONLY"),
            watch=_env_flag("AI_LIBRARY_WATCH"),
            debug=_env_flag("AI_LIBRARY_DEBUG"),
            max_search_results=int(max_results) if max_results else DEFAULT_SEARCH_LIMIT,
        )
