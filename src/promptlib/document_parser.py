"""Document parser: frontmatter, title, description and search text."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import logfire
import yaml

from .config import DESCRIPTION_MAX_LENGTH, MARKDOWN_SUFFIX

if TYPE_CHECKING:
    from .data_models import ItemMetadata

_FRONTMATTER_RE = re.compile(
    r"\A\ufeff?---[ \t]*\r?\n(.*?)(?:\r?\n)?^---[ \t]*\r?(?:\n|\Z)",
    re.DOTALL | re.MULTILINE,
)
_H1_RE = re.compile(r"^#[ \t]+(.+)$", re.MULTILINE)
_BLOCKQUOTE_RE = re.compile(r"^>[ \t]*(.+)$", re.MULTILINE)
_LEADING_MARKUP_RE = re.compile(r"^[#>*-]+\s*")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class ParsedDocument:
    """A raw document split into its metadata block and body."""

    metadata: dict[str, Any] = field(default_factory=dict)
    body: str = ""


def parse_document(raw: str) -> ParsedDocument:
    """Split a markdown document into frontmatter metadata and body.

    A malformed or non-mapping frontmatter block never raises; the whole
    text is treated as body instead.

    Args:
        raw: Full document text

    Returns:
        ParsedDocument with metadata dict and trimmed body
    """
    match = _FRONTMATTER_RE.match(raw)
    if match is None:
        return ParsedDocument(metadata={}, body=raw.strip())

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        logfire.debug("Unparseable frontmatter, treating as body", error=str(e))
        return ParsedDocument(metadata={}, body=raw.strip())

    if data is None:
        data = {}
    if not isinstance(data, dict):
        logfire.debug("Frontmatter is not a mapping", kind=type(data).__name__)
        return ParsedDocument(metadata={}, body=raw.strip())

    metadata = {str(key): value for key, value in data.items()}
    return ParsedDocument(metadata=metadata, body=raw[match.end() :].strip())


def extract_title(body: str) -> str | None:
    """Extract a title from the first H1 heading, else the first non-blank line."""
    match = _H1_RE.search(body)
    if match:
        return match.group(1).strip()

    for line in body.splitlines():
        if line.strip():
            return _LEADING_MARKUP_RE.sub("", line.strip()).strip() or None
    return None


def extract_description(body: str) -> str | None:
    """Extract a short description.

    Uses the first blockquote line, else the first paragraph after the H1
    heading as long as it is not another heading or a fenced code block.
    """
    match = _BLOCKQUOTE_RE.search(body)
    if match:
        return match.group(1).strip()[:DESCRIPTION_MAX_LENGTH] or None

    after_h1 = _H1_RE.sub("", body, count=1).strip()
    first_para = re.split(r"\r?\n[ \t]*\r?\n", after_h1, maxsplit=1)[0]
    if not first_para or first_para.startswith("#") or first_para.startswith("```"):
        return None
    text = _WHITESPACE_RE.sub(" ", first_para).strip()
    return text[:DESCRIPTION_MAX_LENGTH] or None


def create_searchable_text(
    name: str,
    category: str,
    subcategory: str | None,
    metadata: ItemMetadata,
    body: str,
) -> str:
    """Build the normalized lowercase blob used for keyword search."""
    parts = [
        name,
        category,
        subcategory,
        metadata.title,
        metadata.description,
        *metadata.tags,
        *metadata.aliases,
        body,
    ]
    text = " ".join(part for part in parts if part).lower()
    text = _NON_ALNUM_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_name(name: str) -> str:
    """Normalize a name for fuzzy comparison.

    Examples:
        "PRD-Generator.md" -> "prd generator"
        "code_review" -> "code review"
    """
    text = name.lower().replace("-", " ").replace("_", " ").strip()
    if text.endswith(MARKDOWN_SUFFIX):
        text = text[: -len(MARKDOWN_SUFFIX)]
    return text.strip()


def render_frontmatter(metadata: dict[str, Any]) -> str:
    """Render a metadata mapping as a YAML frontmatter block.

    Returns an empty string when there is nothing to render.
    """
    cleaned = {key: value for key, value in metadata.items() if value not in (None, "", [])}
    if not cleaned:
        return ""
    dumped = yaml.safe_dump(cleaned, sort_keys=False, allow_unicode=True, default_flow_style=False)
    return f"---\n{dumped}---\n\n"
