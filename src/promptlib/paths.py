"""Path sanitization for items written into the library."""

import re
from pathlib import Path

from .config import MARKDOWN_SUFFIX, MAX_NAME_LENGTH, PLACEHOLDER_NAME
from .exceptions import UnsafePathError

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_SEPARATOR_RE = re.compile(r"[/\\]")
_INVALID_CHARS_RE = re.compile(r'[<>:"|?*\s]+')
_DOT_RUN_RE = re.compile(r"\.{2,}")
_DASH_RUN_RE = re.compile(r"-{2,}")


def sanitize_segment(value: str, max_length: int = MAX_NAME_LENGTH) -> str:
    """Turn arbitrary input into a single safe path segment.

    Examples:
        "../../etc" -> "etc"
        "file<with>invalid:chars" -> "file-with-invalid-chars"
        "...hidden" -> "hidden"
        "../.." -> "unnamed"
    """
    # Drop null and control bytes outright
    name = _CONTROL_RE.sub("", value)
    # Separators and reserved characters become hyphens
    name = _SEPARATOR_RE.sub("-", name)
    name = _INVALID_CHARS_RE.sub("-", name)
    # No parent-directory references
    name = _DOT_RUN_RE.sub("", name)
    name = _DASH_RUN_RE.sub("-", name)
    # No hidden files or dangling separators
    name = name.strip("-. ")
    if len(name) > max_length:
        name = name[:max_length].rstrip("-. ")
    return name or PLACEHOLDER_NAME


def sanitize_name(name: str) -> str:
    """Sanitize an item name, dropping any markdown extension first."""
    stripped = name.strip()
    if stripped.lower().endswith(MARKDOWN_SUFFIX):
        stripped = stripped[: -len(MARKDOWN_SUFFIX)]
    return sanitize_segment(stripped)


def build_item_path(
    root: Path, category: str, subcategory: str | None, name: str
) -> tuple[str, Path]:
    """Build the relative and absolute path for a new item.

    The category must already be validated; subcategory and name are
    sanitized here.

    Returns:
        Tuple of (relative posix path, absolute path)

    Raises:
        UnsafePathError: If the result would not be inside root.
    """
    parts = [category]
    if subcategory is not None and subcategory.strip():
        parts.append(sanitize_segment(subcategory))
    parts.append(sanitize_name(name) + MARKDOWN_SUFFIX)

    relative_path = "/".join(parts)
    resolved_root = root.resolve()
    full_path = (resolved_root / relative_path).resolve()
    if not full_path.is_relative_to(resolved_root):
        raise UnsafePathError(full_path, resolved_root)
    return relative_path, full_path
