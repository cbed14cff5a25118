"""Library scanner and store.

Walks the known category folders, parses each markdown file into a
LibraryItem, and keeps the LibraryIndex current as items are saved,
changed, or removed.
"""

import asyncio
import os
import tempfile
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any

import logfire
from pydantic import ValidationError

from .config import (
    CATEGORIES,
    EXCLUDED_FILES,
    EXCLUDED_SUFFIXES,
    INTENTS_CONFIG,
    MARKDOWN_SUFFIX,
    SCAN_BATCH_SIZE,
)
from .data_models import ItemMetadata, LibraryItem, SaveRequest, Workflow
from .document_parser import (
    create_searchable_text,
    extract_description,
    extract_title,
    parse_document,
    render_frontmatter,
)
from .exceptions import InvalidCategoryError, LibraryError, ReadOnlyLibraryError
from .index import LibraryIndex
from .paths import build_item_path
from .workflow_parser import parse_workflow


def is_indexable(relative_path: str) -> bool:
    """Check whether a path relative to the library root should be indexed."""
    path = PurePosixPath(relative_path)
    if path.suffix != MARKDOWN_SUFFIX or len(path.parts) < 2:
        return False
    if path.parts[0] not in CATEGORIES:
        return False
    if any(part.startswith(".") for part in path.parts):
        return False
    lower_name = path.name.lower()
    if lower_name in EXCLUDED_FILES or lower_name.endswith(EXCLUDED_SUFFIXES):
        return False
    return True


def _atomic_write_text(path: Path, text: str) -> None:
    """Write text to path via a temporary file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=path.parent, prefix=".tmp-", suffix=".md", delete=False
    ) as tmp:
        tmp.write(text)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = Path(tmp.name)
    try:
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


class Library:
    """A markdown content library rooted at a directory."""

    def __init__(
        self,
        root: Path | str,
        read_only: bool = False,
        index: LibraryIndex | None = None,
    ):
        """Initialize the library.

        Args:
            root: Library root containing the category folders
            read_only: If True, save() is refused
            index: Index to populate; a fresh one is created if omitted
        """
        self.root = Path(root).resolve()
        self.read_only = read_only
        self.index = index if index is not None else LibraryIndex()
        self.scanned = False

    @property
    def intents_config_path(self) -> Path:
        return self.root / INTENTS_CONFIG

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def discover_files(self) -> list[str]:
        """List indexable markdown files as paths relative to the root."""
        files: list[str] = []
        for category in CATEGORIES:
            category_dir = self.root / category
            if not category_dir.is_dir():
                continue
            for path in sorted(category_dir.rglob(f"*{MARKDOWN_SUFFIX}")):
                relative = path.relative_to(self.root).as_posix()
                if is_indexable(relative) and path.is_file():
                    files.append(relative)
        return files

    async def scan(self) -> int:
        """Scan the category folders and rebuild the index.

        Files are read in concurrent batches; results are merged into the
        index in a single step once every batch is parsed.

        Returns:
            Number of indexed items
        """
        with logfire.span("Scanning library {root}", root=str(self.root)):
            files = await asyncio.to_thread(self.discover_files)
            logfire.debug("Found {count} markdown files", count=len(files))

            entries: list[tuple[LibraryItem, Workflow | None]] = []
            for start in range(0, len(files), SCAN_BATCH_SIZE):
                batch = files[start : start + SCAN_BATCH_SIZE]
                parsed = await asyncio.gather(
                    *(asyncio.to_thread(self.parse_file, relative) for relative in batch)
                )
                for item in parsed:
                    if item is not None:
                        entries.append((item, self._parse_workflow(item)))

            self.index.replace_all(entries)
            self.scanned = True
            logfire.info(
                "Indexed {items} items, {workflows} workflows",
                items=len(self.index),
                workflows=len(self.index.workflows),
            )
        return len(self.index)

    def parse_file(self, relative_path: str) -> LibraryItem | None:
        """Read and parse one file. Unreadable files are logged and skipped."""
        full_path = self.root / relative_path
        try:
            content = full_path.read_text(encoding="utf-8")
            mtime = full_path.stat().st_mtime
        except (OSError, UnicodeDecodeError) as e:
            logfire.warn("Failed to read file", path=relative_path, error=str(e))
            return None
        return self.parse_content(relative_path, content, datetime.fromtimestamp(mtime))

    def parse_content(
        self, relative_path: str, content: str, modified_at: datetime
    ) -> LibraryItem | None:
        """Build a LibraryItem from file text.

        Returns:
            The item, or None if the path is not under a known category
        """
        parts = PurePosixPath(relative_path).parts
        category = parts[0] if parts else ""
        if category not in CATEGORIES:
            logfire.debug("Skipping file outside known categories", path=relative_path)
            return None

        subcategory = parts[1] if len(parts) > 2 else None
        name = PurePosixPath(relative_path).stem

        doc = parse_document(content)
        try:
            metadata = ItemMetadata.model_validate(doc.metadata)
        except ValidationError as e:
            logfire.debug("Ignoring invalid metadata", path=relative_path, error=str(e))
            metadata = ItemMetadata()

        metadata = metadata.model_copy(
            update={
                "title": metadata.title or extract_title(doc.body) or name,
                "description": metadata.description or extract_description(doc.body),
            }
        )

        return LibraryItem(
            id=relative_path[: -len(MARKDOWN_SUFFIX)],
            name=name,
            category=category,
            subcategory=subcategory,
            path=self.root / relative_path,
            relative_path=relative_path,
            content=content,
            body=doc.body,
            metadata=metadata,
            searchable_text=create_searchable_text(
                name, category, subcategory, metadata, doc.body
            ),
            modified_at=modified_at,
        )

    def _parse_workflow(self, item: LibraryItem) -> Workflow | None:
        if not item.is_workflow:
            return None
        try:
            return parse_workflow(item)
        except Exception as e:
            logfire.error("Failed to parse workflow", item_id=item.id, error=str(e))
            return None

    # ------------------------------------------------------------------
    # Incremental updates
    # ------------------------------------------------------------------

    def relative_path_for(self, path: Path | str) -> str | None:
        """Return path relative to the root, or None if it lies outside."""
        full_path = Path(path).resolve()
        if not full_path.is_relative_to(self.root):
            return None
        return full_path.relative_to(self.root).as_posix()

    def register(self, item: LibraryItem) -> Workflow | None:
        """Upsert a parsed item (and its workflow) into the index."""
        workflow = self._parse_workflow(item)
        self.index.upsert(item, workflow)
        return workflow

    def upsert_path(self, relative_path: str) -> LibraryItem | None:
        """Re-read a single file and upsert it into the index."""
        if not is_indexable(relative_path):
            return None
        item = self.parse_file(relative_path)
        if item is not None:
            self.register(item)
        return item

    def remove_path(self, relative_path: str) -> LibraryItem | None:
        """Remove the item stored at a path from the index."""
        if not relative_path.endswith(MARKDOWN_SUFFIX):
            return None
        return self.index.remove(relative_path[: -len(MARKDOWN_SUFFIX)])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, item_id: str) -> LibraryItem | None:
        return self.index.get(item_id)

    def get_all_items(self) -> list[LibraryItem]:
        return list(self.index.items.values())

    def get_by_category(self, category: str) -> list[LibraryItem]:
        return list(self.index.by_category.get(category, []))

    def get_by_tag(self, tag: str) -> list[LibraryItem]:
        return list(self.index.by_tag.get(tag, []))

    def get_workflow(self, item_id: str) -> Workflow | None:
        return self.index.workflows.get(item_id)

    def get_all_workflows(self) -> list[Workflow]:
        return list(self.index.workflows.values())

    def get_stats(self) -> dict[str, Any]:
        """Count items overall and per category."""
        return {
            "total": len(self.index),
            "by_category": {
                category: len(self.index.by_category.get(category, []))
                for category in CATEGORIES
            },
            "workflows": len(self.index.workflows),
            "tags": len(self.index.by_tag),
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write_file(self, request: SaveRequest) -> LibraryItem:
        """Write a new item to disk and parse it back without indexing it.

        Safe to run in a worker thread; the index is left untouched.

        Raises:
            ReadOnlyLibraryError: If the library is read-only.
            InvalidCategoryError: If the category is unknown.
            UnsafePathError: If the target path escapes the root.
            LibraryError: If the target would not be indexable.
        """
        if self.read_only:
            raise ReadOnlyLibraryError("Library is read-only")
        if request.category not in CATEGORIES:
            raise InvalidCategoryError(request.category)

        relative_path, full_path = build_item_path(
            self.root, request.category, request.subcategory, request.name
        )
        if not is_indexable(relative_path):
            raise LibraryError(f"Refusing to write non-indexable file: {relative_path}")

        text = render_frontmatter(request.metadata) + request.content
        with logfire.span("Saving {relative_path}", relative_path=relative_path):
            if full_path.exists():
                logfire.info("Overwriting existing item", path=relative_path)
            _atomic_write_text(full_path, text)

            item = self.parse_file(relative_path)
            if item is None:
                raise LibraryError(f"Saved file could not be indexed: {relative_path}")
        return item

    def write_item(self, request: SaveRequest) -> LibraryItem:
        """Persist a new item and index it.

        Raises the same errors as write_file.
        """
        item = self.write_file(request)
        self.register(item)
        return item

    async def save(self, request: SaveRequest) -> LibraryItem | None:
        """Persist a new item, returning None instead of raising on rejection.

        File I/O runs in a worker thread. The index is updated back on the
        event loop so readers never see a half-applied upsert.
        """
        try:
            item = await asyncio.to_thread(self.write_file, request)
        except LibraryError as e:
            logfire.warn("Save rejected", category=request.category, error=str(e))
            return None
        except OSError as e:
            logfire.error("Save failed", category=request.category, error=str(e))
            return None

        self.register(item)
        return item
