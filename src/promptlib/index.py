"""In-memory library index.

The index keeps four lookup structures in step with each other: items by
id, items by category, items by tag, and the flat search entry list. Parsed
workflows are kept alongside, keyed by the id of their source item.

Mutations must run on the event loop thread and complete without awaiting,
so readers on the loop never observe a half-applied upsert or removal.
"""

from dataclasses import dataclass, field

from .config import CATEGORIES, CATEGORY_WEIGHTS, DESCRIPTION_BONUS, TAG_BONUS
from .data_models import LibraryItem, SearchEntry, Workflow


def calculate_weight(item: LibraryItem) -> float:
    """Calculate the search weight for an item."""
    weight = 1.0
    weight *= CATEGORY_WEIGHTS.get(item.category, 1.0)
    # Items with more metadata are more useful
    if item.metadata.tags:
        weight *= TAG_BONUS
    if item.metadata.description:
        weight *= DESCRIPTION_BONUS
    return weight


def _search_entry(item: LibraryItem) -> SearchEntry:
    return SearchEntry(id=item.id, text=item.searchable_text, weight=calculate_weight(item))


@dataclass
class LibraryIndex:
    """Aggregate of all indexed items and the structures derived from them."""

    items: dict[str, LibraryItem] = field(default_factory=dict)
    by_category: dict[str, list[LibraryItem]] = field(
        default_factory=lambda: {cat: [] for cat in CATEGORIES}
    )
    by_tag: dict[str, list[LibraryItem]] = field(default_factory=dict)
    workflows: dict[str, Workflow] = field(default_factory=dict)
    search_entries: list[SearchEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.items

    def get(self, item_id: str) -> LibraryItem | None:
        return self.items.get(item_id)

    def clear(self) -> None:
        """Drop everything, keeping an empty list for every category."""
        self.items.clear()
        self.by_category = {cat: [] for cat in CATEGORIES}
        self.by_tag.clear()
        self.workflows.clear()
        self.search_entries.clear()

    def replace_all(
        self, entries: list[tuple[LibraryItem, Workflow | None]]
    ) -> None:
        """Rebuild the index from scan results in one step.

        An id that appears more than once keeps its last entry.
        """
        items: dict[str, LibraryItem] = {}
        workflows: dict[str, Workflow] = {}
        for item, workflow in entries:
            items[item.id] = item
            if workflow is not None:
                workflows[item.id] = workflow
            else:
                workflows.pop(item.id, None)

        by_category: dict[str, list[LibraryItem]] = {cat: [] for cat in CATEGORIES}
        by_tag: dict[str, list[LibraryItem]] = {}
        search_entries: list[SearchEntry] = []
        for item in items.values():
            by_category.setdefault(item.category, []).append(item)
            for tag in item.metadata.tags:
                by_tag.setdefault(tag, []).append(item)
            search_entries.append(_search_entry(item))

        self.clear()
        self.items.update(items)
        self.workflows.update(workflows)
        self.by_tag.update(by_tag)
        self.by_category = by_category
        self.search_entries = search_entries

    def upsert(self, item: LibraryItem, workflow: Workflow | None = None) -> None:
        """Insert or replace an item in every structure.

        Args:
            item: The parsed item
            workflow: Parsed workflow for chain items, if parsing succeeded
        """
        previous = self.items.get(item.id)
        if previous is not None:
            self._detach(previous)

        self.items[item.id] = item

        category_items = self.by_category.setdefault(item.category, [])
        position = _position(category_items, item.id)
        if position is None:
            category_items.append(item)
        else:
            category_items[position] = item

        for tag in item.metadata.tags:
            self.by_tag.setdefault(tag, []).append(item)

        entry = _search_entry(item)
        entry_position = next(
            (i for i, e in enumerate(self.search_entries) if e.id == item.id), None
        )
        if entry_position is None:
            self.search_entries.append(entry)
        else:
            self.search_entries[entry_position] = entry

        if workflow is not None:
            self.workflows[item.id] = workflow

    def remove(self, item_id: str) -> LibraryItem | None:
        """Remove an item from every structure.

        Returns:
            The removed item, or None if it was not indexed
        """
        item = self.items.pop(item_id, None)
        if item is None:
            return None

        self._detach(item)
        category_items = self.by_category.get(item.category, [])
        position = _position(category_items, item_id)
        if position is not None:
            del category_items[position]
        self.search_entries = [e for e in self.search_entries if e.id != item_id]
        return item

    def _detach(self, item: LibraryItem) -> None:
        """Remove tag and workflow references to a previous version of an item.

        Category and search entries are replaced in place by upsert, so they
        are left alone here.
        """
        for tag in item.metadata.tags:
            tagged = self.by_tag.get(tag)
            if not tagged:
                continue
            remaining = [i for i in tagged if i.id != item.id]
            if remaining:
                self.by_tag[tag] = remaining
            else:
                del self.by_tag[tag]
        self.workflows.pop(item.id, None)


def _position(items: list[LibraryItem], item_id: str) -> int | None:
    for i, existing in enumerate(items):
        if existing.id == item_id:
            return i
    return None
