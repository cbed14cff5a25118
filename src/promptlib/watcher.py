"""Change watcher that keeps the index in step with the library on disk."""

import asyncio
from collections.abc import Iterable
from pathlib import Path

import logfire
from watchfiles import Change, awatch

from .config import WATCH_DEBOUNCE_MS
from .data_models import LibraryItem
from .library import Library, is_indexable


def collapse_changes(changes: Iterable[tuple[Change, str]]) -> list[tuple[Change, str]]:
    """Keep one event per path from a debounced batch.

    The file state on disk decides the action when the event is applied, so
    which of a path's changes survives does not matter.
    """
    latest: dict[str, Change] = {}
    for change, path in changes:
        latest[path] = change
    return [(change, path) for path, change in sorted(latest.items())]


class LibraryWatcher:
    """Watches the library root and applies file changes to the index.

    A producer task turns filesystem notifications into queue events and a
    single consumer applies them one at a time, so index mutations never
    interleave.
    """

    def __init__(self, library: Library, debounce_ms: int = WATCH_DEBOUNCE_MS):
        """Initialize the watcher.

        Args:
            library: Library whose index is kept current
            debounce_ms: Window for grouping rapid writes to the same path
        """
        self.library = library
        self.debounce_ms = debounce_ms
        self.queue: asyncio.Queue[tuple[Change, str]] = asyncio.Queue()
        self.producer_task: asyncio.Task | None = None
        self.consumer_task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return self.producer_task is not None and not self.producer_task.done()

    def _filter(self, change: Change, path: str) -> bool:
        relative = self.library.relative_path_for(path)
        return relative is not None and is_indexable(relative)

    async def start(self) -> None:
        """Start watching. Calling start on a running watcher does nothing."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self.consumer_task = asyncio.create_task(self._consume())
        self.producer_task = asyncio.create_task(self._produce(self._stop_event))
        logfire.info("Watching library {root}", root=str(self.library.root))

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop watching and drain events that were already queued."""
        if self._stop_event is not None:
            self._stop_event.set()

        if self.producer_task is not None and not self.producer_task.done():
            try:
                await asyncio.wait_for(self.producer_task, timeout=timeout)
            except asyncio.TimeoutError:
                # wait_for cancels the producer on timeout
                logfire.warn("Watcher did not stop in time, cancelled")

        try:
            await asyncio.wait_for(self.queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logfire.warn("Dropping unapplied change events", pending=self.queue.qsize())

        if self.consumer_task is not None and not self.consumer_task.done():
            self.consumer_task.cancel()
            try:
                await self.consumer_task
            except asyncio.CancelledError:
                pass

        self.producer_task = None
        self.consumer_task = None
        self._stop_event = None

    async def _produce(self, stop_event: asyncio.Event) -> None:
        async for changes in awatch(
            self.library.root,
            watch_filter=self._filter,
            debounce=self.debounce_ms,
            stop_event=stop_event,
        ):
            for event in collapse_changes(changes):
                await self.queue.put(event)

    async def _consume(self) -> None:
        while True:
            change, path = await self.queue.get()
            try:
                await self.apply_change(change, path)
            except Exception:
                logfire.exception("Failed to apply change", path=path, change=change.name)
            finally:
                self.queue.task_done()

    async def apply_change(self, change: Change, path: str | Path) -> LibraryItem | None:
        """Apply one filesystem change to the index.

        The file's current state decides the action: a file that exists is
        re-parsed and upserted, a missing one is removed. A delete event for
        a file that was recreated in the meantime therefore upserts it.

        Returns:
            The upserted or removed item, if any
        """
        relative = self.library.relative_path_for(path)
        if relative is None or not is_indexable(relative):
            return None

        logfire.debug("Applying {change} for {path}", change=change.name, path=relative)
        full_path = self.library.root / relative
        if not full_path.is_file():
            removed = self.library.remove_path(relative)
            if removed is not None:
                logfire.info("Removed {item_id}", item_id=removed.id)
            return removed

        item = await asyncio.to_thread(self.library.parse_file, relative)
        if item is None:
            return None
        self.library.register(item)
        logfire.info("Updated {item_id}", item_id=item.id)
        return item
