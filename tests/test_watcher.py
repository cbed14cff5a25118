"""Tests for applying file changes to a live index."""

import asyncio
from pathlib import Path

import pytest
from conftest import write_file
from watchfiles import Change

from promptlib.library import Library
from promptlib.watcher import LibraryWatcher, collapse_changes


@pytest.mark.asyncio
async def test_added_file_is_indexed(library: Library, library_root: Path):
    watcher = LibraryWatcher(library)
    path = write_file(library_root, "prompts/new/fresh.md", "---\ntags: [fresh]\n---\n# Fresh\n")

    item = await watcher.apply_change(Change.added, path)

    assert item.id == "prompts/new/fresh"
    assert library.get("prompts/new/fresh") is item
    assert library.get_by_tag("fresh") == [item]
    assert any(e.id == item.id for e in library.index.search_entries)


@pytest.mark.asyncio
async def test_modified_chain_reparses_workflow(library: Library, library_root: Path):
    watcher = LibraryWatcher(library)
    path = write_file(library_root, "chains/bug-fix.md", "# Bug Fix\n\n## Step 1: Only\n")

    await watcher.apply_change(Change.modified, path)

    workflow = library.get_workflow("chains/bug-fix")
    assert workflow.total_steps == 1
    entries = [e for e in library.index.search_entries if e.id == "chains/bug-fix"]
    assert len(entries) == 1


@pytest.mark.asyncio
async def test_deleted_file_is_removed(library: Library, library_root: Path):
    watcher = LibraryWatcher(library)
    path = library_root / "chains/new-feature.md"
    path.unlink()

    removed = await watcher.apply_change(Change.deleted, path)

    assert removed.id == "chains/new-feature"
    assert "chains/new-feature" not in library.index
    assert library.get_workflow("chains/new-feature") is None
    assert all(e.id != "chains/new-feature" for e in library.index.search_entries)


@pytest.mark.asyncio
async def test_modify_event_for_vanished_file_removes_it(library: Library, library_root: Path):
    watcher = LibraryWatcher(library)
    path = library_root / "snippets/modifiers/ultrathink.md"
    path.unlink()

    await watcher.apply_change(Change.modified, path)
    assert "snippets/modifiers/ultrathink" not in library.index


@pytest.mark.asyncio
async def test_ignored_paths(library: Library, library_root: Path, tmp_path: Path):
    watcher = LibraryWatcher(library)
    before = len(library.index)
    for relative in ("notes/x.md", "prompts/README.md", "prompts/a.txt", "prompts/.tmp-x.md"):
        path = write_file(library_root, relative, "# X\n")
        assert await watcher.apply_change(Change.added, path) is None
    outside = write_file(tmp_path, "elsewhere/prompts/y.md", "# Y\n")
    assert await watcher.apply_change(Change.added, outside) is None
    assert len(library.index) == before


@pytest.mark.asyncio
async def test_consumer_applies_queued_events(library: Library, library_root: Path):
    watcher = LibraryWatcher(library, debounce_ms=50)
    await watcher.start()
    try:
        assert watcher.running
        path = write_file(library_root, "skills/queued.md", "# Queued\n")
        await watcher.queue.put((Change.added, str(path)))
        # A bad event must not stop the consumer
        await watcher.queue.put((Change.added, str(library_root / "prompts/\x00bad.md")))
        await watcher.queue.put((Change.deleted, str(library_root / "chains/bug-fix.md")))
        await asyncio.wait_for(watcher.queue.join(), timeout=5)
    finally:
        await watcher.stop()

    assert not watcher.running
    assert "skills/queued" in library.index
    # Still on disk, so the delete event is treated as a change
    assert "chains/bug-fix" in library.index


async def wait_until(condition, timeout: float = 10.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.05)


def test_collapse_changes_keeps_one_event_per_path():
    events = collapse_changes(
        [
            (Change.added, "/lib/prompts/a.md"),
            (Change.modified, "/lib/prompts/a.md"),
            (Change.modified, "/lib/prompts/b.md"),
            (Change.deleted, "/lib/prompts/b.md"),
        ]
    )
    assert sorted(path for _, path in events) == ["/lib/prompts/a.md", "/lib/prompts/b.md"]


@pytest.mark.asyncio
async def test_watcher_follows_files_on_disk(library: Library, library_root: Path):
    watcher = LibraryWatcher(library, debounce_ms=300)
    applied: list[str] = []
    apply_change = watcher.apply_change

    async def recording_apply(change, path):
        applied.append(library.relative_path_for(path))
        return await apply_change(change, path)

    watcher.apply_change = recording_apply
    await watcher.start()
    try:
        # Give the filesystem watcher time to register
        await asyncio.sleep(0.5)

        writes = 5
        for n in range(writes):
            write_file(library_root, "skills/live.md", f"# Live {n}\n")
        await wait_until(lambda: "skills/live" in library.index)
        await asyncio.sleep(0.5)
        await watcher.queue.join()

        assert library.get("skills/live").title == f"Live {writes - 1}"
        assert 1 <= applied.count("skills/live.md") < writes

        write_file(library_root, "skills/ignored.txt", "not markdown")
        (library_root / "skills/live.md").unlink()
        await wait_until(lambda: "skills/live" not in library.index)
    finally:
        await watcher.stop()

    assert "skills/ignored.txt" not in applied
    assert not watcher.running
