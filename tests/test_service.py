"""Tests for the library service facade."""

import asyncio
import json
import random
from pathlib import Path

import pytest
from conftest import write_file

from promptlib.config import LibrarySettings
from promptlib.data_models import SaveRequest
from promptlib.service import LibraryService


@pytest.mark.asyncio
async def test_initialization_is_single_flight(library_root: Path, monkeypatch):
    service = LibraryService(library_root)
    calls = 0
    original_scan = service.library.scan

    async def counting_scan():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return await original_scan()

    monkeypatch.setattr(service.library, "scan", counting_scan)

    await asyncio.gather(*(service.ensure_initialized() for _ in range(5)))
    await service.ensure_initialized()

    assert calls == 1
    assert service.initialized
    assert len(service.index) == 5


@pytest.mark.asyncio
async def test_failed_initialization_is_retried(library_root: Path, monkeypatch):
    service = LibraryService(library_root)
    original_scan = service.library.scan
    attempts = 0

    async def flaky_scan():
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise OSError("disk went away")
        return await original_scan()

    monkeypatch.setattr(service.library, "scan", flaky_scan)

    with pytest.raises(OSError):
        await service.ensure_initialized()
    await service.ensure_initialized()
    assert attempts == 2
    assert service.initialized


@pytest.mark.asyncio
async def test_get_item_by_alias(library_root: Path):
    result = await LibraryService(library_root).get_item("prd")
    assert result.found
    assert result.item.title == "PRD Generator"


@pytest.mark.asyncio
async def test_get_item_miss_offers_candidates(library_root: Path):
    result = await LibraryService(library_root).get_item("audit security deep dive")
    assert not result.found
    assert 1 <= len(result.did_you_mean) <= 3
    assert result.did_you_mean[0].id == "prompts/quality/security-audit"
    ids = [item.id for item in result.did_you_mean]
    assert len(ids) == len(set(ids))


@pytest.mark.asyncio
async def test_get_chain_by_id_name_and_fuzzy(library_root: Path):
    service = LibraryService(library_root)
    assert (await service.get_chain("chains/new-feature")).id == "chains/new-feature"
    assert (await service.get_chain("new-feature")).id == "chains/new-feature"
    assert (await service.get_chain("bug")).id == "chains/bug-fix"
    assert (await service.get_chain("zzzzzz")) is None
    assert len(await service.get_all_chains()) == 2


@pytest.mark.asyncio
async def test_two_step_chain(library_root: Path):
    workflow = await LibraryService(library_root).get_chain("chains/bug-fix")
    assert len(workflow.steps) == 2
    assert [s.number for s in workflow.steps] == [1, 2]


@pytest.mark.asyncio
async def test_session_lifecycle(library_root: Path):
    service = LibraryService(library_root)
    session = await service.start_session("new-feature", {"feature_name": "Search"})

    step = service.render_current_step(session)
    assert "Plan the Search feature for {{project}}." in step

    service.update_context(session.id, {"project": "promptlib"})
    assert "for promptlib." in service.render_current_step(session)

    first = service.advance(session.id)
    second = service.advance(session.id)
    assert not first.completed and not second.completed
    assert session.current_step == 3
    assert session.completed_steps == [1, 2]

    done = service.advance(session.id)
    assert done.completed
    assert done.session.completed_steps == [1, 2, 3]
    assert service.get_session(session.id) is None
    assert service.advance(session.id) is None


@pytest.mark.asyncio
async def test_start_session_on_unknown_or_empty_chain(library_root: Path):
    write_file(library_root, "chains/empty.md", "# Empty\n\nNo steps here.\n")
    service = LibraryService(library_root)
    assert await service.start_session("does-not-exist-at-all") is None
    assert await service.start_session("chains/empty") is None


@pytest.mark.asyncio
async def test_random_item_uses_rng(library_root: Path):
    service = LibraryService(library_root)
    first = await service.random_item(rng=random.Random(1))
    again = await service.random_item(rng=random.Random(1))
    assert first is again
    chain = await service.random_item("chains", rng=random.Random(3))
    assert chain.category == "chains"
    assert await service.random_item("examples") is None


@pytest.mark.asyncio
async def test_save_through_service(library_root: Path):
    service = LibraryService(library_root)
    item = await service.save(
        SaveRequest(category="skills", name="Pairing", content="# Pairing\n\nPair up.")
    )
    assert item.id == "skills/Pairing"
    assert (await service.get_item("pairing")).item.id == "skills/Pairing"
    assert (await service.get_stats())["by_category"]["skills"] == 1


@pytest.mark.asyncio
async def test_read_only_settings_block_save(library_root: Path):
    service = LibraryService(LibrarySettings(library_path=library_root, read_only=True))
    request = SaveRequest(category="skills", name="Nope", content="x")
    assert await service.save(request) is None


@pytest.mark.asyncio
async def test_intents_config_is_loaded(library_root: Path):
    write_file(
        library_root,
        "config/intents.json",
        json.dumps(
            [
                {
                    "keywords": ["banana"],
                    "intent": "fruit",
                    "suggestedItems": ["snippets/modifiers/ultrathink"],
                    "priority": 5,
                }
            ]
        ),
    )
    suggestions = await LibraryService(library_root).suggest("I like banana")
    assert [s.item.id for s in suggestions] == ["snippets/modifiers/ultrathink"]
    assert suggestions[0].reason == "Detected intent: fruit"


@pytest.mark.asyncio
async def test_search_uses_configured_limit(library_root: Path):
    service = LibraryService(LibrarySettings(library_path=library_root, max_search_results=1))
    assert len(await service.search("prompts")) == 1
    assert len(await service.search("prompts", limit=5)) > 1


@pytest.mark.asyncio
async def test_watch_toggle(library_root: Path):
    service = LibraryService(library_root)
    await service.ensure_initialized()
    assert not service.is_watching
    await service.enable_watch()
    try:
        assert service.is_watching
    finally:
        await service.disable_watch()
    assert not service.is_watching


@pytest.mark.asyncio
async def test_compose_and_enhance(library_root: Path):
    service = LibraryService(library_root)
    composed = await service.compose(["ultrathink", "prd", "nonexistent-zzz"])
    assert composed.text.startswith("Take your time")
    assert composed.not_found == ["nonexistent-zzz"]

    context = await service.enhance("please fix this crash")
    assert context.task_type == "fix_bug"
    assert [item.id for item in context.related_items] == ["chains/bug-fix"]


@pytest.mark.asyncio
async def test_saves_run_alongside_readers(library_root: Path):
    for n in range(400):
        write_file(library_root, f"prompts/bulk/item-{n}.md", f"# Item {n}\n\nBulk prompt {n}.\n")
    service = LibraryService(library_root)
    await service.ensure_initialized()
    writes_done = asyncio.Event()
    reads = 0

    async def reader():
        nonlocal reads
        while not writes_done.is_set():
            service.resolver.resolve("no such prompt anywhere")
            service.search_engine.search("bulk prompt", 5)
            reads += 1
            await asyncio.sleep(0)

    async def writer():
        try:
            for n in range(20):
                request = SaveRequest(category="skills", name=f"new-{n}", content=f"# New {n}")
                assert await service.save(request) is not None
        finally:
            writes_done.set()

    await asyncio.gather(reader(), writer())

    assert reads > 0
    assert len(service.index) == 425
    assert len(service.index.search_entries) == 425
    assert len(service.library.get_by_category("skills")) == 20


@pytest.mark.asyncio
async def test_zero_limit_is_not_replaced_by_default(library_root: Path):
    service = LibraryService(library_root)
    assert await service.search("prompts", limit=0) == []
    assert await service.suggest("security vulnerability", limit=0) == []
    assert await service.suggest("security vulnerability", limit=-3) == []
