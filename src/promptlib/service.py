"""Library service: the operations exposed to the CLI and the web binding."""

import asyncio
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import logfire

from .composer import ComposedPrompt, QuickPrompt, compose, get_quick_prompt
from .config import (
    CHAIN_MATCH_SCORE,
    DEFAULT_SUGGEST_LIMIT,
    DID_YOU_MEAN_LIMIT,
    WORKFLOW_CATEGORY,
    LibrarySettings,
)
from .context_detection import EnhancedContext, StackDetection, detect_stack, enhance
from .data_models import LibraryItem, LookupResult, SaveRequest, SearchResult, Suggestion, Workflow
from .exceptions import EmptyWorkflowError
from .library import Library
from .matching import FuzzyResolver
from .search import SearchEngine
from .session_manager import SessionManager, WorkflowSession
from .suggestions import SuggestionEngine, load_patterns
from .watcher import LibraryWatcher


@dataclass
class AdvanceResult:
    """Outcome of advancing a session.

    When the session was already on its last step it is ended, completed is
    True, and session holds its final state.
    """

    session: WorkflowSession
    completed: bool = False


class LibraryService:
    """Facade over the library, its engines, and workflow sessions."""

    def __init__(self, settings: LibrarySettings | Path | str):
        if not isinstance(settings, LibrarySettings):
            settings = LibrarySettings(library_path=Path(settings))
        self.settings = settings
        self.library = Library(settings.library_path, read_only=settings.read_only)
        self.index = self.library.index
        self.resolver = FuzzyResolver(self.index)
        self.search_engine = SearchEngine(self.index)
        self.suggestion_engine = SuggestionEngine(self.index)
        self.sessions = SessionManager()
        self.watcher: LibraryWatcher | None = None
        self._init_task: asyncio.Task | None = None

    @property
    def initialized(self) -> bool:
        return self.library.scanned

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ensure_initialized(self) -> None:
        """Scan the library once. Concurrent callers share the same scan."""
        if self.library.scanned:
            return
        task = self._init_task
        if task is None or (task.done() and (task.cancelled() or task.exception() is not None)):
            self._init_task = asyncio.create_task(self.initialize())
        await asyncio.shield(self._init_task)

    @logfire.instrument("Initializing library")
    async def initialize(self) -> None:
        patterns = await asyncio.to_thread(load_patterns, self.library.intents_config_path)
        self.suggestion_engine.set_patterns(patterns)
        await self.library.scan()
        if self.settings.watch:
            await self.enable_watch()

    async def enable_watch(self) -> None:
        if self.watcher is None:
            self.watcher = LibraryWatcher(self.library)
        await self.watcher.start()

    async def disable_watch(self) -> None:
        if self.watcher is not None:
            await self.watcher.stop()

    @property
    def is_watching(self) -> bool:
        return self.watcher is not None and self.watcher.running

    async def close(self) -> None:
        await self.disable_watch()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_item(self, name: str) -> LookupResult:
        """Resolve an item by id or fuzzy name.

        On a miss, up to three candidates are offered: search hits first,
        then the closest fuzzy matches.
        """
        await self.ensure_initialized()
        item = self.resolver.resolve(name)
        if item is not None:
            return LookupResult(item=item)

        candidates: list[LibraryItem] = [
            r.item for r in self.search_engine.search(name, DID_YOU_MEAN_LIMIT)
        ]
        for ranked in self.resolver.rank(name, DID_YOU_MEAN_LIMIT):
            if len(candidates) >= DID_YOU_MEAN_LIMIT:
                break
            if all(c.id != ranked.id for c in candidates):
                candidates.append(ranked)
        return LookupResult(item=None, did_you_mean=candidates[:DID_YOU_MEAN_LIMIT])

    async def search(
        self, query: str, limit: int | None = None, category: str | None = None
    ) -> list[SearchResult]:
        await self.ensure_initialized()
        return self.search_engine.search(
            query,
            self.settings.max_search_results if limit is None else limit,
            category=category,
        )

    async def suggest(self, message: str, limit: int = DEFAULT_SUGGEST_LIMIT) -> list[Suggestion]:
        await self.ensure_initialized()
        return self.suggestion_engine.suggest(message, limit)

    async def get_by_category(self, category: str) -> list[LibraryItem]:
        await self.ensure_initialized()
        return self.library.get_by_category(category)

    async def get_all_items(self) -> list[LibraryItem]:
        await self.ensure_initialized()
        return self.library.get_all_items()

    async def get_stats(self) -> dict[str, Any]:
        await self.ensure_initialized()
        stats = self.library.get_stats()
        stats["sessions"] = self.sessions.stats()
        return stats

    async def get_chain(self, name: str) -> Workflow | None:
        """Resolve a workflow by id, bare name, or fuzzy name."""
        await self.ensure_initialized()
        workflow = self.library.get_workflow(name)
        if workflow is not None:
            return workflow
        workflow = self.library.get_workflow(f"{WORKFLOW_CATEGORY}/{name}")
        if workflow is not None:
            return workflow

        best: Workflow | None = None
        best_score = 0.0
        for candidate in self.library.get_all_workflows():
            score = max(
                self.resolver.scorer(name, candidate.name),
                self.resolver.scorer(name, candidate.item.name),
            )
            if score > best_score:
                best, best_score = candidate, score
        return best if best_score >= CHAIN_MATCH_SCORE else None

    async def get_all_chains(self) -> list[Workflow]:
        await self.ensure_initialized()
        return self.library.get_all_workflows()

    async def random_item(
        self, category: str | None = None, rng: random.Random | None = None
    ) -> LibraryItem | None:
        await self.ensure_initialized()
        items = (
            self.library.get_by_category(category) if category else self.library.get_all_items()
        )
        if not items:
            return None
        return (rng or random).choice(items)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save(self, request: SaveRequest) -> LibraryItem | None:
        await self.ensure_initialized()
        return await self.library.save(request)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def start_session(
        self, workflow_name: str, context: dict[str, str] | None = None
    ) -> WorkflowSession | None:
        workflow = await self.get_chain(workflow_name)
        if workflow is None:
            return None
        try:
            return self.sessions.start(workflow, context)
        except EmptyWorkflowError as e:
            logfire.warn("Cannot start session", workflow_id=workflow.id, error=str(e))
            return None

    def get_session(self, session_id: str) -> WorkflowSession | None:
        return self.sessions.get(session_id)

    def advance(self, session_id: str) -> AdvanceResult | None:
        """Advance a session, ending it if it was already on its last step."""
        session = self.sessions.get(session_id)
        if session is None:
            return None
        if session.at_last_step:
            self.sessions.advance(session_id)
            self.sessions.end(session_id)
            return AdvanceResult(session=session, completed=True)
        return AdvanceResult(session=self.sessions.advance(session_id))

    def jump_to(self, session_id: str, step: int) -> WorkflowSession | None:
        return self.sessions.jump_to(session_id, step)

    def update_context(self, session_id: str, updates: dict[str, str]) -> WorkflowSession | None:
        return self.sessions.update_context(session_id, updates)

    def end_session(self, session_id: str) -> bool:
        return self.sessions.end(session_id)

    def render_current_step(self, session: WorkflowSession) -> str | None:
        """Current step formatted with the session context substituted."""
        workflow = self.library.get_workflow(session.workflow_id)
        if workflow is None:
            return None
        step = self.sessions.current_step(session, workflow)
        if step is None:
            return None
        return self.sessions.format_step(step, session)

    # ------------------------------------------------------------------
    # Prompt helpers
    # ------------------------------------------------------------------

    async def compose(self, names: list[str], include_metadata: bool = False) -> ComposedPrompt | None:
        await self.ensure_initialized()
        return compose(self.resolver, names, include_metadata)

    def quick_prompt(self, name: str) -> QuickPrompt | None:
        return get_quick_prompt(name)

    async def detect_context(self, files: list[str]) -> list[StackDetection]:
        await self.ensure_initialized()
        return detect_stack(files)

    async def enhance(self, message: str, task_type: str | None = None) -> EnhancedContext:
        suggestions = await self.suggest(message)
        return enhance(self.index, suggestions, message, task_type)
