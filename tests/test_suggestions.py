"""Tests for intent suggestions and external intent configuration."""

import json
from pathlib import Path

import pytest
from conftest import write_file

from promptlib.exceptions import IntentConfigError
from promptlib.library import Library
from promptlib.schemas import IntentPattern, load_intent_patterns
from promptlib.suggestions import (
    DEFAULT_INTENT_PATTERNS,
    SuggestionEngine,
    intent_confidence,
    load_patterns,
)


def pattern(keywords, items, priority=5, intent="testing intent"):
    return IntentPattern(keywords=keywords, intent=intent, suggested_items=items, priority=priority)


def test_intent_confidence():
    assert intent_confidence(1, 10) == pytest.approx(0.8)
    assert intent_confidence(1, 0) == pytest.approx(0.5)
    assert intent_confidence(5, 10) == 0.9


@pytest.mark.asyncio
async def test_default_patterns_suggest_indexed_items(library: Library):
    engine = SuggestionEngine(library.index)
    suggestions = engine.suggest("there is a security vulnerability in auth")
    assert [s.item.id for s in suggestions] == ["prompts/quality/security-audit"]
    assert suggestions[0].reason == "Detected intent: security review"
    # three keywords matched at priority 10
    assert suggestions[0].confidence == 0.9


@pytest.mark.asyncio
async def test_no_match_returns_empty(library: Library):
    assert SuggestionEngine(library.index).suggest("zzz qqq") == []


@pytest.mark.asyncio
async def test_dedup_keeps_highest_priority(library: Library):
    engine = SuggestionEngine(
        library.index,
        [
            pattern(["alpha"], ["chains/bug-fix"], priority=2, intent="low"),
            pattern(["alpha"], ["chains/bug-fix", "chains/new-feature"], priority=9, intent="high"),
        ],
    )
    suggestions = engine.suggest("alpha")
    assert [s.item.id for s in suggestions] == ["chains/bug-fix", "chains/new-feature"]
    assert all(s.reason == "Detected intent: high" for s in suggestions)


@pytest.mark.asyncio
async def test_missing_items_are_skipped_but_marked_seen(library: Library):
    engine = SuggestionEngine(
        library.index,
        [
            pattern(["alpha"], ["prompts/missing"], priority=9),
            pattern(["alpha"], ["prompts/missing", "chains/bug-fix"], priority=1),
        ],
    )
    assert [s.item.id for s in engine.suggest("alpha")] == ["chains/bug-fix"]


@pytest.mark.asyncio
async def test_sorted_by_confidence_and_limited(library: Library):
    engine = SuggestionEngine(
        library.index,
        [
            pattern(["one"], ["chains/bug-fix"], priority=1),
            pattern(["one", "two"], ["chains/new-feature"], priority=1),
            pattern(["three"], ["snippets/modifiers/ultrathink"], priority=1),
        ],
    )
    suggestions = engine.suggest("one two three", limit=2)
    assert [s.item.id for s in suggestions] == ["chains/new-feature", "chains/bug-fix"]


def test_load_patterns_without_config(tmp_path: Path):
    assert load_patterns(tmp_path / "missing.json") == DEFAULT_INTENT_PATTERNS
    assert load_patterns(None) == DEFAULT_INTENT_PATTERNS


def test_load_patterns_puts_custom_first(tmp_path: Path):
    config = write_file(
        tmp_path,
        "config/intents.json",
        json.dumps(
            [{"keywords": ["Deploy"], "intent": "custom", "suggestedItems": ["chains/x"], "priority": 10}]
        ),
    )
    patterns = load_patterns(config)
    assert patterns[0].intent == "custom"
    assert patterns[0].keywords == ["deploy"]
    assert len(patterns) == len(DEFAULT_INTENT_PATTERNS) + 1


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        json.dumps({"keywords": ["a"]}),
        json.dumps([{"keywords": [], "intent": "x", "suggestedItems": ["a"], "priority": 1}]),
        json.dumps([{"keywords": ["a"], "intent": "x", "suggestedItems": ["a"], "priority": 11}]),
    ],
)
def test_malformed_config_falls_back_to_defaults(tmp_path: Path, content):
    config = write_file(tmp_path, "intents.json", content)
    with pytest.raises(IntentConfigError) as exc_info:
        load_intent_patterns(config)
    assert exc_info.value.config_path == config
    assert load_patterns(config) == DEFAULT_INTENT_PATTERNS


@pytest.mark.asyncio
async def test_custom_pattern_wins_ties(tmp_path: Path):
    write_file(tmp_path, "prompts/custom.md", "# Custom\n")
    write_file(tmp_path, "skills/debugging.md", "# Debugging\n")
    config = write_file(
        tmp_path,
        "config/intents.json",
        json.dumps(
            [{"keywords": ["bug"], "intent": "custom bugs", "suggestedItems": ["prompts/custom", "skills/debugging"], "priority": 10}]
        ),
    )
    lib = Library(tmp_path)
    await lib.scan()
    engine = SuggestionEngine(lib.index, load_patterns(config))
    suggestions = engine.suggest("found a bug")
    assert suggestions[0].reason == "Detected intent: custom bugs"
    assert {s.item.id for s in suggestions} == {"prompts/custom", "skills/debugging"}
    assert all(s.reason == "Detected intent: custom bugs" for s in suggestions)
