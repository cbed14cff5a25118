"""Intent-based suggestions."""

from pathlib import Path

import logfire

from .config import DEFAULT_SUGGEST_LIMIT
from .data_models import Suggestion
from .exceptions import IntentConfigError
from .index import LibraryIndex
from .schemas import IntentPattern, load_intent_patterns


def _pattern(keywords: list[str], intent: str, items: list[str], priority: int) -> IntentPattern:
    return IntentPattern(keywords=keywords, intent=intent, suggested_items=items, priority=priority)


DEFAULT_INTENT_PATTERNS: list[IntentPattern] = [
    # Planning & starting
    _pattern(
        ["new feature", "build", "create", "implement", "add feature", "start building"],
        "starting new feature",
        ["prompts/planning/prd-generator", "chains/new-feature", "prompts/planning/implementation-plan"],
        10,
    ),
    _pattern(
        ["architecture", "design", "structure", "how should i", "organize"],
        "architecture planning",
        ["prompts/planning/architecture-analyzer", "contexts/patterns/service-layer"],
        9,
    ),
    _pattern(
        ["scope", "too big", "simplify", "mvp", "cut scope"],
        "scope reduction",
        ["prompts/planning/scope-killer", "snippets/constraints/mvp-only"],
        9,
    ),
    # Development & debugging
    _pattern(
        ["bug", "error", "not working", "broken", "fix", "debug", "crash", "stuck"],
        "debugging",
        ["prompts/development/debugger", "skills/debugging", "chains/bug-fix"],
        10,
    ),
    _pattern(
        ["refactor", "clean up", "improve code", "tech debt", "messy"],
        "refactoring",
        ["prompts/development/code-cleaner", "skills/refactoring", "chains/refactor"],
        9,
    ),
    _pattern(
        ["tech debt", "technical debt", "legacy", "old code"],
        "tech debt audit",
        ["prompts/development/tech-debt-audit", "chains/refactor"],
        8,
    ),
    # Quality & security
    _pattern(
        ["security", "vulnerability", "secure", "auth", "injection", "xss"],
        "security review",
        ["prompts/quality/security-audit", "prompts/quality/security-fixer", "chains/security-hardening"],
        10,
    ),
    _pattern(
        ["test", "testing", "coverage", "unit test", "integration test"],
        "testing",
        ["skills/testing", "prompts/quality/critical-path-tester", "instructions/workflows/tdd"],
        9,
    ),
    _pattern(
        ["review", "code review", "pr review", "pull request"],
        "code review",
        ["skills/code-review", "instructions/personas/code-reviewer", "instructions/workflows/pr-review"],
        9,
    ),
    _pattern(
        ["deploy", "launch", "production", "go live", "release"],
        "deployment",
        ["prompts/quality/pre-launch-checklist", "chains/production-launch"],
        10,
    ),
    # Documentation
    _pattern(
        ["document", "docs", "readme", "explain", "api spec"],
        "documentation",
        ["skills/documentation", "templates/docs/api-spec-template"],
        7,
    ),
    _pattern(
        ["pr description", "pull request description", "commit message"],
        "PR writing",
        ["skills/pr-description"],
        8,
    ),
    # Project setup
    _pattern(
        ["setup", "new project", "init", "initialize", "bootstrap", "getting started"],
        "project setup",
        ["skills/project-setup", "templates/claude-md/comprehensive"],
        9,
    ),
    _pattern(
        ["nextjs", "next.js", "next js", "react"],
        "Next.js development",
        ["contexts/stacks/nextjs-14", "instructions/standards/nextjs", "instructions/standards/react"],
        8,
    ),
    _pattern(
        ["python", "fastapi", "flask", "django"],
        "Python development",
        ["contexts/stacks/fastapi", "instructions/standards/python", "instructions/standards/fastapi"],
        8,
    ),
    _pattern(
        ["typescript", "ts", "node", "nodejs"],
        "TypeScript/Node development",
        ["instructions/standards/typescript", "instructions/standards/nodejs"],
        8,
    ),
    _pattern(
        ["prisma", "database", "db", "orm"],
        "database work",
        ["contexts/stacks/prisma", "contexts/patterns/repository-pattern"],
        8,
    ),
    # Thinking modes
    _pattern(
        ["think harder", "think more", "complex", "difficult", "tricky", "hard problem"],
        "deep thinking",
        ["snippets/modifiers/ultrathink", "snippets/modifiers/be-thorough"],
        10,
    ),
    _pattern(
        ["step by step", "explain", "walk through", "show work"],
        "step-by-step",
        ["snippets/modifiers/step-by-step", "snippets/modifiers/explain-reasoning"],
        7,
    ),
]


def intent_confidence(matched_keywords: int, priority: int) -> float:
    """Confidence for a pattern hit, capped at 0.9."""
    return min(0.9, 0.3 + 0.2 * matched_keywords + 0.03 * priority)


def load_patterns(config_path: Path | None) -> list[IntentPattern]:
    """Merge external intent rules ahead of the built-in defaults.

    A missing file means defaults only; a malformed one is logged and
    ignored.
    """
    if config_path is None or not config_path.exists():
        return list(DEFAULT_INTENT_PATTERNS)
    try:
        custom = load_intent_patterns(config_path)
    except IntentConfigError as e:
        logfire.warn("Ignoring intent config", path=str(e.config_path), error=str(e))
        return list(DEFAULT_INTENT_PATTERNS)

    logfire.info("Loaded {count} custom intent patterns", count=len(custom))
    return custom + DEFAULT_INTENT_PATTERNS


class SuggestionEngine:
    """Matches messages against intent patterns to recommend items."""

    def __init__(self, index: LibraryIndex, patterns: list[IntentPattern] | None = None):
        self.index = index
        self.set_patterns(DEFAULT_INTENT_PATTERNS if patterns is None else patterns)

    def set_patterns(self, patterns: list[IntentPattern]) -> None:
        """Replace the rule set. Higher priority is evaluated first."""
        self.patterns = sorted(patterns, key=lambda p: p.priority, reverse=True)

    def suggest(self, message: str, limit: int = DEFAULT_SUGGEST_LIMIT) -> list[Suggestion]:
        """Recommend items for a free-form message.

        Returns:
            Suggestions sorted by descending confidence, one per item
        """
        lowered = message.lower()
        suggestions: list[Suggestion] = []
        seen: set[str] = set()

        for pattern in self.patterns:
            matched = [kw for kw in pattern.keywords if kw in lowered]
            if not matched:
                continue

            confidence = intent_confidence(len(matched), pattern.priority)
            for item_id in pattern.suggested_items:
                if item_id in seen:
                    continue
                seen.add(item_id)

                item = self.index.get(item_id)
                if item is not None:
                    suggestions.append(
                        Suggestion(
                            item=item,
                            reason=f"Detected intent: {pattern.intent}",
                            confidence=confidence,
                        )
                    )

        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        return suggestions[: max(limit, 0)]
