"""Quick prompts, prompt composition, and item output formats."""

import re
from dataclasses import dataclass, field

from .data_models import LibraryItem, OutputFormat
from .matching import FuzzyResolver

MODIFIER_CATEGORY = "snippets"

_FENCE_RE = re.compile(r"^```[^\n]*\n(.*?)^```", re.DOTALL | re.MULTILINE)
_LEADING_HEADING_RE = re.compile(r"\A#[ \t]+.*\n")
_LEADING_QUOTE_RE = re.compile(r"\A>[ \t]*.*\n")


@dataclass(frozen=True)
class QuickPrompt:
    name: str
    prompt: str
    description: str


QUICK_PROMPTS: dict[str, QuickPrompt] = {
    qp.name: qp
    for qp in [
        QuickPrompt(
            "think",
            "Think through this step by step, showing your reasoning at each stage.",
            "Enable step-by-step reasoning",
        ),
        QuickPrompt(
            "ultrathink",
            "This is a complex problem. Take your time and think through every angle. "
            "Consider edge cases, potential issues, and alternative approaches before "
            "settling on a solution.",
            "Deep analysis mode for complex problems",
        ),
        QuickPrompt(
            "critique",
            "Be a harsh but fair critic. Point out every flaw, inefficiency, and potential "
            "issue. Do not hold back - I need honest feedback to improve.",
            "Get ruthless feedback",
        ),
        QuickPrompt(
            "simplify",
            "Explain this like I am a smart 12-year-old. Use simple language, analogies, "
            "and concrete examples. Avoid jargon.",
            "Simple explanation mode",
        ),
        QuickPrompt(
            "plan",
            "Before implementing anything, create a detailed plan. Break it into phases, "
            "list dependencies, and identify risks. I will review and approve before we "
            "proceed.",
            "Planning mode - no code yet",
        ),
        QuickPrompt(
            "review",
            "Review this code for: 1) Bugs and edge cases, 2) Security vulnerabilities, "
            "3) Performance issues, 4) Code quality and maintainability. Be specific about "
            "line numbers.",
            "Code review checklist",
        ),
        QuickPrompt(
            "debug",
            "Help me debug this issue. First, understand what SHOULD happen. Then analyze "
            "what IS happening. Form hypotheses and help me test them systematically.",
            "Systematic debugging approach",
        ),
        QuickPrompt(
            "secure",
            "Analyze this for security vulnerabilities. Check for: injection attacks, auth "
            "issues, data exposure, insecure defaults, and missing validation. Assume an "
            "attacker mindset.",
            "Security review mode",
        ),
        QuickPrompt(
            "test",
            "Write comprehensive tests for this code. Include: 1) Happy path, 2) Edge "
            "cases, 3) Error conditions, 4) Boundary values. Use the existing testing "
            "patterns in this codebase.",
            "Test writing mode",
        ),
        QuickPrompt(
            "doc",
            "Write clear documentation for this code. Include: purpose, usage examples, "
            "parameters, return values, and any gotchas. Write for a developer new to this "
            "codebase.",
            "Documentation mode",
        ),
        QuickPrompt(
            "refactor",
            "Refactor this code to be cleaner and more maintainable. Prioritize: "
            "readability, single responsibility, DRY principles. Explain each change you "
            "make.",
            "Refactoring mode",
        ),
        QuickPrompt(
            "ship",
            "I need to ship this today. Focus on: 1) Does it work for the main use case? "
            "2) Any critical bugs? 3) Is it secure enough for now? Help me identify what "
            "is blocking launch vs. what can wait.",
            "Ship-it mode - focus on essentials",
        ),
    ]
}


def get_quick_prompt(name: str) -> QuickPrompt | None:
    """Look up a quick prompt by name, ignoring case."""
    return QUICK_PROMPTS.get(name.strip().lower())


@dataclass
class ComposedPrompt:
    """Result of combining several items into one prompt."""

    text: str
    components: list[LibraryItem] = field(default_factory=list)
    not_found: list[str] = field(default_factory=list)


def _strip_modifier(body: str) -> str:
    text = _LEADING_HEADING_RE.sub("", body.lstrip() + "\n", count=1)
    text = _LEADING_QUOTE_RE.sub("", text.lstrip() + "\n", count=1)
    return text.strip()


def compose(
    resolver: FuzzyResolver, names: list[str], include_metadata: bool = False
) -> ComposedPrompt | None:
    """Combine items into a single prompt.

    Snippets are treated as modifiers and placed first, with their leading
    heading and blockquote removed. Remaining items follow in the order
    given, separated by horizontal rules.

    Args:
        resolver: Resolver used to look up each name
        names: Item ids or fuzzy names
        include_metadata: Add a header listing the components

    Returns:
        The composed prompt, or None if no name resolved
    """
    found: list[LibraryItem] = []
    not_found: list[str] = []
    for name in names:
        item = resolver.resolve(name)
        if item is None:
            not_found.append(name)
        else:
            found.append(item)

    if not found:
        return None

    modifiers = [item for item in found if item.category == MODIFIER_CATEGORY]
    main_items = [item for item in found if item.category != MODIFIER_CATEGORY]

    lines: list[str] = []
    if include_metadata:
        lines.extend(["# Composed Prompt", ""])
        lines.append(f"**Components:** {' + '.join(item.name for item in found)}")
        if not_found:
            lines.append(f"**Not found:** {', '.join(not_found)}")
        lines.extend(["", "---", ""])

    for modifier in modifiers:
        lines.extend([_strip_modifier(modifier.body), ""])

    for i, item in enumerate(main_items):
        if len(main_items) > 1 and include_metadata:
            lines.extend([f"## {item.title}", ""])
        lines.append(item.body)
        if i < len(main_items) - 1:
            lines.extend(["", "---", ""])

    return ComposedPrompt(
        text="\n".join(lines).strip(), components=found, not_found=not_found
    )


def extract_prompt(body: str) -> str:
    """Return the content of the first fenced block, or the whole body."""
    match = _FENCE_RE.search(body)
    if match is None:
        return body
    return match.group(1).strip()


def format_item(item: LibraryItem, fmt: OutputFormat = "full") -> str:
    """Render an item for output.

    Args:
        item: Item to render
        fmt: "full" for a header with metadata followed by the body, "body"
            for the body only, "prompt_only" for the first fenced block

    Returns:
        The rendered text
    """
    if fmt == "body":
        return item.body
    if fmt == "prompt_only":
        return extract_prompt(item.body)

    lines = [f"# {item.title}", ""]
    if item.metadata.description:
        lines.extend([f"> {item.metadata.description}", ""])
    lines.append(f"**Category:** {item.location}")
    if item.metadata.tags:
        lines.append(f"**Tags:** {', '.join(item.metadata.tags)}")
    lines.extend(["", "---", "", item.body])
    return "\n".join(lines)
