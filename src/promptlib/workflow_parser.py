"""Workflow parser for multi-step chain documents.

A chain document is read as a sequence of heading sections. Recognised
sections are:

    ## Overview          first fenced block becomes the overview
    ## Prerequisites     bullet items, up to a horizontal rule
    ## Step N: Title     one step; runs until the next step heading
    ## Tips              bullet items

Inside a step, labelled blocks are picked up:

    **Prompt:**          the fenced block that follows
    **Expected Output:** the bullet items that follow
    **Decision Point:**  the text after the label

Anything missing yields an empty value rather than an error.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .data_models import LibraryItem, Step, Workflow
from .document_parser import extract_description, extract_title

_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.*?)[ \t]*$")
_STEP_RE = re.compile(r"^step\s+(\d+)\s*:\s*(.*)$", re.IGNORECASE)
_FENCE_RE = re.compile(r"^\s*```")
_BULLET_RE = re.compile(r"^\s*[-*+]\s+(.+?)\s*$")
_RULE_RE = re.compile(r"^\s*(?:-{3,}|\*{3,}|_{3,})\s*$")
_LABEL_RE = re.compile(
    r"^\s*(?:>\s*)?(?:\*\*|__)?(prompt|expected output|decision point)(?:\*\*|__)?"
    r"\s*:\s*(?:\*\*|__)?\s*(.*?)\s*$",
    re.IGNORECASE,
)
_BOLD_LINE_RE = re.compile(r"^\s*(?:>\s*)?(?:\*\*|__)")


@dataclass
class Section:
    """A heading and the lines under it, up to the next heading."""

    level: int
    heading: str
    lines: list[str] = field(default_factory=list)


def split_sections(body: str) -> list[Section]:
    """Split markdown into heading sections.

    Headings inside fenced code blocks are treated as plain lines. Text
    before the first heading is returned as a level-0 section.
    """
    sections: list[Section] = []
    current = Section(level=0, heading="")
    in_fence = False

    for line in body.splitlines():
        if _FENCE_RE.match(line):
            in_fence = not in_fence
            current.lines.append(line)
            continue

        heading = None if in_fence else _HEADING_RE.match(line)
        if heading:
            sections.append(current)
            current = Section(level=len(heading.group(1)), heading=heading.group(2))
            continue

        current.lines.append(line)

    sections.append(current)
    return sections


def _first_fence(lines: list[str], start: int = 0) -> tuple[str | None, int]:
    """Return the content of the first fenced block at or after start.

    Returns:
        Tuple of (content or None, index just past the closing fence)
    """
    for i in range(start, len(lines)):
        if _FENCE_RE.match(lines[i]):
            content: list[str] = []
            for j in range(i + 1, len(lines)):
                if _FENCE_RE.match(lines[j]):
                    return "\n".join(content).strip(), j + 1
                content.append(lines[j])
            # Unterminated fence runs to the end
            return "\n".join(content).strip(), len(lines)
    return None, len(lines)


def _bullets(lines: list[str], stop_at_rule: bool = False) -> list[str]:
    items = []
    for line in lines:
        if stop_at_rule and _RULE_RE.match(line):
            break
        match = _BULLET_RE.match(line)
        if match:
            items.append(match.group(1))
    return items


def _find_section(sections: list[Section], prefix: str) -> Section | None:
    for section in sections:
        if section.level and section.heading.lower().startswith(prefix):
            return section
    return None


def _parse_step_body(lines: list[str]) -> tuple[str, list[str], str | None]:
    """Extract (prompt, expected_output, decision_point) from a step body."""
    prompt = ""
    expected: list[str] = []
    decision: str | None = None

    i = 0
    while i < len(lines):
        label = _LABEL_RE.match(lines[i])
        if not label:
            i += 1
            continue

        kind = label.group(1).lower()
        rest = label.group(2)

        if kind == "prompt":
            start = i if rest.startswith("```") else i + 1
            block, end = _first_fence(lines, start)
            if block is not None and not prompt:
                prompt = block
            i = max(end, i + 1)
            continue

        if kind == "expected output":
            i += 1
            while i < len(lines):
                line = lines[i]
                if (
                    _HEADING_RE.match(line)
                    or _RULE_RE.match(line)
                    or _BOLD_LINE_RE.match(line)
                    or _LABEL_RE.match(line)
                ):
                    break
                match = _BULLET_RE.match(line)
                if match:
                    expected.append(match.group(1))
                i += 1
            continue

        # decision point
        if rest:
            decision = rest
        else:
            following = next((ln.strip() for ln in lines[i + 1 :] if ln.strip()), "")
            decision = following.lstrip("> ").strip() or None
        i += 1

    return prompt, expected, decision


def _is_step(section: Section) -> bool:
    return bool(section.level) and _STEP_RE.match(section.heading) is not None


def _collect_steps(sections: list[Section]) -> list[Step]:
    steps: list[Step] = []
    i = 0
    while i < len(sections):
        section = sections[i]
        match = _STEP_RE.match(section.heading) if section.level else None
        if not match:
            i += 1
            continue

        number = int(match.group(1))
        title = match.group(2).strip() or f"Step {number}"

        # Every section up to the next step heading belongs to this step
        body_lines = list(section.lines)
        i += 1
        while i < len(sections) and not _is_step(sections[i]):
            nested = sections[i]
            body_lines.append(f"{'#' * nested.level} {nested.heading}")
            body_lines.extend(nested.lines)
            i += 1

        prompt, expected, decision = _parse_step_body(body_lines)
        steps.append(
            Step(
                number=number,
                title=title,
                prompt=prompt,
                expected_output=expected,
                decision_point=decision,
            )
        )
    return steps


def parse_workflow(item: LibraryItem) -> Workflow:
    """Parse a chain item into a Workflow.

    Args:
        item: A library item whose body holds the chain document

    Returns:
        Workflow sharing the item's id
    """
    body = item.body
    sections = split_sections(body)

    overview = ""
    overview_section = _find_section(sections, "overview")
    if overview_section is not None:
        block, _ = _first_fence(overview_section.lines)
        overview = block or ""

    prerequisites: list[str] = []
    prereq_section = _find_section(sections, "prerequisite")
    if prereq_section is not None:
        prerequisites = _bullets(prereq_section.lines, stop_at_rule=True)

    tips: list[str] = []
    tips_section = _find_section(sections, "tips")
    if tips_section is not None:
        tips = _bullets(tips_section.lines)

    return Workflow(
        id=item.id,
        name=extract_title(body) or item.name,
        description=item.metadata.description or extract_description(body) or "",
        overview=overview,
        prerequisites=prerequisites,
        steps=_collect_steps(sections),
        tips=tips,
        item=item,
    )
