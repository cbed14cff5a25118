"""Project stack detection and task-type classification."""

import re
from dataclasses import dataclass, field

from .data_models import LibraryItem, Suggestion
from .index import LibraryIndex

TaskType = str

TASK_TYPES = (
    "build_feature",
    "fix_bug",
    "code_review",
    "architecture",
    "security",
    "performance",
    "documentation",
    "testing",
    "refactoring",
    "general",
)


@dataclass(frozen=True)
class StackPattern:
    stack: str
    indicators: tuple[str, ...]
    items: tuple[str, ...]


STACK_PATTERNS: list[StackPattern] = [
    StackPattern(
        "Next.js",
        ("next.config.js", "next.config.ts", "next.config.mjs", ".next", "app/layout.tsx", "pages/_app.tsx"),
        ("contexts/stacks/nextjs-14", "instructions/standards/nextjs", "instructions/standards/react"),
    ),
    StackPattern(
        "React",
        ("react", "jsx", "tsx", "vite.config.ts"),
        ("instructions/standards/react", "instructions/standards/typescript"),
    ),
    StackPattern(
        "TypeScript",
        ("tsconfig.json", ".ts", ".tsx"),
        ("instructions/standards/typescript",),
    ),
    StackPattern(
        "Node.js",
        ("package.json", "node_modules", ".nvmrc"),
        ("instructions/standards/nodejs",),
    ),
    StackPattern(
        "Python",
        ("requirements.txt", "pyproject.toml", "setup.py", ".py", "pipfile"),
        ("instructions/standards/python",),
    ),
    StackPattern(
        "FastAPI",
        ("fastapi", "uvicorn", "main.py"),
        ("contexts/stacks/fastapi", "instructions/standards/fastapi"),
    ),
    StackPattern(
        "Prisma",
        ("prisma", "schema.prisma"),
        ("contexts/stacks/prisma", "contexts/patterns/repository-pattern"),
    ),
    StackPattern(
        "Docker",
        ("dockerfile", "docker-compose.yml", "docker-compose.yaml"),
        ("instructions/personas/devops-engineer",),
    ),
    StackPattern(
        "Testing",
        ("jest.config", "vitest.config", "pytest.ini", ".test.", ".spec."),
        ("skills/testing", "instructions/workflows/tdd"),
    ),
]


@dataclass
class StackDetection:
    """A detected technology with the item ids recommended for it."""

    stack: str
    confidence: float
    item_ids: list[str] = field(default_factory=list)


def stack_confidence(matches: int) -> float:
    return min(0.95, 0.5 + 0.15 * matches)


def detect_stack(files: list[str]) -> list[StackDetection]:
    """Detect technologies from a list of project file names.

    Indicators are matched as substrings of the joined, lowercased file list.

    Returns:
        Detections sorted by descending confidence
    """
    haystack = " ".join(files).lower()
    detected: list[StackDetection] = []
    for pattern in STACK_PATTERNS:
        matches = [ind for ind in pattern.indicators if ind.lower() in haystack]
        if matches:
            detected.append(
                StackDetection(
                    stack=pattern.stack,
                    confidence=stack_confidence(len(matches)),
                    item_ids=list(pattern.items),
                )
            )
    detected.sort(key=lambda d: d.confidence, reverse=True)
    return detected


# Checked in order; the first match wins
TASK_TYPE_PATTERNS: list[tuple[TaskType, re.Pattern]] = [
    ("build_feature", re.compile(r"build|create|implement|add|make|new feature|develop")),
    ("fix_bug", re.compile(r"bug|fix|debug|error|issue|broken|not working|crash")),
    ("code_review", re.compile(r"review|check|audit|look at|examine")),
    ("architecture", re.compile(r"architect|design|structure|plan|system|database schema|migrate")),
    ("security", re.compile(r"secur|auth|vulnerability|attack|xss|injection|csrf")),
    ("performance", re.compile(r"performance|slow|optimize|fast|speed|memory|cpu|scale")),
    ("documentation", re.compile(r"document|readme|comment|explain|describe")),
    ("testing", re.compile(r"test|spec|coverage|jest|vitest|playwright")),
    ("refactoring", re.compile(r"refactor|clean|improve|simplify|reorganize")),
]

TASK_TYPE_ITEMS: dict[TaskType, list[str]] = {
    "build_feature": ["prompts/planning/prd-generator", "chains/new-feature", "snippets/modifiers/step-by-step"],
    "fix_bug": ["prompts/analysis/deep-debugger", "skills/debugging", "chains/bug-fix"],
    "code_review": ["skills/code-review-advanced", "snippets/modifiers/critique"],
    "architecture": ["snippets/modifiers/megathink", "instructions/personas/senior-engineer"],
    "security": ["prompts/quality/security-audit", "chains/security-hardening"],
    "performance": ["snippets/modifiers/ultrathink"],
    "documentation": ["templates/docs/readme-template"],
    "testing": ["skills/testing"],
    "refactoring": ["snippets/modifiers/step-by-step", "skills/code-review-advanced"],
    "general": ["snippets/modifiers/ultrathink", "snippets/modifiers/step-by-step"],
}

APPROACH_CHECKLISTS: dict[TaskType, list[str]] = {
    "build_feature": [
        "Start with requirements clarification",
        "Use the PRD generator or new-feature chain",
        "Plan before coding",
        "Include tests and error handling",
    ],
    "fix_bug": [
        "Reproduce the issue first",
        "Use systematic debugging (hypothesize, test, narrow)",
        "Find root cause, not just symptoms",
        "Add test to prevent regression",
    ],
    "code_review": [
        "Check correctness first",
        "Then security implications",
        "Then performance concerns",
        "Then maintainability",
    ],
    "architecture": [
        "Clarify requirements and constraints",
        "Consider 3+ approaches",
        "Evaluate trade-offs (cost, complexity, team skills)",
        "Think about 6-month maintenance view",
    ],
    "security": [
        "Identify attack surface",
        "Check OWASP Top 10",
        "Verify auth/authz on all paths",
        "Validate all inputs",
    ],
}


def detect_task_type(message: str) -> TaskType:
    """Classify a request into one of TASK_TYPES."""
    lowered = message.lower()
    for task_type, pattern in TASK_TYPE_PATTERNS:
        if pattern.search(lowered):
            return task_type
    return "general"


def items_for_task_type(index: LibraryIndex, task_type: TaskType) -> list[LibraryItem]:
    """Indexed items mapped to a task type. Unknown types use "general"."""
    ids = TASK_TYPE_ITEMS.get(task_type, TASK_TYPE_ITEMS["general"])
    return [item for item_id in ids if (item := index.get(item_id)) is not None]


@dataclass
class EnhancedContext:
    """Guidance assembled for a request before work starts."""

    task_type: TaskType
    approach: list[str]
    suggestions: list[Suggestion]
    related_items: list[LibraryItem]

    def render(self) -> str:
        lines = ["# Auto-Enhanced Context", "", f"**Detected Task Type:** {self.task_type}", ""]
        if self.approach:
            lines.extend(["## Recommended Approach", ""])
            lines.extend(f"{i}. {step}" for i, step in enumerate(self.approach, start=1))
            lines.append("")

        items = [s.item for s in self.suggestions[:3]]
        suggested_ids = {s.item.id for s in self.suggestions}
        items.extend(item for item in self.related_items[:2] if item.id not in suggested_ids)
        if items:
            lines.extend(["## Relevant Prompts & Skills", ""])
            for item in items:
                lines.extend([f"### {item.title}", f"**ID:** `{item.id}`"])
                if item.metadata.description:
                    lines.append(f"> {item.metadata.description}")
                lines.append("")
        return "\n".join(lines).rstrip() + "\n"


def enhance(
    index: LibraryIndex,
    suggestions: list[Suggestion],
    message: str,
    task_type: TaskType | None = None,
) -> EnhancedContext:
    """Combine suggestions, task-type items, and an approach checklist.

    Args:
        index: Index to resolve task-type items against
        suggestions: Suggestions already computed for the message
        message: The user's request
        task_type: Explicit task type; detected from the message if omitted
    """
    detected = task_type or detect_task_type(message)
    return EnhancedContext(
        task_type=detected,
        approach=list(APPROACH_CHECKLISTS.get(detected, [])),
        suggestions=suggestions,
        related_items=items_for_task_type(index, detected),
    )
