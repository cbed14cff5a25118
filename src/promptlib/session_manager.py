"""Session manager for stepping through workflows.

Sessions live in memory for the lifetime of the process. Two concurrent
calls against the same session are not serialized; the last write wins.
"""

import re
import secrets
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

import logfire

from .data_models import Step, Workflow
from .exceptions import EmptyWorkflowError

_BRACKET_VAR_RE = re.compile(r"\[([^\]]+)\]")
_BRACE_VAR_RE = re.compile(r"\{\{([^}]+)\}\}")

PROGRESS_BAR_WIDTH = 20


def generate_session_id() -> str:
    """Generate a random 16-character hex session id."""
    return secrets.token_hex(8)


@dataclass
class WorkflowSession:
    """Progress through one workflow traversal."""

    workflow_id: str
    workflow_name: str
    total_steps: int
    id: str = field(default_factory=generate_session_id)
    current_step: int = 1  # 1-based position
    started_at: datetime = field(default_factory=datetime.now)
    context: dict[str, str] = field(default_factory=dict)
    completed_steps: list[int] = field(default_factory=list)

    @property
    def at_last_step(self) -> bool:
        return self.current_step >= self.total_steps

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        return data


def _normalize_key(name: str) -> str:
    return re.sub(r"\s+", "_", name.strip().lower())


def substitute_variables(prompt: str, context: dict[str, str]) -> str:
    """Fill [Some Name] and {{some_name}} placeholders from context.

    The normalized key (lowercase, spaces to underscores) is tried first,
    then the raw placeholder text. Unknown placeholders are left as-is.
    """

    def _replace(match: re.Match) -> str:
        raw = match.group(1).strip()
        key = _normalize_key(raw)
        if key in context:
            return str(context[key])
        if raw in context:
            return str(context[raw])
        return match.group(0)

    result = _BRACKET_VAR_RE.sub(_replace, prompt)
    return _BRACE_VAR_RE.sub(_replace, result)


def progress_bar(current: int, total: int, width: int = PROGRESS_BAR_WIDTH) -> str:
    """Render a text progress bar such as [██████░░░░] 60%."""
    if total <= 0:
        return f"[{'░' * width}] 0%"
    filled = round((current / total) * width)
    percent = round((current / total) * 100)
    return f"[{'█' * filled}{'░' * (width - filled)}] {percent}%"


class SessionManager:
    """Tracks in-progress workflow sessions."""

    def __init__(self) -> None:
        self.sessions: dict[str, WorkflowSession] = {}

    def start(self, workflow: Workflow, context: dict[str, str] | None = None) -> WorkflowSession:
        """Start a new session at step 1.

        Raises:
            EmptyWorkflowError: If the workflow has no steps.
        """
        if not workflow.steps:
            raise EmptyWorkflowError(f"Workflow {workflow.id!r} has no steps")

        session = WorkflowSession(
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            total_steps=workflow.total_steps,
            context=dict(context or {}),
        )
        self.sessions[session.id] = session
        logfire.debug(
            "Started workflow session", session_id=session.id, workflow_id=workflow.id
        )
        return session

    def get(self, session_id: str) -> WorkflowSession | None:
        return self.sessions.get(session_id)

    def all_sessions(self) -> list[WorkflowSession]:
        return list(self.sessions.values())

    def advance(self, session_id: str) -> WorkflowSession | None:
        """Mark the current step complete and move to the next one.

        At the last step only the completion is recorded; callers decide
        when a finished session should end.
        """
        session = self.sessions.get(session_id)
        if session is None:
            return None

        if session.current_step not in session.completed_steps:
            session.completed_steps.append(session.current_step)
        if session.current_step < session.total_steps:
            session.current_step += 1
            logfire.debug(
                "Advanced session", session_id=session_id, step=session.current_step
            )
        return session

    def jump_to(self, session_id: str, step: int) -> WorkflowSession | None:
        """Move to a step position. Out-of-range positions are ignored."""
        session = self.sessions.get(session_id)
        if session is None:
            return None

        if 1 <= step <= session.total_steps:
            session.current_step = step
            logfire.debug("Moved session", session_id=session_id, step=step)
        return session

    def update_context(
        self, session_id: str, updates: dict[str, str]
    ) -> WorkflowSession | None:
        """Shallow-merge values into the session context."""
        session = self.sessions.get(session_id)
        if session is None:
            return None
        session.context = {**session.context, **updates}
        return session

    def end(self, session_id: str) -> bool:
        """Remove a session. Returns True if it existed."""
        existed = self.sessions.pop(session_id, None) is not None
        if existed:
            logfire.debug("Ended session", session_id=session_id)
        return existed

    def current_step(self, session: WorkflowSession, workflow: Workflow) -> Step | None:
        """Step at the session's current position."""
        return workflow.step_at(session.current_step)

    def format_step(self, step: Step, session: WorkflowSession) -> str:
        """Format a step for display with context substituted.

        Format:
        ## Step 2: Title

        ### Prompt
        ```
        prompt text
        ```

        ### Expected Output
        - item

        > **Decision Point:** note
        """
        lines = [f"## Step {session.current_step}: {step.title}", ""]

        if step.prompt:
            lines.extend(
                [
                    "### Prompt",
                    "```",
                    substitute_variables(step.prompt, session.context),
                    "```",
                    "",
                ]
            )

        if step.expected_output:
            lines.append("### Expected Output")
            lines.extend(f"- {output}" for output in step.expected_output)
            lines.append("")

        if step.decision_point:
            lines.extend([f"> **Decision Point:** {step.decision_point}", ""])

        return "\n".join(lines)

    def format_status(self, session: WorkflowSession) -> str:
        """Format a session's progress for display."""
        completed = f"{len(session.completed_steps)}/{session.total_steps}"
        return "\n".join(
            [
                f"**Chain:** {session.workflow_name}",
                f"**Progress:** {completed} steps completed",
                f"**Current Step:** {session.current_step} of {session.total_steps}",
                "",
                progress_bar(session.current_step, session.total_steps),
            ]
        )

    def stats(self) -> dict[str, Any]:
        """Count active sessions overall and per workflow."""
        by_workflow = Counter(s.workflow_name for s in self.sessions.values())
        return {"active": len(self.sessions), "by_workflow": dict(by_workflow)}
