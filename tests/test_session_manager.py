"""Tests for workflow sessions."""

import random
from datetime import datetime
from pathlib import Path

import pytest

from promptlib.data_models import LibraryItem, Step, Workflow
from promptlib.exceptions import EmptyWorkflowError
from promptlib.session_manager import SessionManager, progress_bar, substitute_variables


def make_workflow(step_count: int, name: str = "Demo") -> Workflow:
    item = LibraryItem(
        id="chains/demo",
        name="demo",
        category="chains",
        path=Path("/lib/chains/demo.md"),
        relative_path="chains/demo.md",
        content="",
        body="",
        modified_at=datetime(2024, 1, 1),
    )
    steps = [
        Step(number=i, title=f"Step {i}", prompt=f"Do [Task Name] part {i}")
        for i in range(1, step_count + 1)
    ]
    return Workflow(id="chains/demo", name=name, steps=steps, item=item)


def test_start_session():
    manager = SessionManager()
    session = manager.start(make_workflow(3), {"task_name": "X"})
    assert session.current_step == 1
    assert session.completed_steps == []
    assert session.total_steps == 3
    assert len(session.id) == 16
    int(session.id, 16)
    assert manager.get(session.id) is session


def test_advance_twice_on_three_steps():
    manager = SessionManager()
    session = manager.start(make_workflow(3))
    manager.advance(session.id)
    manager.advance(session.id)
    assert session.current_step == 3
    assert session.completed_steps == [1, 2]


def test_advance_is_noop_at_ceiling():
    manager = SessionManager()
    session = manager.start(make_workflow(2))
    for _ in range(5):
        manager.advance(session.id)
    assert session.current_step == 2
    assert session.completed_steps == [1, 2]


def test_jump_to_ignores_out_of_range():
    manager = SessionManager()
    session = manager.start(make_workflow(3))
    manager.jump_to(session.id, 3)
    assert session.current_step == 3
    for bad in (0, -1, 4, 100):
        manager.jump_to(session.id, bad)
        assert session.current_step == 3


def test_current_step_stays_in_bounds():
    rng = random.Random(7)
    manager = SessionManager()
    session = manager.start(make_workflow(4))
    for _ in range(200):
        if rng.random() < 0.5:
            manager.advance(session.id)
        else:
            manager.jump_to(session.id, rng.randint(-2, 7))
        assert 1 <= session.current_step <= 4


def test_empty_workflow_cannot_start():
    with pytest.raises(EmptyWorkflowError):
        SessionManager().start(make_workflow(0))


def test_unknown_session():
    manager = SessionManager()
    assert manager.advance("nope") is None
    assert manager.jump_to("nope", 1) is None
    assert manager.update_context("nope", {"a": "b"}) is None
    assert manager.end("nope") is False


def test_update_context_and_end():
    manager = SessionManager()
    session = manager.start(make_workflow(1), {"a": "1"})
    manager.update_context(session.id, {"b": "2", "a": "3"})
    assert session.context == {"a": "3", "b": "2"}
    assert manager.end(session.id) is True
    assert manager.get(session.id) is None


def test_substitute_variables():
    context = {"feature_name": "Login", "Raw Key": "raw", "empty": ""}
    assert substitute_variables("Build [Feature Name]", context) == "Build Login"
    assert substitute_variables("Build {{feature_name}}", context) == "Build Login"
    assert substitute_variables("[Raw Key]", {"Raw Key": "raw"}) == "raw"
    assert substitute_variables("[Empty]!", context) == "!"
    assert substitute_variables("Keep [Unknown] and {{missing}}", context) == (
        "Keep [Unknown] and {{missing}}"
    )


def test_format_step_substitutes_context():
    manager = SessionManager()
    workflow = make_workflow(2)
    session = manager.start(workflow, {"task_name": "Refactor"})
    rendered = manager.format_step(manager.current_step(session, workflow), session)
    assert rendered.startswith("## Step 1: Step 1")
    assert "Do Refactor part 1" in rendered


def test_format_status_and_progress_bar():
    manager = SessionManager()
    session = manager.start(make_workflow(4, name="Ship It"))
    manager.advance(session.id)
    status = manager.format_status(session)
    assert "**Chain:** Ship It" in status
    assert "**Progress:** 1/4 steps completed" in status
    assert status.endswith("[" + "█" * 10 + "░" * 10 + "] 50%")
    assert progress_bar(0, 0) == "[" + "░" * 20 + "] 0%"


def test_stats():
    manager = SessionManager()
    manager.start(make_workflow(1, name="A"))
    manager.start(make_workflow(1, name="A"))
    manager.start(make_workflow(1, name="B"))
    assert manager.stats() == {"active": 3, "by_workflow": {"A": 2, "B": 1}}
