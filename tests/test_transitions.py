from __future__ import annotations

import allure
import pytest

from taskboard.board.errors import InvalidTransitionError
from taskboard.board.models import TaskStatus
from taskboard.board.transitions import (
    ACTION_EDGES,
    TRANSITIONS,
    allowed_sources,
    ensure_allowed,
    ensure_transition,
    is_transition,
)

pytestmark = [
    allure.epic("Task Board"),
    allure.feature("State Machine"),
]


@pytest.mark.parametrize(
    ("status", "action"),
    [
        (TaskStatus.READY, "claimed"),
        (TaskStatus.IN_PROGRESS, "claimed"),
        (TaskStatus.IN_PROGRESS, "released"),
        (TaskStatus.IN_PROGRESS, "completed"),
        (TaskStatus.READY, "completed"),
        (TaskStatus.READY, "blocked"),
        (TaskStatus.BLOCKED, "blocked"),
        (TaskStatus.BLOCKED, "unblocked"),
    ],
)
def test_allowed_actions_pass(status: TaskStatus, action: str) -> None:
    ensure_allowed(task_id=1, status=status, action=action)


@pytest.mark.parametrize(
    ("status", "action"),
    [
        (TaskStatus.COMPLETED, "claimed"),
        (TaskStatus.BLOCKED, "claimed"),
        (TaskStatus.READY, "released"),
        (TaskStatus.BLOCKED, "released"),
        (TaskStatus.COMPLETED, "released"),
        (TaskStatus.COMPLETED, "completed"),
        (TaskStatus.BLOCKED, "completed"),
        (TaskStatus.IN_PROGRESS, "blocked"),
        (TaskStatus.COMPLETED, "blocked"),
        (TaskStatus.READY, "unblocked"),
        (TaskStatus.COMPLETED, "unblocked"),
    ],
)
def test_illegal_actions_raise(status: TaskStatus, action: str) -> None:
    with pytest.raises(InvalidTransitionError, match=f"status={status.value}") as error:
        ensure_allowed(task_id=7, status=status, action=action)
    assert error.value.task_id == 7
    assert error.value.action == action


def test_unknown_action_is_programming_error() -> None:
    with pytest.raises(ValueError, match="Unknown task action"):
        ensure_allowed(task_id=1, status=TaskStatus.READY, action="archived")


def test_completed_is_terminal() -> None:
    for target in TaskStatus:
        assert not is_transition(TaskStatus.COMPLETED, target)
    assert is_transition(TaskStatus.READY, TaskStatus.IN_PROGRESS)
    assert not is_transition(TaskStatus.BLOCKED, TaskStatus.IN_PROGRESS)


@pytest.mark.parametrize("action", ["claimed", "released", "completed", "blocked", "unblocked"])
def test_action_sources_come_from_edge_table(action: str) -> None:
    targets = {target for _, target in ACTION_EDGES[action]}
    for source in allowed_sources(action):
        assert any(
            is_transition(source, target) or source == target for target in targets
        ), f"{action} from {source.value} has no edge"


def test_ready_to_completed_is_the_only_shortcut() -> None:
    assert TRANSITIONS == {
        (TaskStatus.READY, TaskStatus.IN_PROGRESS),
        (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED),
        (TaskStatus.IN_PROGRESS, TaskStatus.READY),
        (TaskStatus.READY, TaskStatus.BLOCKED),
        (TaskStatus.BLOCKED, TaskStatus.READY),
        (TaskStatus.READY, TaskStatus.COMPLETED),
    }


def test_status_write_must_follow_an_edge() -> None:
    ensure_transition(
        task_id=3,
        source=TaskStatus.IN_PROGRESS,
        target=TaskStatus.IN_PROGRESS,
        action="claimed",
    )
    ensure_transition(
        task_id=3,
        source=TaskStatus.BLOCKED,
        target=TaskStatus.READY,
        action="unblocked",
    )
    with pytest.raises(InvalidTransitionError, match="status=blocked"):
        ensure_transition(
            task_id=3,
            source=TaskStatus.BLOCKED,
            target=TaskStatus.IN_PROGRESS,
            action="claimed",
        )
    with pytest.raises(InvalidTransitionError, match="status=completed"):
        ensure_transition(
            task_id=3,
            source=TaskStatus.COMPLETED,
            target=TaskStatus.COMPLETED,
            action="completed",
        )
