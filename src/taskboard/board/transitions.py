"""Legal status transitions of the task state machine."""

from __future__ import annotations

from taskboard.board.errors import InvalidTransitionError
from taskboard.board.models import TaskStatus

# action -> (source, target) edges it may take
ACTION_EDGES: dict[str, frozenset[tuple[TaskStatus, TaskStatus]]] = {
    "claimed": frozenset({(TaskStatus.READY, TaskStatus.IN_PROGRESS)}),
    "released": frozenset({(TaskStatus.IN_PROGRESS, TaskStatus.READY)}),
    "completed": frozenset(
        {
            (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED),
            (TaskStatus.READY, TaskStatus.COMPLETED),
        },
    ),
    "blocked": frozenset({(TaskStatus.READY, TaskStatus.BLOCKED)}),
    "unblocked": frozenset({(TaskStatus.BLOCKED, TaskStatus.READY)}),
}

# actions that may repeat on a task already in their target status
_REFRESHES: dict[str, TaskStatus] = {
    "claimed": TaskStatus.IN_PROGRESS,
    "blocked": TaskStatus.BLOCKED,
}

TRANSITIONS: frozenset[tuple[TaskStatus, TaskStatus]] = frozenset().union(*ACTION_EDGES.values())


def allowed_sources(action: str) -> frozenset[TaskStatus]:
    edges = ACTION_EDGES.get(action)
    if edges is None:
        raise ValueError(f"Unknown task action: {action!r}")
    sources = {source for source, _ in edges}
    if action in _REFRESHES:
        sources.add(_REFRESHES[action])
    return frozenset(sources)


def ensure_allowed(*, task_id: int, status: TaskStatus, action: str) -> None:
    """Raise ``InvalidTransitionError`` unless ``action`` may start from ``status``.

    ``claimed`` from ``in_progress`` and ``blocked`` from ``blocked`` are
    same-status refreshes (re-claim by the current claimant, new block reason),
    not transitions.

    ``completed`` is also accepted straight from ``ready``: the CLI lets an
    agent record work finished without a prior claim. This widens the strict
    ``ready -> in_progress -> completed`` path; every other edge stays as
    listed in ``ACTION_EDGES``.
    """

    if status not in allowed_sources(action):
        raise InvalidTransitionError(task_id, status.value, action)


def ensure_transition(
    *,
    task_id: int,
    source: TaskStatus,
    target: TaskStatus,
    action: str,
) -> None:
    """Reject a status write that is neither an edge nor a same-status refresh."""

    if source == target and _REFRESHES.get(action) == target:
        return
    if not is_transition(source, target):
        raise InvalidTransitionError(task_id, source.value, action)


def is_transition(source: TaskStatus, target: TaskStatus) -> bool:
    """Whether ``source -> target`` is an edge (self-loops excluded)."""

    return (source, target) in TRANSITIONS
