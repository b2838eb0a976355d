"""Domain models for the task board."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any

from taskboard.board.errors import ValidationError


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    READY = "ready"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"


class Priority(str, Enum):
    """Task urgency; declaration order is the scheduling order."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {priority: index for index, priority in enumerate(Priority, start=1)}


class ExecutionTier(str, Enum):
    """Cost/capability class of the agent that should execute a task."""

    LOWEST = "haiku"
    STANDARD = "sonnet"
    HIGHEST = "opus"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    STALE = "stale"


NO_REVIEW = "none"


@dataclass(slots=True)
class TaskCreate:
    """Input payload for adding a task."""

    title: str
    priority: Priority = Priority.MEDIUM
    group_name: str | None = None
    category: str | None = None
    description: str | None = None
    files_affected: tuple[str, ...] = ()
    tests: tuple[str, ...] = ()
    blocked_by: tuple[int, ...] = ()
    model: ExecutionTier | None = None
    reviews: str | None = None
    parent_task_id: int | None = None
    iteration: int = 1


@dataclass(slots=True)
class TaskUpdate:
    """Partial update; ``None`` leaves the field untouched."""

    title: str | None = None
    priority: Priority | None = None
    group_name: str | None = None
    category: str | None = None
    description: str | None = None
    files_affected: tuple[str, ...] | None = None
    tests: tuple[str, ...] | None = None
    blocked_by: tuple[int, ...] | None = None
    model: ExecutionTier | None = None
    reviews: str | None = None
    parent_task_id: int | None = None
    iteration: int | None = None

    @classmethod
    def from_mapping(cls, values: dict[str, Any]) -> TaskUpdate:
        """Build an update from loose keys, rejecting anything outside the allow-list."""

        unknown = sorted(set(values) - TASK_UPDATE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")
        return cls(**values)

    def changes(self) -> dict[str, Any]:
        """Fields that carry a value, in declaration order."""

        return {
            item.name: getattr(self, item.name)
            for item in fields(self)
            if getattr(self, item.name) is not None
        }


TASK_UPDATE_FIELDS = frozenset(item.name for item in fields(TaskUpdate))


@dataclass(slots=True)
class TaskFilters:
    """Optional equality filters for task listing."""

    status: TaskStatus | None = None
    priority: Priority | None = None
    group_name: str | None = None
    category: str | None = None
    claimed_by: str | None = None
    claimed_by_session: str | None = None


@dataclass(slots=True)
class TaskView:
    """Readable task view for CLI and scheduling logic."""

    id: int
    title: str
    priority: Priority
    status: TaskStatus
    group_name: str | None
    category: str | None
    description: str | None
    fix_required: str | None
    files_affected: tuple[str, ...]
    tests: tuple[str, ...]
    blocked_by: tuple[int, ...]
    claimed_by: str | None
    claimed_by_session: str | None
    claimed_at: datetime | None
    completed_at: datetime | None
    completed_by: str | None
    completion_summary: str | None
    model: ExecutionTier | None
    reviews: str | None
    parent_task_id: int | None
    iteration: int
    created_at: datetime
    updated_at: datetime

    @property
    def claimant_label(self) -> str | None:
        """Claimant as recorded in history, e.g. ``developer (session: s1)``."""

        if self.claimed_by is None:
            return None
        if self.claimed_by_session:
            return f"{self.claimed_by} (session: {self.claimed_by_session})"
        return self.claimed_by


@dataclass(slots=True)
class HistoryEntryView:
    """Append-only audit row for one task change."""

    id: int
    task_id: int
    action: str
    agent: str | None
    session_id: str | None
    old_value: str | None
    new_value: str | None
    timestamp: datetime


@dataclass(slots=True)
class SessionView:
    session_id: str
    agent_type: str
    status: SessionStatus
    current_task_id: int | None
    started_at: datetime
    last_active: datetime
    task_count: int = 0


@dataclass(slots=True)
class ClaimAnnotation:
    """Execution tier and review plan stored alongside a claim."""

    model: ExecutionTier
    reviews: str
    context_files: tuple[str, ...]


@dataclass(slots=True)
class ClaimResult:
    task: TaskView
    annotation: ClaimAnnotation


@dataclass(slots=True)
class CompletionResult:
    """Completed task and the dependents that became ready."""

    task: TaskView
    unblocked: list[int] = field(default_factory=list)


@dataclass(slots=True)
class BoardStats:
    total: int
    ready: int
    in_progress: int
    blocked: int
    completed: int

    @property
    def completion_pct(self) -> int:
        if self.total == 0:
            return 0
        return round(self.completed / self.total * 100)

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "ready": self.ready,
            "in_progress": self.in_progress,
            "blocked": self.blocked,
            "completed": self.completed,
            "completion_pct": self.completion_pct,
        }


@dataclass(slots=True)
class AgentStats:
    agent: str
    actions: int
    completions: int
    claims: int


@dataclass(slots=True)
class ArtifactView:
    """Stored artifact; ``content`` is omitted in listings."""

    id: int
    task_id: int
    artifact_type: str
    agent: str | None
    iteration: int
    size_chars: int
    created_at: datetime
    content: str | None = None


@dataclass(slots=True)
class ReviewFeedbackWrite:
    task_id: int
    dimension: str
    checklist_item: str
    was_useful: bool
    result: str | None = None


@dataclass(slots=True)
class ReviewFeedbackSummary:
    """Usefulness of one review checklist item across tasks."""

    dimension: str
    checklist_item: str
    total: int
    useful: int

    @property
    def useful_pct(self) -> int:
        if self.total == 0:
            return 0
        return round(self.useful / self.total * 100)


@dataclass(slots=True)
class DependencyNode:
    """Node of a dependents tree; ``circular`` marks a revisited id."""

    id: int
    title: str
    status: TaskStatus | None
    priority: Priority | None
    depth: int
    children: list[DependencyNode] = field(default_factory=list)
    circular: bool = False
