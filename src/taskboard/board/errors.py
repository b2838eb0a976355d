"""Error types raised by task board operations."""

from __future__ import annotations


class TaskboardError(RuntimeError):
    """Base class for board failures reported to the caller as-is."""


class NotFoundError(TaskboardError):
    """Referenced task or session does not exist."""


class InvalidTransitionError(TaskboardError):
    """Requested status change is not an edge of the task state machine."""

    def __init__(self, task_id: int, status: str, action: str) -> None:
        super().__init__(f"Task {task_id} cannot be {action} from status={status}")
        self.task_id = task_id
        self.status = status
        self.action = action


class ConflictDetectedError(TaskboardError):
    """Claim would clash with another claimant or with files held by a session."""

    def __init__(
        self,
        message: str,
        *,
        task_id: int,
        other_task_id: int | None = None,
        files: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message)
        self.task_id = task_id
        self.other_task_id = other_task_id
        self.files = files


class ValidationError(TaskboardError, ValueError):
    """Input rejected at the boundary before anything is written."""
