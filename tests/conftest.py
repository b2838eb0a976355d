"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest

from taskboard.board.models import ExecutionTier, Priority, TaskStatus, TaskView
from taskboard.board.repository import BoardRepository
from taskboard.board.services import BoardService

_FIXED_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[BoardRepository]:
    repo = BoardRepository(tmp_path / "board.db")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def service(repository: BoardRepository) -> BoardService:
    return BoardService(repository=repository)


@pytest.fixture()
def make_task() -> Callable[..., TaskView]:
    """Build an in-memory task view for pure scheduling/classification tests."""

    def _make(  # noqa: PLR0913
        task_id: int = 1,
        *,
        title: str = "Task",
        priority: Priority = Priority.MEDIUM,
        status: TaskStatus = TaskStatus.READY,
        description: str | None = None,
        files: tuple[str, ...] = (),
        blocked_by: tuple[int, ...] = (),
        model: ExecutionTier | None = None,
        reviews: str | None = None,
    ) -> TaskView:
        return TaskView(
            id=task_id,
            title=title,
            priority=priority,
            status=status,
            group_name=None,
            category=None,
            description=description,
            fix_required=None,
            files_affected=files,
            tests=(),
            blocked_by=blocked_by,
            claimed_by=None,
            claimed_by_session=None,
            claimed_at=None,
            completed_at=None,
            completed_by=None,
            completion_summary=None,
            model=model,
            reviews=reviews,
            parent_task_id=None,
            iteration=1,
            created_at=_FIXED_TIME,
            updated_at=_FIXED_TIME,
        )

    return _make
