from __future__ import annotations

from datetime import timedelta

import allure
import pytest

import taskboard.board.repository as repository_module
from taskboard.board.errors import (
    ConflictDetectedError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from taskboard.board.models import (
    ClaimAnnotation,
    ExecutionTier,
    Priority,
    ReviewFeedbackWrite,
    SessionStatus,
    TaskCreate,
    TaskFilters,
    TaskStatus,
    TaskUpdate,
)
from taskboard.board.repository import BoardRepository, truncate_artifact_content
from taskboard.storage.common import utc_now

pytestmark = [
    allure.epic("Task Board"),
    allure.feature("Persistent Store"),
]


def _add(repository: BoardRepository, title: str, **fields) -> int:
    return repository.add_task(TaskCreate(title=title, **fields)).id


def test_list_orders_by_priority_then_id(repository: BoardRepository) -> None:
    low = _add(repository, "Low", priority=Priority.LOW)
    medium = _add(repository, "Medium")
    critical = _add(repository, "Critical", priority=Priority.CRITICAL)
    high = _add(repository, "High", priority=Priority.HIGH)
    medium_later = _add(repository, "Medium later")

    assert [task.id for task in repository.list_tasks()] == [
        critical,
        high,
        medium,
        medium_later,
        low,
    ]
    filtered = repository.list_tasks(TaskFilters(priority=Priority.MEDIUM))
    assert [task.id for task in filtered] == [medium, medium_later]


def test_add_task_requires_title(repository: BoardRepository) -> None:
    with pytest.raises(ValidationError, match="title is required"):
        repository.add_task(TaskCreate(title="   "))
    assert repository.list_tasks() == []


def test_add_task_round_trips_collections(repository: BoardRepository) -> None:
    task = repository.add_task(
        TaskCreate(
            title="Checkout",
            group_name="3",
            files_affected=("src/a.ts", " src/b.ts ", ""),
            tests=("e2e/checkout.spec.ts",),
            model=ExecutionTier.STANDARD,
            reviews="qa",
        ),
    )

    stored = repository.require_task(task.id)
    assert stored.files_affected == ("src/a.ts", "src/b.ts")
    assert stored.tests == ("e2e/checkout.spec.ts",)
    assert stored.model == ExecutionTier.STANDARD
    assert stored.reviews == "qa"
    assert stored.status == TaskStatus.READY
    assert stored.created_at.tzinfo is not None


def test_add_task_with_open_dependencies_starts_blocked(repository: BoardRepository) -> None:
    done = _add(repository, "Done")
    repository.complete_task(done, summary="ok")
    pending = _add(repository, "Pending")

    task = repository.add_task(TaskCreate(title="Waits", blocked_by=(done, pending)))
    free = repository.add_task(TaskCreate(title="Free", blocked_by=(done,)))

    assert task.status == TaskStatus.BLOCKED
    assert task.blocked_by == (pending,)
    assert free.status == TaskStatus.READY
    assert free.blocked_by == ()


def test_completion_cascade_unblocks_only_on_empty_set(repository: BoardRepository) -> None:
    first = repository.add_task(TaskCreate(title="Integrate", blocked_by=(2, 3)))
    second = _add(repository, "Backend")
    third = _add(repository, "Frontend")
    assert (first.id, second, third) == (1, 2, 3)
    assert first.status == TaskStatus.BLOCKED

    result = repository.complete_task(second, summary="backend done", agent="developer")

    assert result.unblocked == []
    waiting = repository.require_task(1)
    assert waiting.status == TaskStatus.BLOCKED
    assert waiting.blocked_by == (3,)

    result = repository.complete_task(third, summary="frontend done", agent="developer")

    assert result.unblocked == [1]
    ready = repository.require_task(1)
    assert ready.status == TaskStatus.READY
    assert ready.blocked_by == ()
    actions = [entry.action for entry in repository.get_history(1)]
    assert actions[:2] == ["auto-unblock", "update_blocked_by"]


def test_claim_by_other_agent_fails_without_mutation(repository: BoardRepository) -> None:
    task_id = _add(repository, "Shared")
    repository.claim_task(task_id, agent="developer")
    before = repository.require_task(task_id)
    history_before = repository.get_history(task_id)

    with pytest.raises(ConflictDetectedError, match="already claimed by developer"):
        repository.claim_task(task_id, agent="reviewer")

    assert repository.require_task(task_id) == before
    assert repository.get_history(task_id) == history_before


def test_claim_under_other_session_fails(repository: BoardRepository) -> None:
    task_id = _add(repository, "Shared")
    repository.claim_task(task_id, agent="developer", session_id="s1")

    with pytest.raises(ConflictDetectedError, match="already claimed by session s1"):
        repository.claim_task(task_id, agent="developer", session_id="s2")

    reclaimed = repository.claim_task(task_id, agent="developer", session_id="s1")
    assert reclaimed.claimed_by_session == "s1"


def test_claim_rejects_completed_and_blocked(repository: BoardRepository) -> None:
    done = _add(repository, "Done")
    repository.complete_task(done, summary="ok")
    blocked = _add(repository, "Blocked")
    repository.block_task(blocked, reason="waiting for design")

    with pytest.raises(InvalidTransitionError, match="status=completed"):
        repository.claim_task(done, agent="developer")
    with pytest.raises(InvalidTransitionError, match="status=blocked"):
        repository.claim_task(blocked, agent="developer")
    with pytest.raises(NotFoundError, match="Task 99 not found"):
        repository.claim_task(99, agent="developer")


def test_claim_stores_annotation_without_overwriting_pins(repository: BoardRepository) -> None:
    inferred = _add(repository, "Inferred")
    pinned = _add(repository, "Pinned", model=ExecutionTier.HIGHEST)
    annotation = ClaimAnnotation(
        model=ExecutionTier.LOWEST,
        reviews="none",
        context_files=("requirements-summary.md",),
    )

    first = repository.claim_task(inferred, agent="primary", annotation=annotation)
    second = repository.claim_task(pinned, agent="primary", annotation=annotation)

    assert (first.model, first.reviews) == (ExecutionTier.LOWEST, "none")
    assert (second.model, second.reviews) == (ExecutionTier.HIGHEST, "none")


def test_release_clears_claim_and_records_claimant(repository: BoardRepository) -> None:
    task_id = _add(repository, "Release me")
    repository.start_session("s1", agent_type="developer")
    repository.claim_task(task_id, agent="developer", session_id="s1")

    released = repository.release_task(task_id)

    assert released.status == TaskStatus.READY
    assert released.claimed_by is None
    assert released.claimed_by_session is None
    assert released.claimed_at is None
    latest = repository.get_history(task_id)[0]
    assert latest.action == "release"
    assert latest.old_value == "developer (session: s1)"
    assert latest.new_value == "ready"
    assert repository.get_session("s1").current_task_id is None

    with pytest.raises(InvalidTransitionError):
        repository.release_task(task_id)


def test_complete_defaults_to_claimant(repository: BoardRepository) -> None:
    task_id = _add(repository, "Finish")
    repository.claim_task(task_id, agent="developer")

    result = repository.complete_task(task_id, summary="shipped")

    assert result.task.status == TaskStatus.COMPLETED
    assert result.task.completed_by == "developer"
    assert result.task.completion_summary == "shipped"
    assert result.task.completed_at is not None
    with pytest.raises(InvalidTransitionError, match="status=completed"):
        repository.complete_task(task_id, summary="again")


def test_block_and_unblock(repository: BoardRepository) -> None:
    task_id = _add(repository, "Needs input")

    blocked = repository.block_task(task_id, reason="missing copy")
    reblocked = repository.block_task(task_id, reason="missing copy and images")

    assert blocked.status == TaskStatus.BLOCKED
    assert reblocked.fix_required == "missing copy and images"
    with pytest.raises(InvalidTransitionError):
        repository.complete_task(task_id, summary="nope")

    unblocked = repository.unblock_task(task_id)

    assert unblocked.status == TaskStatus.READY
    assert unblocked.fix_required is None
    with pytest.raises(InvalidTransitionError):
        repository.unblock_task(task_id)


def test_update_logs_old_and_new_values(repository: BoardRepository) -> None:
    task_id = _add(repository, "Old title", priority=Priority.LOW)

    updated = repository.update_task(
        task_id,
        TaskUpdate(title="New title", priority=Priority.HIGH, files_affected=("a.ts", "b.ts")),
        agent="pm",
    )

    assert updated.title == "New title"
    assert updated.files_affected == ("a.ts", "b.ts")
    entries = {entry.action: entry for entry in repository.get_history(task_id)}
    assert (entries["update_title"].old_value, entries["update_title"].new_value) == (
        "Old title",
        "New title",
    )
    assert (entries["update_priority"].old_value, entries["update_priority"].new_value) == (
        "LOW",
        "HIGH",
    )
    assert entries["update_files_affected"].old_value is None
    assert entries["update_files_affected"].new_value == "a.ts,b.ts"
    assert entries["update_title"].agent == "pm"


def test_update_rejects_unknown_fields_and_self_dependency(repository: BoardRepository) -> None:
    task_id = _add(repository, "Task")

    with pytest.raises(ValidationError, match="status"):
        TaskUpdate.from_mapping({"status": "completed"})
    with pytest.raises(ValidationError, match="depend on itself"):
        repository.update_task(task_id, TaskUpdate(blocked_by=(task_id,)))
    with pytest.raises(NotFoundError):
        repository.update_task(404, TaskUpdate(title="x"))


def test_history_is_newest_first(repository: BoardRepository) -> None:
    task_id = _add(repository, "Audit")
    repository.claim_task(task_id, agent="developer", session_id="s1")
    repository.complete_task(task_id, summary="done")

    history = repository.get_history(task_id)

    assert [entry.action for entry in history] == ["complete", "claim", "create"]
    claim = history[1]
    assert (claim.agent, claim.session_id) == ("developer", "s1")
    assert (claim.old_value, claim.new_value) == ("ready", "in_progress")


def test_stats_and_agent_stats(repository: BoardRepository) -> None:
    first = _add(repository, "One")
    second = _add(repository, "Two")
    _add(repository, "Three")
    repository.claim_task(first, agent="alice")
    repository.complete_task(first, summary="ok")
    repository.claim_task(second, agent="bob")

    stats = repository.get_stats()

    assert stats.to_dict() == {
        "total": 3,
        "ready": 1,
        "in_progress": 1,
        "blocked": 0,
        "completed": 1,
        "completion_pct": 33,
    }
    agents = repository.get_agent_stats()
    assert [(row.agent, row.actions, row.completions, row.claims) for row in agents] == [
        ("alice", 2, 1, 1),
        ("bob", 1, 0, 1),
    ]


def test_next_task_skips_tasks_with_dependencies(repository: BoardRepository) -> None:
    assert repository.get_next_task() is None
    base = _add(repository, "Base", priority=Priority.LOW)
    _add(repository, "Dependent", priority=Priority.CRITICAL, blocked_by=(base,))
    medium = _add(repository, "Medium")

    assert repository.get_next_task().id == medium


def test_stale_tasks_use_claim_age(repository: BoardRepository, monkeypatch) -> None:
    old = _add(repository, "Old claim")
    fresh = _add(repository, "Fresh claim")
    past = utc_now() - timedelta(hours=30)
    monkeypatch.setattr(repository_module, "utc_now", lambda: past)
    repository.claim_task(old, agent="developer")
    monkeypatch.undo()
    repository.claim_task(fresh, agent="developer")

    assert [task.id for task in repository.get_stale_tasks(24)] == [old]
    assert [task.id for task in repository.get_stale_tasks(48)] == []


def test_sessions_lifecycle(repository: BoardRepository, monkeypatch) -> None:
    past = utc_now() - timedelta(hours=3)
    monkeypatch.setattr(repository_module, "utc_now", lambda: past)
    repository.start_session("idle")
    monkeypatch.undo()
    repository.start_session("busy", agent_type="developer")
    task_id = _add(repository, "Work")
    repository.claim_task(task_id, agent="developer", session_id="busy")

    active = {session.session_id: session for session in repository.list_active_sessions()}
    assert active["busy"].task_count == 1
    assert active["busy"].current_task_id == task_id
    assert active["idle"].task_count == 0
    assert active["idle"].agent_type == "primary"
    assert [task.id for task in repository.get_tasks_by_session("busy")] == [task_id]

    assert repository.cleanup_stale_sessions(2) == ["idle"]
    assert repository.get_session("idle").status == SessionStatus.STALE

    ended = repository.end_session("busy")
    assert ended.status == SessionStatus.COMPLETED
    assert repository.list_active_sessions() == []
    with pytest.raises(NotFoundError):
        repository.end_session("missing")
    assert repository.touch_session("missing") is False


def test_dependency_tree_from_store(repository: BoardRepository) -> None:
    root = _add(repository, "Root")
    child = _add(repository, "Child", blocked_by=(root,))
    _add(repository, "Grandchild", blocked_by=(child,))

    tree = repository.get_dependency_tree(root)

    assert tree is not None
    assert tree.children[0].title == "Child"
    assert tree.children[0].children[0].title == "Grandchild"
    assert repository.get_dependency_tree(999) is None


def test_artifacts_latest_and_listing(repository: BoardRepository) -> None:
    task_id = _add(repository, "Artifacts")
    repository.save_artifact(task_id=task_id, artifact_type="plan", content="v1", iteration=1)
    repository.save_artifact(task_id=task_id, artifact_type="plan", content="v2 longer", iteration=2)
    repository.save_artifact(task_id=task_id, artifact_type="review", content="lgtm", agent="qa")

    latest = repository.get_artifact(task_id=task_id, artifact_type="plan")
    first = repository.get_artifact(task_id=task_id, artifact_type="plan", iteration=1)
    listing = repository.list_artifacts(task_id)

    assert latest.content == "v2 longer"
    assert first.content == "v1"
    assert repository.get_artifact(task_id=task_id, artifact_type="missing") is None
    assert [(item.artifact_type, item.size_chars) for item in listing] == [
        ("plan", 2),
        ("plan", 9),
        ("review", 4),
    ]
    assert all(item.content is None for item in listing)
    with pytest.raises(NotFoundError):
        repository.save_artifact(task_id=404, artifact_type="plan", content="x")


def test_oversized_artifact_is_truncated(repository: BoardRepository) -> None:
    task_id = _add(repository, "Big")

    saved = repository.save_artifact(
        task_id=task_id,
        artifact_type="log",
        content="a" * 4096,
        max_bytes=1024,
    )

    assert saved.content.startswith("a" * 1024)
    assert saved.content.endswith("\n\n[TRUNCATED - original was 4 KB]")


def test_truncation_never_splits_multibyte_characters() -> None:
    content, truncated = truncate_artifact_content("é" * 10, max_bytes=5)

    assert truncated is True
    assert content.startswith("éé\n\n")
    assert truncate_artifact_content("short", max_bytes=10) == ("short", False)


def test_review_feedback_summary(repository: BoardRepository) -> None:
    task_id = _add(repository, "Reviewed")
    for useful in (True, True, False):
        repository.log_review_feedback(
            ReviewFeedbackWrite(
                task_id=task_id,
                dimension="security",
                checklist_item="csrf",
                was_useful=useful,
            ),
        )
    repository.log_review_feedback(
        ReviewFeedbackWrite(task_id=task_id, dimension="qa", checklist_item="a11y", was_useful=False),
    )

    summary = repository.review_feedback_summary()

    assert [(row.dimension, row.checklist_item, row.total, row.useful) for row in summary] == [
        ("qa", "a11y", 1, 0),
        ("security", "csrf", 3, 2),
    ]
    assert summary[1].useful_pct == 67
    assert len(repository.review_feedback_summary(dimension="qa")) == 1

    with pytest.raises(NotFoundError, match="Task 99 not found"):
        repository.log_review_feedback(
            ReviewFeedbackWrite(task_id=99, dimension="qa", checklist_item="a11y", was_useful=True),
        )
