"""Controllers for task board CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from taskboard.board.dependencies import dependency_graph
from taskboard.board.errors import NotFoundError, ValidationError
from taskboard.board.models import (
    DependencyNode,
    ExecutionTier,
    Priority,
    ReviewFeedbackWrite,
    TaskCreate,
    TaskFilters,
    TaskStatus,
    TaskUpdate,
    TaskView,
)
from taskboard.board.repository import BoardRepository
from taskboard.board.services import BoardService, SuggestBatch
from taskboard.config import Settings
from taskboard.storage.common import split_csv


@dataclass(slots=True)
class TaskListCommand:
    """CLI input for task listing."""

    db_path: Path | None
    status: str | None = None
    priority: str | None = None
    group_name: str | None = None
    category: str | None = None
    claimed_by: str | None = None


@dataclass(slots=True)
class TaskIdCommand:
    """CLI input for commands addressing a single task."""

    db_path: Path | None
    task_id: int


@dataclass(slots=True)
class TaskAddCommand:
    """CLI input for task creation."""

    db_path: Path | None
    title: str
    priority: str = Priority.MEDIUM.value
    group_name: str | None = None
    category: str | None = None
    description: str | None = None
    files: str | None = None
    tests: str | None = None
    blocked_by: str | None = None
    model: str | None = None
    reviews: str | None = None
    parent_task_id: int | None = None
    iteration: int = 1


@dataclass(slots=True)
class TaskUpdateCommand:
    """CLI input for partial task update; ``None`` fields are left untouched."""

    db_path: Path | None
    task_id: int
    agent: str | None = None
    title: str | None = None
    priority: str | None = None
    group_name: str | None = None
    category: str | None = None
    description: str | None = None
    files: str | None = None
    tests: str | None = None
    blocked_by: str | None = None
    model: str | None = None
    reviews: str | None = None
    iteration: int | None = None


@dataclass(slots=True)
class TaskClaimCommand:
    db_path: Path | None
    task_id: int
    agent: str | None = None
    session_id: str | None = None


@dataclass(slots=True)
class TaskCompleteCommand:
    db_path: Path | None
    task_id: int
    summary: str
    agent: str | None = None


@dataclass(slots=True)
class TaskBlockCommand:
    db_path: Path | None
    task_id: int
    reason: str


@dataclass(slots=True)
class BoardQueryCommand:
    """CLI input for read-only board-wide queries."""

    db_path: Path | None


@dataclass(slots=True)
class StaleQueryCommand:
    db_path: Path | None
    hours: int | None = None


@dataclass(slots=True)
class SessionStartCommand:
    db_path: Path | None
    session_id: str
    agent_type: str = "primary"


@dataclass(slots=True)
class SessionCommand:
    db_path: Path | None
    session_id: str


@dataclass(slots=True)
class SessionClaimCommand:
    db_path: Path | None
    session_id: str
    task_id: int
    agent: str | None = None


@dataclass(slots=True)
class ConflictCheckCommand:
    db_path: Path | None
    task_ids: str


@dataclass(slots=True)
class SuggestBatchCommand:
    db_path: Path | None
    sessions: int | None = None
    auto_assign: bool = False
    agent: str | None = None


@dataclass(slots=True)
class ExportCommand:
    db_path: Path | None
    output_format: str = "json"
    output_path: Path | None = None


@dataclass(slots=True)
class ImportCommand:
    db_path: Path | None
    input_path: Path


@dataclass(slots=True)
class ArtifactSaveCommand:
    """CLI input for storing a task artifact from inline text or a file."""

    db_path: Path | None
    task_id: int
    artifact_type: str
    content: str | None = None
    content_path: Path | None = None
    agent: str | None = None
    iteration: int = 1


@dataclass(slots=True)
class ArtifactGetCommand:
    db_path: Path | None
    task_id: int
    artifact_type: str
    iteration: int | None = None


@dataclass(slots=True)
class FeedbackLogCommand:
    db_path: Path | None
    task_id: int
    dimension: str
    checklist_item: str
    was_useful: bool
    result: str | None = None


@dataclass(slots=True)
class FeedbackSummaryCommand:
    db_path: Path | None
    dimension: str | None = None


class BoardCliController:
    """Coordinates task, session, scheduling and export CLI operations."""

    def list_tasks(self, command: TaskListCommand) -> list[str]:
        settings = _settings(command.db_path)
        filters = TaskFilters(
            status=_parse_status(command.status),
            priority=_parse_priority(command.priority),
            group_name=command.group_name,
            category=command.category,
            claimed_by=command.claimed_by,
        )
        with _repository(settings) as repository:
            tasks = repository.list_tasks(filters)

        lines = [f"Tasks: {len(tasks)}"]
        lines.extend(f"  {_task_line(task)}" for task in tasks)
        return lines

    def get_task(self, command: TaskIdCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            task = repository.require_task(command.task_id)

        lines = [
            f"Task: #{task.id} {task.title}",
            f"Status: {task.status.value}",
            f"Priority: {task.priority.value}",
            f"Group: {task.group_name or '-'}",
            f"Category: {task.category or '-'}",
            f"Files: {', '.join(task.files_affected) or '-'}",
            f"Tests: {', '.join(task.tests) or '-'}",
            f"Blocked by: {', '.join(str(dep) for dep in task.blocked_by) or '-'}",
            f"Claimed by: {task.claimant_label or '-'}",
            f"Model: {task.model.value if task.model else '-'}",
            f"Reviews: {task.reviews or '-'}",
            f"Iteration: {task.iteration}",
        ]
        if task.parent_task_id is not None:
            lines.append(f"Parent task: #{task.parent_task_id}")
        if task.fix_required:
            lines.append(f"Fix required: {task.fix_required}")
        if task.description:
            lines.append(f"Description: {task.description}")
        if task.completion_summary:
            lines.append(
                f"Completed by {task.completed_by or '-'}: {task.completion_summary}",
            )
        return lines

    def add_task(self, command: TaskAddCommand) -> list[str]:
        settings = _settings(command.db_path)
        payload = TaskCreate(
            title=command.title,
            priority=_parse_priority(command.priority) or Priority.MEDIUM,
            group_name=command.group_name,
            category=command.category,
            description=command.description,
            files_affected=split_csv(command.files),
            tests=split_csv(command.tests),
            blocked_by=_parse_ids(command.blocked_by),
            model=_parse_model(command.model),
            reviews=command.reviews,
            parent_task_id=command.parent_task_id,
            iteration=command.iteration,
        )
        with _repository(settings) as repository:
            task = repository.add_task(payload)
        return [f"Task added: id={task.id} status={task.status.value} title={task.title}"]

    def update_task(self, command: TaskUpdateCommand) -> list[str]:
        settings = _settings(command.db_path)
        values = {
            "title": command.title,
            "priority": _parse_priority(command.priority),
            "group_name": command.group_name,
            "category": command.category,
            "description": command.description,
            "files_affected": split_csv(command.files) if command.files is not None else None,
            "tests": split_csv(command.tests) if command.tests is not None else None,
            "blocked_by": (
                _parse_ids(command.blocked_by) if command.blocked_by is not None else None
            ),
            "model": _parse_model(command.model),
            "reviews": command.reviews,
            "iteration": command.iteration,
        }
        update = TaskUpdate.from_mapping(
            {name: value for name, value in values.items() if value is not None},
        )
        if not update.changes():
            raise ValidationError("Nothing to update: pass at least one field option.")
        with _repository(settings) as repository:
            task = repository.update_task(command.task_id, update, agent=command.agent)
        return [
            f"Task updated: id={task.id} fields={','.join(update.changes())}",
        ]

    def claim_task(self, command: TaskClaimCommand) -> list[str]:
        settings = _settings(command.db_path)
        agent = command.agent or settings.board.default_agent
        with _repository(settings) as repository:
            result = _service(repository, settings).claim_task(
                command.task_id,
                agent=agent,
                session_id=command.session_id,
            )
        task = result.task
        return [
            f"Task claimed: id={task.id} by={task.claimant_label}",
            f"Model: {result.annotation.model.value}",
            f"Reviews: {result.annotation.reviews}",
            f"Context files: {', '.join(result.annotation.context_files)}",
        ]

    def release_task(self, command: TaskIdCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            task = repository.release_task(command.task_id)
        return [f"Task released: id={task.id} status={task.status.value}"]

    def complete_task(self, command: TaskCompleteCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            result = repository.complete_task(
                command.task_id,
                summary=command.summary,
                agent=command.agent,
            )
        lines = [f"Task completed: id={result.task.id} by={result.task.completed_by or '-'}"]
        if result.unblocked:
            lines.append(
                "Unblocked: " + ", ".join(f"#{task_id}" for task_id in result.unblocked),
            )
        return lines

    def block_task(self, command: TaskBlockCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            task = repository.block_task(command.task_id, reason=command.reason)
        return [f"Task blocked: id={task.id} reason={task.fix_required}"]

    def unblock_task(self, command: TaskIdCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            task = repository.unblock_task(command.task_id)
        return [f"Task unblocked: id={task.id} status={task.status.value}"]

    def stats(self, command: BoardQueryCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            stats = repository.get_stats()
        return [
            f"Tasks: total={stats.total} ready={stats.ready} "
            f"in_progress={stats.in_progress} blocked={stats.blocked} "
            f"completed={stats.completed}",
            f"Completion: {stats.completion_pct}%",
        ]

    def history(self, command: TaskIdCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            repository.require_task(command.task_id)
            entries = repository.get_history(command.task_id)

        lines = [f"History for task #{command.task_id}: {len(entries)}"]
        for entry in entries:
            actor = entry.agent or "-"
            if entry.session_id:
                actor = f"{actor} (session: {entry.session_id})"
            lines.append(
                f"  {entry.timestamp.isoformat()} {entry.action} by={actor} "
                f"{entry.old_value or '-'} -> {entry.new_value or '-'}",
            )
        return lines

    def stale_tasks(self, command: StaleQueryCommand) -> list[str]:
        settings = _settings(command.db_path)
        hours = command.hours or settings.board.stale_task_hours
        with _repository(settings) as repository:
            tasks = repository.get_stale_tasks(hours)

        lines = [f"Stale tasks (>{hours}h): {len(tasks)}"]
        for task in tasks:
            claimed_at = task.claimed_at.isoformat() if task.claimed_at else "-"
            lines.append(f"  {_task_line(task)} claimed_at={claimed_at}")
        return lines

    def next_task(self, command: BoardQueryCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            task = repository.get_next_task()
        if task is None:
            return ["No ready tasks."]
        return [f"Next task: {_task_line(task)}"]

    def agent_stats(self, command: BoardQueryCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            rows = repository.get_agent_stats()

        lines = [f"Agents: {len(rows)}"]
        for row in rows:
            lines.append(
                f"  {row.agent} actions={row.actions} "
                f"completions={row.completions} claims={row.claims}",
            )
        return lines

    def start_session(self, command: SessionStartCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            session = repository.start_session(command.session_id, agent_type=command.agent_type)
        return [f"Session started: {session.session_id} agent_type={session.agent_type}"]

    def active_sessions(self, command: BoardQueryCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            sessions = repository.list_active_sessions()

        lines = [f"Active sessions: {len(sessions)}"]
        for session in sessions:
            lines.append(
                f"  {session.session_id} agent_type={session.agent_type} "
                f"tasks={session.task_count} "
                f"last_active={session.last_active.isoformat()}",
            )
        return lines

    def session_tasks(self, command: SessionCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            tasks = repository.get_tasks_by_session(command.session_id)

        lines = [f"Tasks in session {command.session_id}: {len(tasks)}"]
        lines.extend(f"  {_task_line(task)}" for task in tasks)
        return lines

    def session_claim(self, command: SessionClaimCommand) -> list[str]:
        settings = _settings(command.db_path)
        agent = command.agent or settings.board.session_agent
        with _repository(settings) as repository:
            result = _service(repository, settings).assign_task_to_session(
                command.task_id,
                session_id=command.session_id,
                agent=agent,
            )
        return [
            f"Task #{result.task.id} assigned to session {command.session_id} "
            f"agent={agent} model={result.annotation.model.value} "
            f"reviews={result.annotation.reviews}",
        ]

    def end_session(self, command: SessionCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            session = repository.end_session(command.session_id)
        return [f"Session ended: {session.session_id}"]

    def cleanup_sessions(self, command: StaleQueryCommand) -> list[str]:
        settings = _settings(command.db_path)
        hours = command.hours or settings.board.session_stale_hours
        with _repository(settings) as repository:
            stale = repository.cleanup_stale_sessions(hours)
        if not stale:
            return ["No stale sessions."]
        return [f"Stale sessions marked: {', '.join(stale)}"]

    def conflict_check(self, command: ConflictCheckCommand) -> list[str]:
        settings = _settings(command.db_path)
        task_ids = _parse_ids(command.task_ids)
        with _repository(settings) as repository:
            conflicts = _service(repository, settings).conflict_check(task_ids)
        if not conflicts:
            return ["No file conflicts detected."]

        lines = [f"Conflicts: {len(conflicts)}"]
        for conflict in conflicts:
            lines.append(
                f"  #{conflict.task_a} <-> #{conflict.task_b}: {', '.join(conflict.files)}",
            )
        return lines

    def suggest_batch(self, command: SuggestBatchCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            plan = _service(repository, settings).suggest_batch(
                SuggestBatch(
                    session_count=command.sessions or settings.board.batch_sessions,
                    auto_assign=command.auto_assign,
                    agent=command.agent or settings.board.session_agent,
                ),
            )

        lines = [f"Suggested batches: sessions={len(plan.batches)} tasks={plan.task_count}"]
        for batch in plan.batches:
            lines.append(f"  {batch.session}: {len(batch.tasks)} task(s)")
            for task in batch.tasks:
                lines.append(f"    #{task.id} {task.title} ({task.priority.value})")
        if plan.assigned:
            assigned = plan.task_count - len(plan.failures)
            lines.append(f"Assigned: {assigned}/{plan.task_count}")
            for failure in plan.failures:
                lines.append(
                    f"  Could not assign #{failure.task_id} to {failure.session}: "
                    f"{failure.reason}",
                )
        return lines

    def dependency_tree(self, command: TaskIdCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            tree = repository.get_dependency_tree(command.task_id)
        if tree is None:
            raise NotFoundError(f"Task {command.task_id} not found")
        return _render_tree(tree)

    def dependency_graph(self, command: BoardQueryCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            tasks = repository.list_tasks()
        dependent, independent = dependency_graph(tasks)

        lines = [f"Tasks with dependencies: {len(dependent)}"]
        for task in dependent:
            deps = ", ".join(f"#{dep}" for dep in task.blocked_by)
            lines.append(f"  #{task.id} {task.title} [{task.status.value}] <- {deps}")
        lines.append(f"Independent tasks: {len(independent)}")
        lines.extend(
            f"  #{task.id} {task.title} [{task.status.value}]" for task in independent
        )
        return lines

    def export_tasks(self, command: ExportCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            content = _service(repository, settings).export_tasks(command.output_format)
        if command.output_path is None:
            return content.rstrip("\n").splitlines()
        command.output_path.parent.mkdir(parents=True, exist_ok=True)
        command.output_path.write_text(content, "utf-8")
        return [f"Tasks exported: {command.output_path}"]

    def import_tasks(self, command: ImportCommand) -> list[str]:
        settings = _settings(command.db_path)
        raw = command.input_path.read_text("utf-8")
        with _repository(settings) as repository:
            task_ids = _service(repository, settings).import_tasks(raw)
        return [f"Tasks imported: {len(task_ids)}"]

    def save_artifact(self, command: ArtifactSaveCommand) -> list[str]:
        settings = _settings(command.db_path)
        if command.content_path is not None:
            content = command.content_path.read_text("utf-8")
        elif command.content is not None:
            content = command.content
        else:
            raise ValidationError("Artifact content is required: pass --content or --file.")
        with _repository(settings) as repository:
            artifact = repository.save_artifact(
                task_id=command.task_id,
                artifact_type=command.artifact_type,
                content=content,
                agent=command.agent,
                iteration=command.iteration,
                max_bytes=settings.board.artifact_max_bytes,
            )
        return [
            f"Artifact saved: id={artifact.id} task_id={artifact.task_id} "
            f"type={artifact.artifact_type} iteration={artifact.iteration} "
            f"size_chars={artifact.size_chars}",
        ]

    def get_artifact(self, command: ArtifactGetCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            artifact = repository.get_artifact(
                task_id=command.task_id,
                artifact_type=command.artifact_type,
                iteration=command.iteration,
            )
        if artifact is None:
            raise NotFoundError(
                f"Artifact {command.artifact_type} not found for task {command.task_id}",
            )
        return (artifact.content or "").splitlines()

    def list_artifacts(self, command: TaskIdCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            artifacts = repository.list_artifacts(command.task_id)

        lines = [f"Artifacts for task #{command.task_id}: {len(artifacts)}"]
        for artifact in artifacts:
            lines.append(
                f"  {artifact.created_at.isoformat()} {artifact.artifact_type} "
                f"iteration={artifact.iteration} agent={artifact.agent or '-'} "
                f"size_chars={artifact.size_chars}",
            )
        return lines

    def log_feedback(self, command: FeedbackLogCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            repository.log_review_feedback(
                ReviewFeedbackWrite(
                    task_id=command.task_id,
                    dimension=command.dimension,
                    checklist_item=command.checklist_item,
                    was_useful=command.was_useful,
                    result=command.result,
                ),
            )
        return [
            f"Feedback logged: task_id={command.task_id} "
            f"{command.dimension}/{command.checklist_item} useful={command.was_useful}",
        ]

    def feedback_summary(self, command: FeedbackSummaryCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            rows = repository.review_feedback_summary(dimension=command.dimension)

        lines = [f"Checklist items: {len(rows)}"]
        for row in rows:
            lines.append(
                f"  {row.dimension}/{row.checklist_item}: "
                f"{row.useful}/{row.total} useful ({row.useful_pct}%)",
            )
        return lines


def _settings(db_path: Path | None) -> Settings:
    try:
        settings = Settings.from_env(db_path=db_path)
        settings.validate()
    except ValueError as error:
        raise ValidationError(f"Invalid configuration: {error}") from error
    return settings


def _service(repository: BoardRepository, settings: Settings) -> BoardService:
    return BoardService(repository=repository, classifier=settings.classifier)


def _parse_status(value: str | None) -> TaskStatus | None:
    if value is None:
        return None
    try:
        return TaskStatus(value.strip().lower())
    except ValueError as error:
        raise ValidationError(f"Unsupported task status: {value!r}") from error


def _parse_priority(value: str | None) -> Priority | None:
    if value is None:
        return None
    try:
        return Priority(value.strip().upper())
    except ValueError as error:
        raise ValidationError(f"Unsupported priority: {value!r}") from error


def _parse_model(value: str | None) -> ExecutionTier | None:
    if value is None or not value.strip():
        return None
    try:
        return ExecutionTier(value.strip().lower())
    except ValueError as error:
        raise ValidationError(f"Unsupported model tier: {value!r}") from error


def _parse_ids(value: str | None) -> tuple[int, ...]:
    ids: list[int] = []
    for token in split_csv(value):
        try:
            parsed = int(token)
        except ValueError as error:
            raise ValidationError(f"Invalid task id: {token!r}") from error
        if parsed < 1:
            raise ValidationError(f"Invalid task id: {token!r}")
        ids.append(parsed)
    return tuple(ids)


def _task_line(task: TaskView) -> str:
    line = f"#{task.id} [{task.priority.value}] {task.title} status={task.status.value}"
    if task.claimant_label:
        line += f" claimed_by={task.claimant_label}"
    if task.blocked_by:
        line += f" blocked_by={','.join(str(dep) for dep in task.blocked_by)}"
    return line


def _render_tree(node: DependencyNode) -> list[str]:
    lines: list[str] = []
    stack = [node]
    while stack:
        current = stack.pop()
        indent = "  " * current.depth
        if current.circular:
            lines.append(f"{indent}#{current.id} {current.title}")
        else:
            status = current.status.value if current.status else "-"
            priority = current.priority.value if current.priority else "-"
            lines.append(f"{indent}#{current.id} {current.title} [{status}] ({priority})")
        stack.extend(reversed(current.children))
    return lines


@contextmanager
def _repository(settings: Settings) -> Iterator[BoardRepository]:
    repository = BoardRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
