"""CLI entrypoint for taskboard."""

import logging
from pathlib import Path

import rich_click as click

from taskboard import __version__
from taskboard.board.controllers import (
    ArtifactGetCommand,
    ArtifactSaveCommand,
    BoardCliController,
    BoardQueryCommand,
    ConflictCheckCommand,
    ExportCommand,
    FeedbackLogCommand,
    FeedbackSummaryCommand,
    ImportCommand,
    SessionClaimCommand,
    SessionCommand,
    SessionStartCommand,
    StaleQueryCommand,
    SuggestBatchCommand,
    TaskAddCommand,
    TaskBlockCommand,
    TaskClaimCommand,
    TaskCompleteCommand,
    TaskIdCommand,
    TaskListCommand,
    TaskUpdateCommand,
)
from taskboard.board.errors import TaskboardError
from taskboard.board.models import ExecutionTier, Priority, TaskStatus

click.rich_click.USE_MARKDOWN = True
BOARD_CONTROLLER = BoardCliController()

STATUS_CHOICES = [status.value for status in TaskStatus]
PRIORITY_CHOICES = [priority.value for priority in Priority]
MODEL_CHOICES = [tier.value for tier in ExecutionTier]

db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path (defaults to TASKBOARD_DB_PATH or .taskboard.db).",
)


class BoardGroup(click.RichGroup):
    """Root group that renders board errors as CLI errors."""

    def invoke(self, ctx: click.Context):  # noqa: ANN201
        try:
            return super().invoke(ctx)
        except TaskboardError as error:
            raise click.ClickException(str(error)) from error


@click.group(cls=BoardGroup)
@click.version_option(version=__version__, prog_name="taskboard")
@click.option("--verbose", is_flag=True, default=False, help="Log board events to stderr.")
def taskboard(verbose: bool) -> None:
    """Task board shared by agent sessions.

    Tasks move `ready -> in_progress -> completed`; completing a task
    unblocks every task waiting on it.
    """

    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


@taskboard.command("list")
@db_path_option
@click.option("--status", type=click.Choice(STATUS_CHOICES), default=None, help="Status filter.")
@click.option(
    "--priority",
    type=click.Choice(PRIORITY_CHOICES, case_sensitive=False),
    default=None,
    help="Priority filter.",
)
@click.option("--group", "group_name", default=None, help="Group filter.")
@click.option("--category", default=None, help="Category filter.")
@click.option("--claimed-by", default=None, help="Claimant agent filter.")
def list_tasks(  # noqa: PLR0913
    db_path: Path | None,
    status: str | None,
    priority: str | None,
    group_name: str | None,
    category: str | None,
    claimed_by: str | None,
) -> None:
    """List tasks by priority, then id."""

    _emit_lines(
        BOARD_CONTROLLER.list_tasks(
            TaskListCommand(
                db_path=db_path,
                status=status,
                priority=priority,
                group_name=group_name,
                category=category,
                claimed_by=claimed_by,
            ),
        ),
    )


@taskboard.command("get")
@db_path_option
@click.argument("task_id", type=click.IntRange(min=1))
def get_task(db_path: Path | None, task_id: int) -> None:
    """Show one task."""

    _emit_lines(BOARD_CONTROLLER.get_task(TaskIdCommand(db_path=db_path, task_id=task_id)))


@taskboard.command("add")
@db_path_option
@click.argument("title")
@click.option(
    "--priority",
    type=click.Choice(PRIORITY_CHOICES, case_sensitive=False),
    default=Priority.MEDIUM.value,
    show_default=True,
)
@click.option("--group", "group_name", default=None, help="Group name.")
@click.option("--category", default=None)
@click.option("--description", default=None)
@click.option("--files", default=None, help="Comma-separated affected files.")
@click.option("--tests", default=None, help="Comma-separated test identifiers.")
@click.option("--blocked-by", default=None, help="Comma-separated task ids this task waits on.")
@click.option("--model", type=click.Choice(MODEL_CHOICES), default=None, help="Pin execution tier.")
@click.option("--reviews", default=None, help="Pin review dimensions, e.g. qa,security.")
@click.option("--parent", "parent_task_id", type=click.IntRange(min=1), default=None)
@click.option("--iteration", type=click.IntRange(min=1), default=1, show_default=True)
def add_task(  # noqa: PLR0913
    db_path: Path | None,
    title: str,
    priority: str,
    group_name: str | None,
    category: str | None,
    description: str | None,
    files: str | None,
    tests: str | None,
    blocked_by: str | None,
    model: str | None,
    reviews: str | None,
    parent_task_id: int | None,
    iteration: int,
) -> None:
    """Add a task; it starts `blocked` while listed dependencies are open."""

    _emit_lines(
        BOARD_CONTROLLER.add_task(
            TaskAddCommand(
                db_path=db_path,
                title=title,
                priority=priority,
                group_name=group_name,
                category=category,
                description=description,
                files=files,
                tests=tests,
                blocked_by=blocked_by,
                model=model,
                reviews=reviews,
                parent_task_id=parent_task_id,
                iteration=iteration,
            ),
        ),
    )


@taskboard.command("update")
@db_path_option
@click.argument("task_id", type=click.IntRange(min=1))
@click.option("--agent", default=None, help="Agent recorded in history.")
@click.option("--title", default=None)
@click.option("--priority", type=click.Choice(PRIORITY_CHOICES, case_sensitive=False), default=None)
@click.option("--group", "group_name", default=None)
@click.option("--category", default=None)
@click.option("--description", default=None)
@click.option("--files", default=None, help="Comma-separated affected files.")
@click.option("--tests", default=None, help="Comma-separated test identifiers.")
@click.option("--blocked-by", default=None, help="Comma-separated task ids.")
@click.option("--model", type=click.Choice(MODEL_CHOICES), default=None)
@click.option("--reviews", default=None)
@click.option("--iteration", type=click.IntRange(min=1), default=None)
def update_task(  # noqa: PLR0913
    db_path: Path | None,
    task_id: int,
    agent: str | None,
    title: str | None,
    priority: str | None,
    group_name: str | None,
    category: str | None,
    description: str | None,
    files: str | None,
    tests: str | None,
    blocked_by: str | None,
    model: str | None,
    reviews: str | None,
    iteration: int | None,
) -> None:
    """Patch task fields; status changes go through the lifecycle commands."""

    _emit_lines(
        BOARD_CONTROLLER.update_task(
            TaskUpdateCommand(
                db_path=db_path,
                task_id=task_id,
                agent=agent,
                title=title,
                priority=priority,
                group_name=group_name,
                category=category,
                description=description,
                files=files,
                tests=tests,
                blocked_by=blocked_by,
                model=model,
                reviews=reviews,
                iteration=iteration,
            ),
        ),
    )


@taskboard.command("claim")
@db_path_option
@click.argument("task_id", type=click.IntRange(min=1))
@click.option("--agent", default=None, help="Claimant (defaults to TASKBOARD_DEFAULT_AGENT).")
@click.option("--session", "session_id", default=None, help="Claiming session id.")
def claim_task(
    db_path: Path | None,
    task_id: int,
    agent: str | None,
    session_id: str | None,
) -> None:
    """Claim a ready task and print its execution tier and review plan."""

    _emit_lines(
        BOARD_CONTROLLER.claim_task(
            TaskClaimCommand(
                db_path=db_path,
                task_id=task_id,
                agent=agent,
                session_id=session_id,
            ),
        ),
    )


@taskboard.command("release")
@db_path_option
@click.argument("task_id", type=click.IntRange(min=1))
def release_task(db_path: Path | None, task_id: int) -> None:
    """Return an in-progress task to `ready`."""

    _emit_lines(BOARD_CONTROLLER.release_task(TaskIdCommand(db_path=db_path, task_id=task_id)))


@taskboard.command("complete")
@db_path_option
@click.argument("task_id", type=click.IntRange(min=1))
@click.argument("summary")
@click.option("--agent", default=None, help="Completing agent (defaults to the claimant).")
def complete_task(db_path: Path | None, task_id: int, summary: str, agent: str | None) -> None:
    """Complete a task and unblock its dependents."""

    _emit_lines(
        BOARD_CONTROLLER.complete_task(
            TaskCompleteCommand(
                db_path=db_path,
                task_id=task_id,
                summary=summary,
                agent=agent,
            ),
        ),
    )


@taskboard.command("block")
@db_path_option
@click.argument("task_id", type=click.IntRange(min=1))
@click.argument("reason")
def block_task(db_path: Path | None, task_id: int, reason: str) -> None:
    """Block a ready task with a reason."""

    _emit_lines(
        BOARD_CONTROLLER.block_task(
            TaskBlockCommand(db_path=db_path, task_id=task_id, reason=reason),
        ),
    )


@taskboard.command("unblock")
@db_path_option
@click.argument("task_id", type=click.IntRange(min=1))
def unblock_task(db_path: Path | None, task_id: int) -> None:
    """Return a blocked task to `ready`."""

    _emit_lines(BOARD_CONTROLLER.unblock_task(TaskIdCommand(db_path=db_path, task_id=task_id)))


@taskboard.command("stats")
@db_path_option
def stats(db_path: Path | None) -> None:
    """Show task counts per status."""

    _emit_lines(BOARD_CONTROLLER.stats(BoardQueryCommand(db_path=db_path)))


@taskboard.command("history")
@db_path_option
@click.argument("task_id", type=click.IntRange(min=1))
def history(db_path: Path | None, task_id: int) -> None:
    """Show the audit trail of a task, newest first."""

    _emit_lines(BOARD_CONTROLLER.history(TaskIdCommand(db_path=db_path, task_id=task_id)))


@taskboard.command("stale")
@db_path_option
@click.option(
    "--hours",
    type=click.IntRange(min=1),
    default=None,
    help="Claim age threshold (defaults to TASKBOARD_STALE_TASK_HOURS).",
)
def stale_tasks(db_path: Path | None, hours: int | None) -> None:
    """List in-progress tasks claimed longer ago than the threshold."""

    _emit_lines(BOARD_CONTROLLER.stale_tasks(StaleQueryCommand(db_path=db_path, hours=hours)))


@taskboard.command("next")
@db_path_option
def next_task(db_path: Path | None) -> None:
    """Show the most urgent ready task without dependencies."""

    _emit_lines(BOARD_CONTROLLER.next_task(BoardQueryCommand(db_path=db_path)))


@taskboard.command("agent-stats")
@db_path_option
def agent_stats(db_path: Path | None) -> None:
    """Show per-agent activity from task history."""

    _emit_lines(BOARD_CONTROLLER.agent_stats(BoardQueryCommand(db_path=db_path)))


@taskboard.group()
def session() -> None:
    """Agent session commands."""


@session.command("start")
@db_path_option
@click.argument("session_id")
@click.option("--agent-type", default="primary", show_default=True)
def session_start(db_path: Path | None, session_id: str, agent_type: str) -> None:
    """Start (or restart) a session."""

    _emit_lines(
        BOARD_CONTROLLER.start_session(
            SessionStartCommand(db_path=db_path, session_id=session_id, agent_type=agent_type),
        ),
    )


@session.command("active")
@db_path_option
def session_active(db_path: Path | None) -> None:
    """List active sessions with in-progress task counts."""

    _emit_lines(BOARD_CONTROLLER.active_sessions(BoardQueryCommand(db_path=db_path)))


@session.command("tasks")
@db_path_option
@click.argument("session_id")
def session_tasks(db_path: Path | None, session_id: str) -> None:
    """List tasks claimed under a session."""

    _emit_lines(
        BOARD_CONTROLLER.session_tasks(SessionCommand(db_path=db_path, session_id=session_id)),
    )


@session.command("claim")
@db_path_option
@click.argument("session_id")
@click.argument("task_id", type=click.IntRange(min=1))
@click.option("--agent", default=None, help="Claimant (defaults to TASKBOARD_SESSION_AGENT).")
def session_claim(db_path: Path | None, session_id: str, task_id: int, agent: str | None) -> None:
    """Assign a task to a session unless it shares files with the session's work."""

    _emit_lines(
        BOARD_CONTROLLER.session_claim(
            SessionClaimCommand(
                db_path=db_path,
                session_id=session_id,
                task_id=task_id,
                agent=agent,
            ),
        ),
    )


@session.command("end")
@db_path_option
@click.argument("session_id")
def session_end(db_path: Path | None, session_id: str) -> None:
    """Mark a session completed."""

    _emit_lines(
        BOARD_CONTROLLER.end_session(SessionCommand(db_path=db_path, session_id=session_id)),
    )


@session.command("cleanup")
@db_path_option
@click.option(
    "--hours",
    type=click.IntRange(min=1),
    default=None,
    help="Idle threshold (defaults to TASKBOARD_SESSION_STALE_HOURS).",
)
def session_cleanup(db_path: Path | None, hours: int | None) -> None:
    """Mark idle active sessions as stale."""

    _emit_lines(
        BOARD_CONTROLLER.cleanup_sessions(StaleQueryCommand(db_path=db_path, hours=hours)),
    )


@taskboard.command("conflict-check")
@db_path_option
@click.argument("task_ids")
def conflict_check(db_path: Path | None, task_ids: str) -> None:
    """Report shared files between tasks, e.g. `conflict-check 1,2,3`."""

    _emit_lines(
        BOARD_CONTROLLER.conflict_check(ConflictCheckCommand(db_path=db_path, task_ids=task_ids)),
    )


@taskboard.command("suggest-batch")
@db_path_option
@click.option(
    "--sessions",
    type=click.IntRange(min=1),
    default=None,
    help="Number of sessions (defaults to TASKBOARD_BATCH_SESSIONS).",
)
@click.option("--assign", "auto_assign", is_flag=True, default=False, help="Claim the batches.")
@click.option("--agent", default=None, help="Claimant when assigning.")
def suggest_batch(
    db_path: Path | None,
    sessions: int | None,
    auto_assign: bool,
    agent: str | None,
) -> None:
    """Split ready tasks across sessions with the least file overlap."""

    _emit_lines(
        BOARD_CONTROLLER.suggest_batch(
            SuggestBatchCommand(
                db_path=db_path,
                sessions=sessions,
                auto_assign=auto_assign,
                agent=agent,
            ),
        ),
    )


@taskboard.command("dependency-tree")
@db_path_option
@click.argument("task_id", type=click.IntRange(min=1))
def dependency_tree(db_path: Path | None, task_id: int) -> None:
    """Show tasks waiting on a task, transitively."""

    _emit_lines(BOARD_CONTROLLER.dependency_tree(TaskIdCommand(db_path=db_path, task_id=task_id)))


@taskboard.command("dependency-graph")
@db_path_option
def dependency_graph(db_path: Path | None) -> None:
    """List tasks with dependencies and the independent remainder."""

    _emit_lines(BOARD_CONTROLLER.dependency_graph(BoardQueryCommand(db_path=db_path)))


@taskboard.command("export")
@db_path_option
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "md"]),
    default="json",
    show_default=True,
)
@click.option("--file", "output_path", type=click.Path(path_type=Path), default=None)
def export_tasks(db_path: Path | None, output_format: str, output_path: Path | None) -> None:
    """Export the board as JSON or a Markdown checklist."""

    _emit_lines(
        BOARD_CONTROLLER.export_tasks(
            ExportCommand(db_path=db_path, output_format=output_format, output_path=output_path),
        ),
    )


@taskboard.command("import")
@db_path_option
@click.argument("input_path", type=click.Path(path_type=Path, exists=True, dir_okay=False))
def import_tasks(db_path: Path | None, input_path: Path) -> None:
    """Import tasks from a JSON export, keeping their ids."""

    _emit_lines(
        BOARD_CONTROLLER.import_tasks(ImportCommand(db_path=db_path, input_path=input_path)),
    )


@taskboard.group()
def artifact() -> None:
    """Task artifact commands."""


@artifact.command("save")
@db_path_option
@click.argument("task_id", type=click.IntRange(min=1))
@click.argument("artifact_type")
@click.option("--content", default=None, help="Inline artifact text.")
@click.option(
    "--file",
    "content_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="Read artifact text from a file.",
)
@click.option("--agent", default=None)
@click.option("--iteration", type=click.IntRange(min=1), default=1, show_default=True)
def artifact_save(  # noqa: PLR0913
    db_path: Path | None,
    task_id: int,
    artifact_type: str,
    content: str | None,
    content_path: Path | None,
    agent: str | None,
    iteration: int,
) -> None:
    """Store an artifact for a task (oversized content is truncated)."""

    _emit_lines(
        BOARD_CONTROLLER.save_artifact(
            ArtifactSaveCommand(
                db_path=db_path,
                task_id=task_id,
                artifact_type=artifact_type,
                content=content,
                content_path=content_path,
                agent=agent,
                iteration=iteration,
            ),
        ),
    )


@artifact.command("get")
@db_path_option
@click.argument("task_id", type=click.IntRange(min=1))
@click.argument("artifact_type")
@click.option("--iteration", type=click.IntRange(min=1), default=None)
def artifact_get(
    db_path: Path | None,
    task_id: int,
    artifact_type: str,
    iteration: int | None,
) -> None:
    """Print the latest artifact of a type."""

    _emit_lines(
        BOARD_CONTROLLER.get_artifact(
            ArtifactGetCommand(
                db_path=db_path,
                task_id=task_id,
                artifact_type=artifact_type,
                iteration=iteration,
            ),
        ),
    )


@artifact.command("list")
@db_path_option
@click.argument("task_id", type=click.IntRange(min=1))
def artifact_list(db_path: Path | None, task_id: int) -> None:
    """List artifacts of a task with their sizes."""

    _emit_lines(BOARD_CONTROLLER.list_artifacts(TaskIdCommand(db_path=db_path, task_id=task_id)))


@taskboard.group()
def feedback() -> None:
    """Review checklist feedback commands."""


@feedback.command("log")
@db_path_option
@click.argument("task_id", type=click.IntRange(min=1))
@click.argument("dimension")
@click.argument("checklist_item")
@click.option("--useful/--not-useful", "was_useful", default=True, show_default=True)
@click.option("--result", default=None, help="Review outcome, e.g. pass or fail.")
def feedback_log(  # noqa: PLR0913
    db_path: Path | None,
    task_id: int,
    dimension: str,
    checklist_item: str,
    was_useful: bool,
    result: str | None,
) -> None:
    """Record whether a review checklist item was useful."""

    _emit_lines(
        BOARD_CONTROLLER.log_feedback(
            FeedbackLogCommand(
                db_path=db_path,
                task_id=task_id,
                dimension=dimension,
                checklist_item=checklist_item,
                was_useful=was_useful,
                result=result,
            ),
        ),
    )


@feedback.command("summary")
@db_path_option
@click.option("--dimension", default=None, help="Only this review dimension.")
def feedback_summary(db_path: Path | None, dimension: str | None) -> None:
    """Show usefulness per checklist item."""

    _emit_lines(
        BOARD_CONTROLLER.feedback_summary(
            FeedbackSummaryCommand(db_path=db_path, dimension=dimension),
        ),
    )


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    taskboard()
