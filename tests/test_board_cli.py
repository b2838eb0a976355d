from __future__ import annotations

import json
from pathlib import Path

import allure
from click.testing import CliRunner

import taskboard.main as main_module
from taskboard.main import taskboard

pytestmark = [
    allure.epic("Task Board"),
    allure.feature("CLI"),
]


def _invoke(runner: CliRunner, db_path: Path, *args: str):
    command, *rest = args
    if command in {"session", "artifact", "feedback"}:
        subcommand, *rest = rest
        return runner.invoke(taskboard, [command, subcommand, "--db-path", str(db_path), *rest])
    return runner.invoke(taskboard, [command, "--db-path", str(db_path), *rest])


def test_cli_task_lifecycle(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"

    added = _invoke(runner, db_path, "add", "Integrate checkout", "--blocked-by", "2")
    assert added.exit_code == 0, added.output
    assert "Task added: id=1 status=blocked" in added.output
    assert _invoke(runner, db_path, "add", "Payment API", "--priority", "high").exit_code == 0

    claimed = _invoke(runner, db_path, "claim", "2", "--agent", "developer")
    assert claimed.exit_code == 0, claimed.output
    assert "Task claimed: id=2 by=developer" in claimed.output
    assert "Model: haiku" in claimed.output

    completed = _invoke(runner, db_path, "complete", "2", "API ready")
    assert completed.exit_code == 0, completed.output
    assert "Unblocked: #1" in completed.output

    listed = _invoke(runner, db_path, "list", "--status", "ready")
    assert "Tasks: 1" in listed.output
    assert "#1 [MEDIUM] Integrate checkout status=ready" in listed.output

    history = _invoke(runner, db_path, "history", "2")
    assert "complete by=developer in_progress -> completed" in history.output

    stats = _invoke(runner, db_path, "stats")
    assert "Completion: 50%" in stats.output


def test_cli_reports_board_errors(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"
    _invoke(runner, db_path, "add", "Shared")
    _invoke(runner, db_path, "claim", "1", "--agent", "developer")

    conflict = _invoke(runner, db_path, "claim", "1", "--agent", "reviewer")
    missing = _invoke(runner, db_path, "get", "42")

    assert conflict.exit_code == 1
    assert "already claimed by developer" in conflict.output
    assert missing.exit_code == 1
    assert "Task 42 not found" in missing.output


def test_cli_sessions_and_batches(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"
    _invoke(runner, db_path, "add", "Header", "--files", "src/a.ts")
    _invoke(runner, db_path, "add", "Nav", "--files", "src/a.ts,src/b.ts")

    conflicts = _invoke(runner, db_path, "conflict-check", "1,2")
    assert "#1 <-> #2: src/a.ts" in conflicts.output

    batches = _invoke(runner, db_path, "suggest-batch")
    assert batches.exit_code == 0, batches.output
    assert "session-1: 1 task(s)" in batches.output
    assert "session-2: 1 task(s)" in batches.output

    assert _invoke(runner, db_path, "session", "start", "s1").exit_code == 0
    assert _invoke(runner, db_path, "session", "claim", "s1", "1").exit_code == 0
    rejected = _invoke(runner, db_path, "session", "claim", "s1", "2")
    assert rejected.exit_code == 1
    assert "conflicts with task 1 in session s1" in rejected.output

    active = _invoke(runner, db_path, "session", "active")
    assert "s1 agent_type=primary tasks=1" in active.output


def test_cli_export_import_and_artifacts(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"
    export_path = tmp_path / "out" / "tasks.json"
    _invoke(runner, db_path, "add", "Document API", "--group", "2")

    exported = _invoke(runner, db_path, "export", "--file", str(export_path))
    assert exported.exit_code == 0, exported.output
    assert json.loads(export_path.read_text("utf-8"))["tasks"][0]["title"] == "Document API"

    imported = _invoke(runner, tmp_path / "copy.db", "import", str(export_path))
    assert imported.exit_code == 0, imported.output
    assert "Tasks imported: 1" in imported.output

    markdown = _invoke(runner, db_path, "export", "--format", "md")
    assert "## Group 2" in markdown.output

    saved = _invoke(runner, db_path, "artifact", "save", "1", "plan", "--content", "step one")
    assert "size_chars=8" in saved.output
    fetched = _invoke(runner, db_path, "artifact", "get", "1", "plan")
    assert fetched.output.strip() == "step one"

    logged = _invoke(runner, db_path, "feedback", "log", "1", "qa", "a11y", "--not-useful")
    assert "useful=False" in logged.output
    summary = _invoke(runner, db_path, "feedback", "summary")
    assert "qa/a11y: 0/1 useful (0%)" in summary.output


def test_cli_update_patches_allowed_fields(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"
    _invoke(runner, db_path, "add", "Draft header")

    updated = _invoke(runner, db_path, "update", "1", "--title", "Header", "--files", "src/a.ts")
    assert updated.exit_code == 0, updated.output
    assert "Task updated: id=1 fields=title,files_affected" in updated.output

    history = _invoke(runner, db_path, "history", "1")
    assert "update_title" in history.output
    assert "Draft header -> Header" in history.output

    empty = _invoke(runner, db_path, "update", "1")
    assert empty.exit_code == 1
    assert "Nothing to update" in empty.output


def test_cli_reports_invalid_configuration(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("TASKBOARD_BATCH_SESSIONS", "two")

    result = _invoke(CliRunner(), tmp_path / "cli.db", "stats")

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
    assert "TASKBOARD_BATCH_SESSIONS" in result.output


def test_cli_lets_unexpected_errors_propagate(tmp_path: Path, monkeypatch) -> None:
    def _broken_stats(command):
        raise ValueError("unexpected stats failure")

    monkeypatch.setattr(main_module.BOARD_CONTROLLER, "stats", _broken_stats)

    result = _invoke(CliRunner(), tmp_path / "cli.db", "stats")

    assert isinstance(result.exception, ValueError)
    assert "unexpected stats failure" not in result.output
