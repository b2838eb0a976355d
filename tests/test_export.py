from __future__ import annotations

import json
from datetime import UTC, datetime

import allure
import pytest

from taskboard.board.errors import ValidationError
from taskboard.board.export import (
    parse_import_payload,
    render_json,
    render_markdown,
    task_from_dict,
    task_to_dict,
)
from taskboard.board.models import BoardStats, ExecutionTier, TaskStatus

pytestmark = [
    allure.epic("Task Board"),
    allure.feature("Export & Import"),
]

_EXPORTED_AT = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)


def test_task_dict_round_trip(make_task) -> None:
    task = make_task(
        4,
        title="Wire API",
        status=TaskStatus.BLOCKED,
        files=("src/api.ts",),
        blocked_by=(2, 3),
        model=ExecutionTier.HIGHEST,
        reviews="qa,security",
    )

    assert task_from_dict(task_to_dict(task)) == task


def test_render_json_shape(make_task) -> None:
    stats = BoardStats(total=1, ready=1, in_progress=0, blocked=0, completed=0)

    payload = json.loads(render_json([make_task(1)], stats, exported_at=_EXPORTED_AT))

    assert payload["exported_at"] == "2026-03-02T09:30:00+00:00"
    assert payload["stats"]["completion_pct"] == 0
    assert payload["tasks"][0]["files_affected"] == []


def test_render_markdown_for_empty_board() -> None:
    stats = BoardStats(total=0, ready=0, in_progress=0, blocked=0, completed=0)

    markdown = render_markdown([], stats, exported_at=_EXPORTED_AT)

    assert markdown == (
        "# Tasks Export\n\n"
        "**Exported:** 2026-03-02T09:30:00+00:00\n"
        "**Total:** 0 | **Completed:** 0 (0%)\n\n"
    )


def test_import_accepts_bare_list_and_csv_fields() -> None:
    tasks = parse_import_payload(
        json.dumps(
            [
                {
                    "id": 9,
                    "title": "Legacy row",
                    "priority": "HIGH",
                    "status": "ready",
                    "files_affected": "src/a.ts, src/b.ts",
                    "blocked_by": "1,2",
                },
            ],
        ),
    )

    assert tasks[0].id == 9
    assert tasks[0].files_affected == ("src/a.ts", "src/b.ts")
    assert tasks[0].blocked_by == (1, 2)
    assert tasks[0].iteration == 1


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        json.dumps({"tasks": "nope"}),
        json.dumps([{"title": "no id"}]),
        json.dumps([{"id": 1, "title": "x", "status": "archived"}]),
        json.dumps([{"id": 1, "title": "x", "blocked_by": "a,b"}]),
    ],
)
def test_import_rejects_malformed_payloads(raw: str) -> None:
    with pytest.raises(ValidationError):
        parse_import_payload(raw)
