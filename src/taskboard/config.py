"""Runtime configuration for the task board."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from taskboard.board.classifier import DEFAULT_SECURITY_KEYWORDS, DEFAULT_UX_KEYWORDS


@dataclass(slots=True)
class BoardSettings:
    """Agent defaults and staleness thresholds."""

    default_agent: str = "primary"
    session_agent: str = "developer"
    stale_task_hours: int = 24
    session_stale_hours: int = 2
    batch_sessions: int = 2
    artifact_max_bytes: int = 51_200


@dataclass(slots=True)
class ClassifierSettings:
    """Keyword lists used to pick review dimensions."""

    security_keywords: tuple[str, ...] = DEFAULT_SECURITY_KEYWORDS
    ux_keywords: tuple[str, ...] = DEFAULT_UX_KEYWORDS


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".taskboard.db")
    sqlite_busy_timeout_ms: int = 5_000
    board: BoardSettings = field(default_factory=BoardSettings)
    classifier: ClassifierSettings = field(default_factory=ClassifierSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("TASKBOARD_DB_PATH", ".taskboard.db")),
            sqlite_busy_timeout_ms=_env_int("TASKBOARD_SQLITE_BUSY_TIMEOUT_MS", 5_000),
            board=BoardSettings(
                default_agent=os.getenv("TASKBOARD_DEFAULT_AGENT", "primary").strip(),
                session_agent=os.getenv("TASKBOARD_SESSION_AGENT", "developer").strip(),
                stale_task_hours=_env_int("TASKBOARD_STALE_TASK_HOURS", 24),
                session_stale_hours=_env_int("TASKBOARD_SESSION_STALE_HOURS", 2),
                batch_sessions=_env_int("TASKBOARD_BATCH_SESSIONS", 2),
                artifact_max_bytes=_env_int("TASKBOARD_ARTIFACT_MAX_BYTES", 51_200),
            ),
            classifier=ClassifierSettings(
                security_keywords=_env_keywords(
                    "TASKBOARD_SECURITY_KEYWORDS",
                    DEFAULT_SECURITY_KEYWORDS,
                ),
                ux_keywords=_env_keywords("TASKBOARD_UX_KEYWORDS", DEFAULT_UX_KEYWORDS),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the board cannot work with."""

        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("TASKBOARD_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if not self.board.default_agent:
            raise ValueError("TASKBOARD_DEFAULT_AGENT must not be empty.")
        if not self.board.session_agent:
            raise ValueError("TASKBOARD_SESSION_AGENT must not be empty.")
        if self.board.stale_task_hours <= 0:
            raise ValueError("TASKBOARD_STALE_TASK_HOURS must be > 0.")
        if self.board.session_stale_hours <= 0:
            raise ValueError("TASKBOARD_SESSION_STALE_HOURS must be > 0.")
        if self.board.batch_sessions < 1:
            raise ValueError("TASKBOARD_BATCH_SESSIONS must be >= 1.")
        if self.board.artifact_max_bytes <= 0:
            raise ValueError("TASKBOARD_ARTIFACT_MAX_BYTES must be > 0.")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_keywords(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    deduped: list[str] = []
    seen: set[str] = set()
    for part in raw.split(","):
        keyword = part.strip().lower()
        if not keyword or keyword in seen:
            continue
        seen.add(keyword)
        deduped.append(keyword)
    return tuple(deduped)
