"""Deterministic task-shape classification for execution tier and review plan."""

from __future__ import annotations

import logging
import re

from taskboard.board.models import NO_REVIEW, ClaimAnnotation, ExecutionTier, Priority, TaskView

logger = logging.getLogger(__name__)

DEFAULT_SECURITY_KEYWORDS: tuple[str, ...] = (
    "api",
    "form",
    "fetch",
    "post",
    "env",
    ".env",
    "token",
    "auth",
    "secret",
    "cookie",
    "session",
    "input",
    "validation",
    "csrf",
    "xss",
    "redirect",
    "sanitize",
)
DEFAULT_UX_KEYWORDS: tuple[str, ...] = (
    "page",
    "component",
    "section",
    "layout",
    "design",
    "content",
    "navigation",
    "ux",
)

SMALL_TASK_MAX_FILES = 1
SMALL_TASK_DESCRIPTION_CHARS = 100
LARGE_TASK_MIN_FILES = 5

_FOLLOW_UP_TITLE = re.compile(r"^(Fix:|Follow-up:)", re.IGNORECASE)


def infer_model(task: TaskView) -> ExecutionTier:
    """Pick the cheapest tier that fits the task shape."""

    if _is_small(task):
        return ExecutionTier.LOWEST
    if _FOLLOW_UP_TITLE.match(task.title):
        return ExecutionTier.LOWEST
    if task.priority == Priority.CRITICAL or len(task.files_affected) >= LARGE_TASK_MIN_FILES:
        return ExecutionTier.HIGHEST
    return ExecutionTier.STANDARD


def infer_reviews(
    task: TaskView,
    *,
    security_keywords: tuple[str, ...] = DEFAULT_SECURITY_KEYWORDS,
    ux_keywords: tuple[str, ...] = DEFAULT_UX_KEYWORDS,
) -> str:
    """Return comma-joined review dimensions, or ``none`` for trivial tasks."""

    if _is_small(task):
        return NO_REVIEW

    text = f"{task.title or ''} {task.description or ''}".lower()
    dimensions = ["qa"]
    if _contains_any(text, security_keywords):
        dimensions.append("security")
    is_fix = bool(_FOLLOW_UP_TITLE.match(task.title)) or "test" in text
    if not is_fix and _contains_any(text, ux_keywords):
        dimensions.append("pm")
    return ",".join(dimensions)


def infer_context_files(reviews: str) -> tuple[str, ...]:
    """Context documents a reviewing agent should load for the review plan."""

    if reviews == NO_REVIEW:
        return ("requirements-summary.md",)
    if reviews == "qa":
        return ("requirements-summary.md", "design-system.md")
    return ("project-overview.md", "design-system.md", "requirements-summary.md")


def annotate_for_claim(
    task: TaskView,
    *,
    security_keywords: tuple[str, ...] = DEFAULT_SECURITY_KEYWORDS,
    ux_keywords: tuple[str, ...] = DEFAULT_UX_KEYWORDS,
) -> ClaimAnnotation:
    """Resolve tier and reviews, keeping whatever is already pinned on the task."""

    model = task.model if task.model is not None else infer_model(task)
    reviews = task.reviews or infer_reviews(
        task,
        security_keywords=security_keywords,
        ux_keywords=ux_keywords,
    )
    logger.debug(
        "Task %s classified: model=%s (pinned=%s) reviews=%s (pinned=%s)",
        task.id,
        model.value,
        task.model is not None,
        reviews,
        bool(task.reviews),
    )
    return ClaimAnnotation(
        model=model,
        reviews=reviews,
        context_files=infer_context_files(reviews),
    )


def _is_small(task: TaskView) -> bool:
    return (
        len(task.files_affected) <= SMALL_TASK_MAX_FILES
        and len(task.description or "") < SMALL_TASK_DESCRIPTION_CHARS
    )


def _contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword.lower() in text for keyword in keywords if keyword)
