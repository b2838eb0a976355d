"""Dependency resolution between tasks.

A task's ``blocked_by`` tuple lists the ids that must complete before it can
return to ``ready``.  Resolution is a single pass over tasks that carry the
``blocked`` status when a dependency completes; it is not a graph traversal,
so a ``ready`` task with leftover ids is never revisited here.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from taskboard.board.models import DependencyNode, TaskStatus, TaskView

CIRCULAR_TITLE = "(circular)"


@dataclass(slots=True)
class DependencyChange:
    """Reduced dependency set for one blocked task after a completion."""

    task_id: int
    remaining: tuple[int, ...]

    @property
    def unblocks(self) -> bool:
        return not self.remaining


def resolve_completion(tasks: Iterable[TaskView], completed_id: int) -> list[DependencyChange]:
    """Drop ``completed_id`` from every blocked task that waits on it."""

    changes: list[DependencyChange] = []
    for task in tasks:
        if task.status != TaskStatus.BLOCKED or completed_id not in task.blocked_by:
            continue
        remaining = tuple(dep for dep in task.blocked_by if dep != completed_id)
        changes.append(DependencyChange(task_id=task.id, remaining=remaining))
    return changes


def outstanding_dependencies(
    blocked_by: Iterable[int],
    completed_ids: Iterable[int],
) -> tuple[int, ...]:
    """Dependency ids not yet completed, deduplicated in original order."""

    done = set(completed_ids)
    seen: set[int] = set()
    outstanding: list[int] = []
    for dep in blocked_by:
        if dep in done or dep in seen:
            continue
        seen.add(dep)
        outstanding.append(dep)
    return tuple(outstanding)


def dependents_index(tasks: Iterable[TaskView]) -> dict[int, list[TaskView]]:
    """Map each id to the tasks listing it in ``blocked_by``, keeping input order."""

    index: dict[int, list[TaskView]] = {}
    for task in tasks:
        for dep in task.blocked_by:
            index.setdefault(dep, []).append(task)
    return index


def build_dependency_tree(
    root_id: int,
    tasks: Sequence[TaskView],
) -> DependencyNode | None:
    """Tree of tasks waiting (transitively) on ``root_id``.

    Depth-first with an explicit visited set: an id reached a second time
    becomes a ``(circular)`` leaf instead of being expanded again.
    """

    by_id: Mapping[int, TaskView] = {task.id: task for task in tasks}
    if root_id not in by_id:
        return None
    dependents = dependents_index(tasks)

    visited: set[int] = set()
    root = _node(by_id[root_id], depth=0)
    visited.add(root_id)
    stack: list[tuple[DependencyNode, list[TaskView]]] = [
        (root, list(dependents.get(root_id, []))),
    ]
    while stack:
        parent, pending = stack[-1]
        if not pending:
            stack.pop()
            continue
        child_task = pending.pop(0)
        depth = parent.depth + 1
        if child_task.id in visited:
            parent.children.append(
                DependencyNode(
                    id=child_task.id,
                    title=CIRCULAR_TITLE,
                    status=None,
                    priority=None,
                    depth=depth,
                    circular=True,
                ),
            )
            continue
        visited.add(child_task.id)
        child = _node(child_task, depth=depth)
        parent.children.append(child)
        stack.append((child, list(dependents.get(child_task.id, []))))
    return root


def dependency_graph(tasks: Sequence[TaskView]) -> tuple[list[TaskView], list[TaskView]]:
    """Split tasks into those with blockers and the independent remainder."""

    dependent = [task for task in tasks if task.blocked_by]
    independent = [task for task in tasks if not task.blocked_by]
    return dependent, independent


def _node(task: TaskView, *, depth: int) -> DependencyNode:
    return DependencyNode(
        id=task.id,
        title=task.title,
        status=task.status,
        priority=task.priority,
        depth=depth,
    )
