"""Which tasks and edges are on screen for a given view, collapse and search state.

A task is visible when it passes all three gates:

- view mode: overview keeps roots only; project keeps the project task and
  its subtree; focus keeps tasks marked ``in_focus`` and their ancestors.
- collapse: no ancestor may be collapsed, unless a search is active and the
  task is a match or lies on the path from a collapsed ancestor to a match.
- search: an active search never hides anything by itself; it only opens
  collapsed branches that lead to matches.

A focused task (the node "focus" action) further limits the result to
that task and its descendants.

An edge is visible when both of its ends are.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from mindweave.hierarchy import Forest
from mindweave.models import Edge, Task, ViewMode, ViewState


@dataclass(frozen=True)
class Visibility:
    """Result of one resolution pass."""

    task_ids: frozenset[str]
    edges: tuple[Edge, ...]
    hidden_counts: Mapping[str, int] = field(default_factory=dict)

    def is_visible(self, task_id: str) -> bool:
        return task_id in self.task_ids

    def hidden_descendant_count(self, task_id: str) -> int | None:
        return self.hidden_counts.get(task_id)


def view_mode_gate(tasks: Mapping[str, Task], forest: Forest, view: ViewState) -> set[str]:
    if view.mode == ViewMode.OVERVIEW:
        return set(forest.roots())
    if view.mode == ViewMode.PROJECT:
        if view.current_project_id is None:
            return set()
        return forest.subtree(view.current_project_id)
    # Focus: ancestors are kept so the focused tasks stay reachable.
    return forest.with_ancestors(tid for tid, t in tasks.items() if t.in_focus)


def collapse_gate(
    tasks: Mapping[str, Task],
    forest: Forest,
    search_results: frozenset[str] = frozenset(),
) -> set[str]:
    """Ids not hidden by a collapsed ancestor (or re-opened by a search)."""
    on_match_path = forest.with_ancestors(search_results) if search_results else set()
    passing: set[str] = set()
    for tid in tasks:
        if tid in on_match_path:
            passing.add(tid)
            continue
        if not any(tasks[a].collapsed for a in forest.ancestors(tid)):
            passing.add(tid)
    return passing


def hidden_descendant_count(tasks: Mapping[str, Task], task_id: str, forest: Forest | None = None) -> int | None:
    """Badge count for a collapsed task: all of its descendants.

    None when the task is unknown or not collapsed.
    """
    task = tasks.get(task_id)
    if task is None or not task.collapsed:
        return None
    forest = forest or Forest(tasks)
    return len(forest.descendants(task_id))


def resolve(
    tasks: Mapping[str, Task],
    edges: tuple[Edge, ...] | list[Edge],
    view: ViewState,
    search_results: frozenset[str] = frozenset(),
    forest: Forest | None = None,
    focus_id: str | None = None,
) -> Visibility:
    forest = forest or Forest(tasks)
    visible = view_mode_gate(tasks, forest, view) & collapse_gate(tasks, forest, search_results)
    if focus_id is not None and focus_id in tasks:
        visible &= forest.subtree(focus_id)
    visible_edges = tuple(e for e in edges if e.source in visible and e.target in visible)
    counts = {
        tid: len(forest.descendants(tid))
        for tid, task in tasks.items()
        if task.collapsed
    }
    return Visibility(task_ids=frozenset(visible), edges=visible_edges, hidden_counts=counts)


def is_visible(
    tasks: Mapping[str, Task],
    task_id: str,
    view: ViewState,
    search_results: frozenset[str] = frozenset(),
) -> bool:
    """Single-task query; unknown ids are simply not visible."""
    if task_id not in tasks:
        return False
    forest = Forest(tasks)
    return (
        task_id in view_mode_gate(tasks, forest, view)
        and task_id in collapse_gate(tasks, forest, search_results)
    )
