"""Per-project color schemes and their inheritance down the hierarchy."""

from __future__ import annotations

from collections.abc import Mapping

from mindweave.hierarchy import Forest, HierarchyCycleError
from mindweave.models import Task

PALETTE: tuple[str, ...] = (
    "blue",
    "green",
    "purple",
    "orange",
    "pink",
    "teal",
    "amber",
    "red",
)

# Hex values used by the HTML/Mermaid renderers: (fill, font).
SCHEME_COLORS: dict[str, tuple[str, str]] = {
    "blue": ("#457b9d", "#f1faee"),
    "green": ("#2d6a4f", "#d8f3dc"),
    "purple": ("#6d597a", "#f8f0fb"),
    "orange": ("#e76f51", "#ffffff"),
    "pink": ("#c9184a", "#fff0f3"),
    "teal": ("#2a9d8f", "#f1faee"),
    "amber": ("#d4a373", "#000000"),
    "red": ("#9d0208", "#ffffff"),
}


def next_root_scheme(tasks: Mapping[str, Task], palette: tuple[str, ...] = PALETTE) -> str:
    """Scheme for a root task about to be created.

    First palette entry no current root uses; once all are taken, cycle by
    the number of existing roots.
    """
    forest = Forest(tasks)
    roots = forest.roots()
    in_use = {resolve_scheme(tasks, rid, palette, forest) for rid in roots}
    for scheme in palette:
        if scheme not in in_use:
            return scheme
    return palette[len(roots) % len(palette)]


def resolve_scheme(
    tasks: Mapping[str, Task],
    task_id: str,
    palette: tuple[str, ...] = PALETTE,
    forest: Forest | None = None,
) -> str | None:
    """Effective scheme of a task: its own, else its nearest ancestor's.

    A root without a scheme (legacy data) gets one from its position among
    the roots. Returns None for unknown ids.
    """
    if task_id not in tasks:
        return None
    forest = forest or Forest(tasks)
    visited: set[str] = set()
    current: str | None = task_id
    while current is not None:
        if current in visited:
            raise HierarchyCycleError(f"Task {task_id} is its own ancestor")
        visited.add(current)
        task = tasks[current]
        if task.color_scheme is not None:
            return task.color_scheme
        parent = forest.parent(current)
        if parent is None:
            ordinal = forest.roots().index(current)
            return palette[ordinal % len(palette)]
        current = parent
    return None


def resolve_all(
    tasks: Mapping[str, Task],
    palette: tuple[str, ...] = PALETTE,
    forest: Forest | None = None,
) -> dict[str, str]:
    """Resolved scheme for every task, top-down so each parent is looked up once."""
    forest = forest or Forest(tasks)
    roots = forest.roots()
    resolved: dict[str, str] = {}
    stack: list[tuple[str, str]] = []
    for ordinal, rid in enumerate(roots):
        scheme = tasks[rid].color_scheme or palette[ordinal % len(palette)]
        stack.append((rid, scheme))
    while stack:
        tid, inherited = stack.pop()
        if tid in resolved:
            raise HierarchyCycleError(f"Task {tid} reached twice while resolving colors")
        scheme = tasks[tid].color_scheme or inherited
        resolved[tid] = scheme
        for child in forest.children(tid):
            stack.append((child, scheme))
    return resolved


def scheme_colors(scheme: str | None) -> tuple[str, str]:
    return SCHEME_COLORS.get(scheme or "", ("#6c757d", "#ffffff"))
