"""Parent/child forest built from task parent pointers."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import networkx as nx

from mindweave.models import Task


class HierarchyCycleError(ValueError):
    """A walk over the hierarchy revisited a task."""


def build_forest(tasks: Mapping[str, Task]) -> nx.DiGraph:
    """Construct the parent -> child graph.

    Parent ids that do not name a known task are ignored, leaving the child
    as a root of the graph. Cycles are not rejected here; walks detect them.
    """
    G = nx.DiGraph()
    for tid in tasks:
        G.add_node(tid)
    for tid, task in tasks.items():
        if task.parent_id is not None and task.parent_id in tasks:
            G.add_edge(task.parent_id, tid)
    return G


def check_acyclic(tasks: Mapping[str, Task]) -> None:
    """Raise HierarchyCycleError if the parent pointers contain a cycle."""
    G = build_forest(tasks)
    if not nx.is_directed_acyclic_graph(G):
        cycle = nx.find_cycle(G)
        raise HierarchyCycleError(
            "Circular parent chain: " + " -> ".join(src for src, _ in cycle)
        )


class Forest:
    """Read-only hierarchy queries over one task snapshot."""

    def __init__(self, tasks: Mapping[str, Task]):
        self._tasks = tasks
        self.graph = build_forest(tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def parent(self, task_id: str) -> str | None:
        task = self._tasks.get(task_id)
        if task is None or task.parent_id not in self._tasks:
            return None
        return task.parent_id

    def children(self, task_id: str) -> list[str]:
        if task_id not in self.graph:
            return []
        return list(self.graph.successors(task_id))

    def roots(self) -> list[str]:
        """Root ids in insertion order."""
        return [tid for tid in self._tasks if self.parent(tid) is None]

    def ancestors(self, task_id: str) -> list[str]:
        """Ancestors of *task_id*, nearest first.

        Raises HierarchyCycleError if the chain loops back on itself.
        """
        chain: list[str] = []
        visited = {task_id}
        current = self.parent(task_id)
        while current is not None:
            if current in visited:
                raise HierarchyCycleError(f"Task {task_id} is its own ancestor")
            visited.add(current)
            chain.append(current)
            current = self.parent(current)
        return chain

    def descendants(self, task_id: str) -> set[str]:
        """Every task reachable below *task_id* (excluding itself)."""
        if task_id not in self.graph:
            return set()
        found = nx.descendants(self.graph, task_id)
        found.discard(task_id)
        return found

    def subtree(self, task_id: str) -> set[str]:
        """*task_id* plus its descendants; empty if unknown."""
        if task_id not in self.graph:
            return set()
        return {task_id} | self.descendants(task_id)

    def with_ancestors(self, ids: Iterable[str]) -> set[str]:
        """The given ids plus all of their ancestors."""
        result: set[str] = set()
        for tid in ids:
            if tid not in self._tasks or tid in result:
                continue
            result.add(tid)
            result.update(self.ancestors(tid))
        return result

    def is_ancestor(self, candidate: str, task_id: str) -> bool:
        return candidate in self.ancestors(task_id)
