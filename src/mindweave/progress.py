"""Status/progress coupling and progress roll-up along the ancestor chain."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, MutableMapping
from dataclasses import replace

from mindweave.hierarchy import Forest, HierarchyCycleError
from mindweave.models import Task, TaskStatus

log = logging.getLogger(__name__)


def clamp_progress(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def synchronize(task: Task, changes: Mapping[str, object]) -> dict[str, object]:
    """Return *changes* with status and progress made consistent.

    Rules, first match wins:
    1. status set to done -> progress 100
    2. progress set to 100 while not done -> status done
    3. progress set below 100 while done -> in_progress if > 0 else pending
    4. progress above 0 while pending -> in_progress
    """
    out = dict(changes)
    status = task.status
    if "status" in out:
        status = TaskStatus.parse(str(out["status"]))
        out["status"] = status

    if "status" in out and status == TaskStatus.DONE:
        out["progress"] = 100
    elif "progress" in out:
        progress = clamp_progress(float(out["progress"]))  # type: ignore[arg-type]
        out["progress"] = progress
        if progress == 100 and status != TaskStatus.DONE:
            out["status"] = TaskStatus.DONE
        elif progress < 100 and status == TaskStatus.DONE:
            out["status"] = TaskStatus.IN_PROGRESS if progress > 0 else TaskStatus.PENDING
        elif progress > 0 and status == TaskStatus.PENDING:
            out["status"] = TaskStatus.IN_PROGRESS
    return out


def average_progress(tasks: Mapping[str, Task], child_ids: list[str]) -> int | None:
    """Unweighted average of the children's progress, rounded half up."""
    if not child_ids:
        return None
    total = sum(tasks[cid].progress for cid in child_ids)
    return round_half_up(total / len(child_ids))


def propagate(tasks: MutableMapping[str, Task], task_id: str) -> list[str]:
    """Roll progress up from *task_id* to its ancestors.

    Each parent gets the average of its direct children and the same coupling
    rules. Stops at the root or at the first parent whose value is unchanged.
    Returns the ids that were updated.
    """
    forest = Forest(tasks)
    updated: list[str] = []
    visited = {task_id}
    current = forest.parent(task_id)
    while current is not None:
        if current in visited:
            raise HierarchyCycleError(f"Progress roll-up from {task_id} looped at {current}")
        visited.add(current)

        parent = tasks[current]
        avg = average_progress(tasks, forest.children(current))
        if avg is None or avg == parent.progress:
            break
        changes = synchronize(parent, {"progress": avg})
        tasks[current] = replace(parent, **changes)
        updated.append(current)
        log.debug("Rolled progress of %s up to %d", current, avg)
        current = forest.parent(current)
    return updated
