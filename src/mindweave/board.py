"""The task store: tasks, their hierarchy, node positions and selection."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from types import MappingProxyType

from mindweave.dates import is_due_soon, is_overdue, today_iso
from mindweave.hierarchy import Forest, HierarchyCycleError
from mindweave.models import BoardConfig, Edge, Task, TaskStatus
from mindweave.palette import PALETTE, next_root_scheme, resolve_scheme
from mindweave.progress import propagate, synchronize

log = logging.getLogger(__name__)

Position = tuple[float, float]

EDITABLE_FIELDS = frozenset({
    "title",
    "status",
    "progress",
    "due_date",
    "next_steps",
    "notes",
    "collapsed",
    "width",
    "height",
    "in_focus",
    "color_scheme",
})

CHILD_OFFSET: Position = (220.0, 60.0)


@dataclass(frozen=True)
class BoardSnapshot:
    """Immutable view of the board at one revision."""

    revision: int
    tasks: Mapping[str, Task]
    edges: tuple[Edge, ...]
    forest: Forest


@dataclass(frozen=True)
class BoardStats:
    total_tasks: int
    completed_tasks: int
    in_progress_tasks: int
    pending_tasks: int
    completion_rate: int  # percent
    overdue: int
    due_soon: int
    focused: int


def board_stats(tasks: Mapping[str, Task], now: datetime | None = None, window_hours: int = 48) -> BoardStats:
    now = now or datetime.now()
    values = list(tasks.values())
    total = len(values)
    done = sum(1 for t in values if t.status == TaskStatus.DONE)
    in_progress = sum(1 for t in values if t.status == TaskStatus.IN_PROGRESS)
    open_tasks = [t for t in values if t.status != TaskStatus.DONE]
    return BoardStats(
        total_tasks=total,
        completed_tasks=done,
        in_progress_tasks=in_progress,
        pending_tasks=total - done - in_progress,
        completion_rate=round(done / total * 100) if total else 0,
        overdue=sum(1 for t in open_tasks if is_overdue(t, now)),
        due_soon=sum(1 for t in open_tasks if is_due_soon(t, now, window_hours)),
        focused=sum(1 for t in values if t.in_focus),
    )


class Board:
    """Owns the task map; every hierarchy change goes through here.

    ``Task.parent_id`` is the only stored form of the hierarchy. Edges are
    derived from it; ``_edge_ids`` only remembers the id each child's parent
    edge was given so exported documents keep stable edge ids.
    """

    def __init__(
        self,
        tasks: Mapping[str, Task] | None = None,
        positions: Mapping[str, Position] | None = None,
        edge_ids: Mapping[str, str] | None = None,
        config: BoardConfig | None = None,
        palette: tuple[str, ...] = PALETTE,
    ):
        self.config = config or BoardConfig()
        self.palette = palette
        self._tasks: dict[str, Task] = dict(tasks or {})
        self._positions: dict[str, Position] = dict(positions or {})
        self._edge_ids: dict[str, str] = dict(edge_ids or {})
        self.selected_id: str | None = None
        self.focused_id: str | None = None
        self.revision = 0
        self._snapshot: BoardSnapshot | None = None
        self._listeners: list[Callable[[Board], None]] = []

    @classmethod
    def default(cls, config: BoardConfig | None = None) -> Board:
        """A fresh board with a single example project."""
        board = cls(config=config)
        root = board.add_task("Project Map", position=(0.0, 0.0))
        board.update_task(root, {
            "status": TaskStatus.IN_PROGRESS,
            "progress": 35,
            "due_date": today_iso(7),
            "next_steps": "Define key objectives",
            "notes": "First roadmap draft",
        })
        board.selected_id = None
        return board

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def tasks(self) -> Mapping[str, Task]:
        return MappingProxyType(self._tasks)

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def title_of(self, task_id: str) -> str | None:
        task = self._tasks.get(task_id)
        return task.title if task else None

    def position(self, task_id: str) -> Position:
        return self._positions.get(task_id, (0.0, 0.0))

    @property
    def edges(self) -> tuple[Edge, ...]:
        return self.snapshot().edges

    def edge_id_for(self, child_id: str) -> str | None:
        task = self._tasks.get(child_id)
        if task is None or task.parent_id is None or task.parent_id not in self._tasks:
            return None
        return self._edge_ids.setdefault(child_id, _edge_id(task.parent_id, child_id))

    def snapshot(self) -> BoardSnapshot:
        """Frozen copy of the current state, built once per revision."""
        if self._snapshot is None or self._snapshot.revision != self.revision:
            tasks = MappingProxyType(dict(self._tasks))
            edges = []
            for tid, task in tasks.items():
                edge_id = self.edge_id_for(tid)
                if edge_id is not None:
                    edges.append(Edge(id=edge_id, source=task.parent_id, target=tid))  # type: ignore[arg-type]
            self._snapshot = BoardSnapshot(
                revision=self.revision,
                tasks=tasks,
                edges=tuple(edges),
                forest=Forest(tasks),
            )
        return self._snapshot

    def resolved_scheme(self, task_id: str) -> str | None:
        return resolve_scheme(self._tasks, task_id, self.palette)

    def stats(self, now: datetime | None = None) -> BoardStats:
        return board_stats(self._tasks, now, self.config.soon_window_hours)

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[Board], None]) -> None:
        self._listeners.append(listener)

    def _changed(self) -> None:
        self.revision += 1
        for listener in self._listeners:
            listener(self)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def generate_id(self) -> str:
        """Generate the next T-N id."""
        existing = [
            int(k.split("-")[1]) for k in self._tasks
            if k.startswith("T-") and k.split("-")[1].isdigit()
        ]
        next_num = max(existing, default=0) + 1
        return f"T-{next_num}"

    def add_task(
        self,
        title: str,
        parent_id: str | None = None,
        position: Position | None = None,
    ) -> str:
        """Create a pending task, as a root or under *parent_id*, and select it."""
        title = _clean_title(title)
        if parent_id is not None and parent_id not in self._tasks:
            raise ValueError(f"Parent task {parent_id} not found")

        # children keep no scheme of their own and inherit their parent's
        scheme = next_root_scheme(self._tasks, self.palette) if parent_id is None else None

        tid = self.generate_id()
        self._tasks[tid] = Task(
            id=tid,
            title=title,
            parent_id=parent_id,
            width=self.config.default_width,
            height=self.config.default_height,
            color_scheme=scheme,
        )
        if position is None:
            if parent_id is not None:
                px, py = self.position(parent_id)
                position = (px + CHILD_OFFSET[0], py + CHILD_OFFSET[1])
            else:
                position = ((random.random() - 0.5) * 400, (random.random() - 0.5) * 200)
        self._positions[tid] = position
        if parent_id is not None:
            self._edge_ids[tid] = _edge_id(parent_id, tid)
        self.selected_id = tid
        log.debug("Added task %s (%s) under %s", tid, title, parent_id)
        self._changed()
        return tid

    def update_task(self, task_id: str, changes: Mapping[str, object]) -> bool:
        """Merge *changes* into a task. Unknown ids are ignored.

        Status and progress go through the synchronizer and the new progress
        is rolled up the ancestor chain.
        """
        task = self._tasks.get(task_id)
        if task is None:
            log.debug("Ignoring update of unknown task %s", task_id)
            return False

        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        merged = dict(changes)
        if "title" in merged:
            merged["title"] = _clean_title(str(merged["title"]))
        if "due_date" in merged:
            merged["due_date"] = merged["due_date"] or None
        if "width" in merged:
            merged["width"] = max(self.config.min_width, int(merged["width"]))  # type: ignore[arg-type]
        if "height" in merged:
            merged["height"] = max(self.config.min_height, int(merged["height"]))  # type: ignore[arg-type]

        touches_progress = "status" in merged or "progress" in merged
        if touches_progress:
            merged = synchronize(task, merged)

        self._tasks[task_id] = replace(task, **merged)
        if touches_progress:
            propagate(self._tasks, task_id)
        self._changed()
        return True

    def remove_task_subtree(self, task_id: str) -> set[str]:
        """Delete a task with all of its descendants and their edges.

        Returns the removed ids (empty for an unknown id). Selection and the
        focused task are cleared if they were removed.
        """
        if task_id not in self._tasks:
            log.debug("Ignoring removal of unknown task %s", task_id)
            return set()

        removed = Forest(self._tasks).subtree(task_id)
        for tid in removed:
            del self._tasks[tid]
            self._positions.pop(tid, None)
            self._edge_ids.pop(tid, None)

        if self.selected_id in removed:
            self.selected_id = None
        if self.focused_id in removed:
            self.focused_id = None
        log.debug("Removed %d task(s) under %s", len(removed), task_id)
        self._changed()
        return removed

    def connect(self, source_id: str, target_id: str) -> str | None:
        """Make *target_id* a child of *source_id*.

        Unknown ids are ignored. A link that would make a task its own
        ancestor raises HierarchyCycleError and changes nothing. The moved
        subtree drops its own color schemes and inherits the new parent's.
        """
        if source_id not in self._tasks or target_id not in self._tasks:
            log.debug("Ignoring connect %s -> %s: unknown task", source_id, target_id)
            return None

        forest = Forest(self._tasks)
        moved = forest.subtree(target_id)
        if source_id in moved:
            raise HierarchyCycleError(
                f"Connecting {source_id} -> {target_id} would make {target_id} its own ancestor"
            )

        target = self._tasks[target_id]
        if target.parent_id == source_id:
            return self.edge_id_for(target_id)

        self._tasks[target_id] = replace(target, parent_id=source_id)
        for tid in moved:
            self._tasks[tid] = replace(self._tasks[tid], color_scheme=None)
        edge_id = _edge_id(source_id, target_id)
        self._edge_ids[target_id] = edge_id
        log.debug("Re-parented %s under %s", target_id, source_id)
        self._changed()
        return edge_id

    def resize(self, task_id: str, width: float, height: float) -> bool:
        return self.update_task(task_id, {"width": width, "height": height})

    def move(self, task_id: str, x: float, y: float) -> bool:
        if task_id not in self._tasks:
            return False
        self._positions[task_id] = (float(x), float(y))
        self._changed()
        return True

    def toggle_collapse(self, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None:
            return False
        return self.update_task(task_id, {"collapsed": not task.collapsed})

    def toggle_focus(self, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None:
            return False
        return self.update_task(task_id, {"in_focus": not task.in_focus})

    def select(self, task_id: str | None) -> None:
        self.selected_id = task_id if task_id in self._tasks else None

    def focus_on(self, task_id: str | None) -> None:
        self.focused_id = task_id if task_id in self._tasks else None


def _clean_title(title: str) -> str:
    title = title.strip()
    if not title:
        raise ValueError("Task title must not be empty")
    return title


def _edge_id(source: str, target: str) -> str:
    return f"{source}->{target}"
