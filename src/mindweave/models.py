"""Task, edge and view-state models."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class TaskStatus(enum.StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @classmethod
    def parse(cls, value: str) -> TaskStatus:
        """Accept current values as well as the legacy Spanish ones."""
        return cls(_LEGACY_STATUS.get(value, value))


_LEGACY_STATUS = {
    "pendiente": "pending",
    "en_progreso": "in_progress",
    "hecho": "done",
}


class ViewMode(enum.StrEnum):
    OVERVIEW = "overview"
    PROJECT = "project"
    FOCUS = "focus"


DEFAULT_WIDTH = 280
DEFAULT_HEIGHT = 200
MIN_WIDTH = 250
MIN_HEIGHT = 180


@dataclass
class BoardConfig:
    """Session-level settings stored next to the board document."""

    search_debounce_ms: int = 300
    save_debounce_ms: int = 1000
    soon_window_hours: int = 48
    default_width: int = DEFAULT_WIDTH
    default_height: int = DEFAULT_HEIGHT
    min_width: int = MIN_WIDTH
    min_height: int = MIN_HEIGHT

    def to_dict(self) -> dict:
        return {
            "search_debounce_ms": self.search_debounce_ms,
            "save_debounce_ms": self.save_debounce_ms,
            "soon_window_hours": self.soon_window_hours,
            "default_width": self.default_width,
            "default_height": self.default_height,
            "min_width": self.min_width,
            "min_height": self.min_height,
        }

    @classmethod
    def from_dict(cls, d: dict) -> BoardConfig:
        return cls(
            search_debounce_ms=d.get("search_debounce_ms", 300),
            save_debounce_ms=d.get("save_debounce_ms", 1000),
            soon_window_hours=d.get("soon_window_hours", 48),
            default_width=d.get("default_width", DEFAULT_WIDTH),
            default_height=d.get("default_height", DEFAULT_HEIGHT),
            min_width=d.get("min_width", MIN_WIDTH),
            min_height=d.get("min_height", MIN_HEIGHT),
        )


@dataclass(frozen=True)
class Task:
    """A single node of the task hierarchy.

    Instances are immutable; the board swaps in ``dataclasses.replace``
    copies so that snapshots handed to the resolvers never change under them.
    """

    id: str
    title: str
    status: TaskStatus = TaskStatus.PENDING
    progress: int = 0
    due_date: str | None = None  # ISO calendar date, YYYY-MM-DD
    next_steps: str | None = None
    notes: str | None = None
    parent_id: str | None = None
    collapsed: bool = False
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    in_focus: bool = False
    color_scheme: str | None = None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "progress": self.progress,
            "parentId": self.parent_id,
            "collapsed": self.collapsed,
            "width": self.width,
            "height": self.height,
            "inFocus": self.in_focus,
        }
        if self.due_date is not None:
            d["dueDate"] = self.due_date
        if self.next_steps is not None:
            d["nextSteps"] = self.next_steps
        if self.notes is not None:
            d["notes"] = self.notes
        if self.color_scheme is not None:
            d["colorScheme"] = self.color_scheme
        return d

    @classmethod
    def from_dict(cls, task_id: str, d: dict) -> Task:
        """Build a task from stored data, holding it to the model's bounds.

        Raises ValueError or TypeError for an empty title or wrongly typed
        fields; progress is clamped to 0..100 and the size to the minimum.
        """
        title = d["title"]
        if not isinstance(title, str) or not title.strip():
            raise ValueError("title must be a non-empty string")
        return cls(
            id=task_id,
            title=title.strip(),
            status=TaskStatus.parse(str(d.get("status", "pending"))),
            progress=max(0, min(100, int(d.get("progress", 0)))),
            due_date=_optional_str(d, "dueDate") or None,
            next_steps=_optional_str(d, "nextSteps"),
            notes=_optional_str(d, "notes"),
            parent_id=_optional_str(d, "parentId") or None,
            collapsed=bool(d.get("collapsed", False)),
            width=max(MIN_WIDTH, int(d.get("width", DEFAULT_WIDTH))),
            height=max(MIN_HEIGHT, int(d.get("height", DEFAULT_HEIGHT))),
            in_focus=bool(d.get("inFocus", False)),
            color_scheme=_optional_str(d, "colorScheme"),
        )


def _optional_str(d: dict, key: str) -> str | None:
    value = d.get(key)
    if value is not None and not isinstance(value, str):
        raise TypeError(f"{key} must be a string, not {type(value).__name__}")
    return value


@dataclass(frozen=True)
class Edge:
    """Directed parent -> child link, derived from ``Task.parent_id``."""

    id: str
    source: str
    target: str


@dataclass(frozen=True)
class Breadcrumb:
    id: str
    title: str


OVERVIEW_CRUMB = Breadcrumb(id="overview", title="Overview")
FOCUS_CRUMB = Breadcrumb(id="focus", title="Focus")


@dataclass
class ViewState:
    """Ephemeral navigation state; never persisted with the board."""

    mode: ViewMode = ViewMode.OVERVIEW
    current_project_id: str | None = None
    breadcrumbs: list[Breadcrumb] = field(default_factory=list)
