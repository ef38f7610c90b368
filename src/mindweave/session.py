"""One editing session: board, navigation, search, selection and autosave.

The session is the single writer. Mutations run synchronously; the only
asynchronous pieces are the search and save debounces, whose timers fire on
worker threads. Every session operation and both timer callbacks hold the
session lock, so a debounced write or search never sees a half-applied
mutation. The render model handed to the drawing layer is derived from one
board snapshot and cached until something it depends on changes.
"""

from __future__ import annotations

import enum
import functools
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from mindweave.board import Board, BoardStats, Position
from mindweave.dates import highlight
from mindweave.debounce import Debouncer
from mindweave.models import BoardConfig, Task, ViewMode, ViewState
from mindweave.navigation import Navigator
from mindweave.palette import resolve_all
from mindweave.persistence import MemoryKeyValueStore, Store
from mindweave.search import NO_FILTERS, SearchFilters, search
from mindweave.visibility import Visibility, resolve

log = logging.getLogger(__name__)

NEW_TASK_TITLE = "New task"
NEW_SUBTASK_TITLE = "New subtask"


class SaveStatus(enum.StrEnum):
    IDLE = "idle"
    PENDING = "pending"
    SAVED = "saved"
    ERROR = "error"


@dataclass(frozen=True)
class NodeActions:
    """Callbacks bound to one node, for the renderer's buttons."""

    add_child: Callable[[], str]
    toggle_collapse: Callable[[], bool]
    toggle_focus: Callable[[], bool]
    focus: Callable[[], None]
    open_project: Callable[[], bool]
    delete: Callable[[], set[str]]


@dataclass(frozen=True)
class RenderNode:
    id: str
    position: Position
    width: int
    height: int
    task: Task
    highlight: str | None
    hidden_descendants: int | None
    search_match: bool
    in_focus: bool
    selected: bool
    color_scheme: str | None
    actions: NodeActions = field(compare=False, repr=False)


@dataclass(frozen=True)
class RenderEdge:
    id: str
    source: str
    target: str
    color_scheme: str | None


@dataclass(frozen=True)
class RenderModel:
    nodes: tuple[RenderNode, ...]
    edges: tuple[RenderEdge, ...]
    view: ViewState
    search_active: bool
    visibility: Visibility
    focused_id: str | None = None

    def node(self, task_id: str) -> RenderNode | None:
        for n in self.nodes:
            if n.id == task_id:
                return n
        return None


def _serialized(method):
    """Run a session method while holding the session lock."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.lock:
            return method(self, *args, **kwargs)

    return wrapper


class BoardSession:
    def __init__(
        self,
        board: Board | None = None,
        store: Store | None = None,
        config: BoardConfig | None = None,
        autosave: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store if store is not None else Store(MemoryKeyValueStore())
        self.config = config or (board.config if board is not None else BoardConfig())
        self.board = board if board is not None else Board.default(self.config)
        self.clock = clock
        self.autosave = autosave
        self.lock = threading.RLock()
        self.navigator = Navigator(lambda tid: self.board.title_of(tid))

        self.search_term = ""
        self.search_filters: SearchFilters = NO_FILTERS
        self.search_results: frozenset[str] = frozenset()
        self._search_revision = 0

        self.save_status = SaveStatus.IDLE
        self.last_saved_at: datetime | None = None
        self._save_debounce = Debouncer(self.config.save_debounce_ms, self._write, name="autosave")
        self._search_debounce = Debouncer(self.config.search_debounce_ms, self.run_search, name="search")

        self._render_key: tuple | None = None
        self._render: RenderModel | None = None
        self.board.subscribe(self._on_board_change)

    @classmethod
    def open(cls, store: Store | None = None, autosave: bool = True) -> BoardSession:
        """Load the stored board (or a default one) and report due dates."""
        store = store if store is not None else Store()
        config = store.load_config()
        session = cls(board=store.load(config), store=store, config=config, autosave=autosave)
        session.report_due_dates()
        return session

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _on_board_change(self, board: Board) -> None:
        if self.search_term.strip() or self.search_filters.active:
            self._search_debounce.trigger()
        if self.autosave:
            self.save_status = SaveStatus.PENDING
            self._save_debounce.trigger()

    @_serialized
    def _write(self) -> None:
        if self.store.save(self.board):
            self.save_status = SaveStatus.SAVED
            self.last_saved_at = self.clock()
        else:
            # the next mutation re-arms the debounce and retries
            self.save_status = SaveStatus.ERROR

    @_serialized
    def save(self) -> bool:
        """Write immediately, dropping any pending debounced write."""
        self._save_debounce.cancel()
        self._write()
        return self.save_status == SaveStatus.SAVED

    @_serialized
    def flush(self) -> None:
        """Run pending debounced work now."""
        self._search_debounce.flush()
        self._save_debounce.flush()

    @_serialized
    def close(self) -> None:
        self._search_debounce.cancel()
        self._save_debounce.flush()

    @_serialized
    def export_json(self) -> str:
        return self.store.export_json(self.board)

    @_serialized
    def import_json(self, text: str | bytes) -> None:
        """Replace the board with an imported document.

        Raises DocumentFormatError and keeps the current board on bad input.
        """
        board = self.store.import_json(text, self.config)
        self.board = board
        board.subscribe(self._on_board_change)
        self.navigator.reset()
        self.clear_search()
        self.save()
        log.info("Imported %d task(s)", len(board))

    def report_due_dates(self) -> BoardStats:
        stats = self.stats()
        if stats.overdue:
            log.warning("Overdue tasks: %d", stats.overdue)
        if stats.due_soon:
            log.info("Tasks due soon: %d", stats.due_soon)
        return stats

    @_serialized
    def stats(self) -> BoardStats:
        return self.board.stats(self.clock())

    # ------------------------------------------------------------------
    # Task operations
    # ------------------------------------------------------------------

    @property
    def selected_id(self) -> str | None:
        return self.board.selected_id

    @property
    def focused_id(self) -> str | None:
        return self.board.focused_id

    @_serialized
    def add_task(self, title: str = NEW_TASK_TITLE, parent_id: str | None = None, position: Position | None = None) -> str:
        return self.board.add_task(title, parent_id, position)

    @_serialized
    def add_child(self, parent_id: str, title: str = NEW_SUBTASK_TITLE) -> str:
        return self.board.add_task(title, parent_id)

    @_serialized
    def update_task(self, task_id: str, changes: dict) -> bool:
        updated = self.board.update_task(task_id, changes)
        if updated and "title" in changes:
            self.navigator.retitle(task_id, self.board.tasks[task_id].title)
        return updated

    @_serialized
    def remove_task(self, task_id: str) -> set[str]:
        removed = self.board.remove_task_subtree(task_id)
        if removed:
            self.navigator.forget(removed)
            if self.search_results & removed:
                self.search_results = self.search_results - removed
                self._search_revision += 1
        return removed

    @_serialized
    def connect(self, source_id: str, target_id: str) -> str | None:
        return self.board.connect(source_id, target_id)

    @_serialized
    def resize(self, task_id: str, width: float, height: float) -> bool:
        return self.board.resize(task_id, width, height)

    @_serialized
    def move(self, task_id: str, x: float, y: float) -> bool:
        return self.board.move(task_id, x, y)

    @_serialized
    def toggle_collapse(self, task_id: str) -> bool:
        return self.board.toggle_collapse(task_id)

    @_serialized
    def toggle_focus(self, task_id: str) -> bool:
        return self.board.toggle_focus(task_id)

    @_serialized
    def select(self, task_id: str | None) -> None:
        self.board.select(task_id)

    @_serialized
    def on_selection_change(self, task_ids: Iterable[str]) -> None:
        """Selection event from the renderer: first selected node or none."""
        self.select(next(iter(task_ids), None))

    @_serialized
    def focus_on(self, task_id: str | None) -> None:
        """Limit the rendered view to *task_id* and its descendants."""
        self.board.focus_on(task_id)

    @_serialized
    def clear_focus(self) -> None:
        self.board.focus_on(None)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    @property
    def view(self) -> ViewState:
        return self.navigator.state

    @_serialized
    def navigate_to_overview(self) -> None:
        self.navigator.navigate_to_overview()

    @_serialized
    def navigate_to_project(self, task_id: str) -> bool:
        return self.navigator.navigate_to_project(task_id)

    @_serialized
    def navigate_to_focus_mode(self) -> None:
        self.navigator.navigate_to_focus_mode()

    @_serialized
    def navigate_to_breadcrumb(self, crumb_id: str) -> bool:
        return self.navigator.navigate_to_breadcrumb(crumb_id)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    @_serialized
    def set_search(self, term: str | None = None, filters: SearchFilters | None = None) -> None:
        """Change the term and/or facets; results follow after the debounce."""
        if term is not None:
            self.search_term = term
        if filters is not None:
            self.search_filters = filters
        self._search_debounce.trigger()

    @_serialized
    def run_search(self) -> frozenset[str]:
        results = search(self.board.snapshot().tasks, self.search_term, self.search_filters, self.clock())
        if results != self.search_results:
            self.search_results = results
            self._search_revision += 1
        return results

    @_serialized
    def clear_search(self) -> None:
        self._search_debounce.cancel()
        self.search_term = ""
        self.search_filters = NO_FILTERS
        if self.search_results:
            self.search_results = frozenset()
            self._search_revision += 1

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    @_serialized
    def visibility(self) -> Visibility:
        return self._resolve()

    def _resolve(self) -> Visibility:
        snap = self.board.snapshot()
        return resolve(
            snap.tasks,
            snap.edges,
            self.view,
            self.search_results,
            snap.forest,
            focus_id=self.board.focused_id,
        )

    @_serialized
    def render(self) -> RenderModel:
        """Visible nodes and edges with everything the renderer draws."""
        key = (
            self.board.revision,
            self.navigator.revision,
            self._search_revision,
            self.board.selected_id,
            self.board.focused_id,
            id(self.board),
        )
        if self._render is None or self._render_key != key:
            self._render = self._build_render()
            self._render_key = key
        return self._render

    def _build_render(self) -> RenderModel:
        snap = self.board.snapshot()
        now = self.clock()
        vis = self._resolve()
        schemes = resolve_all(snap.tasks, self.board.palette, snap.forest)
        window = self.config.soon_window_hours

        nodes = []
        for tid, task in snap.tasks.items():
            if tid not in vis.task_ids:
                continue
            nodes.append(RenderNode(
                id=tid,
                position=self.board.position(tid),
                width=task.width,
                height=task.height,
                task=task,
                highlight=highlight(task, now, window),
                hidden_descendants=vis.hidden_descendant_count(tid),
                search_match=tid in self.search_results,
                in_focus=task.in_focus,
                selected=tid == self.board.selected_id,
                color_scheme=schemes.get(tid),
                actions=self._actions(tid),
            ))
        edges = tuple(
            RenderEdge(id=e.id, source=e.source, target=e.target, color_scheme=schemes.get(e.source))
            for e in vis.edges
        )
        return RenderModel(
            nodes=tuple(nodes),
            edges=edges,
            view=self.view,
            search_active=bool(self.search_results),
            visibility=vis,
            focused_id=self.board.focused_id,
        )

    def _actions(self, task_id: str) -> NodeActions:
        return NodeActions(
            add_child=functools.partial(self.add_child, task_id),
            toggle_collapse=functools.partial(self.toggle_collapse, task_id),
            toggle_focus=functools.partial(self.toggle_focus, task_id),
            focus=functools.partial(self.focus_on, task_id),
            open_project=functools.partial(self.navigate_to_project, task_id),
            delete=functools.partial(self.remove_task, task_id),
        )

    @property
    def mode(self) -> ViewMode:
        return self.navigator.mode
