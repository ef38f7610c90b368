import json
import time
from datetime import datetime

import pytest

from mindweave.board import Board
from mindweave.models import BoardConfig, TaskStatus, ViewMode
from mindweave.persistence import STORAGE_KEY, DocumentFormatError, MemoryKeyValueStore, Store
from mindweave.session import BoardSession, SaveStatus

NOW = datetime(2026, 3, 10, 12, 0)

# Long enough that no timer fires while a test runs; tests flush explicitly.
SLOW = BoardConfig(save_debounce_ms=60_000, search_debounce_ms=60_000)


class FailingKeyValueStore(MemoryKeyValueStore):
    def set(self, key: str, value: bytes) -> None:
        raise OSError("disk full")


class FlakyKeyValueStore(MemoryKeyValueStore):
    """Fails the first write, then behaves."""

    def __init__(self) -> None:
        super().__init__()
        self.failures = 1

    def set(self, key: str, value: bytes) -> None:
        if self.failures:
            self.failures -= 1
            raise OSError("disk busy")
        super().set(key, value)


def _session(kv=None, autosave=True) -> BoardSession:
    kv = kv if kv is not None else MemoryKeyValueStore()
    return BoardSession(
        board=Board(config=SLOW),
        store=Store(kv),
        config=SLOW,
        autosave=autosave,
        clock=lambda: NOW,
    )


def test_open_empty_store_starts_with_default_project():
    session = BoardSession.open(Store(MemoryKeyValueStore()), autosave=False)
    assert len(session.board) == 1
    assert session.mode == ViewMode.OVERVIEW


def test_render_overview_shows_projects_with_highlights():
    session = _session(autosave=False)
    late = session.add_task("Late")
    session.update_task(late, {"due_date": "2026-03-01"})
    soon = session.add_task("Soon")
    session.update_task(soon, {"due_date": "2026-03-11"})
    later = session.add_task("Later")
    session.update_task(later, {"due_date": "2026-03-20"})
    session.add_child(late, "Hidden in overview")

    model = session.render()
    assert [n.id for n in model.nodes] == [late, soon, later]
    assert model.node(late).highlight == "overdue"
    assert model.node(soon).highlight == "soon"
    assert model.node(later).highlight is None
    assert model.edges == ()


def test_render_project_view():
    session = _session(autosave=False)
    root = session.add_task("Root")
    child = session.add_child(root)
    session.toggle_collapse(root)
    assert session.navigate_to_project(root)

    model = session.render()
    assert [n.id for n in model.nodes] == [root]
    assert model.node(root).hidden_descendants == 1
    assert model.node(root).color_scheme == "blue"

    session.toggle_collapse(root)
    model = session.render()
    assert {n.id for n in model.nodes} == {root, child}
    assert [(e.source, e.target, e.color_scheme) for e in model.edges] == [(root, child, "blue")]


def test_render_is_cached_until_something_changes():
    session = _session(autosave=False)
    session.add_task("Root")
    first = session.render()
    assert session.render() is first
    session.add_task("Another")
    assert session.render() is not first


def test_node_actions_mutate_the_board():
    session = _session(autosave=False)
    root = session.add_task("Root")
    node = session.render().node(root)
    child = node.actions.add_child()
    assert session.board.tasks[child].parent_id == root
    node.actions.toggle_focus()
    assert session.board.tasks[root].in_focus
    assert node.actions.open_project()
    assert session.view.current_project_id == root


def test_selection_events():
    session = _session(autosave=False)
    a = session.add_task("A")
    b = session.add_task("B")
    session.on_selection_change([a, b])
    assert session.selected_id == a
    assert session.render().node(a).selected
    session.on_selection_change([])
    assert session.selected_id is None


def test_removing_current_project_returns_to_overview():
    session = _session(autosave=False)
    root = session.add_task("Root")
    child = session.add_child(root)
    session.navigate_to_project(root)
    session.select(child)
    session.remove_task(root)
    assert session.mode == ViewMode.OVERVIEW
    assert session.selected_id is None
    assert len(session.board) == 0


def test_renaming_project_updates_breadcrumb():
    session = _session(autosave=False)
    root = session.add_task("Root")
    session.navigate_to_project(root)
    session.update_task(root, {"title": "Renamed"})
    assert session.view.breadcrumbs[-1].title == "Renamed"


def test_search_is_debounced():
    session = _session(autosave=False)
    root = session.add_task("Quarterly report")
    session.add_task("Other")
    session.set_search("report")
    assert session.search_results == frozenset()
    session.flush()
    assert session.search_results == {root}
    assert session.render().node(root).search_match


def test_search_reruns_after_edits():
    session = _session(autosave=False)
    root = session.add_task("Root")
    session.set_search("needle")
    session.flush()
    assert session.search_results == frozenset()
    session.update_task(root, {"notes": "a needle in here"})
    session.flush()
    assert session.search_results == {root}


def test_search_opens_collapsed_branches():
    session = _session(autosave=False)
    root = session.add_task("Root")
    child = session.add_child(root, "Find me")
    session.toggle_collapse(root)
    session.navigate_to_project(root)
    session.set_search("find")
    session.flush()
    assert {n.id for n in session.render().nodes} == {root, child}
    session.clear_search()
    assert {n.id for n in session.render().nodes} == {root}


def test_autosave_writes_after_flush():
    kv = MemoryKeyValueStore()
    session = _session(kv)
    session.add_task("Root")
    assert session.save_status == SaveStatus.PENDING
    assert kv.get(STORAGE_KEY) is None
    session.flush()
    assert session.save_status == SaveStatus.SAVED
    assert session.last_saved_at == NOW
    assert len(json.loads(kv.get(STORAGE_KEY))["tasks"]) == 1


def test_autosave_failure_sets_error_status():
    session = _session(FailingKeyValueStore())
    root = session.add_task("Root")
    session.flush()
    assert session.save_status == SaveStatus.ERROR
    assert root in session.board


def test_import_replaces_board_and_resets_view():
    session = _session(autosave=False)
    root = session.add_task("Old")
    session.navigate_to_project(root)
    other = _session(autosave=False)
    other.add_task("New A")
    other.add_task("New B")

    session.import_json(other.export_json())
    assert [t.title for t in session.board.tasks.values()] == ["New A", "New B"]
    assert session.mode == ViewMode.OVERVIEW
    assert session.save_status == SaveStatus.SAVED


def test_bad_import_keeps_board():
    session = _session(autosave=False)
    session.add_task("Keep me")
    board = session.board
    with pytest.raises(DocumentFormatError):
        session.import_json('{"nodes": []}')
    assert session.board is board


def test_stats_use_session_clock():
    session = _session(autosave=False)
    a = session.add_task("A")
    session.update_task(a, {"due_date": "2026-03-01"})
    b = session.add_task("B")
    session.update_task(b, {"status": TaskStatus.DONE})
    s = session.stats()
    assert s.overdue == 1
    assert s.completed_tasks == 1


def test_failed_autosave_is_retried_by_next_mutation():
    kv = FlakyKeyValueStore()
    session = _session(kv)
    root = session.add_task("Root")
    session.flush()
    assert session.save_status == SaveStatus.ERROR
    assert kv.get(STORAGE_KEY) is None

    session.update_task(root, {"notes": "try again"})
    assert session.save_status == SaveStatus.PENDING
    session.flush()
    assert session.save_status == SaveStatus.SAVED
    saved = json.loads(kv.get(STORAGE_KEY))
    assert saved["tasks"][root]["notes"] == "try again"


def test_debounced_save_waits_for_the_session_lock():
    fast = BoardConfig(save_debounce_ms=10, search_debounce_ms=10)
    kv = MemoryKeyValueStore()
    session = BoardSession(board=Board(config=fast), store=Store(kv), config=fast, clock=lambda: NOW)

    with session.lock:
        session.add_task("Root")
        time.sleep(0.1)
        # the timer has fired but cannot write while a mutation holds the lock
        assert kv.get(STORAGE_KEY) is None
        assert session.save_status == SaveStatus.PENDING

    deadline = time.monotonic() + 5
    while session.save_status != SaveStatus.SAVED and time.monotonic() < deadline:
        time.sleep(0.01)
    assert session.save_status == SaveStatus.SAVED
    assert len(json.loads(kv.get(STORAGE_KEY))["tasks"]) == 1


def test_focus_action_limits_render_to_subtree():
    session = _session(autosave=False)
    a = session.add_task("A")
    b = session.add_task("B")
    assert {n.id for n in session.render().nodes} == {a, b}

    session.render().node(a).actions.focus()
    model = session.render()
    assert model.focused_id == a
    assert {n.id for n in model.nodes} == {a}

    session.clear_focus()
    assert {n.id for n in session.render().nodes} == {a, b}


def test_focus_keeps_descendants_in_project_view():
    session = _session(autosave=False)
    root = session.add_task("Root")
    left = session.add_child(root, "Left")
    leaf = session.add_child(left, "Leaf")
    session.add_child(root, "Right")
    session.navigate_to_project(root)
    session.focus_on(left)
    model = session.render()
    assert {n.id for n in model.nodes} == {left, leaf}
    assert [(e.source, e.target) for e in model.edges] == [(left, leaf)]
