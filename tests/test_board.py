import pytest

from mindweave.board import Board
from mindweave.hierarchy import HierarchyCycleError
from mindweave.models import TaskStatus


def _assert_forest(board: Board):
    snap = board.snapshot()
    pairs = sorted((e.source, e.target) for e in snap.edges)
    expected = sorted((t.parent_id, tid) for tid, t in snap.tasks.items() if t.parent_id)
    assert pairs == expected
    for tid in snap.tasks:
        assert tid not in snap.forest.ancestors(tid)


def test_add_task_defaults_and_selection():
    board = Board()
    tid = board.add_task("Plan trip")
    t = board.tasks[tid]
    assert t.status == TaskStatus.PENDING
    assert t.progress == 0
    assert t.parent_id is None
    assert (t.width, t.height) == (280, 200)
    assert board.selected_id == tid


def test_add_child_creates_edge_and_position():
    board = Board()
    root = board.add_task("Root", position=(10.0, 20.0))
    child = board.add_task("Child", root)
    assert [(e.source, e.target) for e in board.edges] == [(root, child)]
    assert board.position(child) == (230.0, 80.0)
    _assert_forest(board)


def test_add_task_rejects_empty_title_and_unknown_parent():
    board = Board()
    with pytest.raises(ValueError):
        board.add_task("   ")
    with pytest.raises(ValueError):
        board.add_task("Orphan", "T-99")


def test_update_unknown_task_is_noop():
    board = Board()
    board.add_task("Only")
    before = board.revision
    assert board.update_task("T-42", {"title": "x"}) is False
    assert board.revision == before


def test_update_rejects_hierarchy_fields():
    board = Board()
    tid = board.add_task("Only")
    with pytest.raises(ValueError):
        board.update_task(tid, {"parent_id": None})


def test_cascading_delete_clears_selection():
    board = Board()
    a = board.add_task("A")
    b = board.add_task("B", a)
    c = board.add_task("C", b)
    d = board.add_task("D", a)
    other = board.add_task("Other")
    board.add_task("Other child", other)
    board.select(c)
    board.focus_on(d)

    removed = board.remove_task_subtree(a)

    assert removed == {a, b, c, d}
    assert set(board.tasks) == {other, "T-6"}
    assert all(e.source not in removed and e.target not in removed for e in board.edges)
    assert board.selected_id is None
    assert board.focused_id is None
    _assert_forest(board)


def test_delete_unknown_task_is_noop():
    board = Board()
    board.add_task("A")
    assert board.remove_task_subtree("missing") == set()
    assert len(board) == 1


def test_connect_reparents_and_keeps_single_edge():
    board = Board()
    a = board.add_task("A")
    b = board.add_task("B")
    c = board.add_task("C", a)
    edge_id = board.connect(b, c)
    assert edge_id is not None
    assert board.tasks[c].parent_id == b
    assert [(e.source, e.target) for e in board.edges] == [(b, c)]
    assert board.tasks[c].color_scheme is None
    assert board.resolved_scheme(c) == board.resolved_scheme(b)
    _assert_forest(board)


def test_connect_refuses_cycles():
    board = Board()
    a = board.add_task("A")
    b = board.add_task("B", a)
    c = board.add_task("C", b)
    with pytest.raises(HierarchyCycleError):
        board.connect(c, a)
    with pytest.raises(HierarchyCycleError):
        board.connect(a, a)
    assert board.tasks[a].parent_id is None
    _assert_forest(board)


def test_connect_unknown_ids_is_noop():
    board = Board()
    a = board.add_task("A")
    assert board.connect(a, "missing") is None
    assert board.connect("missing", a) is None
    assert board.edges == ()


def test_resize_is_bounded_to_minimum():
    board = Board()
    tid = board.add_task("Box")
    board.resize(tid, 100, 500)
    assert (board.tasks[tid].width, board.tasks[tid].height) == (250, 500)
    board.resize(tid, 400, 10)
    assert (board.tasks[tid].width, board.tasks[tid].height) == (400, 180)


def test_toggles_flip_flags():
    board = Board()
    tid = board.add_task("Box")
    board.toggle_collapse(tid)
    board.toggle_focus(tid)
    assert board.tasks[tid].collapsed is True
    assert board.tasks[tid].in_focus is True
    board.toggle_collapse(tid)
    assert board.tasks[tid].collapsed is False
    assert board.toggle_focus("missing") is False


def test_snapshot_is_immutable_view():
    board = Board()
    tid = board.add_task("Box")
    snap = board.snapshot()
    board.update_task(tid, {"title": "Renamed"})
    assert snap.tasks[tid].title == "Box"
    assert board.snapshot().tasks[tid].title == "Renamed"
    with pytest.raises(TypeError):
        snap.tasks["x"] = snap.tasks[tid]  # type: ignore[index]


def test_default_board_has_one_project():
    board = Board.default()
    assert len(board) == 1
    (task,) = board.tasks.values()
    assert task.title == "Project Map"
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.progress == 35
    assert board.selected_id is None


def test_stats_counts():
    board = Board()
    a = board.add_task("A")
    b = board.add_task("B")
    board.update_task(a, {"status": "done"})
    board.toggle_focus(b)
    s = board.stats()
    assert s.total_tasks == 2
    assert s.completed_tasks == 1
    assert s.completion_rate == 50
    assert s.focused == 1
