import pytest

from mindweave.board import Board
from mindweave.hierarchy import HierarchyCycleError
from mindweave.models import Task, TaskStatus
from mindweave.progress import propagate, round_half_up, synchronize


def _family():
    board = Board()
    parent = board.add_task("Parent")
    a = board.add_task("A", parent)
    b = board.add_task("B", parent)
    return board, parent, a, b


def test_done_forces_full_progress():
    board = Board()
    tid = board.add_task("Write report")
    board.update_task(tid, {"status": TaskStatus.DONE})
    assert board.tasks[tid].progress == 100


def test_full_progress_marks_done():
    board = Board()
    tid = board.add_task("Write report")
    board.update_task(tid, {"progress": 100})
    assert board.tasks[tid].status == TaskStatus.DONE


def test_lowering_progress_reopens_done_task():
    board = Board()
    tid = board.add_task("Write report")
    board.update_task(tid, {"status": "done"})
    board.update_task(tid, {"progress": 30})
    assert board.tasks[tid].status == TaskStatus.IN_PROGRESS

    board.update_task(tid, {"status": "done"})
    board.update_task(tid, {"progress": 0})
    assert board.tasks[tid].status == TaskStatus.PENDING


def test_starting_progress_moves_pending_to_in_progress():
    board = Board()
    tid = board.add_task("Write report")
    board.update_task(tid, {"progress": 10})
    assert board.tasks[tid].status == TaskStatus.IN_PROGRESS

    # a pending task with leftover progress starts again on a lower value
    board.update_task(tid, {"progress": 50})
    board.update_task(tid, {"status": TaskStatus.PENDING})
    board.update_task(tid, {"progress": 30})
    assert board.tasks[tid].status == TaskStatus.IN_PROGRESS
    assert board.tasks[tid].progress == 30


def test_synchronize_clamps_progress():
    task = Task(id="T-1", title="x")
    assert synchronize(task, {"progress": 140}) == {"progress": 100, "status": TaskStatus.DONE}
    assert synchronize(task, {"progress": -5}) == {"progress": 0}


def test_parent_progress_is_average_of_children():
    board, parent, a, b = _family()
    board.update_task(a, {"progress": 40})
    board.update_task(b, {"progress": 60})
    assert board.tasks[parent].progress == 50
    assert board.tasks[parent].status == TaskStatus.IN_PROGRESS


def test_progress_rolls_up_to_grandparent():
    board = Board()
    grand = board.add_task("Grand")
    parent = board.add_task("Parent", grand)
    a = board.add_task("A", parent)
    b = board.add_task("B", parent)
    board.update_task(a, {"progress": 40})
    board.update_task(b, {"progress": 60})
    assert board.tasks[grand].progress == 50


def test_all_children_done_completes_parent():
    board, parent, a, b = _family()
    board.update_task(a, {"status": "done"})
    board.update_task(b, {"status": "done"})
    assert board.tasks[parent].progress == 100
    assert board.tasks[parent].status == TaskStatus.DONE


def test_average_rounds_half_up():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    board, parent, a, _ = _family()
    board.update_task(a, {"progress": 1})
    assert board.tasks[parent].progress == 1


def test_progress_update_is_idempotent():
    board, parent, a, _ = _family()
    board.update_task(a, {"progress": 70})
    once = dict(board.tasks)
    board.update_task(a, {"progress": 70})
    assert dict(board.tasks) == once


def test_propagation_detects_cycles():
    tasks = {
        "A": Task(id="A", title="A", parent_id="B"),
        "B": Task(id="B", title="B", parent_id="A"),
        "C": Task(id="C", title="C", parent_id="A", progress=90),
    }
    with pytest.raises(HierarchyCycleError):
        propagate(tasks, "C")
