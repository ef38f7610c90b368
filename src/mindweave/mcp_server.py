"""MCP server for mindweave: exposes the task board to AI assistants."""

from __future__ import annotations

import json
import logging
import sys

from mcp.server.fastmcp import FastMCP

from mindweave.hierarchy import HierarchyCycleError
from mindweave.models import Task, TaskStatus
from mindweave.persistence import DocumentFormatError, Store
from mindweave.search import SearchFilters
from mindweave.session import BoardSession, RenderModel

log = logging.getLogger(__name__)

mcp = FastMCP(
    "mindweave",
    instructions="""\
mindweave is a hierarchical task board (a mind map of projects). Root tasks are \
projects; every other task has exactly one parent. Tasks have a status (pending, \
in_progress, done), a progress percentage, an optional due date, notes and next steps.

Key behaviors:
- **Status and progress are coupled**: setting status done sets progress to 100; \
setting progress to 100 marks the task done; lowering progress of a done task reopens it.
- **Progress rolls up**: a parent's progress is the rounded average of its children.
- **Views**: overview shows projects only; project shows one project's subtree; focus \
shows tasks on the focus list plus their ancestors.
- **Collapse** hides a task's subtasks; an active search re-opens branches that lead \
to matches.
- **connect** moves a task (with its subtasks) under a new parent; it refuses to create \
a cycle.

Use get_view to see what is on screen, search_tasks to find tasks, and get_task for \
details on a single task.\
""",
)


def _open() -> BoardSession:
    return BoardSession.open(Store(), autosave=False)


def _task_to_dict(session: BoardSession, t: Task) -> dict:
    """Convert a task to a JSON-friendly dict with its derived fields."""
    d = t.to_dict()
    d["resolvedColorScheme"] = session.board.resolved_scheme(t.id)
    d["children"] = session.board.snapshot().forest.children(t.id)
    return d


def _model_to_dict(model: RenderModel) -> dict:
    return {
        "mode": model.view.mode.value,
        "projectId": model.view.current_project_id,
        "breadcrumbs": [{"id": c.id, "title": c.title} for c in model.view.breadcrumbs],
        "searchActive": model.search_active,
        "focusId": model.focused_id,
        "nodes": [
            {
                "id": n.id,
                "title": n.task.title,
                "status": n.task.status.value,
                "progress": n.task.progress,
                "dueDate": n.task.due_date,
                "parentId": n.task.parent_id,
                "highlight": n.highlight,
                "hiddenDescendants": n.hidden_descendants,
                "searchMatch": n.search_match,
                "inFocus": n.in_focus,
                "colorScheme": n.color_scheme,
            }
            for n in model.nodes
        ],
        "edges": [
            {"id": e.id, "source": e.source, "target": e.target, "colorScheme": e.color_scheme}
            for e in model.edges
        ],
    }


def _save(session: BoardSession) -> str | None:
    if not session.save():
        return "Error: could not write the board."
    return None


# ---------------------------------------------------------------------------
# Write tools
# ---------------------------------------------------------------------------


@mcp.tool()
def add_task(
    title: str,
    parent_id: str | None = None,
    due_date: str | None = None,
    notes: str | None = None,
    next_steps: str | None = None,
) -> str:
    """Add a project (no parent) or a subtask.

    Args:
        title: Task title
        parent_id: Parent task ID (e.g. "T-3"); omit to create a project
        due_date: Due date (YYYY-MM-DD)
        notes: Free-form notes
        next_steps: Next steps for the task
    """
    session = _open()
    if parent_id is not None and parent_id not in session.board:
        return f"Error: parent task {parent_id} not found."
    try:
        tid = session.add_task(title, parent_id)
    except ValueError as e:
        return f"Error: {e}"
    extra = {"due_date": due_date, "notes": notes, "next_steps": next_steps}
    extra = {k: v for k, v in extra.items() if v is not None}
    if extra:
        session.update_task(tid, extra)
    return _save(session) or f"Added '{title.strip()}' as {tid}"


@mcp.tool()
def update_task(
    task_id: str,
    title: str | None = None,
    status: str | None = None,
    progress: int | None = None,
    due_date: str | None = None,
    notes: str | None = None,
    next_steps: str | None = None,
) -> str:
    """Update fields of an existing task. Only provided fields are changed.

    Args:
        task_id: Task ID (e.g. "T-5")
        title: New title
        status: pending, in_progress or done
        progress: Progress 0-100
        due_date: New due date (YYYY-MM-DD); empty string clears it
        notes: New notes
        next_steps: New next steps
    """
    session = _open()
    if task_id not in session.board:
        return f"Error: task {task_id} not found."

    changes: dict[str, object] = {}
    if title is not None:
        changes["title"] = title
    if status is not None:
        try:
            changes["status"] = TaskStatus.parse(status)
        except ValueError:
            return f"Error: invalid status '{status}'."
    if progress is not None:
        changes["progress"] = progress
    if due_date is not None:
        changes["due_date"] = due_date or None
    if notes is not None:
        changes["notes"] = notes
    if next_steps is not None:
        changes["next_steps"] = next_steps

    try:
        session.update_task(task_id, changes)
    except ValueError as e:
        return f"Error: {e}"
    t = session.board.tasks[task_id]
    return _save(session) or f"Updated {task_id}: {t.status.value}, {t.progress}%."


@mcp.tool()
def delete_task(task_id: str) -> str:
    """Delete a task together with all of its subtasks.

    Args:
        task_id: Task ID to delete (e.g. "T-5")
    """
    session = _open()
    if task_id not in session.board:
        return f"Error: task {task_id} not found."
    removed = session.remove_task(task_id)
    return _save(session) or f"Deleted {len(removed)} task(s): {', '.join(sorted(removed))}."


@mcp.tool()
def connect_tasks(source_id: str, target_id: str) -> str:
    """Move a task (with its subtasks) under a new parent.

    Args:
        source_id: The new parent
        target_id: The task to move
    """
    session = _open()
    for tid in (source_id, target_id):
        if tid not in session.board:
            return f"Error: task {tid} not found."
    try:
        session.connect(source_id, target_id)
    except HierarchyCycleError as e:
        return f"Error: {e}"
    return _save(session) or f"{target_id} is now a subtask of {source_id}."


@mcp.tool()
def toggle_collapse(task_id: str) -> str:
    """Collapse or expand the subtasks of a task."""
    session = _open()
    if not session.toggle_collapse(task_id):
        return f"Error: task {task_id} not found."
    state = "collapsed" if session.board.tasks[task_id].collapsed else "expanded"
    return _save(session) or f"{task_id} {state}."


@mcp.tool()
def toggle_focus(task_id: str) -> str:
    """Add a task to, or remove it from, the focus list."""
    session = _open()
    if not session.toggle_focus(task_id):
        return f"Error: task {task_id} not found."
    state = "added to" if session.board.tasks[task_id].in_focus else "removed from"
    return _save(session) or f"{task_id} {state} the focus list."


@mcp.tool()
def import_board(document: str) -> str:
    """Replace the whole board with an exported JSON document.

    Args:
        document: The JSON text produced by export_board
    """
    session = _open()
    try:
        session.import_json(document)
    except DocumentFormatError as e:
        return f"Error: {e}"
    return f"Imported {len(session.board)} task(s)."


# ---------------------------------------------------------------------------
# Read tools
# ---------------------------------------------------------------------------


@mcp.tool()
def get_task(task_id: str) -> str:
    """Get every field of one task, plus its children and resolved color."""
    session = _open()
    t = session.board.get(task_id)
    if t is None:
        return f"Error: task {task_id} not found."
    return json.dumps(_task_to_dict(session, t), indent=2)


@mcp.tool()
def search_tasks(
    term: str = "",
    statuses: list[str] | None = None,
    has_due_date: bool | None = None,
    overdue: bool | None = None,
) -> str:
    """Find tasks by text (title, notes, next steps) and facets.

    Args:
        term: Case-insensitive text to look for
        statuses: Only tasks with one of these statuses
        has_due_date: True for tasks with a due date, False for tasks without
        overdue: True for overdue tasks, False for tasks that are not overdue
    """
    session = _open()
    try:
        filters = SearchFilters.of(statuses or [], has_due_date, overdue)
    except ValueError as e:
        return f"Error: {e}"
    session.set_search(term, filters)
    session.flush()
    found = [session.board.tasks[tid] for tid in session.board.tasks if tid in session.search_results]
    return json.dumps([_task_to_dict(session, t) for t in found], indent=2)


@mcp.tool()
def get_view(
    mode: str = "overview",
    project_id: str | None = None,
    search: str = "",
    focus_id: str | None = None,
) -> str:
    """The visible nodes and edges for a view, as the board would draw them.

    Args:
        mode: overview, project or focus
        project_id: Project task ID, required for mode=project
        search: Optional search term; opens collapsed branches leading to matches
        focus_id: Optional task ID; limits the view to that task and its subtasks
    """
    session = _open()
    if focus_id is not None:
        if focus_id not in session.board:
            return f"Error: task {focus_id} not found."
        session.focus_on(focus_id)
    if mode == "project":
        if not project_id or not session.navigate_to_project(project_id):
            return f"Error: project {project_id} not found."
    elif mode == "focus":
        session.navigate_to_focus_mode()
    elif mode != "overview":
        return f"Error: unknown mode '{mode}'."
    if search.strip():
        session.set_search(search)
        session.flush()
    return json.dumps(_model_to_dict(session.render()), indent=2)


@mcp.tool()
def get_stats() -> str:
    """Task counts, completion rate and due-date alerts."""
    s = _open().stats()
    return json.dumps(
        {
            "total_tasks": s.total_tasks,
            "completed_tasks": s.completed_tasks,
            "in_progress_tasks": s.in_progress_tasks,
            "pending_tasks": s.pending_tasks,
            "completion_rate": s.completion_rate,
            "overdue": s.overdue,
            "due_soon": s.due_soon,
            "focused": s.focused,
        },
        indent=2,
    )


@mcp.tool()
def export_board() -> str:
    """Export the whole board as a JSON document."""
    return _open().export_json()


def main():
    """Entry point for the MCP server."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    log.info("Starting mindweave MCP server")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
