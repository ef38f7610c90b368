"""Typer CLI for mindweave."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from mindweave.dates import highlight
from mindweave.hierarchy import HierarchyCycleError
from mindweave.models import TaskStatus
from mindweave.palette import scheme_colors
from mindweave.persistence import DocumentFormatError, FileKeyValueStore, Store
from mindweave.search import SearchFilters
from mindweave.session import BoardSession, RenderModel, RenderNode

app = typer.Typer(
    name="mindweave",
    help="Hierarchical task board: projects, subtasks, progress and focus lists.",
    no_args_is_help=True,
)
console = Console()

_home: Path | None = None

STATUS_STYLE = {
    TaskStatus.PENDING: "dim",
    TaskStatus.IN_PROGRESS: "yellow",
    TaskStatus.DONE: "green",
}


@app.callback()
def main(
    home: Annotated[Optional[Path], typer.Option("--home", help="Storage directory (default: $MINDWEAVE_HOME or ./.mindweave)")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    global _home
    _home = home
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _get_store() -> Store:
    return Store(FileKeyValueStore(_home))


def _open() -> BoardSession:
    # Each command is one short session; writes happen explicitly via _save.
    return BoardSession.open(_get_store(), autosave=False)


def _save(session: BoardSession) -> None:
    if not session.save():
        console.print("[red]Could not write the board; see log output.[/red]")
        raise typer.Exit(1)


def _complete_task_id(incomplete: str) -> list[str]:
    """Shell completion for task IDs. Matches against both ID and title."""
    board = _get_store().load()
    q = incomplete.lower()
    return [
        f"{task.title} ({tid})"
        for tid, task in board.tasks.items()
        if q in tid.lower() or q in task.title.lower()
    ]


def _parse_task_id(task_id_arg: str) -> str:
    """Extract the ID if the autocompleted 'Title (ID)' form was used."""
    if "(" in task_id_arg and task_id_arg.endswith(")"):
        return task_id_arg.split("(")[-1].strip(")")
    return task_id_arg.strip()


def _require_task(session: BoardSession, task_id: str) -> str:
    task_id = _parse_task_id(task_id)
    if task_id not in session.board:
        console.print(f"[red]Task {task_id} not found.[/red]")
        raise typer.Exit(1)
    return task_id


def _parse_status(value: str) -> TaskStatus:
    try:
        return TaskStatus.parse(value)
    except ValueError:
        valid = ", ".join(s.value for s in TaskStatus)
        console.print(f"[red]Invalid status '{value}'. Valid statuses: {valid}[/red]")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Editing commands
# ---------------------------------------------------------------------------


@app.command()
def add(
    title: str,
    parent: Annotated[Optional[str], typer.Option("--parent", "-p", help="Parent task ID", autocompletion=_complete_task_id)] = None,
    due: Annotated[Optional[str], typer.Option("--due", help="Due date (YYYY-MM-DD)")] = None,
    notes: Annotated[Optional[str], typer.Option(help="Free-form notes")] = None,
    next_steps: Annotated[Optional[str], typer.Option("--next", help="Next steps")] = None,
) -> None:
    """Add a project (root task) or, with --parent, a subtask."""
    session = _open()
    parent_id = _require_task(session, parent) if parent else None
    try:
        tid = session.add_task(title, parent_id)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    extra = {"due_date": due, "notes": notes, "next_steps": next_steps}
    extra = {k: v for k, v in extra.items() if v is not None}
    if extra:
        session.update_task(tid, extra)
    _save(session)
    where = f" under {parent_id}" if parent_id else ""
    console.print(f"[green]Added '{title.strip()}' as {tid}{where}[/green]")


@app.command()
def update(
    task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)],
    title: Annotated[Optional[str], typer.Option(help="New title")] = None,
    status: Annotated[Optional[str], typer.Option("--status", "-s", help="pending, in_progress or done")] = None,
    progress: Annotated[Optional[int], typer.Option("--progress", help="Progress 0-100")] = None,
    due: Annotated[Optional[str], typer.Option("--due", help="Due date (YYYY-MM-DD); empty string clears it")] = None,
    notes: Annotated[Optional[str], typer.Option(help="Replace notes")] = None,
    next_steps: Annotated[Optional[str], typer.Option("--next", help="Replace next steps")] = None,
) -> None:
    """Update fields of an existing task.

    Status and progress stay consistent (done means 100%) and parent
    progress is recomputed from the children.
    """
    session = _open()
    task_id = _require_task(session, task_id)

    changes: dict[str, object] = {}
    if title is not None:
        changes["title"] = title
    if status is not None:
        changes["status"] = _parse_status(status)
    if progress is not None:
        changes["progress"] = progress
    if due is not None:
        changes["due_date"] = due or None
    if notes is not None:
        changes["notes"] = notes
    if next_steps is not None:
        changes["next_steps"] = next_steps
    if not changes:
        console.print("[yellow]Nothing to update.[/yellow]")
        return

    try:
        session.update_task(task_id, changes)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    _save(session)
    t = session.board.tasks[task_id]
    console.print(f"[green]Updated {task_id}: {t.status.value}, {t.progress}%[/green]")


@app.command()
def delete(task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)]) -> None:
    """Delete a task together with all of its subtasks."""
    session = _open()
    task_id = _require_task(session, task_id)
    removed = session.remove_task(task_id)
    _save(session)
    console.print(f"[green]Deleted {task_id} ({len(removed)} task(s) removed).[/green]")


@app.command()
def connect(
    source: Annotated[str, typer.Argument(help="New parent", autocompletion=_complete_task_id)],
    target: Annotated[str, typer.Argument(help="Task to move under the parent", autocompletion=_complete_task_id)],
) -> None:
    """Move TARGET (and its subtasks) under SOURCE."""
    session = _open()
    source = _require_task(session, source)
    target = _require_task(session, target)
    try:
        session.connect(source, target)
    except HierarchyCycleError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    _save(session)
    console.print(f"[green]{target} is now a subtask of {source}.[/green]")


@app.command()
def collapse(task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)]) -> None:
    """Collapse or expand a task's subtasks."""
    session = _open()
    task_id = _require_task(session, task_id)
    session.toggle_collapse(task_id)
    _save(session)
    state = "collapsed" if session.board.tasks[task_id].collapsed else "expanded"
    console.print(f"[green]{task_id} {state}.[/green]")


@app.command()
def focus(task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)]) -> None:
    """Add a task to, or remove it from, the focus list."""
    session = _open()
    task_id = _require_task(session, task_id)
    session.toggle_focus(task_id)
    _save(session)
    state = "added to" if session.board.tasks[task_id].in_focus else "removed from"
    console.print(f"[green]{task_id} {state} the focus list.[/green]")


@app.command()
def resize(
    task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)],
    width: int,
    height: int,
) -> None:
    """Set a node's size (never below the minimum size)."""
    session = _open()
    task_id = _require_task(session, task_id)
    session.resize(task_id, width, height)
    _save(session)
    t = session.board.tasks[task_id]
    console.print(f"[green]{task_id} is now {t.width}x{t.height}.[/green]")


# ---------------------------------------------------------------------------
# Viewing commands
# ---------------------------------------------------------------------------


@app.command("list")
def list_tasks(
    status_filter: Annotated[Optional[list[str]], typer.Option("--status", "-s", help="Only these statuses")] = None,
    search_term: Annotated[Optional[str], typer.Option("--search", "-q", help="Text in title, notes or next steps")] = None,
    overdue: Annotated[Optional[bool], typer.Option("--overdue/--not-overdue", help="Filter by overdue")] = None,
    has_due: Annotated[Optional[bool], typer.Option("--has-due/--no-due", help="Filter by having a due date")] = None,
) -> None:
    """List all tasks in a table."""
    session = _open()
    board = session.board
    if not len(board):
        console.print("No tasks found.")
        return

    filters = SearchFilters.of([_parse_status(s) for s in status_filter or []], has_due, overdue)
    ids: list[str] = list(board.tasks)
    if (search_term or "").strip() or filters.active:
        session.set_search(search_term or "", filters)
        session.flush()
        ids = [tid for tid in ids if tid in session.search_results]
    if not ids:
        console.print("No tasks match the filter.")
        return

    now = session.clock()
    table = Table(title="Tasks")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Parent")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Due")
    table.add_column("Flags")

    for tid in ids:
        t = board.tasks[tid]
        flags = []
        mark = highlight(t, now, session.config.soon_window_hours)
        style = None
        if mark == "overdue":
            flags.append("OVERDUE")
            style = "bold red"
        elif mark == "soon":
            flags.append("SOON")
            style = "yellow"
        if t.in_focus:
            flags.append("FOCUS")
        if t.collapsed:
            flags.append("COLLAPSED")
        table.add_row(
            tid,
            t.title,
            t.parent_id or "-",
            t.status.value,
            f"{t.progress}%",
            t.due_date or "-",
            " | ".join(flags),
            style=style,
        )
    console.print(table)
    if len(ids) != len(board):
        console.print(f"[dim]Showing {len(ids)} of {len(board)} tasks[/dim]")


def _build_view(
    project: str | None,
    focus_mode: bool,
    search_term: str | None,
    status_filter: list[str] | None,
    overdue: bool | None,
) -> tuple[BoardSession, RenderModel]:
    session = _open()
    if project and focus_mode:
        console.print("[red]Use either --project or --focus, not both.[/red]")
        raise typer.Exit(1)
    if project:
        session.navigate_to_project(_require_task(session, project))
    elif focus_mode:
        session.navigate_to_focus_mode()
    filters = SearchFilters.of([_parse_status(s) for s in status_filter or []], overdue=overdue)
    if (search_term or "").strip() or filters.active:
        session.set_search(search_term or "", filters)
        session.flush()
    return session, session.render()


def _node_label(node: RenderNode) -> str:
    t = node.task
    style = STATUS_STYLE[t.status]
    label = f"[bold]{node.id}[/bold] [{style}]{t.title}[/{style}]  {t.progress}%"
    if t.due_date:
        label += f"  due {t.due_date}"
    if node.highlight == "overdue":
        label += "  [bold red]OVERDUE[/bold red]"
    elif node.highlight == "soon":
        label += "  [yellow]SOON[/yellow]"
    if node.in_focus:
        label += "  [magenta]*focus*[/magenta]"
    if node.search_match:
        label += "  [reverse]match[/reverse]"
    if node.hidden_descendants:
        label += f"  [dim](+{node.hidden_descendants} hidden)[/dim]"
    return label


@app.command()
def tree(
    project: Annotated[Optional[str], typer.Option("--project", "-p", help="Show one project", autocompletion=_complete_task_id)] = None,
    focus_mode: Annotated[bool, typer.Option("--focus", "-f", help="Show the focus list")] = False,
    search_term: Annotated[Optional[str], typer.Option("--search", "-q", help="Open collapsed branches leading to matches")] = None,
    status_filter: Annotated[Optional[list[str]], typer.Option("--status", "-s", help="Status facet for the search")] = None,
    overdue: Annotated[Optional[bool], typer.Option("--overdue/--not-overdue", help="Overdue facet for the search")] = None,
) -> None:
    """Show the visible part of the board as a tree.

    The default view lists projects only; --project drills into one project
    and --focus shows tasks on the focus list with their ancestors.
    """
    session, model = _build_view(project, focus_mode, search_term, status_filter, overdue)
    crumbs = " > ".join(c.title for c in model.view.breadcrumbs) or "Overview"
    if not model.nodes:
        console.print(f"[dim]{crumbs}:[/dim] nothing to show.")
        return

    visible = {n.id: n for n in model.nodes}
    children: dict[str, list[str]] = {}
    roots: list[str] = []
    for node in model.nodes:
        parent = node.task.parent_id
        if parent in visible:
            children.setdefault(parent, []).append(node.id)
        else:
            roots.append(node.id)

    root = Tree(f"[bold]{crumbs}[/bold]")

    def _attach(branch: Tree, tid: str) -> None:
        sub = branch.add(_node_label(visible[tid]))
        for child in children.get(tid, []):
            _attach(sub, child)

    for rid in roots:
        _attach(root, rid)
    console.print(root)


@app.command()
def show(task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)]) -> None:
    """Show all details for a single task."""
    session = _open()
    task_id = _require_task(session, task_id)
    board = session.board
    t = board.tasks[task_id]
    snap = board.snapshot()

    console.print(f"\n[bold]{t.id}[/bold]  {t.title}")
    console.print(f"  Status:     {t.status.value}")
    console.print(f"  Progress:   {t.progress}%")
    console.print(f"  Parent:     {t.parent_id or 'none (project)'}")
    kids = snap.forest.children(task_id)
    console.print(f"  Subtasks:   {', '.join(kids) or 'none'}")
    console.print(f"  Color:      {board.resolved_scheme(task_id)}")
    console.print(f"  Size:       {t.width}x{t.height}")
    console.print(f"  Focus:      {'yes' if t.in_focus else 'no'}")
    if t.collapsed:
        console.print(f"  Collapsed:  yes ({len(snap.forest.descendants(task_id))} hidden)")
    if t.due_date:
        console.print(f"  Due:        {t.due_date}")
    if t.next_steps:
        console.print("\n  [dim]-- Next steps --[/dim]")
        for line in t.next_steps.splitlines():
            console.print(f"  {line}")
    if t.notes:
        console.print("\n  [dim]-- Notes --[/dim]")
        for line in t.notes.splitlines():
            console.print(f"  {line}")
    console.print()


@app.command()
def stats() -> None:
    """Board health: completion, overdue and due-soon counts."""
    session = _open()
    s = session.stats()
    if not s.total_tasks:
        console.print("No tasks found.")
        return

    bar_width = 30
    filled = int(bar_width * s.completion_rate / 100)
    bar = f"[green]{'#' * filled}[/green][dim]{'.' * (bar_width - filled)}[/dim]"

    console.print("\n[bold underline]Board Status[/bold underline]\n")
    console.print(
        f"  Tasks:  [green]{s.completed_tasks} done[/green]  "
        f"[yellow]{s.in_progress_tasks} in progress[/yellow]  "
        f"{s.pending_tasks} pending  ({s.total_tasks} total)"
    )
    console.print(f"  Completed: {bar} {s.completion_rate}%")
    console.print(f"  Focus list: {s.focused} task(s)")
    if s.overdue:
        console.print(f"  [bold red]{s.overdue} task(s) overdue[/bold red]")
    if s.due_soon:
        console.print(f"  [yellow]{s.due_soon} task(s) due soon[/yellow]")
    console.print()


# ---------------------------------------------------------------------------
# Storage commands
# ---------------------------------------------------------------------------


@app.command()
def info() -> None:
    """Show what is stored, including the backup."""
    i = _get_store().info()
    console.print(f"  Data:          {'yes' if i.has_data else 'no'}")
    console.print(f"  Backup:        {'yes' if i.has_backup else 'no'}")
    console.print(f"  Version:       {i.version or '-'}")
    console.print(f"  Last modified: {i.last_modified or '-'}")
    console.print(f"  Tasks:         {i.total_tasks} ({i.completed_tasks} completed)")
    console.print(f"  Size:          {i.storage_size} bytes")


@app.command("export")
def export_board(
    output: Annotated[Optional[str], typer.Option("-o", "--output", help="Output file (default: stdout)")] = None,
) -> None:
    """Export the board as a JSON document."""
    session = _open()
    text = session.export_json()
    if output is None:
        sys.stdout.write(text + "\n")
        return
    Path(output).write_text(text + "\n")
    console.print(f"[green]Exported {len(session.board)} task(s) to {output}[/green]")


@app.command("import")
def import_board(file: Annotated[str, typer.Argument(help="JSON file path, or - for stdin")]) -> None:
    """Replace the board with an exported JSON document."""
    if file == "-":
        raw_text = sys.stdin.read()
    else:
        path = Path(file)
        if not path.exists():
            console.print(f"[red]File not found: {file}[/red]")
            raise typer.Exit(1)
        raw_text = path.read_text()

    session = _open()
    try:
        session.import_json(raw_text)
    except DocumentFormatError as e:
        console.print(f"[red]Import failed: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Imported {len(session.board)} task(s).[/green]")


@app.command()
def clear(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Don't ask for confirmation")] = False,
) -> None:
    """Delete the stored board and its backup."""
    if not yes and not typer.confirm("Delete all stored data?"):
        raise typer.Exit(1)
    _get_store().clear_all()
    console.print("[green]All stored data removed.[/green]")


# ---------------------------------------------------------------------------
# Visualization
# ---------------------------------------------------------------------------


@app.command()
def viz(
    output: Annotated[str, typer.Option("-o", "--output", help="Output file path")] = "mindmap.md",
    project: Annotated[Optional[str], typer.Option("--project", "-p", help="Show one project")] = None,
    focus_mode: Annotated[bool, typer.Option("--focus", "-f", help="Show the focus list")] = False,
) -> None:
    """Generate a Mermaid flowchart of the visible view."""
    _, model = _build_view(project, focus_mode, None, None, None)
    if not model.nodes:
        console.print("No tasks to visualize.")
        return

    lines = ["```mermaid", "flowchart LR"]
    for node in model.nodes:
        label = node.task.title.replace('"', "'")
        extra = f"<br/>+{node.hidden_descendants} hidden" if node.hidden_descendants else ""
        lines.append(f'    {_mermaid_id(node.id)}["{label}<br/>{node.task.progress}%{extra}"]')
    for edge in model.edges:
        lines.append(f"    {_mermaid_id(edge.source)} --> {_mermaid_id(edge.target)}")

    schemes = sorted({n.color_scheme for n in model.nodes if n.color_scheme})
    for scheme in schemes:
        fill, font = scheme_colors(scheme)
        lines.append(f"    classDef {scheme} fill:{fill},stroke:{fill},color:{font}")
        members = [_mermaid_id(n.id) for n in model.nodes if n.color_scheme == scheme]
        lines.append(f"    class {','.join(members)} {scheme}")
    lines.append("    classDef overdue stroke:#d00000,stroke-width:3px")
    overdue_ids = [_mermaid_id(n.id) for n in model.nodes if n.highlight == "overdue"]
    if overdue_ids:
        lines.append(f"    class {','.join(overdue_ids)} overdue")
    lines.append("```")

    Path(output).write_text("\n".join(lines) + "\n")
    console.print(f"[green]Wrote Mermaid diagram to {output}[/green]")


def _mermaid_id(task_id: str) -> str:
    return "n_" + "".join(ch if ch.isalnum() else "_" for ch in task_id)


@app.command()
def viz_html(
    output: Annotated[str, typer.Option("-o", "--output", help="Output file path")] = "mindmap.html",
    project: Annotated[Optional[str], typer.Option("--project", "-p", help="Show one project")] = None,
    focus_mode: Annotated[bool, typer.Option("--focus", "-f", help="Show the focus list")] = False,
) -> None:
    """Generate an interactive PyVis HTML mind map of the visible view."""
    from pyvis.network import Network

    _, model = _build_view(project, focus_mode, None, None, None)
    if not model.nodes:
        console.print("No tasks to visualize.")
        return

    net = Network(height="800px", width="100%", directed=True, notebook=False)
    for node in model.nodes:
        fill, font = scheme_colors(node.color_scheme)
        label = f"{node.task.title}\n{node.task.progress}%"
        if node.hidden_descendants:
            label += f"\n+{node.hidden_descendants} hidden"
        border = "#d00000" if node.highlight == "overdue" else "#f4a261" if node.highlight == "soon" else fill
        x, y = node.position
        net.add_node(
            node.id,
            label=label,
            title=node.task.title,
            color={"background": fill, "border": border},
            borderWidth=3 if node.highlight else 1,
            shape="box",
            x=x,
            y=y,
            font={"color": font, "face": "Helvetica", "size": 14},
        )
    for edge in model.edges:
        net.add_edge(edge.source, edge.target, color=scheme_colors(edge.color_scheme)[0])

    net.set_options("""
    var options = {
      "nodes": {"margin": 10, "widthConstraint": {"maximum": 220}},
      "edges": {
        "smooth": {"type": "cubicBezier", "roundness": 0.4},
        "arrows": {"to": {"enabled": true, "scaleFactor": 0.6}}
      },
      "physics": {"enabled": false},
      "interaction": {"navigationButtons": true, "dragNodes": true, "hover": true}
    }
    """)
    net.save_graph(output)
    console.print(f"[green]Wrote interactive HTML mind map to {output}[/green]")


if __name__ == "__main__":
    app()
