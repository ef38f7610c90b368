"""Due-date helpers shared by search, stats and rendering."""

from __future__ import annotations

from datetime import date, datetime, timedelta

from mindweave.models import Task


def today_iso(days_offset: int = 0) -> str:
    return (date.today() + timedelta(days=days_offset)).isoformat()


def due_datetime(due: str | None) -> datetime | None:
    """Local midnight of an ISO due date; None if missing or unparsable."""
    if not due:
        return None
    try:
        return datetime.combine(date.fromisoformat(due[:10]), datetime.min.time())
    except ValueError:
        return None


def is_overdue(task: Task, now: datetime) -> bool:
    due = due_datetime(task.due_date)
    return due is not None and due < now


def is_due_soon(task: Task, now: datetime, window_hours: int = 48) -> bool:
    due = due_datetime(task.due_date)
    return due is not None and now <= due < now + timedelta(hours=window_hours)


def highlight(task: Task, now: datetime, window_hours: int = 48) -> str | None:
    """"overdue", "soon" or None, for the ring drawn around a node."""
    if is_overdue(task, now):
        return "overdue"
    if is_due_soon(task, now, window_hours):
        return "soon"
    return None
