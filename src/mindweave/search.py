"""Free-text and facet search producing a set of matching task ids."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

from mindweave.dates import is_overdue
from mindweave.models import Task, TaskStatus


@dataclass(frozen=True)
class SearchFilters:
    """Facets ANDed with the text term.

    ``has_due_date`` and ``overdue`` are tri-state: None means "don't care".
    """

    statuses: frozenset[TaskStatus] = field(default_factory=frozenset)
    has_due_date: bool | None = None
    overdue: bool | None = None

    @property
    def active(self) -> bool:
        return bool(self.statuses) or self.has_due_date is not None or self.overdue is not None

    @classmethod
    def of(
        cls,
        statuses: Iterable[str | TaskStatus] = (),
        has_due_date: bool | None = None,
        overdue: bool | None = None,
    ) -> SearchFilters:
        return cls(
            statuses=frozenset(TaskStatus.parse(str(s)) for s in statuses),
            has_due_date=has_due_date,
            overdue=overdue,
        )


NO_FILTERS = SearchFilters()


def _matches_text(task: Task, needle: str) -> bool:
    for text in (task.title, task.notes, task.next_steps):
        if text and needle in text.lower():
            return True
    return False


def matches(task: Task, term: str, filters: SearchFilters, now: datetime) -> bool:
    needle = term.strip().lower()
    if needle and not _matches_text(task, needle):
        return False
    if filters.statuses and task.status not in filters.statuses:
        return False
    if filters.has_due_date is not None and bool(task.due_date) != filters.has_due_date:
        return False
    if filters.overdue is not None and is_overdue(task, now) != filters.overdue:
        return False
    return True


def search(
    tasks: Mapping[str, Task],
    term: str = "",
    filters: SearchFilters = NO_FILTERS,
    now: datetime | None = None,
) -> frozenset[str]:
    """Ids of tasks matching *term* and every active facet.

    An empty term with no active facet means "no search" and yields an empty
    set.
    """
    if not term.strip() and not filters.active:
        return frozenset()
    now = now or datetime.now()
    return frozenset(tid for tid, task in tasks.items() if matches(task, term, filters, now))
