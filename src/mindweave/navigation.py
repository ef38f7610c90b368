"""Overview / project / focus navigation with a breadcrumb trail."""

from __future__ import annotations

import logging
from collections.abc import Callable

from mindweave.models import FOCUS_CRUMB, OVERVIEW_CRUMB, Breadcrumb, ViewMode, ViewState

log = logging.getLogger(__name__)


class Navigator:
    """Owns the session's ViewState and the only transitions allowed on it.

    *title_of* looks a task title up by id and returns None for unknown ids;
    the navigator never touches the task store otherwise.
    """

    def __init__(self, title_of: Callable[[str], str | None]):
        self._title_of = title_of
        self.state = ViewState()
        self.revision = 0

    @property
    def mode(self) -> ViewMode:
        return self.state.mode

    def _set(self, mode: ViewMode, project_id: str | None, crumbs: list[Breadcrumb]) -> None:
        self.state = ViewState(mode=mode, current_project_id=project_id, breadcrumbs=crumbs)
        self.revision += 1

    def navigate_to_overview(self) -> None:
        self._set(ViewMode.OVERVIEW, None, [])

    def navigate_to_project(self, task_id: str) -> bool:
        """Drill into *task_id*. Unknown ids leave the state unchanged."""
        title = self._title_of(task_id)
        if title is None:
            log.debug("Ignoring navigation to unknown project %s", task_id)
            return False
        self._set(ViewMode.PROJECT, task_id, [OVERVIEW_CRUMB, Breadcrumb(id=task_id, title=title)])
        return True

    def navigate_to_focus_mode(self) -> None:
        self._set(ViewMode.FOCUS, None, [FOCUS_CRUMB])

    def navigate_to_breadcrumb(self, crumb_id: str) -> bool:
        if crumb_id == OVERVIEW_CRUMB.id:
            self.navigate_to_overview()
            return True
        if crumb_id == FOCUS_CRUMB.id:
            self.navigate_to_focus_mode()
            return True
        return self.navigate_to_project(crumb_id)

    def reset(self) -> None:
        self.navigate_to_overview()

    def forget(self, removed_ids: set[str]) -> None:
        """Drop back to the overview if the current project was removed."""
        if self.state.current_project_id in removed_ids:
            log.debug("Project %s removed; returning to overview", self.state.current_project_id)
            self.navigate_to_overview()

    def retitle(self, task_id: str, title: str) -> None:
        """Keep the project breadcrumb label in step with a renamed task."""
        if self.state.current_project_id != task_id:
            return
        crumbs = [Breadcrumb(c.id, title) if c.id == task_id else c for c in self.state.breadcrumbs]
        self._set(self.state.mode, task_id, crumbs)
