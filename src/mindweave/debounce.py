"""Cancellable trailing-edge debounce on top of ``threading.Timer``."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

log = logging.getLogger(__name__)


class Debouncer:
    """Run *action* once, *delay_ms* after the last ``trigger()``.

    A new trigger cancels the pending run. ``flush()`` runs a pending action
    right away on the calling thread; ``cancel()`` drops it.
    """

    def __init__(self, delay_ms: int, action: Callable[[], None], name: str = "debounce"):
        self.delay_ms = delay_ms
        self.action = action
        self.name = name
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def trigger(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay_ms / 1000, self._fire)
            self._timer.daemon = True
            self._timer.name = self.name
            self._timer.start()

    def _take(self) -> bool:
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
            return True

    def _fire(self) -> None:
        with self._lock:
            # a superseded timer may still wake up; only the latest one runs
            if self._timer is not threading.current_thread():
                return
            self._timer = None
        log.debug("%s fired", self.name)
        self.action()

    def flush(self) -> bool:
        """Run the pending action now. Returns False if nothing was pending."""
        if not self._take():
            return False
        self.action()
        return True

    def cancel(self) -> None:
        self._take()
