from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol


class ScheduledTask(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Run a callback once after ``delay`` seconds."""

    def schedule(self, delay: float, callback: Callable[[], object]) -> ScheduledTask: ...


class ThreadingScheduler:
    """:class:`threading.Timer` backed scheduler; timers run as daemon threads."""

    def schedule(self, delay: float, callback: Callable[[], object]) -> ScheduledTask:
        timer = threading.Timer(max(delay, 0.0), callback)
        timer.daemon = True
        timer.start()
        return timer
