"""Deterministic stand-in for the client's timer scheduler."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class ManualTask:
    delay: float
    callback: Callable[[], object]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Record scheduled callbacks; tests fire them explicitly with :meth:`run_pending`."""

    def __init__(self) -> None:
        self.tasks: list[ManualTask] = []

    def schedule(self, delay: float, callback: Callable[[], object]) -> ManualTask:
        task = ManualTask(delay=delay, callback=callback)
        self.tasks.append(task)
        return task

    @property
    def pending(self) -> list[ManualTask]:
        return [t for t in self.tasks if not t.cancelled]

    @property
    def last(self) -> ManualTask | None:
        pending = self.pending
        return pending[-1] if pending else None

    def run_pending(self) -> int:
        """Fire every live task once (as a timer would) and return how many ran."""
        ran = 0
        for task in list(self.pending):
            task.cancelled = True
            task.callback()
            ran += 1
        return ran
