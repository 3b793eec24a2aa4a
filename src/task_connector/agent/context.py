"""Per-iteration cancellation and deadline handling."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from task_connector.agent.errors import ExecutionError, TaskCancelledError, TaskTimeoutError


@dataclass(slots=True)
class IterationContext:
    """Cancellation token handed down from the poller to task handlers.

    Checks are cooperative: handlers call ``check()`` at safe points (before
    connecting, after the statement returns, between rows).
    """

    cancel_event: threading.Event = field(default_factory=threading.Event)
    timeout_seconds: float | None = None
    clock: Callable[[], float] = time.monotonic
    started_at: float | None = None

    def __post_init__(self) -> None:
        if self.started_at is None:
            self.started_at = self.clock()

    @property
    def deadline(self) -> float | None:
        if self.timeout_seconds is None or self.started_at is None:
            return None
        return self.started_at + self.timeout_seconds

    def interruption(self) -> ExecutionError | None:
        """Error ending the iteration, or ``None`` while it may keep running."""

        if self.cancel_event.is_set():
            return TaskCancelledError("Task cancelled: agent shutting down")
        deadline = self.deadline
        if deadline is not None and self.clock() > deadline:
            return TaskTimeoutError(
                f"Task exceeded execution timeout of {self.timeout_seconds:g} seconds",
            )
        return None

    def check(self) -> None:
        """Raise if the iteration was cancelled or ran out of time."""

        error = self.interruption()
        if error is not None:
            raise error
