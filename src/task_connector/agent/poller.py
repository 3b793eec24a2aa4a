"""Polling loop: fetch, dispatch, execute and report on a fixed schedule."""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from task_connector.agent.context import IterationContext
from task_connector.agent.dispatcher import TaskDispatcher
from task_connector.agent.errors import AgentError
from task_connector.agent.fetcher import TaskFetcher
from task_connector.agent.models import (
    IterationOutcome,
    IterationStatus,
    PollerRunSummary,
    ResponseEnvelope,
)
from task_connector.agent.reporter import ResponseReporter

logger = logging.getLogger(__name__)

_SLEEP_SLICE_SECONDS = 0.1


class Poller:
    """Drives one task execution per tick, never more than one at a time.

    The first iteration runs immediately, then one per ``interval_seconds``
    measured from the loop start. Ticks that fire while an iteration is still
    running are skipped, not queued.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        fetcher: TaskFetcher,
        dispatcher: TaskDispatcher,
        reporter: ResponseReporter,
        interval_seconds: float,
        task_timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.fetcher = fetcher
        self.dispatcher = dispatcher
        self.reporter = reporter
        self.interval_seconds = interval_seconds
        self.task_timeout_seconds = task_timeout_seconds
        self.clock = clock
        self.sleep = sleep
        self._in_flight = threading.Lock()
        self._cancel_event = threading.Event()
        self._stop_requested = False
        self._stop_signal_name: str | None = None

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def run_iteration(self) -> IterationOutcome:
        """Run one fetch -> dispatch -> report cycle unless one is in flight."""

        if not self._in_flight.acquire(blocking=False):
            logger.warning("Previous iteration still running, skipping tick")
            return IterationOutcome(status=IterationStatus.SKIPPED)
        try:
            return self._iterate()
        finally:
            self._in_flight.release()

    def run_loop(self, *, max_iterations: int | None = None) -> PollerRunSummary:
        """Poll until stopped or ``max_iterations`` iterations have run."""

        summary = PollerRunSummary()
        with self._signal_handlers():
            started_at = self.clock()
            tick = 0
            while not self._stop_requested:
                summary.record(self.run_iteration())
                if max_iterations is not None and summary.iterations >= max_iterations:
                    return summary
                if self._stop_requested:
                    return summary

                tick += 1
                next_tick_at = started_at + tick * self.interval_seconds
                now = self.clock()
                if now > next_tick_at:
                    missed = int((now - next_tick_at) // self.interval_seconds) + 1
                    tick += missed
                    next_tick_at = started_at + tick * self.interval_seconds
                    summary.skipped_ticks += missed
                    logger.warning(
                        "Iteration overran the poll interval, skipped %d tick(s)",
                        missed,
                    )
                self._sleep_until(next_tick_at)
        return summary

    def request_stop(self, *, signal_name: str = "manual") -> None:
        """Stop after the current iteration and cancel the running task."""

        if not self._stop_requested:
            logger.info("Stop requested (%s)", signal_name)
        self._stop_requested = True
        self._stop_signal_name = signal_name
        self._cancel_event.set()

    def _iterate(self) -> IterationOutcome:
        context = IterationContext(
            cancel_event=self._cancel_event,
            timeout_seconds=self.task_timeout_seconds,
            clock=self.clock,
        )
        task_id: str | None = None
        try:
            fetched = self.fetcher.fetch()
            if fetched.task is None:
                return IterationOutcome(status=IterationStatus.NO_TASK)
            task_id = fetched.task.task_id
            response = self.dispatcher.dispatch(fetched.task, context)
        except AgentError as error:
            logger.warning("Iteration failed (task=%s): %s", task_id, error)
            return self._fail(task_id=task_id, message=str(error))
        except Exception as error:  # noqa: BLE001
            logger.exception("Unexpected error during iteration (task=%s)", task_id)
            return self._fail(task_id=task_id, message=f"Unexpected error: {error}")

        reported = self._report(response)
        logger.info("Task %s succeeded", task_id)
        return IterationOutcome(
            status=IterationStatus.SUCCEEDED,
            task_id=task_id,
            reported=reported,
        )

    def _fail(self, *, task_id: str | None, message: str) -> IterationOutcome:
        reported = self._report(ResponseEnvelope.error(message))
        return IterationOutcome(
            status=IterationStatus.FAILED,
            task_id=task_id,
            error=message,
            reported=reported,
        )

    def _report(self, envelope: ResponseEnvelope) -> bool:
        try:
            return self.reporter.report_safely(envelope)
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error reporting %s response", envelope.kind.value)
            return False

    def _sleep_until(self, deadline: float) -> None:
        while not self._stop_requested and self.clock() < deadline:
            self.sleep(min(_SLEEP_SLICE_SECONDS, max(0.0, deadline - self.clock())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(signal_name=name)

        installed = False
        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
            installed = True
        except ValueError:
            # Signal handlers can only be installed in main thread.
            pass
        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)
