"""
Job loops and the scheduler that owns them.

Every task gets its own daemon thread running a JobLoop: compute the next
fire instant, wait for it on a stop event, run the command, repeat. The
Scheduler keeps one JobHandle per loop and replaces the whole set on reload.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional

from chronsync.config import Configuration, Task
from chronsync.executor import ExecutionResult, execute

logger = logging.getLogger(__name__)

UTC = timezone.utc

Executor = Callable[..., ExecutionResult]


class JobLoop:
    """Compute -> wait -> run cycle for a single task."""

    def __init__(self, task: Task, stop_event: threading.Event, executor: Executor = execute) -> None:
        self.task = task
        self.stop_event = stop_event
        self.executor = executor

    def run(self) -> None:
        name = self.task.name
        while not self.stop_event.is_set():
            now = datetime.now(tz=UTC)
            next_fire = self.task.schedule.next_after(now)
            if next_fire is None:
                logger.warning("[%s] Schedule ended or failed to calculate next time.", name)
                return
            logger.debug("[%s] Next run at %s", name, next_fire.isoformat())
            if self._wait_until(next_fire):
                logger.debug("[%s] Job loop cancelled while waiting.", name)
                return
            self._run_once()

    def _wait_until(self, instant: datetime) -> bool:
        while True:
            remaining = (instant - datetime.now(tz=UTC)).total_seconds()
            if remaining <= 0:
                return self.stop_event.is_set()
            if self.stop_event.wait(remaining):
                return True

    def _run_once(self) -> None:
        task = self.task
        try:
            self.executor(
                task.name,
                task.command,
                task.args,
                task.timeout,
                task.webhook_url,
                task.cwd,
                task.env,
            )
        except Exception:
            logger.exception("[%s] Unexpected error while executing task.", task.name)


class JobHandle:
    """Cancellable ownership token for one running JobLoop."""

    def __init__(self, name: str, thread: threading.Thread, stop_event: threading.Event) -> None:
        self.name = name
        self._thread = thread
        self._stop_event = stop_event

    @property
    def cancelled(self) -> bool:
        return self._stop_event.is_set()

    @property
    def done(self) -> bool:
        return not self._thread.is_alive()

    def cancel(self) -> None:
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        self._thread.join(timeout=timeout)
        return self.done


class Scheduler:
    def __init__(self, executor: Executor = execute) -> None:
        self._executor = executor
        self._handles: List[JobHandle] = []
        self._lock = threading.Lock()

    @property
    def active_count(self) -> int:
        with self._lock:
            return sum(1 for handle in self._handles if not handle.done)

    def handles(self) -> List[JobHandle]:
        with self._lock:
            return list(self._handles)

    def reload(self, configuration: Configuration) -> None:
        """Cancel every running job loop and start one per task in ``configuration``.

        In-flight commands of the cancelled loops are not interrupted; they run
        to completion or timeout, but their loops never fire again.
        """
        with self._lock:
            logger.info("[Scheduler] Stopping %s existing tasks...", len(self._handles))
            for handle in self._handles:
                handle.cancel()
            self._handles = []

            logger.info(
                "[Scheduler] Existing tasks stopped. Registering %s new tasks...",
                len(configuration.tasks),
            )
            for task in configuration.tasks:
                self._handles.append(self._register(task))

    def _register(self, task: Task) -> JobHandle:
        logger.info("[Scheduler] Registering task '%s' with schedule: %s", task.name, task.schedule)
        stop_event = threading.Event()
        loop = JobLoop(task, stop_event, executor=self._executor)
        thread = threading.Thread(target=loop.run, daemon=True, name=f"chronsync-job-{task.name}")
        thread.start()
        return JobHandle(task.name, thread, stop_event)
