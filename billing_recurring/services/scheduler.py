"""
TaskScheduler -- named periodic tasks, one background thread each.

Contract:
    - ``register_task()`` adds a task to the registry under a lock.  Names
      are unique.  Tasks registered after ``start()`` are kept in the
      registry but never run.
    - ``start()`` spawns one daemon thread per enabled task.
    - Each worker fires on a fixed period measured from start: the first
      call happens one interval after start.  A handler that overruns its
      interval delays the next call but no tick is skipped or coalesced;
      overdue ticks fire back to back.
    - Every call receives a fresh ``TaskContext``.  Handler exceptions are
      logged and the worker waits for its next tick.
    - ``stop()`` sets the shared stop event and joins every worker.  The
      event is only observed between calls, so an in-flight handler runs
      to completion before its worker exits.

Non-goals:
    - No overlap protection between a scheduled call and a manual run.
    - No per-call timeout, retry or backoff.
"""

from __future__ import annotations

import threading
import time
from uuid import uuid4

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import SchedulerAlreadyStartedError, TaskAlreadyRegisteredError
from billing_kernel.logging_config import LogContext, get_logger
from billing_recurring.domain.types import ScheduledTask, TaskContext, TaskHandler

logger = get_logger("recurring.scheduler")


class TaskScheduler:
    """Registry of periodic tasks plus the threads that run them."""

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._tasks: dict[str, ScheduledTask] = {}
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._started = False

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    def register_task(
        self,
        name: str,
        interval_seconds: float,
        handler: TaskHandler,
        enabled: bool = True,
    ) -> ScheduledTask:
        """Add a task to the registry.

        Raises:
            ValueError: If the interval is not positive.
            TaskAlreadyRegisteredError: If the name is taken.
        """
        if interval_seconds <= 0:
            raise ValueError(f"Task interval must be positive, got {interval_seconds}")

        task = ScheduledTask(
            name=name,
            interval_seconds=interval_seconds,
            handler=handler,
            enabled=enabled,
        )
        with self._lock:
            if name in self._tasks:
                raise TaskAlreadyRegisteredError(name)
            self._tasks[name] = task
            started = self._started

        if started:
            logger.warning(
                "task_registered_after_start",
                extra={"task_name": name, "interval_seconds": interval_seconds},
            )
        else:
            logger.info(
                "task_registered",
                extra={
                    "task_name": name,
                    "interval_seconds": interval_seconds,
                    "enabled": enabled,
                },
            )
        return task

    @property
    def tasks(self) -> tuple[ScheduledTask, ...]:
        with self._lock:
            return tuple(self._tasks.values())

    @property
    def is_running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Spawn one worker per enabled task.

        Raises:
            SchedulerAlreadyStartedError: If already started.
        """
        with self._lock:
            if self._started:
                raise SchedulerAlreadyStartedError()
            self._started = True
            runnable = [t for t in self._tasks.values() if t.enabled]

        self._stop_event.clear()
        for task in runnable:
            thread = threading.Thread(
                target=self._run_worker,
                args=(task,),
                name=f"recurring-task-{task.name}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

        logger.info(
            "scheduler_started",
            extra={"workers": len(runnable), "tasks": [t.name for t in runnable]},
        )

    def stop(self, timeout: float | None = None) -> None:
        """Signal every worker and wait for all of them to exit.

        Args:
            timeout: Max seconds to wait per worker; None waits indefinitely.
        """
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=timeout)

        alive = [t.name for t in self._threads if t.is_alive()]
        if alive:
            logger.warning("scheduler_stop_timed_out", extra={"workers": alive})
        else:
            logger.info("scheduler_stopped", extra={"workers": len(self._threads)})

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------

    def _run_worker(self, task: ScheduledTask) -> None:
        """Fixed-period loop for one task. Exits when the stop event is set."""
        next_fire = time.monotonic() + task.interval_seconds
        tick = 0
        while True:
            delay = next_fire - time.monotonic()
            if self._stop_event.wait(timeout=max(0.0, delay)):
                break

            tick += 1
            context = TaskContext(task_name=task.name, tick=tick, fired_at=self._clock.now())
            with LogContext.bind(task_name=task.name, correlation_id=uuid4()):
                try:
                    task.handler(context)
                except Exception:
                    logger.exception("scheduled_task_failed", extra={"tick": tick})

            next_fire += task.interval_seconds

        logger.debug("task_worker_exited", extra={"task_name": task.name, "ticks": tick})
