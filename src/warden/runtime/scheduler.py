"""Named periodic tasks on the session's event loop.

Every timer in Warden (watchdog sweep, per-instance telemetry polls) is a
named ``PeriodicTask`` owned by one ``PeriodicScheduler``. Tasks are
started and cancelled explicitly, tied to the lifecycle of the instance
or session they serve, so no timer outlives its owner.

A failing iteration is logged and the loop carries on. After
``BACKOFF_AFTER_FAILURES`` consecutive failures the delay doubles per
failure up to ``MAX_BACKOFF_SECONDS`` to avoid log spam.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from warden.core.logging import get_logger

_logger = get_logger("scheduler")

TaskFn = Callable[[], Awaitable[None]]


@dataclass
class PeriodicTask:
    """Bookkeeping for one named periodic task."""

    name: str
    interval: float
    func: TaskFn
    run_immediately: bool = True
    runs: int = 0
    consecutive_failures: int = 0
    last_error: str | None = None
    task: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def alive(self) -> bool:
        return self.task is not None and not self.task.done()


class PeriodicScheduler:
    """Owns and supervises named periodic asyncio tasks."""

    BACKOFF_AFTER_FAILURES = 5
    MAX_BACKOFF_SECONDS = 300.0

    def __init__(self) -> None:
        self._tasks: dict[str, PeriodicTask] = {}
        self._closed = False

    @property
    def names(self) -> list[str]:
        return sorted(self._tasks)

    def get(self, name: str) -> PeriodicTask | None:
        return self._tasks.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def add(
        self,
        name: str,
        interval: float,
        func: TaskFn,
        *,
        run_immediately: bool = True,
    ) -> PeriodicTask:
        """Start ``func`` every ``interval`` seconds under ``name``.

        An existing task with the same name is cancelled and replaced.
        Must be called from within the running event loop.
        """
        if self._closed:
            raise RuntimeError("scheduler is shut down")
        self.cancel(name)
        entry = PeriodicTask(
            name=name, interval=interval, func=func, run_immediately=run_immediately,
        )
        entry.task = asyncio.create_task(self._loop(entry), name=f"warden:{name}")
        entry.task.add_done_callback(self._on_task_done)
        self._tasks[name] = entry
        _logger.debug("scheduler.task_added", task=name, interval=interval)
        return entry

    def cancel(self, name: str) -> bool:
        """Cancel one task. Returns False if no such task was running."""
        entry = self._tasks.pop(name, None)
        if entry is None:
            return False
        if entry.task is not None:
            entry.task.cancel()
        _logger.debug("scheduler.task_cancelled", task=name)
        return True

    def cancel_prefix(self, prefix: str) -> int:
        """Cancel every task whose name starts with ``prefix``."""
        matching = [name for name in self._tasks if name.startswith(prefix)]
        for name in matching:
            self.cancel(name)
        return len(matching)

    async def shutdown(self) -> None:
        """Cancel all tasks and wait for them to finish."""
        self._closed = True
        pending = [e.task for e in self._tasks.values() if e.task is not None]
        self._tasks.clear()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        _logger.info("scheduler.shutdown", cancelled=len(pending))

    def _next_delay(self, entry: PeriodicTask) -> float:
        excess = entry.consecutive_failures - self.BACKOFF_AFTER_FAILURES
        if excess < 0:
            return entry.interval
        return min(entry.interval * (2 ** excess), self.MAX_BACKOFF_SECONDS)

    async def _loop(self, entry: PeriodicTask) -> None:
        if not entry.run_immediately:
            await asyncio.sleep(entry.interval)
        while True:
            try:
                await entry.func()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                entry.consecutive_failures += 1
                entry.last_error = str(e) or type(e).__name__
                _logger.exception(
                    "scheduler.iteration_failed",
                    task=entry.name,
                    consecutive_failures=entry.consecutive_failures,
                )
            else:
                entry.runs += 1
                if entry.consecutive_failures:
                    _logger.info(
                        "scheduler.recovered",
                        task=entry.name,
                        after_failures=entry.consecutive_failures,
                    )
                entry.consecutive_failures = 0
            await asyncio.sleep(self._next_delay(entry))

    @staticmethod
    def _on_task_done(task: asyncio.Task[None]) -> None:
        """Surface a loop that died from something other than cancellation."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("scheduler.task_died", task=task.get_name(), error=str(exc))


__all__ = ["PeriodicScheduler", "PeriodicTask", "TaskFn"]
