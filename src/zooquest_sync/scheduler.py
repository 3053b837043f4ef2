# SPDX-License-Identifier: MIT
"""Timer scheduling for periodic refresh and cleanup jobs.

Periodic work goes through a ``Scheduler`` so that production code runs on
the asyncio event loop while tests drive a ``VirtualScheduler`` whose clock
only moves when ``advance()`` is awaited.
"""

import asyncio
import inspect
import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from .logging_config import get_detail_logger


detail_logger = get_detail_logger()


class CancelHandle:
    """Handle returned by ``Scheduler.schedule``; cancelling stops the job."""

    def __init__(self, on_cancel: Callable[[], Any] | None = None) -> None:
        self._on_cancel = on_cancel
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Cancel the scheduled job. Safe to call more than once."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()


@runtime_checkable
class Scheduler(Protocol):
    """Interface for interval timers and the clock they run on."""

    def now(self) -> float:
        """Current time in monotonic seconds."""
        ...

    def schedule(self, interval: float, callback: Callable[[], Any]) -> CancelHandle:
        """Run ``callback`` every ``interval`` seconds until cancelled."""
        ...


def _check_interval(interval: float) -> None:
    if interval <= 0:
        raise ValueError(f"Schedule interval must be positive, got {interval}")


async def _invoke(callback: Callable[[], Any]) -> None:
    """Run a job callback, awaiting its result; failures are logged."""
    name = getattr(callback, "__name__", repr(callback))
    try:
        result = callback()
        if inspect.isawaitable(result):
            await result
    except asyncio.CancelledError:
        raise
    except Exception as e:
        detail_logger.exception(f"Scheduled job {name} failed: {e}")


class AsyncioScheduler:
    """Scheduler backed by asyncio tasks on the running event loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def now(self) -> float:
        return time.monotonic()

    def schedule(self, interval: float, callback: Callable[[], Any]) -> CancelHandle:
        """Start a periodic job.

        Args:
            interval: Seconds between runs; the first run happens after one interval
            callback: Sync function or coroutine function to invoke

        Returns:
            Handle that stops the job when cancelled

        Raises:
            ValueError: If interval is not positive
            RuntimeError: If no event loop is running
        """
        _check_interval(interval)
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run_job(interval, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        detail_logger.debug(
            f"Scheduled {getattr(callback, '__name__', callback)} every {interval}s"
        )
        return CancelHandle(task.cancel)

    async def _run_job(self, interval: float, callback: Callable[[], Any]) -> None:
        while True:
            await asyncio.sleep(interval)
            await _invoke(callback)

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)


@dataclass
class _VirtualJob:
    next_run: float
    interval: float
    callback: Callable[[], Any]
    seq: int


class VirtualScheduler:
    """Deterministic scheduler with a manually advanced clock."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._jobs: list[_VirtualJob] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def schedule(self, interval: float, callback: Callable[[], Any]) -> CancelHandle:
        _check_interval(interval)
        job = _VirtualJob(
            next_run=self._now + interval,
            interval=interval,
            callback=callback,
            seq=next(self._seq),
        )
        self._jobs.append(job)

        def _cancel() -> None:
            if job in self._jobs:
                self._jobs.remove(job)

        return CancelHandle(_cancel)

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, running every job that falls due.

        Jobs run in due-time order; each run is awaited and followed by a
        yield to the event loop so tasks it spawned get a chance to start.

        Args:
            seconds: Non-negative amount of virtual time to advance
        """
        if seconds < 0:
            raise ValueError("Cannot move virtual time backwards")

        target = self._now + seconds
        while True:
            due = [job for job in self._jobs if job.next_run <= target]
            if not due:
                break
            job = min(due, key=lambda j: (j.next_run, j.seq))
            self._now = job.next_run
            job.next_run += job.interval
            await _invoke(job.callback)
            await asyncio.sleep(0)
        self._now = target

    @property
    def active_jobs(self) -> int:
        return len(self._jobs)
