# SPDX-License-Identifier: MIT
"""Reachability probing as a connectivity signal source."""

import asyncio
from collections.abc import Awaitable, Callable

from ..constants import DEFAULT_PROBE_INTERVAL
from ..logging_config import get_detail_logger
from ..scheduler import AsyncioScheduler, CancelHandle, Scheduler
from .coordinator import SyncCoordinator


class ReachabilityMonitor:
    """Polls a health probe and forwards transitions to the coordinator.

    Going offline requires ``failure_threshold`` consecutive failed probes so
    that one slow response does not flap connectivity; a single successful
    probe brings the coordinator back online.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        probe: Callable[[], Awaitable[bool]],
        scheduler: Scheduler | None = None,
        interval: float = DEFAULT_PROBE_INTERVAL,
        failure_threshold: int = 2,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")

        self.coordinator = coordinator
        self.probe = probe
        self.scheduler = scheduler or AsyncioScheduler()
        self.interval = interval
        self.failure_threshold = failure_threshold
        self.consecutive_failures = 0
        self._handle: CancelHandle | None = None
        self.detail_logger = get_detail_logger()

    def start(self) -> None:
        if self._handle is None:
            self._handle = self.scheduler.schedule(self.interval, self.check)

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def check(self) -> bool:
        """Run one probe and signal a connectivity change if there is one.

        Returns:
            Whether the probe succeeded
        """
        try:
            reachable = bool(await self.probe())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.detail_logger.debug(f"Reachability probe raised: {e}")
            reachable = False

        if reachable:
            self.consecutive_failures = 0
            if not self.coordinator.is_online:
                self.coordinator.on_online()
        else:
            self.consecutive_failures += 1
            if (
                self.coordinator.is_online
                and self.consecutive_failures >= self.failure_threshold
            ):
                self.coordinator.on_offline()

        return reachable
