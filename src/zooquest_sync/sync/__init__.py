# SPDX-License-Identifier: MIT
"""Synchronization package: coordinator, event bus and deferred-write queue."""

from .connectivity import ReachabilityMonitor
from .coordinator import SyncCoordinator
from .events import EventBus, SyncEvent
from .pending_queue import PendingOperation, PendingOperationQueue, QueuedWrite


__all__ = [
    "EventBus",
    "PendingOperation",
    "PendingOperationQueue",
    "QueuedWrite",
    "ReachabilityMonitor",
    "SyncCoordinator",
    "SyncEvent",
]
