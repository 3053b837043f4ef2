# SPDX-License-Identifier: MIT
"""Publish/subscribe channel for sync notifications."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from ..enums import SyncEventKind
from ..logging_config import get_detail_logger


@dataclass(frozen=True)
class SyncEvent:
    """Ephemeral notification that cached data or connectivity changed.

    ``collection_key`` is empty for connectivity events. ``error`` is set on
    ``write-flushed`` events whose operation failed.
    """

    kind: SyncEventKind
    collection_key: str = ""
    record_id: str | None = None
    occurred_at: datetime = field(default_factory=datetime.now)
    error: str | None = None


SyncEventCallback = Callable[[SyncEvent], object]


class EventBus:
    """Synchronous in-process event delivery.

    Events go to the subscribers registered at emit time, in subscription
    order. Nothing is stored, so late subscribers never see past events.
    """

    def __init__(self) -> None:
        self._subscribers: dict[SyncEventKind, list[SyncEventCallback]] = {}
        self.detail_logger = get_detail_logger()

    def subscribe(
        self, kind: SyncEventKind, callback: SyncEventCallback
    ) -> Callable[[], None]:
        """Register a callback for one event kind.

        Args:
            kind: Event kind to listen for
            callback: Called with each SyncEvent of that kind

        Returns:
            Function that removes the subscription; calling it twice is harmless
        """
        kind = SyncEventKind(kind)
        self._subscribers.setdefault(kind, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(kind)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def emit(self, event: SyncEvent) -> int:
        """Deliver an event to every current subscriber of its kind.

        A failing subscriber is logged and does not prevent delivery to the
        others.

        Returns:
            Number of subscribers the event was delivered to
        """
        callbacks = list(self._subscribers.get(event.kind, ()))
        delivered = 0
        for callback in callbacks:
            try:
                callback(event)
                delivered += 1
            except Exception as e:
                self.detail_logger.exception(
                    f"Error in {event.kind.value} subscriber: {e}"
                )

        self.detail_logger.debug(
            f"Emitted {event.kind.value} for '{event.collection_key}' "
            f"to {delivered}/{len(callbacks)} subscribers"
        )
        return delivered

    def subscriber_count(self, kind: SyncEventKind | None = None) -> int:
        if kind is None:
            return sum(len(callbacks) for callbacks in self._subscribers.values())
        return len(self._subscribers.get(SyncEventKind(kind), ()))

    def clear(self) -> None:
        self._subscribers.clear()
