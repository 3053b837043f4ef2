# SPDX-License-Identifier: MIT
"""Immutable cache entry."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar


T = TypeVar("T")

# A refresh hook produces a replacement value, usually as a coroutine.
RefreshHook = Callable[[], Any]


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached payload with its storage and expiry instants.

    Entries are never mutated; ``CacheStore.set`` replaces the whole entry.
    Instants are seconds on the store's monotonic clock.
    """

    data: T
    stored_at: float
    expires_at: float
    refresh_hooks: tuple[RefreshHook, ...] = field(default_factory=tuple)

    @property
    def ttl(self) -> float:
        return self.expires_at - self.stored_at

    def is_valid(self, now: float) -> bool:
        """An entry is valid strictly before its expiry instant."""
        return now < self.expires_at
