# SPDX-License-Identifier: MIT
"""In-memory keyed store of time-limited entries."""

import copy
import re
import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from ..constants import DEFAULT_CACHE_TTL
from ..logging_config import get_detail_logger
from ..validation import validate_cache_key, validate_ttl
from .entry import CacheEntry, RefreshHook
from .refresh_registry import RefreshHookRegistry


detail_logger = get_detail_logger()


class CacheStore:
    """Manages in-memory caching with TTL expiry and pattern invalidation.

    Payloads are deep-copied on the way in and on the way out, so callers
    never share mutable state with the store. All operations are synchronous
    and are never split across an ``await``.
    """

    def __init__(
        self,
        clock: Callable[[], float] | None = None,
        default_ttl: float | timedelta = DEFAULT_CACHE_TTL,
    ):
        """Initialize an empty store.

        Args:
            clock: Monotonic time source in seconds. Defaults to time.monotonic.
            default_ttl: TTL used when ``set`` is called without one

        Raises:
            InvalidTTLError: If default_ttl is not positive
        """
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._clock = clock or time.monotonic
        self.default_ttl = validate_ttl(default_ttl)
        self.refresh_registry = RefreshHookRegistry()

    def now(self) -> float:
        return self._clock()

    def set(
        self,
        key: str,
        data: Any,
        ttl: float | timedelta | None = None,
        refresh_hook: RefreshHook | None = None,
    ) -> None:
        """Store a value, replacing any existing entry unconditionally.

        Args:
            key: Cache key
            data: Value to cache
            ttl: Time-to-live in seconds (or timedelta); defaults to default_ttl
            refresh_hook: Optional callable that produces a replacement value
                when the entry is invalidated

        Raises:
            ValueError: If key is empty or too long
            InvalidTTLError: If TTL is not a positive duration
        """
        validate_cache_key(key)
        ttl_seconds = validate_ttl(self.default_ttl if ttl is None else ttl)

        now = self._clock()
        self._entries[key] = CacheEntry(
            data=copy.deepcopy(data),
            stored_at=now,
            expires_at=now + ttl_seconds,
            refresh_hooks=(refresh_hook,) if refresh_hook is not None else (),
        )
        detail_logger.debug(f"Stored cache entry: key='{key}', ttl={ttl_seconds}s")

    def get(self, key: str) -> Any | None:
        """Get a cached value by key.

        Args:
            key: Cache key

        Returns:
            Copy of the cached value, or None if not found or expired. An
            expired entry is removed as a side effect.
        """
        entry = self._entries.get(key)
        if entry is None:
            detail_logger.debug(f"Cache miss for key '{key}'")
            return None

        if not entry.is_valid(self._clock()):
            del self._entries[key]
            detail_logger.debug(f"Cache miss for key '{key}' (expired, evicted)")
            return None

        detail_logger.debug(f"Cache hit for key '{key}'")
        return copy.deepcopy(entry.data)

    def has(self, key: str) -> bool:
        """Check whether a valid entry exists; evicts an expired one."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if not entry.is_valid(self._clock()):
            del self._entries[key]
            return False
        return True

    def peek(self, key: str) -> CacheEntry[Any] | None:
        """Return the entry for a key even if it has expired.

        Does not evict. The returned entry holds a copy of the payload.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        return CacheEntry(
            data=copy.deepcopy(entry.data),
            stored_at=entry.stored_at,
            expires_at=entry.expires_at,
            refresh_hooks=entry.refresh_hooks,
        )

    def invalidate(self, key: str) -> bool:
        """Remove an entry regardless of TTL and fire its refresh hooks.

        Invalidating an absent key is a no-op.

        Returns:
            True if an entry was removed
        """
        entry = self._entries.pop(key, None)
        if entry is None:
            detail_logger.debug(f"Invalidate on absent key '{key}' ignored")
            return False

        detail_logger.debug(f"Invalidated cache entry '{key}'")
        self._fire_refresh_hooks(key, entry)
        return True

    def invalidate_pattern(self, pattern: str | re.Pattern[str]) -> list[str]:
        """Remove every entry whose key matches a regular expression.

        Matching uses ``re.search``, so ``"animals_.*"`` matches anywhere in
        the key; anchor with ``^`` for prefix semantics. All matching entries
        are removed before any hook fires.

        Args:
            pattern: Regular expression string or compiled pattern

        Returns:
            Keys that were removed
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern

        removed = {
            key: entry for key, entry in self._entries.items() if regex.search(key)
        }
        for key in removed:
            del self._entries[key]

        detail_logger.debug(
            f"Invalidated {len(removed)} entries matching '{regex.pattern}'"
        )
        for key, entry in removed.items():
            self._fire_refresh_hooks(key, entry)

        return list(removed)

    def clear(self) -> None:
        """Drop every entry. Refresh hooks are not fired."""
        count = len(self._entries)
        self._entries.clear()
        detail_logger.debug(f"Cleared {count} cache entries")

    def cleanup(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired_keys = [
            key for key, entry in self._entries.items() if not entry.is_valid(now)
        ]
        for key in expired_keys:
            del self._entries[key]

        if expired_keys:
            detail_logger.info(f"Cleaned up {len(expired_keys)} expired cache entries")
        return len(expired_keys)

    def get_stats(self) -> dict[str, int]:
        """Get cache statistics without evicting anything.

        Returns:
            Dictionary with size, expired and valid counts
        """
        now = self._clock()
        valid = sum(1 for entry in self._entries.values() if entry.is_valid(now))
        return {
            "size": len(self._entries),
            "expired": len(self._entries) - valid,
            "valid": valid,
        }

    def register_refresh_hook(self, key: str, hook: RefreshHook) -> None:
        """Register a hook fired whenever ``key`` is invalidated."""
        self.refresh_registry.register(key, hook)

    def keys(self) -> list[str]:
        """Keys currently held, including expired ones not yet swept."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def _fire_refresh_hooks(self, key: str, entry: CacheEntry[Any]) -> None:
        hooks = entry.refresh_hooks + self.refresh_registry.hooks_for(key)
        self.refresh_registry.fire(key, hooks)
