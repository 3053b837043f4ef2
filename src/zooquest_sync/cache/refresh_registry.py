# SPDX-License-Identifier: MIT
"""Registry and runner for cache refresh hooks."""

import asyncio
import inspect
from collections.abc import Iterable

from ..logging_config import get_detail_logger
from .entry import RefreshHook


class RefreshHookRegistry:
    """Registry of per-key refresh hooks fired when a key is invalidated.

    Hooks registered here outlive individual cache entries, unlike the hook
    passed to ``CacheStore.set`` which is dropped when the entry is replaced.
    """

    def __init__(self) -> None:
        self._hooks: dict[str, list[RefreshHook]] = {}
        self._pending: set[asyncio.Future[object]] = set()
        self.detail_logger = get_detail_logger()

    def register(self, key: str, hook: RefreshHook) -> None:
        """Register a refresh hook for a cache key.

        Args:
            key: Cache key the hook belongs to
            hook: Callable producing a replacement value (sync or async)
        """
        self._hooks.setdefault(key, []).append(hook)

    def unregister(self, key: str, hook: RefreshHook) -> bool:
        """Remove a previously registered hook.

        Returns:
            True if the hook was registered for the key
        """
        hooks = self._hooks.get(key)
        if not hooks or hook not in hooks:
            return False
        hooks.remove(hook)
        if not hooks:
            del self._hooks[key]
        return True

    def hooks_for(self, key: str) -> tuple[RefreshHook, ...]:
        return tuple(self._hooks.get(key, ()))

    def clear(self) -> None:
        self._hooks.clear()

    def fire(self, key: str, hooks: Iterable[RefreshHook]) -> int:
        """Invoke hooks for an invalidated key without waiting for them.

        Sync hooks run inline. Awaitable results are scheduled on the running
        event loop. Every failure is logged and swallowed so the invalidating
        caller never sees a hook error.

        Args:
            key: Invalidated cache key (for logging)
            hooks: Hooks to invoke

        Returns:
            Number of hooks invoked
        """
        count = 0
        for hook in hooks:
            count += 1
            try:
                result = hook()
            except Exception as e:
                self.detail_logger.exception(f"Refresh hook for '{key}' failed: {e}")
                continue

            if inspect.isawaitable(result):
                self._schedule(key, result)

        if count:
            self.detail_logger.debug(f"Fired {count} refresh hook(s) for '{key}'")
        return count

    def _schedule(self, key: str, awaitable: object) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop to host the refresh
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self.detail_logger.warning(
                f"No running event loop; skipped async refresh hook for '{key}'"
            )
            return

        future = asyncio.ensure_future(awaitable, loop=loop)  # type: ignore[arg-type]
        self._pending.add(future)

        def _done(fut: asyncio.Future[object]) -> None:
            self._pending.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                self.detail_logger.error(
                    f"Async refresh hook for '{key}' failed: {exc!r}"
                )

        future.add_done_callback(_done)

    async def wait_pending(self) -> None:
        """Wait for scheduled async hooks to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._pending)
