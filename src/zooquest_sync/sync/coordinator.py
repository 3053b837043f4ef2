# SPDX-License-Identifier: MIT
"""Synchronization coordinator for cached collections."""

import asyncio
import copy
import functools
import re
import uuid
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from ..cache import CacheStore
from ..config import AppConfig
from ..constants import DETAIL_KEY_INFIX, LIST_KEY_SUFFIX
from ..enums import Connectivity, FlushStatus, SyncEventKind
from ..exceptions import MalformedResponseError, is_network_error
from ..logging_config import get_detail_logger, get_status_logger
from ..scheduler import AsyncioScheduler, CancelHandle, Scheduler
from ..transport.protocols import TransportPort, WriteRequest
from ..validation import validate_records
from .events import EventBus, SyncEvent, SyncEventCallback
from .pending_queue import PendingOperation, PendingOperationQueue, QueuedWrite


Records = list[dict[str, Any]]


class SyncCoordinator:
    """Keeps cached collections fresh and defers writes while offline.

    Reads are stale-while-revalidate: a valid cached value is returned at once
    and, when online, refreshed in the background. Fetches are single-flight
    per collection. Writes that cannot reach the server while offline are
    queued and flushed in order when connectivity returns.

    All methods must be called from the event loop the coordinator runs on.
    """

    def __init__(
        self,
        transport: TransportPort,
        cache: CacheStore | None = None,
        scheduler: Scheduler | None = None,
        config: AppConfig | None = None,
        initially_online: bool = True,
    ):
        """Initialize the coordinator.

        Args:
            transport: Network client satisfying the TransportPort protocol
            cache: Store to use. Defaults to a new store on the scheduler's clock.
            scheduler: Timer source for periodic jobs. Defaults to AsyncioScheduler.
            config: Application configuration. Defaults to built-in defaults.
            initially_online: Connectivity state before the first signal
        """
        self.transport = transport
        self.config = config or AppConfig()
        self.scheduler = scheduler or AsyncioScheduler()
        self.cache = cache or CacheStore(
            clock=self.scheduler.now,
            default_ttl=self.config.sync.default_ttl_seconds,
        )
        self.events = EventBus()
        self.pending = PendingOperationQueue(
            max_retries=self.config.sync.flush_max_retries,
            retry_delay=self.config.sync.flush_retry_delay_seconds,
        )
        self.detail_logger = get_detail_logger()
        self.status_logger = get_status_logger()

        self._online = initially_online
        self._inflight: dict[str, asyncio.Task[Records]] = {}
        # Bumped on every invalidation; a fetch started under an older
        # generation must not write its response into the cache.
        self._generations: dict[str, int] = {}
        self._inflight_generations: dict[str, int] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._tracked: set[str] = set()
        self._read_since_sweep: set[str] = set()
        self._timers: list[CancelHandle] = []
        self._disposed = False

    async def __aenter__(self) -> "SyncCoordinator":
        self.start()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        await self.dispose()

    # ----- keys and settings -----

    def cache_key_for(self, collection_key: str) -> str:
        """Cache key of a collection's list, e.g. ``animals_all``."""
        return f"{collection_key}_{LIST_KEY_SUFFIX}"

    def record_key_for(self, collection_key: str, record_id: str) -> str:
        """Cache key of a single record, e.g. ``animals_detail_42``."""
        return f"{collection_key}_{DETAIL_KEY_INFIX}_{record_id}"

    def ttl_for(self, collection_key: str) -> float:
        collection_config = self.config.collections.get(collection_key)
        if collection_config is not None:
            return collection_config.ttl_seconds
        return self.config.sync.default_ttl_seconds

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def connectivity(self) -> Connectivity:
        return Connectivity.ONLINE if self._online else Connectivity.OFFLINE

    def get_tracked_collections(self) -> list[str]:
        """Collections read at least once through ``sync_collection``."""
        return sorted(self._tracked)

    # ----- read flow -----

    async def sync_collection(self, collection_key: str) -> Records:
        """Return a collection's records, serving the cache when possible.

        A valid cached value is returned without waiting on the network; a
        background refresh is started when online. Without a valid value the
        records are fetched. If that fetch fails with a network error, an
        expired copy still held by the cache is returned instead.

        Args:
            collection_key: Collection name, e.g. ``animals``

        Returns:
            A private copy of the records

        Raises:
            NetworkError: If the fetch fails and no cached copy exists
            ApplicationError: If the server rejects the request
            MalformedResponseError: If the server returns data of the wrong shape
        """
        self._tracked.add(collection_key)
        self._read_since_sweep.add(collection_key)

        cache_key = self.cache_key_for(collection_key)
        entry = self.cache.peek(cache_key)

        if entry is not None and entry.is_valid(self.cache.now()):
            self.detail_logger.debug(f"Serving '{collection_key}' from cache")
            if self._online:
                self._schedule_refresh(collection_key)
            return entry.data  # type: ignore[no-any-return]

        try:
            return await self._fetch(collection_key)
        except Exception as e:
            if not is_network_error(e):
                raise

            fallback = self.cache.peek(cache_key) or entry
            if fallback is None:
                raise

            self.status_logger.warning(
                f"Using cached {collection_key} data due to network error: {e}"
            )
            return fallback.data  # type: ignore[no-any-return]

    async def _fetch(self, collection_key: str) -> Records:
        task = self._get_or_start_fetch(collection_key)
        records = await asyncio.shield(task)
        return copy.deepcopy(records)

    def _current_fetch(self, collection_key: str) -> "asyncio.Task[Records] | None":
        """The in-flight fetch of a collection, unless it predates an invalidation."""
        task = self._inflight.get(collection_key)
        if task is None:
            return None
        if self._inflight_generations.get(collection_key) != self._generation(
            collection_key
        ):
            return None
        return task

    def _generation(self, collection_key: str) -> int:
        return self._generations.get(collection_key, 0)

    def _bump_generation(self, collection_key: str) -> None:
        self._generations[collection_key] = self._generation(collection_key) + 1

    def _get_or_start_fetch(self, collection_key: str) -> "asyncio.Task[Records]":
        task = self._current_fetch(collection_key)
        if task is not None:
            self.detail_logger.debug(f"Joining in-flight fetch of '{collection_key}'")
            return task

        superseded = self._inflight.get(collection_key)
        if superseded is not None:
            self.detail_logger.debug(
                f"In-flight fetch of '{collection_key}' predates an invalidation; "
                f"starting a new one"
            )
            # Still awaited by its earlier callers; tracked so dispose cancels it.
            self._background.add(superseded)
            superseded.add_done_callback(self._background.discard)

        generation = self._generation(collection_key)
        task = asyncio.get_running_loop().create_task(
            self._fetch_and_store(collection_key, generation)
        )
        self._inflight[collection_key] = task
        self._inflight_generations[collection_key] = generation
        task.add_done_callback(
            functools.partial(self._on_fetch_done, collection_key)
        )
        return task

    def _on_fetch_done(self, collection_key: str, task: "asyncio.Task[Records]") -> None:
        if self._inflight.get(collection_key) is task:
            del self._inflight[collection_key]
            del self._inflight_generations[collection_key]
        if not task.cancelled():
            # Mark the exception retrieved; waiters that still care re-raise it.
            task.exception()

    async def _fetch_and_store(self, collection_key: str, generation: int) -> Records:
        self.detail_logger.debug(f"Fetching '{collection_key}' from transport")
        payload = await self.transport.fetch_collection(collection_key)

        try:
            records = validate_records(payload, collection_key)
        except MalformedResponseError as e:
            self.detail_logger.error(f"Rejected response for '{collection_key}': {e}")
            raise

        if generation != self._generation(collection_key):
            self.detail_logger.info(
                f"Discarding '{collection_key}' response requested before the "
                f"last invalidation"
            )
            return records

        refresh_hook = None
        if self.config.sync.refresh_on_invalidate:
            refresh_hook = functools.partial(self._refresh_after_invalidation, collection_key)

        self.cache.set(
            self.cache_key_for(collection_key),
            records,
            ttl=self.ttl_for(collection_key),
            refresh_hook=refresh_hook,
        )
        self.detail_logger.info(f"Cached {len(records)} {collection_key} records")
        return records

    # ----- background refresh -----

    def _schedule_refresh(self, collection_key: str) -> "asyncio.Task[None] | None":
        if not self._online or self._disposed:
            return None
        if self._current_fetch(collection_key) is not None:
            self.detail_logger.debug(
                f"Refresh of '{collection_key}' already in flight, not starting another"
            )
            return None

        fetch_task = self._get_or_start_fetch(collection_key)
        return self._track(self._await_refresh(collection_key, fetch_task))

    async def _await_refresh(
        self, collection_key: str, fetch_task: "asyncio.Task[Records]"
    ) -> None:
        try:
            await asyncio.shield(fetch_task)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.detail_logger.warning(
                f"Background refresh of '{collection_key}' failed: {e}"
            )
            return

        self._emit(SyncEventKind.COLLECTION_UPDATED, collection_key)

    def _refresh_after_invalidation(self, collection_key: str) -> None:
        self._schedule_refresh(collection_key)

    def _track(self, coro: Coroutine[Any, Any, Any]) -> "asyncio.Task[Any]":
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def force_refresh(self) -> None:
        """Clear the whole cache and re-fetch every tracked collection.

        Failures are logged per collection and never raised.
        """
        collections = self.get_tracked_collections()
        for collection_key in collections:
            self._bump_generation(collection_key)
        self.cache.clear()
        self.status_logger.info(
            f"Force refresh of {len(collections)} collections: {', '.join(collections)}"
        )
        await asyncio.gather(
            *(
                self._await_refresh(c, self._get_or_start_fetch(c))
                for c in collections
            )
        )

    async def wait_for_background(self) -> None:
        """Wait until background refreshes, fetches and drains have finished."""
        while self._background or self._inflight:
            await asyncio.gather(
                *self._background, *self._inflight.values(), return_exceptions=True
            )

    # ----- write flow -----

    async def handle_data_modification(
        self,
        operation: Callable[[], Awaitable[Any]],
        collection_key: str,
        record_id: str | None = None,
        operation_key: str | None = None,
    ) -> Any:
        """Run a write and keep the cache consistent with it.

        On success the record key and the collection's key family are
        invalidated and ``collection-updated`` is emitted. While offline the
        operation is not attempted; it is queued and a ``QueuedWrite`` is
        returned. A network failure that coincides with going offline is
        queued the same way. Any other failure propagates unchanged.

        Writes queued while offline always reach the server first: an online
        write waits until the pending queue has been flushed.

        Args:
            operation: Zero-argument coroutine function performing the write
            collection_key: Collection the write belongs to
            record_id: Record concerned, if any
            operation_key: Deduplication key for the queue; defaults to
                ``write:<collection>:<record_id>``

        Returns:
            The operation's result, or a QueuedWrite if it was deferred
        """
        key = operation_key or self._default_operation_key(collection_key, record_id)

        if self._online and (self.pending.draining or len(self.pending)):
            await self._wait_for_queued_writes(key)

        if not self._online:
            return self._defer(key, operation, collection_key, record_id)

        try:
            result = await operation()
        except Exception as e:
            if is_network_error(e) and not self._online:
                self.status_logger.warning(
                    f"Write '{key}' failed as connectivity dropped; queued for later"
                )
                return self._defer(key, operation, collection_key, record_id)
            self.detail_logger.error(f"Data modification '{key}' failed: {e}")
            raise

        self.invalidate_collection(collection_key, record_id)
        return result

    async def submit_write(self, request: WriteRequest) -> Any:
        """Send a WriteRequest through the transport with write-flow semantics."""
        return await self.handle_data_modification(
            functools.partial(self.transport.perform_write, request),
            request.collection_key,
            request.record_id,
            operation_key=request.operation_key,
        )

    def invalidate_collection(
        self, collection_key: str, record_id: str | None = None
    ) -> None:
        """Bust a record key and the collection's key family, then notify."""
        self._bump_generation(collection_key)
        if record_id is not None:
            self.cache.invalidate(self.record_key_for(collection_key, record_id))
        self.cache.invalidate_pattern(self._key_family_pattern(collection_key))
        self._emit(SyncEventKind.COLLECTION_UPDATED, collection_key, record_id)

    def _key_family_pattern(self, collection_key: str) -> str:
        """Regex matching the list key and record keys of one collection only."""
        return (
            f"^{re.escape(collection_key)}_"
            f"(?:{LIST_KEY_SUFFIX}$|{DETAIL_KEY_INFIX}_)"
        )

    async def _wait_for_queued_writes(self, key: str) -> None:
        self.detail_logger.debug(
            f"Write '{key}' waits for {len(self.pending)} queued writes to flush"
        )
        while self._online and (self.pending.draining or len(self.pending)):
            if self.pending.draining:
                await self.pending.wait_idle()
            else:
                await self.drain_pending()

    def _default_operation_key(self, collection_key: str, record_id: str | None) -> str:
        target = record_id if record_id is not None else f"new-{uuid.uuid4().hex}"
        return f"write:{collection_key}:{target}"

    def _defer(
        self,
        key: str,
        operation: Callable[[], Awaitable[Any]],
        collection_key: str,
        record_id: str | None,
    ) -> QueuedWrite:
        pending_operation = PendingOperation(
            key=key,
            run=operation,
            collection_key=collection_key,
            record_id=record_id,
        )
        replaced = self.pending.enqueue(pending_operation)
        self.status_logger.info(
            f"Offline: {'replaced' if replaced else 'queued'} write '{key}' "
            f"({len(self.pending)} pending)"
        )
        self._emit(SyncEventKind.WRITE_QUEUED, collection_key, record_id)
        return QueuedWrite(
            key=key,
            collection_key=collection_key,
            record_id=record_id,
            enqueued_at=pending_operation.enqueued_at,
            replaced=replaced,
        )

    async def drain_pending(self) -> dict[str, int]:
        """Flush queued writes in order while online."""
        return await self.pending.drain(
            on_flushed=self._on_flushed, should_continue=lambda: self._online
        )

    def _on_flushed(
        self,
        operation: PendingOperation,
        status: FlushStatus,
        error: BaseException | None,
    ) -> None:
        self._emit(
            SyncEventKind.WRITE_FLUSHED,
            operation.collection_key,
            operation.record_id,
            error=str(error) if error is not None else None,
        )
        if status == FlushStatus.SUCCESS:
            self.invalidate_collection(operation.collection_key, operation.record_id)

    # ----- connectivity -----

    def on_online(self) -> "asyncio.Task[None] | None":
        """Connectivity signal: the network is reachable again.

        Starts a background task that drains the pending queue and then
        refreshes every tracked collection.

        Returns:
            The resync task, or None if already online
        """
        if self._online:
            return None

        self._online = True
        self.status_logger.info("Connectivity restored")
        self._emit(SyncEventKind.CONNECTIVITY_CHANGED)

        if self._disposed:
            return None
        return self._track(self._resync())

    def on_offline(self) -> None:
        """Connectivity signal: the network is unreachable."""
        if not self._online:
            return

        self._online = False
        self.status_logger.warning("Connectivity lost; writes will be queued")
        self._emit(SyncEventKind.CONNECTIVITY_CHANGED)

    async def _resync(self) -> None:
        result = await self.drain_pending()
        if result["flushed"] or result["failed"]:
            self.status_logger.info(
                f"Flushed {result['flushed']} queued writes, {result['failed']} failed"
            )
        for collection_key in self.get_tracked_collections():
            self._schedule_refresh(collection_key)

    def get_network_status(self) -> dict[str, Any]:
        """Get connectivity and queue diagnostics."""
        return {
            "is_online": self._online,
            "connectivity": self.connectivity.value,
            "pending_operation_count": len(self.pending),
        }

    # ----- events -----

    def subscribe(
        self, kind: SyncEventKind, callback: SyncEventCallback
    ) -> Callable[[], None]:
        """Subscribe to sync events of one kind; returns an unsubscribe function."""
        return self.events.subscribe(kind, callback)

    def _emit(
        self,
        kind: SyncEventKind,
        collection_key: str = "",
        record_id: str | None = None,
        error: str | None = None,
    ) -> None:
        self.events.emit(
            SyncEvent(
                kind=kind,
                collection_key=collection_key,
                record_id=record_id,
                error=error,
            )
        )

    # ----- lifecycle -----

    def start(self) -> None:
        """Schedule the periodic refresh and cache cleanup jobs."""
        if self._timers:
            return

        sync_settings = self.config.sync
        self._timers.append(
            self.scheduler.schedule(
                sync_settings.refresh_interval_seconds, self._periodic_refresh
            )
        )
        self._timers.append(
            self.scheduler.schedule(
                sync_settings.cleanup_interval_seconds, self._periodic_cleanup
            )
        )
        self.detail_logger.info(
            f"Sync coordinator started (refresh every "
            f"{sync_settings.refresh_interval_seconds}s, cleanup every "
            f"{sync_settings.cleanup_interval_seconds}s)"
        )

    def _periodic_refresh(self) -> None:
        if not self._online:
            self.detail_logger.debug("Offline; skipping periodic refresh")
            return

        collections = sorted(self._read_since_sweep)
        self._read_since_sweep = set()
        self.detail_logger.debug(f"Periodic refresh of: {', '.join(collections)}")
        for collection_key in collections:
            self._schedule_refresh(collection_key)

    def _periodic_cleanup(self) -> None:
        self.cache.cleanup()

    async def dispose(self) -> None:
        """Cancel timers and background work. The coordinator is unusable afterwards."""
        self._disposed = True

        for handle in self._timers:
            handle.cancel()
        self._timers.clear()

        tasks = [*self._background, *self._inflight.values()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()
        self._inflight_generations.clear()
        self._background.clear()

        await self.cache.refresh_registry.wait_pending()

        if len(self.pending):
            self.status_logger.warning(
                f"Disposing with {len(self.pending)} queued writes not flushed"
            )
        self.events.clear()
        self.detail_logger.info("Sync coordinator disposed")
