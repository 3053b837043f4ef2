# SPDX-License-Identifier: MIT
"""FIFO queue of writes deferred while offline."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..enums import FlushStatus
from ..exceptions import NetworkError
from ..logging_config import get_detail_logger, get_status_logger
from ..retry_utils import async_retry_with_backoff


@dataclass(frozen=True)
class PendingOperation:
    """A deferred network call waiting for connectivity."""

    key: str
    run: Callable[[], Awaitable[Any]]
    collection_key: str
    record_id: str | None = None
    enqueued_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class QueuedWrite:
    """Result handed to a caller whose write was deferred instead of applied.

    The write is queued, not yet applied; it runs when connectivity returns.
    ``replaced`` is True when it superseded an earlier queued write with the
    same key.
    """

    key: str
    collection_key: str
    record_id: str | None
    enqueued_at: datetime
    replaced: bool = False


FlushCallback = Callable[[PendingOperation, FlushStatus, BaseException | None], None]

# Failures worth retrying while flushing; everything else is dropped at once.
_RETRYABLE = (NetworkError, ConnectionError, TimeoutError, asyncio.TimeoutError)


class PendingOperationQueue:
    """Holds deferred writes in enqueue order and flushes each exactly once.

    Deduplication policy is last write wins per key: enqueueing an operation
    whose key is already queued replaces the queued operation in its original
    position rather than appending a second one.
    """

    def __init__(self, max_retries: int = 0, retry_delay: float = 1.0) -> None:
        """Initialize an empty queue.

        Args:
            max_retries: Retries for network-class failures during a flush.
                0 means a failed flush is logged and dropped.
            retry_delay: Initial backoff delay between flush retries (seconds)
        """
        self._operations: dict[str, PendingOperation] = {}
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.draining = False
        self._idle = asyncio.Event()
        self._idle.set()
        self.detail_logger = get_detail_logger()
        self.status_logger = get_status_logger()

    def enqueue(self, operation: PendingOperation) -> bool:
        """Add an operation to the tail, or replace a queued one with the same key.

        Returns:
            True if an existing operation was replaced
        """
        replaced = operation.key in self._operations
        # Assigning to an existing dict key keeps its insertion position.
        self._operations[operation.key] = operation

        self.detail_logger.debug(
            f"{'Replaced' if replaced else 'Queued'} pending operation "
            f"'{operation.key}', queue size={len(self._operations)}"
        )
        return replaced

    async def drain(
        self,
        on_flushed: FlushCallback | None = None,
        should_continue: Callable[[], bool] | None = None,
    ) -> dict[str, int]:
        """Run queued operations sequentially in enqueue order.

        Each operation is removed before it runs, whether it then succeeds or
        fails. Operations enqueued during the drain are picked up by the same
        drain. A call made while a drain is already running returns at once.

        Args:
            on_flushed: Called after each operation with its outcome
            should_continue: Checked before each operation; returning False
                stops the drain and leaves the rest queued

        Returns:
            Dictionary with flushed, failed and remaining counts
        """
        if self.draining:
            self.detail_logger.debug("Pending queue drain already in progress")
            return {"flushed": 0, "failed": 0, "remaining": len(self._operations)}

        self.draining = True
        self._idle.clear()
        flushed = 0
        failed = 0
        try:
            while self._operations:
                if should_continue is not None and not should_continue():
                    self.detail_logger.info(
                        f"Drain interrupted with {len(self._operations)} operations left"
                    )
                    break

                key = next(iter(self._operations))
                operation = self._operations.pop(key)

                status, error = await self._run(operation)
                if status == FlushStatus.SUCCESS:
                    flushed += 1
                else:
                    failed += 1

                if on_flushed is not None:
                    try:
                        on_flushed(operation, status, error)
                    except Exception as e:
                        self.detail_logger.exception(
                            f"Flush callback failed for '{key}': {e}"
                        )
        finally:
            self.draining = False
            self._idle.set()

        self.detail_logger.info(
            f"Pending queue drained: {flushed} flushed, {failed} failed, "
            f"{len(self._operations)} remaining"
        )
        return {
            "flushed": flushed,
            "failed": failed,
            "remaining": len(self._operations),
        }

    async def wait_idle(self) -> None:
        """Wait until no drain is running."""
        await self._idle.wait()

    async def _run(
        self, operation: PendingOperation
    ) -> tuple[FlushStatus, BaseException | None]:
        run = async_retry_with_backoff(
            max_retries=self.max_retries,
            initial_delay=self.retry_delay,
            exceptions=_RETRYABLE,
        )(operation.run)

        try:
            await run()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.status_logger.warning(
                f"Dropped queued write '{operation.key}': {type(e).__name__} - {e}"
            )
            self.detail_logger.exception(f"Flush of '{operation.key}' failed")
            return FlushStatus.FAILED, e

        self.detail_logger.debug(f"Flushed pending operation '{operation.key}'")
        return FlushStatus.SUCCESS, None

    def keys(self) -> list[str]:
        """Queued keys in flush order."""
        return list(self._operations)

    def peek(self, key: str) -> PendingOperation | None:
        return self._operations.get(key)

    def clear(self) -> int:
        count = len(self._operations)
        self._operations.clear()
        return count

    def __len__(self) -> int:
        return len(self._operations)
