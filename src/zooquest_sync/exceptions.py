# SPDX-License-Identifier: MIT
"""Exceptions raised by the sync layer and its transports.

The hierarchy separates the three error classes the coordinator reacts to:

- ``NetworkError``: connectivity or transport failures, recoverable through
  stale-cache fallback on reads and deferred queueing on writes.
- ``ApplicationError``: the server rejected the request; never retried.
- ``LocalProgrammingError``: caller misuse or malformed data; fails fast.
"""

import asyncio


class SyncError(Exception):
    """Base class for all sync-layer exceptions."""

    def __init__(self, message: str, collection_key: str | None = None) -> None:
        self.collection_key = collection_key
        super().__init__(message)


class NetworkError(SyncError):
    """Raised when a request fails for transport reasons."""

    pass


class TransportTimeoutError(NetworkError):
    """Raised when a transport request times out."""

    pass


class TransportConnectionError(NetworkError):
    """Raised when the server cannot be reached."""

    pass


class ServiceUnavailableError(NetworkError):
    """Raised when the server answers with a transient failure status (5xx, 429)."""

    def __init__(
        self,
        message: str = "Service unavailable",
        status: int | None = None,
        collection_key: str | None = None,
    ) -> None:
        self.status = status
        msg = f"{message} (HTTP {status})" if status else message
        super().__init__(msg, collection_key)


class ApplicationError(SyncError):
    """Raised when the server rejects a request as invalid or forbidden."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        collection_key: str | None = None,
    ) -> None:
        self.status = status
        super().__init__(message, collection_key)


class RecordValidationError(ApplicationError):
    """Raised when the server rejects a record payload."""

    pass


class AuthorizationError(ApplicationError):
    """Raised when the caller is not authenticated or not allowed."""

    pass


class RecordNotFoundError(ApplicationError):
    """Raised when the requested record does not exist."""

    pass


class LocalProgrammingError(SyncError):
    """Base class for caller misuse detected locally."""

    pass


class InvalidTTLError(LocalProgrammingError, ValueError):
    """Raised when a cache entry is stored with a non-positive or invalid TTL."""

    pass


class MalformedResponseError(LocalProgrammingError):
    """Raised when a transport returns data of the wrong shape."""

    pass


def is_network_error(exc: BaseException) -> bool:
    """Check whether an exception is network-class.

    Besides ``NetworkError`` the builtin connection and timeout errors count,
    so transports that do not use this hierarchy are still classified.

    Args:
        exc: Exception to classify

    Returns:
        True if the failure is attributable to connectivity or transport
    """
    if isinstance(exc, NetworkError):
        return True
    if isinstance(exc, SyncError):
        return False
    return isinstance(exc, (ConnectionError, TimeoutError, asyncio.TimeoutError))
