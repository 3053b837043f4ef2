# SPDX-License-Identifier: MIT
"""Validation utilities for cache keys, TTLs and transport responses."""

import json
import math
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from .constants import MAX_CACHE_KEY_LENGTH
from .exceptions import InvalidTTLError, MalformedResponseError


def validate_cache_key(key: str) -> str:
    """
    Validate a cache key.

    Args:
        key: Cache key to check

    Returns:
        The key, unchanged

    Raises:
        ValueError: If the key is not a non-empty string of at most 255 characters
    """
    if not isinstance(key, str) or not key.strip():
        raise ValueError("Cache key cannot be empty")
    if len(key) > MAX_CACHE_KEY_LENGTH:
        raise ValueError(
            f"Cache key exceeds maximum length ({MAX_CACHE_KEY_LENGTH} characters)"
        )
    return key


def validate_ttl(ttl: float | timedelta) -> float:
    """
    Validate a time-to-live and convert it to seconds.

    Args:
        ttl: Seconds as int/float, or a timedelta

    Returns:
        TTL in seconds

    Raises:
        InvalidTTLError: If the TTL is not a finite positive duration

    Examples:
        >>> validate_ttl(timedelta(minutes=5))
        300.0
        >>> validate_ttl(0)
        Traceback (most recent call last):
        ...
        zooquest_sync.exceptions.InvalidTTLError: TTL must be positive, got 0
    """
    if isinstance(ttl, timedelta):
        seconds = ttl.total_seconds()
    elif isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
        raise InvalidTTLError(f"TTL must be a number of seconds, got {ttl!r}")
    else:
        seconds = float(ttl)

    if math.isnan(seconds) or math.isinf(seconds):
        raise InvalidTTLError(f"TTL must be finite, got {ttl!r}")
    if seconds <= 0:
        raise InvalidTTLError(f"TTL must be positive, got {ttl}")
    return seconds


def validate_records(payload: Any, collection_key: str) -> list[dict[str, Any]]:
    """
    Check that a collection response is a JSON-serializable list of records.

    Args:
        payload: Data returned by the transport
        collection_key: Collection the data belongs to (for error context)

    Returns:
        The records as a list of plain dicts

    Raises:
        MalformedResponseError: If the payload has the wrong shape
    """
    if not isinstance(payload, list):
        raise MalformedResponseError(
            f"Expected a list of records for '{collection_key}', "
            f"got {type(payload).__name__}",
            collection_key,
        )

    records: list[dict[str, Any]] = []
    for index, item in enumerate(payload):
        if not isinstance(item, Mapping):
            raise MalformedResponseError(
                f"Record {index} of '{collection_key}' is "
                f"{type(item).__name__}, expected an object",
                collection_key,
            )
        records.append(dict(item))

    try:
        json.dumps(records)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(
            f"Records of '{collection_key}' are not JSON-serializable: {e}",
            collection_key,
        ) from e

    return records
