# SPDX-License-Identifier: MIT
"""Cache module for synchronized collections.

This module provides the lower layer of the sync system:
- CacheStore: keyed in-memory store with TTL expiry and pattern invalidation
- CacheEntry: immutable entry with storage and expiry instants
- RefreshHookRegistry: per-key hooks fired on invalidation
"""

from .entry import CacheEntry, RefreshHook
from .refresh_registry import RefreshHookRegistry
from .store import CacheStore


__all__ = [
    "CacheEntry",
    "CacheStore",
    "RefreshHook",
    "RefreshHookRegistry",
]
