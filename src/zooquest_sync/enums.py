# SPDX-License-Identifier: MIT
"""Enums for the zooquest sync layer."""

from enum import Enum


class SyncEventKind(str, Enum):
    """Kinds of notifications published by the coordinator."""

    COLLECTION_UPDATED = "collection-updated"
    WRITE_QUEUED = "write-queued"
    WRITE_FLUSHED = "write-flushed"
    CONNECTIVITY_CHANGED = "connectivity-changed"


class Connectivity(str, Enum):
    """Global connectivity state."""

    ONLINE = "online"
    OFFLINE = "offline"


class WriteAction(str, Enum):
    """Mutating operations supported by the transport."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class FlushStatus(str, Enum):
    """Outcome of flushing a pending operation."""

    SUCCESS = "success"
    FAILED = "failed"
