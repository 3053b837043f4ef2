# SPDX-License-Identifier: MIT
"""Transport port consumed by the sync coordinator."""

import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..enums import WriteAction


@dataclass(frozen=True)
class WriteRequest:
    """Description of a create, update or delete against one collection."""

    action: WriteAction
    collection_key: str
    record_id: str | None = None
    payload: dict[str, Any] | None = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        if self.action != WriteAction.CREATE and self.record_id is None:
            raise ValueError(f"{self.action.value} requires a record_id")

    @property
    def operation_key(self) -> str:
        """Stable deduplication key, e.g. ``update:animals:abc123``.

        Creates without a record id get a per-request key so that two
        offline creates are never collapsed into one.
        """
        target = self.record_id if self.record_id is not None else f"new-{self.request_id}"
        return f"{self.action.value}:{self.collection_key}:{target}"


@runtime_checkable
class TransportPort(Protocol):
    """Interface for the network client the coordinator depends on.

    Implementations must raise ``NetworkError`` (or a builtin
    ``ConnectionError``/``TimeoutError``) for transport failures and
    ``ApplicationError`` for rejected requests, so the coordinator can choose
    between queueing and failing.
    """

    async def fetch_collection(self, collection_key: str) -> list[dict[str, Any]]:
        """Fetch every record of a collection."""
        ...

    async def perform_write(self, request: WriteRequest) -> Any:
        """Apply a mutating request and return the server's result."""
        ...
