# SPDX-License-Identifier: MIT
"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Any

import pytest

from zooquest_sync.config import AppConfig, SyncSettings, reset_config_manager
from zooquest_sync.scheduler import VirtualScheduler
from zooquest_sync.sync import SyncCoordinator
from zooquest_sync.transport import WriteRequest


class FakeTransport:
    """In-memory transport with controllable failures and latency.

    ``collections`` holds the server-side records per collection. Setting
    ``fetch_error`` makes every fetch raise it. When ``gate`` is set, fetches
    block until the event is set, which lets tests hold a request in flight.
    With ``snapshot_on_send`` a gated fetch answers with the server state at
    the moment it was sent, like a real response already on the wire.
    """

    def __init__(self, collections: dict[str, list[dict[str, Any]]] | None = None):
        self.collections = collections if collections is not None else {}
        self.fetch_calls: list[str] = []
        self.writes: list[WriteRequest] = []
        self.fetch_error: BaseException | None = None
        self.write_error: BaseException | None = None
        self.gate: asyncio.Event | None = None
        self.snapshot_on_send = False

    def fetch_count(self, collection_key: str) -> int:
        return self.fetch_calls.count(collection_key)

    def _records(self, collection_key: str) -> list[dict[str, Any]]:
        return [dict(record) for record in self.collections.get(collection_key, [])]

    async def fetch_collection(self, collection_key: str) -> list[dict[str, Any]]:
        self.fetch_calls.append(collection_key)
        sent = self._records(collection_key)
        if self.gate is not None:
            await self.gate.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        return sent if self.snapshot_on_send else self._records(collection_key)

    async def perform_write(self, request: WriteRequest) -> Any:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append(request)
        return {"id": request.record_id or "new", **(request.payload or {})}


@pytest.fixture(autouse=True)
def isolated_config_manager():
    """Make sure no test sees a config manager left over by another test."""
    reset_config_manager()
    yield
    reset_config_manager()


@pytest.fixture
def virtual_scheduler():
    """Scheduler with a virtual clock starting at 0."""
    return VirtualScheduler()


@pytest.fixture
def fake_transport():
    """Transport serving a small zoo."""
    return FakeTransport(
        {
            "animals": [
                {"id": "a1", "name": "Lion"},
                {"id": "a2", "name": "Zebra"},
            ],
            "events": [{"id": "e1", "title": "Feeding time"}],
        }
    )


@pytest.fixture
def app_config():
    """Default configuration without refresh-on-invalidate.

    Tests that exercise automatic re-fetching after invalidation turn it on
    explicitly, so fetch counts stay predictable everywhere else.
    """
    return AppConfig(sync=SyncSettings(refresh_on_invalidate=False))


@pytest.fixture
def coordinator(fake_transport, virtual_scheduler, app_config):
    """Coordinator wired to the fake transport and the virtual scheduler."""
    return SyncCoordinator(
        fake_transport, scheduler=virtual_scheduler, config=app_config
    )
