# SPDX-License-Identifier: MIT
"""End-to-end scenarios across coordinator, cache, queue and transport."""

import asyncio
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from zooquest_sync.config import AppConfig, SyncSettings
from zooquest_sync.enums import SyncEventKind, WriteAction
from zooquest_sync.scheduler import VirtualScheduler
from zooquest_sync.sync import ReachabilityMonitor, SyncCoordinator
from zooquest_sync.transport import HttpTransport, WriteRequest


def json_response(data, status=200):
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=data)
    return mock_response


class TestSyncScenarios:
    """Integration tests for complete sync workflows."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_short_ttl_expires_and_next_read_fetches(
        self, coordinator, fake_transport, virtual_scheduler
    ):
        """A 100ms entry is served at 50ms and re-fetched after 150ms."""
        coordinator.cache.set("animals_all", [{"id": "a1"}], ttl=0.1)

        await virtual_scheduler.advance(0.05)
        assert coordinator.cache.get("animals_all") == [{"id": "a1"}]

        await virtual_scheduler.advance(0.1)
        assert coordinator.cache.get("animals_all") is None

        records = await coordinator.sync_collection("animals")

        assert fake_transport.fetch_count("animals") == 1
        assert records == fake_transport.collections["animals"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_offline_update_runs_once_after_reconnect(self, coordinator):
        """ONLINE -> OFFLINE -> update r1 -> ONLINE flushes the update once."""
        run = AsyncMock(return_value={"id": "r1"})
        assert coordinator.is_online

        coordinator.on_offline()
        queued = await coordinator.handle_data_modification(run, "animals", "r1")
        assert queued.record_id == "r1"
        run.assert_not_awaited()

        await coordinator.on_online()

        run.assert_awaited_once()
        assert len(coordinator.pending) == 0
        assert coordinator.get_network_status()["pending_operation_count"] == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_offline_edits_flush_latest_in_order(
        self, coordinator, fake_transport
    ):
        """Repeated offline edits of one record collapse; order is kept."""
        await coordinator.sync_collection("animals")
        coordinator.on_offline()

        await coordinator.submit_write(
            WriteRequest(WriteAction.UPDATE, "animals", "a1", {"name": "Leo"})
        )
        await coordinator.submit_write(
            WriteRequest(WriteAction.CREATE, "events", payload={"title": "Talk"})
        )
        await coordinator.submit_write(
            WriteRequest(WriteAction.UPDATE, "animals", "a1", {"name": "Leonard"})
        )
        assert len(coordinator.pending) == 2

        await coordinator.on_online()
        await coordinator.wait_for_background()

        assert [(w.collection_key, w.payload) for w in fake_transport.writes] == [
            ("animals", {"name": "Leonard"}),
            ("events", {"title": "Talk"}),
        ]
        # Tracked collection refreshed after reconnecting
        assert coordinator.cache.has("animals_all")
        assert fake_transport.fetch_count("animals") == 2

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_periodic_jobs_with_reachability_monitor(
        self, fake_transport, virtual_scheduler
    ):
        """Probe failures take the coordinator offline; recovery resyncs."""
        coordinator = SyncCoordinator(
            fake_transport,
            scheduler=virtual_scheduler,
            config=AppConfig(sync=SyncSettings(refresh_on_invalidate=False)),
        )
        probe = AsyncMock(return_value=False)
        monitor = ReachabilityMonitor(
            coordinator, probe, scheduler=virtual_scheduler, interval=30
        )
        received = []
        coordinator.subscribe(SyncEventKind.CONNECTIVITY_CHANGED, received.append)

        coordinator.start()
        monitor.start()
        await coordinator.sync_collection("events")

        await virtual_scheduler.advance(60)
        assert not coordinator.is_online

        write = AsyncMock()
        await coordinator.handle_data_modification(write, "events", "e1")

        probe.return_value = True
        await virtual_scheduler.advance(30)
        await coordinator.wait_for_background()

        assert coordinator.is_online
        write.assert_awaited_once()
        assert len(received) == 2

        monitor.stop()
        await coordinator.dispose()
        assert virtual_scheduler.active_jobs == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_http_transport_stale_fallback(self):
        """Records fetched over HTTP stay readable when the server goes away."""
        scheduler = VirtualScheduler()
        records = [{"id": "n1", "message": "Gate B closed"}]

        with patch("aiohttp.ClientSession.request") as mock_request:
            mock_request.return_value.__aenter__.return_value = json_response(records)

            async with HttpTransport(
                collections=AppConfig().collections, fetch_retries=0
            ) as transport:
                coordinator = SyncCoordinator(transport, scheduler=scheduler)

                assert await coordinator.sync_collection("notifications") == records

                await scheduler.advance(121)
                mock_request.side_effect = aiohttp.ClientConnectionError("refused")

                assert await coordinator.sync_collection("notifications") == records
                await coordinator.dispose()

        urls = [call.args[1] for call in mock_request.call_args_list]
        assert urls == [
            "http://localhost:3000/api/admin/notifications",
            "http://localhost:3000/api/admin/notifications",
        ]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_concurrent_readers_and_writer(self, coordinator, fake_transport):
        """Readers racing a write never trigger more than one fetch at a time."""
        fake_transport.gate = asyncio.Event()
        readers = [
            asyncio.create_task(coordinator.sync_collection("animals"))
            for _ in range(5)
        ]
        await asyncio.sleep(0)
        fake_transport.gate.set()
        results = await asyncio.gather(*readers)

        await coordinator.handle_data_modification(AsyncMock(), "animals", "a1")
        after_write = await coordinator.sync_collection("animals")

        assert fake_transport.fetch_count("animals") == 2
        assert all(result == after_write for result in results)
