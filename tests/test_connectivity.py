"""Tests for ConnectivityMonitor and ConnectivityProbe."""

import httpx
import pytest

from academy_progress.connectivity import ConnectivityMonitor, ConnectivityProbe


class TestConnectivityMonitor:
    @pytest.mark.asyncio
    async def test_notifies_on_transitions_only(self):
        monitor = ConnectivityMonitor(online=True)
        seen = []
        monitor.subscribe(seen.append)

        assert await monitor.set_online(True) is False
        assert await monitor.set_online(False) is True
        assert await monitor.set_online(False) is False
        assert await monitor.set_online(True) is True

        assert seen == [False, True]

    @pytest.mark.asyncio
    async def test_async_listener_awaited(self):
        monitor = ConnectivityMonitor(online=False)
        seen = []

        async def listener(online):
            seen.append(online)

        monitor.subscribe(listener)
        await monitor.set_online(True)

        assert seen == [True]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self):
        monitor = ConnectivityMonitor(online=True)
        seen = []

        def broken(online):
            raise RuntimeError("boom")

        monitor.subscribe(broken)
        monitor.subscribe(seen.append)
        await monitor.set_online(False)

        assert monitor.is_online is False
        assert seen == [False]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        monitor = ConnectivityMonitor(online=True)
        seen = []
        monitor.subscribe(seen.append)
        monitor.unsubscribe(seen.append)

        await monitor.set_online(False)

        assert seen == []


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestConnectivityProbe:
    @pytest.mark.asyncio
    async def test_healthy_response_goes_online(self):
        monitor = ConnectivityMonitor(online=False)
        client = _client(lambda request: httpx.Response(200))
        probe = ConnectivityProbe(monitor, url="http://api.test/health", client=client)

        assert await probe.check_once() is True
        assert monitor.is_online is True
        await client.aclose()

    @pytest.mark.asyncio
    async def test_server_error_goes_offline(self):
        monitor = ConnectivityMonitor(online=True)
        client = _client(lambda request: httpx.Response(503))
        probe = ConnectivityProbe(monitor, url="http://api.test/health", client=client)

        assert await probe.check_once() is False
        assert monitor.is_online is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_connect_error_goes_offline(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        monitor = ConnectivityMonitor(online=True)
        client = _client(handler)
        probe = ConnectivityProbe(monitor, url="http://api.test/health", client=client)

        await probe.check_once()

        assert monitor.is_online is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_without_url_keeps_state(self):
        monitor = ConnectivityMonitor(online=True)
        probe = ConnectivityProbe(monitor, url=None)
        probe.url = None

        assert await probe.check_once() is True

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        monitor = ConnectivityMonitor(online=False)
        client = _client(lambda request: httpx.Response(200))
        probe = ConnectivityProbe(monitor, url="http://api.test/health", interval_seconds=60, client=client)

        await probe.start()
        await probe.stop()

        assert probe.running is False
        await client.aclose()
