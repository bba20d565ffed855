"""Tests for HttpRemoteStore error mapping and addressing."""

import json

import httpx
import pytest

from academy_progress.config import reload_config
from academy_progress.errors import RemoteRejectedError, RemoteUnavailableError
from academy_progress.models import VideoProgress
from academy_progress.remote import HttpRemoteStore
from academy_progress.storage import MemoryStore, video_progress_key
from academy_progress.sync_coordinator import SyncCoordinator


def _store(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpRemoteStore("http://api.test/v1", timeout=1.0, client=client)


class TestHttpRemoteStore:
    @pytest.mark.asyncio
    async def test_get_found(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"current_time": 12})

        store = _store(handler)
        document = await store.get("USER#u1", "COURSE#c1#LESSON#l1")

        assert document == {"current_time": 12}
        assert requests[0].method == "GET"
        assert b"USER%23u1" in requests[0].url.raw_path
        assert b"COURSE%23c1%23LESSON%23l1" in requests[0].url.raw_path
        await store.close()

    @pytest.mark.asyncio
    async def test_get_missing_is_none(self):
        store = _store(lambda request: httpx.Response(404))

        assert await store.get("USER#u1", "COURSE#c1#PROGRESS") is None
        await store.close()

    @pytest.mark.asyncio
    async def test_put_sends_document(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(204)

        store = _store(handler)
        await store.put("USER#u1", "COURSE#c1#PROGRESS", {"total_xp": 50})

        assert bodies == [{"total_xp": 50}]
        await store.close()

    @pytest.mark.asyncio
    async def test_server_error_is_rejected(self):
        store = _store(lambda request: httpx.Response(503, text="throttled"))

        with pytest.raises(RemoteRejectedError) as exc_info:
            await store.put("USER#u1", "COURSE#c1#PROGRESS", {})

        assert exc_info.value.status_code == 503
        await store.close()

    @pytest.mark.asyncio
    async def test_connect_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        store = _store(handler)

        with pytest.raises(RemoteUnavailableError):
            await store.get("USER#u1", "COURSE#c1#PROGRESS")
        await store.close()

    @pytest.mark.asyncio
    async def test_non_json_body_is_rejected(self):
        store = _store(lambda request: httpx.Response(200, text="<html>proxy login</html>"))

        with pytest.raises(RemoteRejectedError) as exc_info:
            await store.get("USER#u1", "COURSE#c1#LESSON#l1")

        assert exc_info.value.status_code == 200
        await store.close()

    @pytest.mark.asyncio
    async def test_non_json_body_falls_back_to_local_copy(self, engine, connectivity, clock, sync_config):
        local = MemoryStore()
        local.put(
            video_progress_key("u1", "c1", "l1"),
            VideoProgress(user_id="u1", course_id="c1", lesson_id="l1", current_time=42).model_dump(mode="json"),
        )
        store = _store(lambda request: httpx.Response(200, text="<html>proxy login</html>"))
        coordinator = SyncCoordinator(local, store, engine, connectivity, clock, sync_config)

        loaded = await coordinator.load_progress("u1", "c1", "l1")

        assert loaded.current_time == 42
        await store.close()

    def test_requires_base_url(self, monkeypatch):
        monkeypatch.delenv("SYNC_REMOTE_BASE_URL", raising=False)
        reload_config()

        with pytest.raises(ValueError):
            HttpRemoteStore()
