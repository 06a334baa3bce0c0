"""Tests for startup and shutdown of the orchestrator (no audio components loaded)."""
import asyncio

import httpx
import pytest

import chat.remote
import core.main
from chat.base import ChatBackend, ChatSetupError
from chat.remote import RemoteSessionBackend, check_endpoint
from core.config import ConfigManager
from core.main import Orchestrator

URL = "https://chat.example.test/api/chat"


class RecordingBackend(ChatBackend):
    kind = "fake"

    def __init__(self):
        self.closed = False

    async def exchange(self, utterance):
        return "ok"

    def reset(self):
        pass

    async def close(self):
        self.closed = True


def endpoint_returning(fake_result):
    async def fake_check(url, timeout=3.0, transport=None):
        return fake_result
    return fake_check


class TestCheckEndpoint:
    @pytest.mark.asyncio
    async def test_method_not_allowed_is_reachable(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(405))
        assert await check_endpoint(URL, transport=transport)

    @pytest.mark.asyncio
    async def test_server_error_is_unreachable(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        assert not await check_endpoint(URL, transport=transport)

    @pytest.mark.asyncio
    async def test_transport_error_is_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        assert not await check_endpoint(URL, transport=httpx.MockTransport(handler))


class TestOrchestrator:
    @pytest.mark.asyncio
    async def test_missing_key_is_fatal(self, tmp_path):
        orchestrator = Orchestrator(ConfigManager(tmp_path))
        with pytest.raises(ChatSetupError):
            await orchestrator.start()
        assert orchestrator._backend is None
        assert orchestrator._session is None

    @pytest.mark.asyncio
    async def test_unreachable_remote_is_fatal(self, tmp_path, monkeypatch):
        monkeypatch.setattr(chat.remote, "check_endpoint", endpoint_returning(False))
        cm = ConfigManager(tmp_path)
        cm.update_nested("remote", chat_url=URL)

        orchestrator = Orchestrator(cm)
        with pytest.raises(ChatSetupError):
            await orchestrator.start()
        assert orchestrator._session is None

    @pytest.mark.asyncio
    async def test_reachable_remote_builds_remote_backend(self, tmp_path, monkeypatch):
        monkeypatch.setattr(chat.remote, "check_endpoint", endpoint_returning(True))
        cm = ConfigManager(tmp_path)
        cm.update_nested("remote", chat_url=URL)

        backend = await Orchestrator(cm)._create_backend()
        assert isinstance(backend, RemoteSessionBackend)
        assert backend.url == URL

    @pytest.mark.asyncio
    async def test_shutdown_stops_loop_and_closes_backend(self, tmp_path):
        orchestrator = Orchestrator(ConfigManager(tmp_path))
        backend = RecordingBackend()
        orchestrator._backend = backend
        orchestrator._session_task = asyncio.create_task(orchestrator.state.stop_event.wait())

        await orchestrator.shutdown()

        assert not orchestrator.state.is_running
        assert orchestrator._session_task.done()
        assert backend.closed

    @pytest.mark.asyncio
    async def test_shutdown_cancels_stuck_loop(self, tmp_path, monkeypatch):
        monkeypatch.setattr(core.main, "_SHUTDOWN_GRACE", 0.05)
        orchestrator = Orchestrator(ConfigManager(tmp_path))
        backend = RecordingBackend()
        orchestrator._backend = backend
        orchestrator._session_task = asyncio.create_task(asyncio.sleep(60))

        await orchestrator.shutdown()

        assert orchestrator._session_task.cancelled()
        assert backend.closed
