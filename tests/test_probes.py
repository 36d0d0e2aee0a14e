"""
Tests for the live probe set against local test servers, and for the
mock probe set.
"""
import asyncio
import socket

import aiohttp
import pytest
from aiohttp import web

from detection import probes
from detection.cancellation import CancellationSource
from detection.models import CapabilityKind
from detection.probes import DEFAULT_MOCK_RESPONSES, MockProbeSet, RouterProbeSet, create_probe_set


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def token():
    return CancellationSource().token


@pytest.fixture
async def tcp_listener():
    """Accepting TCP server on an ephemeral port"""

    async def on_connect(reader, writer):
        writer.close()

    server = await asyncio.start_server(on_connect, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield port
    server.close()
    await server.wait_closed()


@pytest.fixture
async def web_server():
    """Start an aiohttp app answering / with the given headers; returns its port"""
    runners = []

    async def _start(headers: dict) -> int:
        async def index(request):
            return web.Response(text="ok", headers=headers)

        app = web.Application()
        app.router.add_get("/", index)
        runner = web.AppRunner(app)
        await runner.setup()
        port = free_port()
        site = web.TCPSite(runner, "127.0.0.1", port)
        await site.start()
        runners.append(runner)
        return port

    yield _start
    for runner in runners:
        await runner.cleanup()


class FakeResponse:

    def __init__(self, status: int, payload=None, raise_on_json: bool = False):
        self.status = status
        self.payload = payload
        self.raise_on_json = raise_on_json

    async def json(self, content_type=None):
        if self.raise_on_json:
            raise ValueError("not json")
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.urls = []

    def get(self, url, **kwargs):
        self.urls.append(url)
        if self.error:
            raise self.error
        return self.response


class TestTcpProbe:

    @pytest.mark.asyncio
    async def test_open_port_matches(self, monkeypatch, tcp_listener, token):
        monkeypatch.setitem(probes.CAPABILITY_PORTS, CapabilityKind.SECURE_MANAGEMENT, (tcp_listener, 1, True))

        descriptor = await RouterProbeSet(timeout=1.0).probe_tcp("127.0.0.1", CapabilityKind.SECURE_MANAGEMENT, token)

        assert descriptor.kind == CapabilityKind.SECURE_MANAGEMENT
        assert descriptor.port == tcp_listener
        assert descriptor.secure
        assert descriptor.identity is None

    @pytest.mark.asyncio
    async def test_closed_port_is_a_miss(self, monkeypatch, token):
        monkeypatch.setitem(probes.CAPABILITY_PORTS, CapabilityKind.PLAINTEXT_MANAGEMENT, (free_port(), 2, False))

        descriptor = await RouterProbeSet(timeout=1.0).probe_tcp("127.0.0.1", CapabilityKind.PLAINTEXT_MANAGEMENT, token)

        assert descriptor is None

    @pytest.mark.asyncio
    async def test_cancelled_token_skips_probe(self, tcp_listener, monkeypatch):
        monkeypatch.setitem(probes.CAPABILITY_PORTS, CapabilityKind.LEGACY_CONSOLE, (tcp_listener, 5, False))
        source = CancellationSource()
        source.cancel()

        assert await RouterProbeSet().probe_tcp("127.0.0.1", CapabilityKind.LEGACY_CONSOLE, source.token) is None


class TestHttpProbe:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("headers", [
        {"Server": "MikroTik"},
        {"X-MikroTik-Router": "1"},
    ])
    async def test_router_headers_match(self, monkeypatch, web_server, token, headers):
        port = await web_server(headers)
        monkeypatch.setitem(probes.CAPABILITY_PORTS, CapabilityKind.PLAINTEXT_HTTP, (port, 4, False))

        async with aiohttp.ClientSession() as session:
            descriptor = await RouterProbeSet().probe_http(session, "127.0.0.1", token)

        assert descriptor.kind == CapabilityKind.PLAINTEXT_HTTP
        assert not descriptor.secure

    @pytest.mark.asyncio
    async def test_other_web_server_is_a_miss(self, monkeypatch, web_server, token):
        port = await web_server({"Server": "nginx"})
        monkeypatch.setitem(probes.CAPABILITY_PORTS, CapabilityKind.PLAINTEXT_HTTP, (port, 4, False))

        async with aiohttp.ClientSession() as session:
            assert await RouterProbeSet().probe_http(session, "127.0.0.1", token) is None

    @pytest.mark.asyncio
    async def test_nothing_listening_is_a_miss(self, monkeypatch, token):
        monkeypatch.setitem(probes.CAPABILITY_PORTS, CapabilityKind.PLAINTEXT_HTTP, (free_port(), 4, False))

        async with aiohttp.ClientSession() as session:
            assert await RouterProbeSet().probe_http(session, "127.0.0.1", token) is None


class TestRestProbe:

    @pytest.mark.asyncio
    async def test_identity_captured(self, token):
        session = FakeSession(FakeResponse(200, {"name": "Core-Router"}))

        descriptor = await RouterProbeSet().probe_rest_api(session, "192.168.88.1", token)

        assert descriptor.kind == CapabilityKind.SECURE_REST
        assert descriptor.port == 443
        assert descriptor.identity == "Core-Router"
        assert session.urls == ["https://192.168.88.1:443/rest/system/identity"]

    @pytest.mark.asyncio
    async def test_answer_without_identity(self, token):
        session = FakeSession(FakeResponse(200, raise_on_json=True))

        descriptor = await RouterProbeSet().probe_rest_api(session, "192.168.88.1", token)

        assert descriptor.identity is None

    @pytest.mark.asyncio
    async def test_unauthorised_is_a_miss(self, token):
        session = FakeSession(FakeResponse(401))

        assert await RouterProbeSet().probe_rest_api(session, "192.168.88.1", token) is None

    @pytest.mark.asyncio
    async def test_connection_error_is_a_miss(self, token):
        session = FakeSession(error=aiohttp.ClientConnectionError("refused"))

        assert await RouterProbeSet().probe_rest_api(session, "192.168.88.1", token) is None


class TestProbeSet:

    @pytest.mark.asyncio
    async def test_unreachable_host_returns_nothing(self, token):
        # TEST-NET-1 is never routed
        capabilities = await RouterProbeSet(timeout=0.2).probe("192.0.2.1", token)

        assert capabilities == []

    @pytest.mark.asyncio
    async def test_cancelled_token_returns_nothing(self):
        source = CancellationSource()
        source.cancel()

        assert await RouterProbeSet().probe("192.0.2.1", source.token) == []

    @pytest.mark.asyncio
    async def test_mock_probe_set(self, token):
        probe_set = MockProbeSet()

        assert await probe_set.probe("192.168.88.1", token) == DEFAULT_MOCK_RESPONSES["192.168.88.1"]
        assert await probe_set.probe("192.168.88.2", token) == []
        assert probe_set.probed == ["192.168.88.1", "192.168.88.2"]

    def test_create_probe_set(self):
        assert isinstance(create_probe_set({"probe_mode": "mock"}), MockProbeSet)
        live = create_probe_set({"probe_timeout": 0.3})
        assert isinstance(live, RouterProbeSet)
        assert live.timeout == 0.3
        with pytest.raises(ValueError):
            create_probe_set({"probe_mode": "simulated"})
