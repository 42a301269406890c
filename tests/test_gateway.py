"""End-to-end tests for the gateway's HTTP and WebSocket endpoints."""

import asyncio
from contextlib import asynccontextmanager

import pytest
from aiohttp import test_utils

from wabridge.config.schema import Config
from wabridge.gateway import GatewayServer
from wabridge.pairing import ManualPairingBackend, PairingCoordinator, TimerPairingBackend
from wabridge.registry import ChannelStatus, JsonFileRegistry, SessionRegistry
from wabridge.transport import WebSocketHub

PHONE = "+5511912345678"


def _server(backend=None, registry=None) -> GatewayServer:
    hub = WebSocketHub()
    coordinator = PairingCoordinator(
        registry=registry if registry is not None else SessionRegistry(),
        transport=hub,
        backend=backend or TimerPairingBackend(delay_seconds=0.05),
    )
    return GatewayServer(coordinator=coordinator, hub=hub)


@asynccontextmanager
async def _client(server: GatewayServer):
    async with test_utils.TestClient(test_utils.TestServer(server.create_app())) as client:
        yield client


async def _connect(client, server: GatewayServer):
    """Open a socket and wait until the hub has registered it."""
    expected = server.hub.observer_count + 1
    ws = await client.ws_connect("/ws")
    for _ in range(100):
        if server.hub.observer_count >= expected:
            break
        await asyncio.sleep(0.01)
    return ws


async def _receive(ws, timeout: float = 2.0) -> dict:
    return await asyncio.wait_for(ws.receive_json(), timeout=timeout)


async def _start(ws, name="Vendas Varejo", phone=PHONE, paired_by="Admin") -> None:
    await ws.send_json({
        "event": "start-session",
        "data": {"name": name, "phone": phone, "pairedBy": paired_by},
    })


# ── Real-time channel ───────────────────────────────────────────────


class TestPairingChannel:
    @pytest.mark.asyncio
    async def test_pairing_flow(self):
        server = _server()
        async with _client(server) as client:
            requester = await _connect(client, server)
            observer = await _connect(client, server)

            await _start(requester)

            qr = await _receive(requester)
            assert qr["event"] == "qr"
            assert qr["data"]["number"] == PHONE
            assert "QR+para+%2B5511912345678" in qr["data"]["qr"]

            ready_requester = await _receive(requester)
            ready_observer = await _receive(observer)
            for msg in (ready_requester, ready_observer):
                assert msg["event"] == "ready"
                assert msg["data"]["number"]["id"] == PHONE
                assert msg["data"]["number"]["status"] == "online"
                assert msg["data"]["number"]["pairedBy"] == "Admin"

            await requester.close()
            await observer.close()

    @pytest.mark.asyncio
    async def test_qr_only_to_requester(self):
        server = _server(ManualPairingBackend())
        async with _client(server) as client:
            requester = await _connect(client, server)
            observer = await _connect(client, server)

            await _start(requester)
            assert (await _receive(requester))["event"] == "qr"

            with pytest.raises(asyncio.TimeoutError):
                await _receive(observer, timeout=0.1)

            await requester.close()
            await observer.close()

    @pytest.mark.asyncio
    async def test_missing_fields(self):
        server = _server()
        async with _client(server) as client:
            ws = await _connect(client, server)
            await _start(ws, name="")

            msg = await _receive(ws)
            assert msg == {
                "event": "pairing-error",
                "data": {"number": PHONE, "message": "Name and phone are required"},
            }
            assert len(server.coordinator.registry) == 0
            await ws.close()

    @pytest.mark.asyncio
    async def test_duplicate_start(self):
        server = _server(ManualPairingBackend())
        async with _client(server) as client:
            first = await _connect(client, server)
            second = await _connect(client, server)

            await _start(first)
            await _start(second, name="Outro")

            assert (await _receive(first))["event"] == "qr"
            error = await _receive(second)
            assert error["event"] == "pairing-error"
            assert error["data"]["message"] == "Number already exists"
            assert len(server.coordinator.registry) == 1

            await first.close()
            await second.close()

    @pytest.mark.asyncio
    async def test_malformed_frames_keep_connection(self):
        server = _server()
        async with _client(server) as client:
            ws = await _connect(client, server)
            await ws.send_str("not json")
            await ws.send_json({"event": "unknown", "data": {}})
            await _start(ws, name="")

            msg = await _receive(ws)
            assert msg["event"] == "pairing-error"
            await ws.close()

    @pytest.mark.asyncio
    async def test_failed_write_reported_to_requester(self, tmp_path):
        path = tmp_path / "numbers.json"
        server = _server(ManualPairingBackend(), registry=JsonFileRegistry(path))
        path.mkdir()
        async with _client(server) as client:
            ws = await _connect(client, server)
            await _start(ws)

            msg = await _receive(ws)
            assert msg["event"] == "pairing-error"
            assert msg["data"]["number"] == PHONE
            assert len(server.coordinator.registry) == 0
            assert server.coordinator.pending_identities == []

            path.rmdir()
            await _start(ws)
            assert (await _receive(ws))["event"] == "qr"
            assert server.coordinator.pending_identities == [PHONE]
            await ws.close()

    @pytest.mark.asyncio
    async def test_pending_numbers_resume_after_restart(self, tmp_path):
        path = tmp_path / "numbers.json"
        first = _server(ManualPairingBackend(), registry=JsonFileRegistry(path))
        async with _client(first) as client:
            ws = await _connect(client, first)
            await _start(ws)
            assert (await _receive(ws))["event"] == "qr"
            await ws.close()

        second = _server(ManualPairingBackend(), registry=JsonFileRegistry(path))
        async with _client(second) as client:
            assert second.coordinator.pending_identities == [PHONE]
            ws = await _connect(client, second)

            resp = await client.post(f"/numbers/{PHONE}/link")
            assert resp.status == 200
            msg = await _receive(ws)
            assert msg["event"] == "ready"
            assert msg["data"]["number"]["status"] == "online"
            await ws.close()

    @pytest.mark.asyncio
    async def test_disconnect_unregisters_observer(self):
        server = _server()
        async with _client(server) as client:
            ws = await _connect(client, server)
            await asyncio.sleep(0.05)
            assert server.hub.observer_count == 1
            await ws.close()
            await asyncio.sleep(0.05)
            assert server.hub.observer_count == 0


# ── HTTP API ────────────────────────────────────────────────────────


class TestNumbersApi:
    @pytest.mark.asyncio
    async def test_list_numbers(self):
        server = _server(ManualPairingBackend())
        async with _client(server) as client:
            resp = await client.get("/numbers")
            assert resp.status == 200
            assert await resp.json() == []

            server.coordinator.start_pairing("obs", "Vendas Varejo", PHONE, "Admin")
            resp = await client.get("/numbers")
            numbers = await resp.json()
            assert [n["id"] for n in numbers] == [PHONE]
            assert numbers[0]["status"] == "pending"
            assert numbers[0]["name"] == "Vendas Varejo"

    @pytest.mark.asyncio
    async def test_set_status_broadcasts(self):
        server = _server(ManualPairingBackend())
        server.coordinator.start_pairing("obs", "Vendas Varejo", PHONE, "Admin")
        async with _client(server) as client:
            observer = await _connect(client, server)

            resp = await client.put(f"/numbers/{PHONE}/status", json={"status": "offline"})
            assert resp.status == 200
            assert await resp.json() == {"message": "Status updated successfully"}
            assert server.coordinator.registry.find(PHONE).status == ChannelStatus.OFFLINE

            msg = await _receive(observer)
            assert msg["event"] == "status-update"
            assert msg["data"]["number"]["status"] == "offline"
            await observer.close()

    @pytest.mark.asyncio
    async def test_set_status_unknown_number(self):
        server = _server()
        async with _client(server) as client:
            observer = await _connect(client, server)
            resp = await client.put("/numbers/+000/status", json={"status": "offline"})
            assert resp.status == 404
            assert await resp.json() == {"error": "Number not found"}

            with pytest.raises(asyncio.TimeoutError):
                await _receive(observer, timeout=0.1)
            await observer.close()

    @pytest.mark.asyncio
    async def test_set_status_bad_requests(self):
        server = _server(ManualPairingBackend())
        server.coordinator.start_pairing("obs", "Vendas Varejo", PHONE, "Admin")
        async with _client(server) as client:
            resp = await client.put(f"/numbers/{PHONE}/status", data="not json")
            assert resp.status == 400

            resp = await client.put(f"/numbers/{PHONE}/status", json={})
            assert resp.status == 400
            assert (await resp.json())["error"] == "Status is required"

            resp = await client.put(f"/numbers/{PHONE}/status", json={"status": "banned"})
            assert resp.status == 400
            assert "Invalid status" in (await resp.json())["error"]

    @pytest.mark.asyncio
    async def test_delete_number(self):
        server = _server(ManualPairingBackend())
        server.coordinator.start_pairing("obs", "Vendas Varejo", PHONE, "Admin")
        async with _client(server) as client:
            observers = [await _connect(client, server) for _ in range(2)]

            resp = await client.delete(f"/numbers/{PHONE}")
            assert resp.status == 200
            assert await resp.json() == {"message": "Number deleted successfully"}
            assert server.coordinator.registry.find(PHONE) is None

            for ws in observers:
                msg = await _receive(ws)
                assert msg == {"event": "number-deleted", "data": {"id": PHONE}}
                await ws.close()

    @pytest.mark.asyncio
    async def test_delete_unknown_number(self):
        server = _server()
        async with _client(server) as client:
            resp = await client.delete("/numbers/+000")
            assert resp.status == 404
            assert await resp.json() == {"error": "Number not found"}

    @pytest.mark.asyncio
    async def test_delete_during_pairing_suppresses_ready(self):
        server = _server(TimerPairingBackend(delay_seconds=0.1))
        async with _client(server) as client:
            ws = await _connect(client, server)
            await _start(ws)
            assert (await _receive(ws))["event"] == "qr"

            resp = await client.delete(f"/numbers/{PHONE}")
            assert resp.status == 200
            assert (await _receive(ws))["event"] == "number-deleted"

            with pytest.raises(asyncio.TimeoutError):
                await _receive(ws, timeout=0.3)
            assert server.coordinator.registry.find(PHONE) is None
            await ws.close()

    @pytest.mark.asyncio
    async def test_get_qr(self):
        server = _server(ManualPairingBackend())
        server.coordinator.start_pairing("obs", "Vendas Varejo", PHONE, "Admin")
        async with _client(server) as client:
            resp = await client.get(f"/numbers/{PHONE}/qr")
            assert resp.status == 200
            assert "%2B5511912345678" in (await resp.json())["qr"]

            resp = await client.get("/numbers/+000/qr")
            assert resp.status == 404

    @pytest.mark.asyncio
    async def test_link_endpoint_manual_mode(self):
        server = _server(ManualPairingBackend())
        async with _client(server) as client:
            ws = await _connect(client, server)
            await _start(ws)
            assert (await _receive(ws))["event"] == "qr"

            resp = await client.post(f"/numbers/{PHONE}/link")
            assert resp.status == 200
            msg = await _receive(ws)
            assert msg["event"] == "ready"
            assert msg["data"]["number"]["status"] == "online"

            resp = await client.post(f"/numbers/{PHONE}/link")
            assert resp.status == 404
            await ws.close()

    @pytest.mark.asyncio
    async def test_link_endpoint_absent_in_timer_mode(self):
        server = _server()
        async with _client(server) as client:
            resp = await client.post(f"/numbers/{PHONE}/link")
            assert resp.status == 404

    @pytest.mark.asyncio
    async def test_health(self):
        server = _server()
        async with _client(server) as client:
            resp = await client.get("/health")
            assert resp.status == 200
            assert await resp.json() == {"status": "ok", "numbers": 0, "observers": 0}

    @pytest.mark.asyncio
    async def test_cors_headers(self):
        server = _server()
        async with _client(server) as client:
            resp = await client.get("/numbers", headers={"Origin": "http://localhost:9002"})
            assert resp.headers["Access-Control-Allow-Origin"] == "*"

            resp = await client.options("/numbers")
            assert resp.status == 204
            assert "PUT" in resp.headers["Access-Control-Allow-Methods"]

    @pytest.mark.asyncio
    async def test_cors_headers_on_routing_errors(self):
        server = _server()
        async with _client(server) as client:
            resp = await client.get("/nowhere", headers={"Origin": "http://localhost:9002"})
            assert resp.status == 404
            assert resp.headers["Access-Control-Allow-Origin"] == "*"

            resp = await client.post("/numbers", headers={"Origin": "http://localhost:9002"})
            assert resp.status == 405
            assert resp.headers["Access-Control-Allow-Origin"] == "*"


# ── Wiring ──────────────────────────────────────────────────────────


class TestFromConfig:
    def test_defaults(self):
        server = GatewayServer.from_config(Config())
        assert server.port == 3000
        assert isinstance(server.coordinator.backend, TimerPairingBackend)
        assert server.coordinator.backend.delay_seconds == 8.0
        assert server.coordinator.transport is server.hub

    def test_manual_json(self, tmp_path):
        config = Config()
        config.pairing.mode = "manual"
        config.registry.backend = "json"
        config.registry.path = str(tmp_path / "numbers.json")
        server = GatewayServer.from_config(config)
        assert isinstance(server.coordinator.backend, ManualPairingBackend)
        assert server.coordinator.registry.path == tmp_path / "numbers.json"
