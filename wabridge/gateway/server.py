"""HTTP and WebSocket server for the pairing panel."""

import json

from aiohttp import WSMsgType, web
from loguru import logger

from wabridge.config.schema import Config
from wabridge.errors import PairingError
from wabridge.pairing.backend import ManualPairingBackend, PairingBackend, TimerPairingBackend
from wabridge.pairing.coordinator import PairingCoordinator
from wabridge.registry.store import JsonFileRegistry, SessionRegistry
from wabridge.transport.base import PAIRING_ERROR, START_SESSION, Event
from wabridge.transport.hub import WebSocketHub


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


def cors_middleware(origins: list[str]):
    """Build a middleware adding CORS headers for ``origins``."""
    allow_all = "*" in origins

    def cors_headers(request: web.Request) -> dict[str, str]:
        origin = request.headers.get("Origin")
        if allow_all:
            headers = {"Access-Control-Allow-Origin": "*"}
        elif origin and origin in origins:
            headers = {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
        else:
            return {}
        headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
        headers["Access-Control-Allow-Headers"] = "Content-Type"
        return headers

    @web.middleware
    async def middleware(request: web.Request, handler):
        if request.method == "OPTIONS":
            response = web.Response(status=204)
        else:
            try:
                response = await handler(request)
            except web.HTTPException as e:
                # Routing errors (404, 405) carry the headers too
                e.headers.update(cors_headers(request))
                raise

        if response.prepared:  # WebSocket upgrades
            return response

        response.headers.update(cors_headers(request))
        return response

    return middleware


class GatewayServer:
    """
    Pairing gateway.

    Provides endpoints for:
    - Real-time pairing channel (GET /ws)
    - Number listing, status updates and deletion (/numbers)
    - Credential re-issue (GET /numbers/{id}/qr)
    - External link confirmation for the manual backend (POST /numbers/{id}/link)
    - Health check (GET /health)
    """

    def __init__(
        self,
        coordinator: PairingCoordinator,
        hub: WebSocketHub,
        host: str = "0.0.0.0",
        port: int = 3000,
        cors_origins: list[str] | None = None,
    ):
        """
        Initialize the gateway server.

        Args:
            coordinator: Pairing state machine.
            hub: Transport the coordinator emits through.
            host: Host to bind to.
            port: Port to listen on.
            cors_origins: Allowed browser origins ("*" for any).
        """
        self.coordinator = coordinator
        self.hub = hub
        self.host = host
        self.port = port
        self.cors_origins = cors_origins if cors_origins is not None else ["*"]
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    @classmethod
    def from_config(cls, config: Config) -> "GatewayServer":
        """Wire registry, backend, hub and coordinator from configuration."""
        if config.registry.backend == "json":
            registry: SessionRegistry = JsonFileRegistry(config.registry_path)
        else:
            registry = SessionRegistry()

        if config.pairing.mode == "manual":
            backend: PairingBackend = ManualPairingBackend(config.pairing.qr_url_template)
        else:
            backend = TimerPairingBackend(
                delay_seconds=config.pairing.link_delay_seconds,
                qr_url_template=config.pairing.qr_url_template,
            )

        hub = WebSocketHub()
        coordinator = PairingCoordinator(registry=registry, transport=hub, backend=backend)
        return cls(
            coordinator=coordinator,
            hub=hub,
            host=config.gateway.host,
            port=config.gateway.port,
            cors_origins=config.gateway.cors_origins,
        )

    def create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application(middlewares=[cors_middleware(self.cors_origins)])
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/ws", self._handle_socket)
        app.router.add_get("/numbers", self._handle_list_numbers)
        app.router.add_get("/numbers/{id}/qr", self._handle_get_qr)
        app.router.add_put("/numbers/{id}/status", self._handle_set_status)
        app.router.add_delete("/numbers/{id}", self._handle_delete_number)
        if isinstance(self.coordinator.backend, ManualPairingBackend):
            app.router.add_post("/numbers/{id}/link", self._handle_confirm_link)
        app.on_startup.append(self._on_startup)
        app.on_shutdown.append(self._on_shutdown)
        return app

    # =========================================================================
    # Real-time channel
    # =========================================================================

    async def _handle_socket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle a dashboard's WebSocket connection."""
        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)

        observer_id = self.hub.register(ws)
        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    self._dispatch(observer_id, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"WebSocket error for observer {observer_id}: {ws.exception()}")
        finally:
            self.hub.unregister(observer_id)

        return ws

    def _dispatch(self, observer_id: str, raw: str) -> None:
        """Route one client frame."""
        try:
            event = Event.from_json(raw)
        except ValueError as e:
            logger.warning(f"Ignoring malformed frame from {observer_id}: {e}")
            return

        if event.name == START_SESSION:
            self._on_start_session(observer_id, event.data)
        else:
            logger.debug(f"Ignoring unknown event '{event.name}' from {observer_id}")

    def _on_start_session(self, observer_id: str, data: dict) -> None:
        phone = str(data.get("phone") or "")
        try:
            self.coordinator.start_pairing(
                requester=observer_id,
                display_name=str(data.get("name") or ""),
                identity=phone,
                registered_by=str(data.get("pairedBy") or ""),
            )
        except PairingError as e:
            logger.warning(f"Pairing rejected for '{phone}': {e.message}")
            self.hub.emit_to(observer_id, Event(PAIRING_ERROR, {
                "number": phone,
                "message": e.message,
            }))
        except Exception as e:
            logger.error(f"Error starting pairing for '{phone}': {e}")
            self.hub.emit_to(observer_id, Event(PAIRING_ERROR, {
                "number": phone,
                "message": "Could not register number",
            }))

    # =========================================================================
    # Request/response API
    # =========================================================================

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({
            "status": "ok",
            "numbers": len(self.coordinator.registry),
            "observers": self.hub.observer_count,
        })

    async def _handle_list_numbers(self, request: web.Request) -> web.Response:
        records = self.coordinator.registry.list()
        return web.json_response([r.to_dict() for r in records])

    async def _handle_get_qr(self, request: web.Request) -> web.Response:
        identity = request.match_info["id"]
        try:
            qr = self.coordinator.reissue_credential(identity)
        except PairingError as e:
            return _error(e.message, e.status_code)
        return web.json_response({"qr": qr})

    async def _handle_set_status(self, request: web.Request) -> web.Response:
        """
        Update a number's status.

        Expected JSON body:
        {
            "status": "online" | "offline" | "expired" | "pending"
        }
        """
        identity = request.match_info["id"]
        try:
            data = await request.json()
        except json.JSONDecodeError:
            return _error("Invalid JSON", 400)

        status = data.get("status") if isinstance(data, dict) else None
        if not status:
            return _error("Status is required", 400)

        try:
            self.coordinator.set_status(identity, status)
        except PairingError as e:
            return _error(e.message, e.status_code)
        except Exception as e:
            logger.error(f"Error updating status of {identity}: {e}")
            return _error(str(e), 500)

        return web.json_response({"message": "Status updated successfully"})

    async def _handle_delete_number(self, request: web.Request) -> web.Response:
        identity = request.match_info["id"]
        try:
            self.coordinator.delete_channel(identity)
        except PairingError as e:
            return _error(e.message, e.status_code)
        except Exception as e:
            logger.error(f"Error deleting {identity}: {e}")
            return _error(str(e), 500)

        return web.json_response({"message": "Number deleted successfully"})

    async def _handle_confirm_link(self, request: web.Request) -> web.Response:
        identity = request.match_info["id"]
        try:
            self.coordinator.confirm_link(identity)
        except PairingError as e:
            return _error(e.message, e.status_code)
        return web.json_response({"message": "Link confirmed"})

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def _on_startup(self, app: web.Application) -> None:
        self.coordinator.resume_pending()

    async def _on_shutdown(self, app: web.Application) -> None:
        await self.coordinator.shutdown()
        await self.hub.close_all()

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info(f"Pairing gateway listening on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        logger.info("Pairing gateway stopped")
