"""macrohost: main entry point.

Runs on the machine whose mouse and keyboard are being automated. Clients
connect over WebSocket, edit the step list, start/stop recording and
replay, and receive progress events.

Endpoints:
  GET /ws         - WebSocket protocol endpoint
  GET /socket.io  - alias of /ws for older clients
  GET /health     - liveness check
  GET /status     - run/record state, step count, timing

Every connection gets a fresh client id and an outbound queue in the
session's ClientRegistry. Inbound frames are dispatched in arrival order,
one at a time per connection. A background loop broadcasts pointer
position changes to everyone.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import uuid

from aiohttp import WSMsgType, web

from macrohost import messages
from macrohost.config import SERVER_NAME, VERSION, Config
from macrohost.dispatcher import ProtocolDispatcher
from macrohost.gateway import ClientConnection
from macrohost.input.driver import ClipboardService, InputDriver
from macrohost.session import SessionState

log = logging.getLogger(__name__)

WS_ROUTES = ("/ws", "/socket.io")


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

class MacroServer:
    """aiohttp application that owns the session and its background loops."""

    def __init__(
        self,
        config: Config,
        driver: InputDriver,
        clipboard: ClipboardService,
    ) -> None:
        self._config = config
        self._driver = driver
        self._clipboard = clipboard

        self.state = SessionState(allow_concurrent_runs=config.allow_concurrent_runs)
        self.dispatcher = ProtocolDispatcher(
            self.state,
            driver,
            clipboard,
            reserved_hotkeys=config.reserved_hotkeys,
            record_poll_interval=config.record_poll_interval,
        )

        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._shutdown = asyncio.Event()
        self._position_task: asyncio.Task | None = None
        self._sockets: dict[str, web.WebSocketResponse] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def build_app(self) -> web.Application:
        """Application with routes and startup/shutdown hooks, not yet listening."""
        if self._app is not None:
            return self._app
        app = web.Application()
        for route in WS_ROUTES:
            app.router.add_get(route, self._handle_ws)
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/status", self._handle_status)
        app.on_startup.append(self._on_startup)
        app.on_shutdown.append(self._on_shutdown)
        self._app = app
        return app

    async def start(self) -> None:
        """Start listening on the configured host and port."""
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()
        log.info("macrohost listening on %s:%d", self._config.host, self._config.port)

    async def stop(self) -> None:
        """Graceful shutdown: halt runs and recording, close clients, stop the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        log.info("macrohost stopped")

    async def _on_startup(self, app: web.Application) -> None:
        self._shutdown.clear()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._driver.start)
        self._position_task = asyncio.create_task(
            self._position_loop(), name="position-telemetry",
        )

    async def _on_shutdown(self, app: web.Application) -> None:
        self._shutdown.set()
        await self.dispatcher.shutdown()

        if self._position_task is not None:
            self._position_task.cancel()
            try:
                await self._position_task
            except asyncio.CancelledError:
                pass
            self._position_task = None

        for ws in list(self._sockets.values()):
            await ws.close(code=1001, message=b"Server shutdown")

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._driver.stop)
        except Exception as exc:
            log.warning("Input driver stop failed: %s", exc)

    # ------------------------------------------------------------------
    # WebSocket
    # ------------------------------------------------------------------

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        """GET /ws, /socket.io

        One task per connection: register, read frames in order, unregister.
        """
        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)

        client_id = str(uuid.uuid4())
        conn = ClientConnection(client_id, ws.send_str)
        async with self.state.lock:
            self.state.clients.add(conn)
            count = len(self.state.clients)
        conn.start()
        self._sockets[client_id] = ws
        log.info("Client %s connected from %s (%d connected)", client_id, request.remote, count)

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    try:
                        await self.dispatcher.handle_message(client_id, msg.data)
                    except Exception:
                        log.exception("Error handling message from %s", client_id)
                elif msg.type == WSMsgType.ERROR:
                    log.warning("Client %s connection error: %s", client_id, ws.exception())
                else:
                    log.debug("Ignoring %s frame from %s", msg.type, client_id)
        finally:
            async with self.state.lock:
                self.state.clients.remove(client_id)
                count = len(self.state.clients)
            await conn.close()
            self._sockets.pop(client_id, None)
            log.info("Client %s disconnected (%d connected)", client_id, count)

        return ws

    # ------------------------------------------------------------------
    # HTTP handlers
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        """GET /health"""
        async with self.state.lock:
            clients = len(self.state.clients)
        return web.json_response({
            "status": "ok",
            "name": SERVER_NAME,
            "version": VERSION,
            "platform": sys.platform,
            "clients": clients,
        })

    async def _handle_status(self, request: web.Request) -> web.Response:
        """GET /status"""
        async with self.state.lock:
            body = self.state.status()
        return web.json_response(body)

    # ------------------------------------------------------------------
    # Pointer telemetry
    # ------------------------------------------------------------------

    async def _position_loop(self) -> None:
        """Broadcast mouse_position whenever the pointer moves."""
        loop = asyncio.get_running_loop()
        interval = self._config.position_poll_interval
        last: tuple[int, int] | None = None
        failing = False

        while not self._shutdown.is_set():
            try:
                pos = await loop.run_in_executor(None, self._driver.position)
                failing = False
            except Exception:
                # Log once per failure streak
                if not failing:
                    log.exception("Pointer position read failed")
                failing = True
                pos = None

            if pos is not None and pos != last:
                last = pos
                async with self.state.lock:
                    self.state.clients.broadcast(messages.mouse_position(*pos))

            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def make_backend(config: Config) -> tuple[InputDriver, ClipboardService]:
    """Input driver and clipboard for the configured backend."""
    if config.input_backend == "mock":
        from macrohost.input.driver import MockClipboard, MockInputDriver
        log.warning("INPUT_BACKEND=mock: no real input will be injected")
        return MockInputDriver(), MockClipboard()
    if config.input_backend != "desktop":
        raise ValueError(f"Unknown INPUT_BACKEND: {config.input_backend!r}")
    # Touches the display on import
    from macrohost.input.clipboard import SystemClipboard
    from macrohost.input.desktop import DesktopDriver
    return DesktopDriver(), SystemClipboard()


async def run(config: Config) -> None:
    """Start the server, run until shutdown."""
    driver, clipboard = make_backend(config)
    server = MacroServer(config, driver, clipboard)
    await server.start()

    # Signal handling
    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _signal_handler() -> None:
        log.info("Shutdown signal received")
        shutdown.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    log.info(
        "%s %s running (backend=%s, concurrent_runs=%s, reserved=%s)",
        SERVER_NAME,
        VERSION,
        config.input_backend,
        config.allow_concurrent_runs,
        ",".join(sorted(config.reserved_hotkeys)),
    )

    await shutdown.wait()
    log.info("Shutting down...")
    await server.stop()
    log.info("Shutdown complete")


def main() -> None:
    """Entry point: load env, configure logging, run the server."""
    config = Config.load()

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
