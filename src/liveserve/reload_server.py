"""LiveReload notification sub-server.

A small FastAPI application on its own port that speaks the LiveReload
protocol (version 7) to browser clients:

    GET  /               - Server banner
    GET  /livereload.js  - Browser client script
    WS   /livereload     - Client channel (hello handshake, then reload commands)
    GET  /changed        - Notify clients, files from ?files=a,b
    POST /changed        - Notify clients, files from {"files": [...]}
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from fastapi import FastAPI, Query, Request, Response, WebSocket, WebSocketDisconnect

from liveserve import __version__
from liveserve.listener import EmbeddedServer, bind_socket, uvicorn_config

logger = logging.getLogger(__name__)

PROTOCOL_OFFICIAL_7 = "http://livereload.com/protocols/official-7"
SERVER_NAME = "liveserve"

HELLO_MESSAGE: dict[str, Any] = {
    "command": "hello",
    "protocols": [PROTOCOL_OFFICIAL_7],
    "serverName": SERVER_NAME,
}


def reload_message(path: str) -> dict[str, Any]:
    """Build the reload command for one changed file."""
    return {
        "command": "reload",
        "path": path,
        "liveCSS": True,
        "liveImg": True,
    }


def normalize_files(files: str | Iterable[str] | None) -> list[str]:
    """Accept a single path, a comma separated string or a list of paths."""
    if files is None:
        return []
    if isinstance(files, str):
        return [f.strip() for f in files.split(",") if f.strip()]
    return [str(f) for f in files if str(f)]


# =============================================================================
# Client Registry
# =============================================================================


class ReloadClients:
    """Registry of connected LiveReload browser clients."""

    def __init__(self) -> None:
        self.active: list[WebSocket] = []
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a new client connection."""
        await websocket.accept()
        async with self._lock:
            self.active.append(websocket)
        logger.debug(f"LiveReload client connected, total: {len(self.active)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        """Forget a client."""
        async with self._lock:
            if websocket in self.active:
                self.active.remove(websocket)
        logger.debug(f"LiveReload client disconnected, total: {len(self.active)}")

    async def broadcast(self, files: list[str]) -> int:
        """Send one reload command per file to every client.

        Clients that fail to receive (closed tabs, broken pipes) are dropped
        without raising.

        Returns:
            Number of clients notified
        """
        if not self.active or not files:
            return 0

        async with self._lock:
            connections = self.active.copy()

        disconnected: list[WebSocket] = []
        for ws in connections:
            try:
                for path in files:
                    await ws.send_json(reload_message(path))
            except Exception:
                disconnected.append(ws)

        for ws in disconnected:
            await self.disconnect(ws)

        return len(connections) - len(disconnected)

    async def close_all(self) -> None:
        """Close every client connection."""
        async with self._lock:
            connections = self.active.copy()
            self.active.clear()
        for ws in connections:
            try:
                await ws.close(code=1001)
            except Exception:
                pass

    @property
    def count(self) -> int:
        """Number of connected clients."""
        return len(self.active)


# =============================================================================
# Application Factory
# =============================================================================


def create_reload_app(clients: ReloadClients, client_script: str = "") -> FastAPI:
    """Create the notification sub-server application.

    Args:
        clients: Registry shared with the owning ``ReloadServer``
        client_script: Source of livereload.js

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="liveserve LiveReload",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get("/")
    async def banner() -> dict[str, str]:
        return {"tinylr": "Welcome", "version": __version__}

    @app.get("/livereload.js")
    async def livereload_js() -> Response:
        return Response(client_script, media_type="application/javascript")

    @app.get("/changed")
    async def changed_get(files: str | None = Query(default=None)) -> dict[str, Any]:
        names = normalize_files(files)
        notified = await clients.broadcast(names)
        return {"clients": notified, "files": names}

    @app.post("/changed")
    async def changed_post(request: Request) -> dict[str, Any]:
        try:
            payload = await request.json()
        except ValueError:
            payload = {}
        files = payload.get("files") if isinstance(payload, dict) else None
        names = normalize_files(files)
        notified = await clients.broadcast(names)
        return {"clients": notified, "files": names}

    @app.websocket("/livereload")
    async def livereload_socket(websocket: WebSocket) -> None:
        await clients.connect(websocket)
        try:
            while True:
                try:
                    message = await websocket.receive_json()
                except ValueError:
                    logger.debug("Ignoring malformed LiveReload client message")
                    continue
                if isinstance(message, dict) and message.get("command") == "hello":
                    await websocket.send_json(HELLO_MESSAGE)
        except WebSocketDisconnect:
            pass
        finally:
            await clients.disconnect(websocket)

    return app


# =============================================================================
# Server
# =============================================================================


class ReloadServer:
    """Runs the notification sub-server on its own port.

    Attributes:
        host: Interface to bind
        port: Requested port (0 picks a free one, see ``bound_port``)
        clients: Connected browser clients
        app: The FastAPI application
    """

    def __init__(
        self,
        port: int = 35729,
        host: str = "127.0.0.1",
        client_script: str = "",
    ) -> None:
        self.host = host
        self.port = port
        self.clients = ReloadClients()
        self.app = create_reload_app(self.clients, client_script)
        self.bound_port: int | None = None
        self._server: EmbeddedServer | None = None
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """Bind and start serving.

        Raises:
            OSError: If the port cannot be bound
        """
        if self._server is not None:
            return

        sock = bind_socket(self.host, self.port)
        self.bound_port = sock.getsockname()[1]
        config = uvicorn_config(self.app, ws="websockets")
        self._server = EmbeddedServer(config)
        try:
            self._task = await self._server.start_in_background(sock)
        except BaseException:
            self._server = None
            sock.close()
            raise

    async def changed(self, files: str | Iterable[str]) -> int:
        """Tell every connected client that ``files`` changed.

        Returns:
            Number of clients notified
        """
        return await self.clients.broadcast(normalize_files(files))

    async def close(self) -> None:
        """Disconnect clients and stop listening. Safe to call twice."""
        if self._server is None:
            return
        server, task = self._server, self._task
        self._server = None
        self._task = None
        await self.clients.close_all()
        await server.stop_background(task)

    def abort(self) -> None:
        """Stop listening synchronously, for use when no event loop can run."""
        if self._server is None:
            return
        self._server.close_listeners()
        self._server = None
        self._task = None

    @property
    def is_running(self) -> bool:
        return self._server is not None


__all__ = [
    "HELLO_MESSAGE",
    "PROTOCOL_OFFICIAL_7",
    "ReloadClients",
    "ReloadServer",
    "create_reload_app",
    "normalize_files",
    "reload_message",
]
