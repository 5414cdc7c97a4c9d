"""Listening sockets and the embedded uvicorn server.

Both the HTTP listener and the notification sub-server run on uvicorn inside
the caller's event loop. Sockets are bound here first so that bind failures
surface as ``OSError`` to the owner instead of uvicorn exiting the process,
and process signals are left to ``LiveServer``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from collections.abc import Iterator
from typing import Any

import uvicorn

logger = logging.getLogger(__name__)

# How often startup readiness is polled
STARTUP_POLL_INTERVAL = 0.01


def bind_socket(host: str, port: int) -> socket.socket:
    """Create a TCP socket bound to ``host``/``port``.

    Raises:
        OSError: If the address cannot be bound
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


def uvicorn_config(app: Any, **options: Any) -> uvicorn.Config:
    """uvicorn configuration shared by the embedded servers.

    Logging stays with the caller (no log config, no access log) and the
    lifespan protocol is off.
    """
    defaults: dict[str, Any] = {
        "interface": "asgi3",
        "lifespan": "off",
        "log_config": None,
        "access_log": False,
        "proxy_headers": False,
    }
    return uvicorn.Config(app, **{**defaults, **options})


class EmbeddedServer(uvicorn.Server):
    """uvicorn server that never touches process signal handlers."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    async def start_in_background(self, sock: socket.socket) -> asyncio.Task[None]:
        """Serve on ``sock`` in a background task, returning once listening."""
        task = asyncio.create_task(self.serve(sockets=[sock]))
        while not self.started:
            if task.done():
                task.result()
                raise OSError(f"Server on {sock.getsockname()} exited during startup")
            await asyncio.sleep(STARTUP_POLL_INTERVAL)
        return task

    async def stop_background(self, task: asyncio.Task[None] | None) -> None:
        """Close listeners without waiting for open connections."""
        self.should_exit = True
        self.force_exit = True
        if task is not None:
            await task

    def close_listeners(self) -> None:
        """Stop accepting connections without awaiting anything."""
        self.should_exit = True
        self.force_exit = True
        for listener in getattr(self, "servers", []):
            try:
                listener.close()
            except Exception as e:
                logger.debug(f"Error closing listener: {e}")


__all__ = [
    "EmbeddedServer",
    "bind_socket",
    "uvicorn_config",
]
