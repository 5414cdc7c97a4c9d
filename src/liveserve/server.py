"""Server lifecycle management.

``LiveServer`` owns everything that runs while a site is being served:

- the HTTP listener (uvicorn, in the caller's event loop)
- the connection tracker used to force-close clients on shutdown
- with live reload: the notification sub-server and the debounced watcher

State machine::

    NOT_STARTED -> STARTING -> LISTENING -> STOPPING -> STOPPED

Teardown always runs in the same order: watcher, notification sub-server,
tracked connections, listener. It is triggered by ``stop()``, by SIGINT or
SIGTERM (the signal is re-delivered once teardown has finished), or by
interpreter exit.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import signal
import socket
import weakref
from collections.abc import AsyncIterable, Callable, Iterable
from enum import Enum
from pathlib import Path
from typing import Any

from uvicorn.protocols.http.auto import AutoHTTPProtocol

from liveserve.collector import RootCollector
from liveserve.config import ServerConfig
from liveserve.connections import ConnectionTracker
from liveserve.errors import OptionalDependencyError, ServerStateError
from liveserve.listener import EmbeddedServer, bind_socket, uvicorn_config
from liveserve.logging import EventLog
from liveserve.middleware import RequestLogger, build_app
from liveserve.optional import require_live_reload
from liveserve.reload_server import ReloadServer
from liveserve.watcher import DebouncedWatcher, WatchEvent

logger = logging.getLogger(__name__)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ServerState(str, Enum):
    """Lifecycle states of a LiveServer."""

    NOT_STARTED = "not_started"
    STARTING = "starting"
    LISTENING = "listening"
    STOPPING = "stopping"
    STOPPED = "stopped"


class LiveServer:
    """Static-file server with optional live reload.

    One instance serves once: after it has stopped, create a new one.

    Attributes:
        config: Frozen server configuration
        events: Category-gated event log
        state: Current lifecycle state
        roots: Serve roots, fixed when the server starts
        connections: Open connections on the HTTP listener
        reload_server: Notification sub-server, while live reload runs
        watcher: Debounced watcher over the roots, while live reload runs
        bind_error: Why the listener failed to bind, if it did
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        *,
        install_signal_handlers: bool = True,
        watcher: DebouncedWatcher | None = None,
    ) -> None:
        """Initialize the server.

        Args:
            config: Server configuration (default: built-in defaults)
            install_signal_handlers: Tear down on SIGINT/SIGTERM while listening
            watcher: Watcher to use for live reload (default: a new
                DebouncedWatcher)
        """
        self.config = config or ServerConfig()
        self.events = EventLog(self.config.log)
        self.state = ServerState.NOT_STARTED
        self.roots: tuple[Path, ...] = ()
        self.connections = ConnectionTracker(self.events)
        self.reload_server: ReloadServer | None = None
        self.watcher = watcher
        self.bind_error: OSError | None = None

        self._handle_signals = install_signal_handlers
        self._collector = RootCollector(on_complete=self.start)
        self._server: EmbeddedServer | None = None
        self._task: asyncio.Task[None] | None = None
        self._socket: socket.socket | None = None
        self._port: int | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._signals: list[signal.Signals] = []
        self._signal_task: asyncio.Task[None] | None = None
        self._stopped = asyncio.Event()
        self._start_finished: asyncio.Event | None = None

        # Weak so that an instance dropped without stop() is not kept alive
        self._exit_hook = _weak_exit_hook(self)
        atexit.register(self._exit_hook)

    # -------------------------------------------------------------------------
    # Root collection
    # -------------------------------------------------------------------------

    @property
    def collector(self) -> RootCollector:
        """Collector whose completion starts this server."""
        return self._collector

    async def serve(self, items: Iterable[Any] | AsyncIterable[Any]) -> None:
        """Collect serve roots from ``items`` and start serving them."""
        await self._collector.consume(items)

    # -------------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------------

    async def start(self, roots: Iterable[Path | str]) -> None:
        """Build the middleware chain and start listening.

        A bind failure is logged and recorded in ``bind_error``; the server
        is then stopped and does not retry. A ``stop()`` that arrives while
        starting waits for startup to settle, then tears down whatever came up.

        Raises:
            ServerStateError: If the server was already started
            OptionalDependencyError: If live reload is enabled but its
                packages are missing
        """
        if self.state is not ServerState.NOT_STARTED:
            raise ServerStateError(f"Cannot start a server that is {self.state.value}")

        self.state = ServerState.STARTING
        self._start_finished = asyncio.Event()
        try:
            await self._start(roots)
        finally:
            self._start_finished.set()

    async def _start(self, roots: Iterable[Path | str]) -> None:
        self.roots = tuple(Path(root) for root in roots)
        self._loop = asyncio.get_running_loop()

        try:
            app = RequestLogger(build_app(self.roots, self.config), self.events)
        except OptionalDependencyError:
            self._finish_stop()
            raise

        try:
            sock = bind_socket(self.config.host, self.config.port)
        except OSError as e:
            self.bind_error = e
            self.events.error(f"Error starting webserver: {e}")
            self._finish_stop()
            return

        self._socket = sock
        self._port = sock.getsockname()[1]
        http_protocol = self.connections.instrument(AutoHTTPProtocol)
        self._server = EmbeddedServer(uvicorn_config(app, http=http_protocol, ws="none"))
        try:
            self._task = await self._server.start_in_background(sock)
        except OSError as e:
            self.bind_error = e
            self.events.error(f"Error starting webserver: {e}")
            self._server = None
            self._finish_stop()
            return

        if self.state is not ServerState.STARTING:
            # stop() ran while the listener was coming up; it tears down once we return
            return

        self.state = ServerState.LISTENING
        self._install_signal_handlers()

        if self.config.live_reload:
            await self._start_live_reload()

        if self.state is not ServerState.LISTENING:
            return

        suffix = ""
        if self.reload_server is not None:
            suffix = f" (LiveReload port {self.reload_server.bound_port})"
        self.events.start(f"Webserver started on {self.url}{suffix}")

    async def _start_live_reload(self) -> None:
        support = require_live_reload()
        port = self.config.reload_port

        reload_server = ReloadServer(
            port=port,
            host=self.config.host,
            client_script=support.client_script,
        )
        try:
            await reload_server.start()
        except OSError as e:
            self.events.error(f"Error starting LiveReload on port {port}: {e}")
            return
        # Assigned even when a stop is pending so that its teardown closes it
        self.reload_server = reload_server

        if self.state is not ServerState.LISTENING:
            return

        if self.watcher is None:
            self.watcher = DebouncedWatcher()
        await self.watcher.start(self.roots, self._on_watch_event)

    async def _on_watch_event(self, event: WatchEvent) -> None:
        if event.is_error:
            self.events.error(f"File watcher error: {event.error}")
            return
        if self.reload_server is None or event.path is None:
            return

        path = str(event.path)
        self.events.reload(f"Sending {path} to livereload")
        await self.reload_server.changed(path)

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    async def stop(self) -> None:
        """Tear everything down. Calling it again is a no-op.

        Each step is attempted even if an earlier one failed.
        """
        if self.state is ServerState.STOPPED:
            return
        if self.state is ServerState.STOPPING:
            await self._stopped.wait()
            return
        if self.state is ServerState.NOT_STARTED:
            self._finish_stop()
            return

        self.state = ServerState.STOPPING
        if self._start_finished is not None:
            await self._start_finished.wait()
        if self.state is ServerState.STOPPED:
            return

        if self.watcher is not None:
            try:
                await self.watcher.stop()
            except Exception as e:
                self.events.error(f"Error stopping file watcher: {e}")

        if self.reload_server is not None:
            reload_server, self.reload_server = self.reload_server, None
            try:
                await reload_server.close()
                self.events.stop(f"LiveReload on port {reload_server.bound_port} stopped")
            except Exception as e:
                self.events.error(f"Error stopping LiveReload: {e}")

        closed = self.connections.close_all()
        if closed:
            logger.debug(f"Force-closed {closed} connections")

        if self._server is not None:
            server, task = self._server, self._task
            self._server = None
            self._task = None
            try:
                await server.stop_background(task)
            except Exception as e:
                self.events.error(f"Error closing webserver: {e}")

        self._finish_stop()
        self.events.stop("Webserver stopped")

    async def wait_stopped(self) -> None:
        """Wait until the server has stopped."""
        await self._stopped.wait()

    def _finish_stop(self) -> None:
        self.state = ServerState.STOPPED
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        self._remove_process_hooks()
        self._stopped.set()

    # -------------------------------------------------------------------------
    # Process hooks
    # -------------------------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        if not self._handle_signals or self._loop is None:
            return
        for sig in TERMINATION_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                # Not the main thread, or a platform without loop signal support
                continue
            self._signals.append(sig)

    def _remove_process_hooks(self) -> None:
        if self._loop is not None and not self._loop.is_closed():
            for sig in self._signals:
                try:
                    self._loop.remove_signal_handler(sig)
                except (NotImplementedError, RuntimeError, ValueError):
                    pass
        self._signals.clear()
        atexit.unregister(self._exit_hook)

    def _on_signal(self, sig: signal.Signals) -> None:
        if self._signal_task is None and self._loop is not None:
            self._signal_task = self._loop.create_task(self._terminate(sig))

    async def _terminate(self, sig: signal.Signals) -> None:
        """Run teardown, then deliver ``sig`` again with its previous handler."""
        logger.debug(f"Received {sig.name}, shutting down")
        await self.stop()
        signal.raise_signal(sig)

    def _on_process_exit(self) -> None:
        """Synchronous teardown at interpreter exit, when the loop is gone."""
        if self.state in (ServerState.NOT_STARTED, ServerState.STOPPED):
            return

        if self.watcher is not None:
            self.watcher.abort()
        if self.reload_server is not None:
            self.reload_server.abort()
            self.reload_server = None
        self.connections.close_all()
        if self._server is not None:
            self._server.close_listeners()
            self._server = None
        self._finish_stop()
        self.events.stop("Webserver stopped")

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def port(self) -> int:
        """Bound port, or the configured one before binding."""
        return self._port if self._port is not None else self.config.port

    @property
    def url(self) -> str:
        host = self.config.host
        if ":" in host:
            host = f"[{host}]"
        return f"http://{host}:{self.port}"

    @property
    def is_listening(self) -> bool:
        return self.state is ServerState.LISTENING


def _weak_exit_hook(server: LiveServer) -> Callable[[], None]:
    """atexit callback that runs ``server._on_process_exit`` while it is alive."""
    ref = weakref.WeakMethod(server._on_process_exit)

    def hook() -> None:
        method = ref()
        if method is not None:
            method()

    return hook


__all__ = [
    "LiveServer",
    "ServerState",
    "TERMINATION_SIGNALS",
]
