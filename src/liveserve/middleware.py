"""Middleware chain construction.

Turns the frozen list of serve roots and the configuration into the ordered
request handlers of the HTTP listener:

    [LiveReloadInjector?, StaticFileResponder(root_1), ..., StaticFileResponder(root_n)]

The injector, when live reload is on, always comes first so every page gets
the client snippet whichever root serves it. Responders keep root order, so
earlier roots shadow later ones.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.types import ASGIApp, Receive, Scope, Send

from liveserve.config import ServerConfig
from liveserve.injector import LiveReloadInjector
from liveserve.logging import EventLog
from liveserve.optional import require_live_reload
from liveserve.static import StaticFileResponder


def build_middleware_chain(
    roots: Sequence[Path | str],
    config: ServerConfig,
) -> list[Middleware]:
    """Build the ordered middleware chain for ``roots``.

    Args:
        roots: Serve roots in precedence order
        config: Server configuration

    Returns:
        Middleware entries, outermost first

    Raises:
        OptionalDependencyError: If live reload is enabled but its packages
            are not installed
    """
    static_options = config.static_options
    chain = [
        Middleware(StaticFileResponder, directory=Path(root), options=static_options)
        for root in roots
    ]

    if config.live_reload:
        require_live_reload()
        reload_options = config.middleware.connect_livereload
        chain.insert(
            0,
            Middleware(
                LiveReloadInjector,
                port=reload_options.port,
                hostname=reload_options.hostname,
                src=reload_options.src,
                ignore=reload_options.ignore,
                include=reload_options.include,
            ),
        )

    return chain


def build_app(roots: Sequence[Path | str], config: ServerConfig) -> Starlette:
    """Compose the middleware chain into an ASGI application.

    Requests no middleware answers get a plain 404.
    """
    return Starlette(routes=[], middleware=build_middleware_chain(roots, config))


class RequestLogger:
    """Outermost ASGI wrapper writing one ``request`` event per HTTP request."""

    def __init__(self, app: ASGIApp, events: EventLog) -> None:
        self.app = app
        self.events = events

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            self.events.request(f"Request {scope['method']} {scope['path']}")
        await self.app(scope, receive, send)


__all__ = [
    "RequestLogger",
    "build_app",
    "build_middleware_chain",
]
