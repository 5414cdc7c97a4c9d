"""liveserve - Embeddable static-file server with optional live reload.

Serves one or more directories over HTTP, and when live reload is enabled
watches them for changes and tells connected browsers to reload.

Example:
    >>> import asyncio
    >>> from liveserve import LiveServer, ServerConfig
    >>>
    >>> async def main() -> None:
    ...     server = LiveServer(ServerConfig(port=9000, live_reload=True))
    ...     await server.serve(["public", "build"])
    ...     await server.wait_stopped()
    >>>
    >>> asyncio.run(main())
"""

from __future__ import annotations

__version__ = "0.1.0"

from liveserve.collector import PathItem, RootCollector
from liveserve.config import LOG_PROFILES, LogSettings, ServerConfig
from liveserve.errors import LiveServeError, OptionalDependencyError
from liveserve.server import LiveServer, ServerState

__all__ = [
    "__version__",
    # Configuration
    "ServerConfig",
    "LogSettings",
    "LOG_PROFILES",
    # Collection
    "PathItem",
    "RootCollector",
    # Server
    "LiveServer",
    "ServerState",
    # Errors
    "LiveServeError",
    "OptionalDependencyError",
]
