"""Lazy loading of the optional live reload packages.

Live reload needs three packages that plain static serving does not:

- ``watchfiles`` watches the serve roots
- ``websockets`` carries the notification sub-server's WebSocket traffic
- ``livereload`` ships the browser client script

They are only imported when live reload is actually used. If any one of them
is missing, a single error naming all three is raised so they get installed
together.
"""

from __future__ import annotations

import functools
import importlib
import logging
from dataclasses import dataclass
from importlib import resources
from types import ModuleType

from liveserve.errors import OptionalDependencyError

logger = logging.getLogger(__name__)

OPTIONAL_PACKAGES = ("watchfiles", "websockets", "livereload")

OPTIONAL_PACKAGES_ERROR = (
    "You need the `watchfiles`, `websockets` and `livereload` packages installed "
    "to use live reload functionality (pip install 'liveserve[livereload]')."
)

# Location of the client script inside the livereload distribution
CLIENT_SCRIPT_RESOURCE = ("vendors", "livereload.js")


@dataclass(frozen=True)
class LiveReloadSupport:
    """The loaded optional packages.

    Attributes:
        watchfiles: The watchfiles module
        websockets: The websockets module
        client_script: Source of livereload.js
    """

    watchfiles: ModuleType
    websockets: ModuleType
    client_script: str


@functools.lru_cache(maxsize=None)
def require_live_reload() -> LiveReloadSupport:
    """Import the live reload packages, failing with one aggregated error.

    Successful results are cached; failures are not, so installing the
    packages later in the same process is picked up.

    Raises:
        OptionalDependencyError: If any of the packages cannot be imported
    """
    modules: dict[str, ModuleType] = {}
    missing: list[str] = []
    for name in OPTIONAL_PACKAGES:
        try:
            modules[name] = importlib.import_module(name)
        except ImportError:
            missing.append(name)

    client_script = None
    if "livereload" in modules:
        try:
            client_script = (
                resources.files("livereload").joinpath(*CLIENT_SCRIPT_RESOURCE).read_text("utf-8")
            )
        except (FileNotFoundError, OSError):
            missing.append("livereload")

    if missing:
        logger.debug(f"Live reload unavailable, missing: {', '.join(missing)}")
        raise OptionalDependencyError(OPTIONAL_PACKAGES_ERROR, missing=missing)

    return LiveReloadSupport(
        watchfiles=modules["watchfiles"],
        websockets=modules["websockets"],
        client_script=client_script or "",
    )


__all__ = [
    "LiveReloadSupport",
    "OPTIONAL_PACKAGES",
    "OPTIONAL_PACKAGES_ERROR",
    "require_live_reload",
]
