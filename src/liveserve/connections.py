"""Tracking of open transport connections on the HTTP listener.

The tracker is the authoritative record of which client connections are
open. On shutdown every tracked connection is aborted rather than drained,
so the server can exit promptly even with slow clients.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from typing import Any

from liveserve.logging import EventLog

logger = logging.getLogger(__name__)


def peer_address(transport: asyncio.BaseTransport) -> str:
    """Best-effort client address of a transport, for log lines."""
    peer = transport.get_extra_info("peername")
    if isinstance(peer, tuple) and peer:
        return str(peer[0])
    return str(peer) if peer else "unknown"


class ConnectionTracker:
    """Set of open connections on one listener.

    Mutated only from the event loop thread: ``connection_made`` and
    ``connection_lost`` callbacks are delivered there.

    Attributes:
        events: Event log used for connection lines
    """

    def __init__(self, events: EventLog | None = None) -> None:
        self.events = events
        self._transports: set[asyncio.BaseTransport] = set()

    def track(self, transport: asyncio.BaseTransport) -> None:
        """Add a newly accepted connection."""
        self._transports.add(transport)
        if self.events is not None:
            self.events.connection(f"Connection from {peer_address(transport)}")

    def forget(self, transport: asyncio.BaseTransport | None) -> None:
        """Remove a connection that has closed."""
        if transport is not None:
            self._transports.discard(transport)

    def close_all(self) -> int:
        """Abort every tracked connection.

        In-flight requests are abandoned. Entries are removed as their
        ``connection_lost`` callbacks arrive.

        Returns:
            Number of connections aborted
        """
        transports = list(self._transports)
        for transport in transports:
            try:
                transport.abort()  # type: ignore[attr-defined]
            except Exception as e:
                logger.debug(f"Error aborting connection: {e}")
        return len(transports)

    def instrument(self, protocol_cls: type[asyncio.Protocol]) -> type[asyncio.Protocol]:
        """Return a subclass of ``protocol_cls`` that reports to this tracker.

        Args:
            protocol_cls: Protocol class used by the listener for each
                accepted connection

        Returns:
            Protocol class with connection tracking
        """
        tracker = self

        class TrackedProtocol(protocol_cls):  # type: ignore[valid-type,misc]
            def connection_made(self, transport: Any) -> None:
                self._tracked_transport = transport
                tracker.track(transport)
                super().connection_made(transport)

            def connection_lost(self, exc: Exception | None) -> None:
                tracker.forget(getattr(self, "_tracked_transport", None))
                super().connection_lost(exc)

        TrackedProtocol.__name__ = f"Tracked{protocol_cls.__name__}"
        TrackedProtocol.__qualname__ = TrackedProtocol.__name__
        return TrackedProtocol

    def __len__(self) -> int:
        return len(self._transports)

    def __contains__(self, transport: object) -> bool:
        return transport in self._transports

    def __iter__(self) -> Iterator[asyncio.BaseTransport]:
        return iter(list(self._transports))


__all__ = [
    "ConnectionTracker",
    "peer_address",
]
