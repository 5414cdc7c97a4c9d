"""Error hierarchy for liveserve."""

from __future__ import annotations

from enum import IntEnum
from typing import Any


class ExitCode(IntEnum):
    """liveserve CLI exit codes."""

    SUCCESS = 0
    CONFIG_ERROR = 1  # Bad options or missing optional packages (user fixable)
    BIND_ERROR = 2  # Listener could not bind
    FATAL_ERROR = 3  # Unexpected crash


class LiveServeError(Exception):
    """Base exception for liveserve errors."""

    exit_code: ExitCode = ExitCode.FATAL_ERROR

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSON output."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "exit_code": self.exit_code,
            **self.context,
        }


class ConfigError(LiveServeError):
    """Configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR


class OptionalDependencyError(ConfigError):
    """Live reload was requested but its optional packages are not importable."""

    def __init__(self, message: str, missing: list[str]) -> None:
        super().__init__(message, missing=missing)
        self.missing = missing


class ServerStateError(LiveServeError):
    """Operation not allowed in the server's current lifecycle state."""


class CollectorClosedError(LiveServeError):
    """A serve root was pushed after collection completed."""


__all__ = [
    "ExitCode",
    "LiveServeError",
    "ConfigError",
    "OptionalDependencyError",
    "ServerStateError",
    "CollectorClosedError",
]
