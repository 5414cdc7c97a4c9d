"""Logging configuration for liveserve."""

from __future__ import annotations

import logging
from typing import Any, Literal

from rich.console import Console
from rich.logging import RichHandler

from liveserve.config import LogSettings

# Console instances for stdout/stderr
console = Console()
err_console = Console(stderr=True)

LOGGER_NAME = "liveserve"


def setup_logging(
    verbosity: Literal["quiet", "normal", "verbose"] = "normal",
) -> logging.Logger:
    """Configure the liveserve logger based on verbosity level."""
    logger = logging.getLogger(LOGGER_NAME)

    # Clear existing handlers
    logger.handlers.clear()

    level_map = {
        "quiet": logging.ERROR,
        "normal": logging.INFO,
        "verbose": logging.DEBUG,
    }
    logger.setLevel(level_map[verbosity])

    handler = RichHandler(
        console=err_console,
        show_time=verbosity == "verbose",
        show_path=verbosity == "verbose",
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)

    return logger


def get_logger() -> logging.Logger:
    """Get the liveserve logger instance."""
    return logging.getLogger(LOGGER_NAME)


class EventLog:
    """Writes lifecycle events, gated by per-category switches.

    Every server component logs through one of these so that the
    ``LogSettings`` of the running configuration decides what is shown.
    Errors are written at ERROR level, everything else at INFO.

    Attributes:
        settings: Category switches
        logger: Destination logger
    """

    def __init__(self, settings: LogSettings, logger: logging.Logger | None = None) -> None:
        self.settings = settings
        self.logger = logger or get_logger()

    def emit(self, category: str, message: str, *args: Any, exc_info: Any = None) -> bool:
        """Log ``message`` if ``category`` is enabled.

        Returns:
            True if the line was passed to the logger
        """
        if not self.settings.enabled(category):
            return False
        level = logging.ERROR if category == "error" else logging.INFO
        self.logger.log(level, message, *args, exc_info=exc_info)
        return True

    def connection(self, message: str, *args: Any) -> bool:
        return self.emit("connection", message, *args)

    def request(self, message: str, *args: Any) -> bool:
        return self.emit("request", message, *args)

    def error(self, message: str, *args: Any, exc_info: Any = None) -> bool:
        return self.emit("error", message, *args, exc_info=exc_info)

    def start(self, message: str, *args: Any) -> bool:
        return self.emit("start", message, *args)

    def stop(self, message: str, *args: Any) -> bool:
        return self.emit("stop", message, *args)

    def reload(self, message: str, *args: Any) -> bool:
        return self.emit("reload", message, *args)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_info(message: str) -> None:
    """Print an info message to stdout."""
    console.print(message)


__all__ = [
    "EventLog",
    "LOGGER_NAME",
    "console",
    "err_console",
    "get_logger",
    "print_error",
    "print_info",
    "setup_logging",
]
