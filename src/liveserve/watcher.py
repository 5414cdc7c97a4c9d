"""Debounced file system watcher for live reload.

Watches the serve roots with watchfiles and reports a change only once the
stream of raw events has been quiet for a fixed period, so that an editor
saving several files (or one file several times) triggers one reload.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from liveserve.optional import require_live_reload

logger = logging.getLogger(__name__)

# Quiet period before a burst of changes is reported
QUIET_PERIOD_MS = 250

WatchFactory = Callable[..., AsyncIterator[set[tuple[Any, str]]]]


@dataclass(frozen=True)
class WatchEvent:
    """A stable change, or an error from the watch primitive.

    Attributes:
        path: Changed path (None for errors not tied to a path)
        error: The exception when this event reports a failure
    """

    path: Path | None
    error: BaseException | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


class Debouncer:
    """Coalesces bursts of paths into callbacks after a quiet period.

    Every ``trigger`` restarts a single timer. When it finally fires, each
    distinct path seen since the last flush is passed to the callback once,
    in the order it was first seen.

    Attributes:
        delay_ms: Quiet period in milliseconds
    """

    def __init__(self, callback: Callable[[Path], None], delay_ms: int = QUIET_PERIOD_MS) -> None:
        self.delay_ms = delay_ms
        self._callback = callback
        self._pending: dict[Path, None] = {}
        self._handle: asyncio.TimerHandle | None = None

    def trigger(self, path: Path) -> None:
        """Record a raw change and restart the quiet-period timer."""
        self._pending.setdefault(path, None)
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay_ms / 1000.0, self.flush)

    def flush(self) -> None:
        """Deliver all pending paths now."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

        paths = list(self._pending)
        self._pending.clear()
        for path in paths:
            try:
                self._callback(path)
            except Exception as e:
                logger.error(f"Error handling change of {path}: {e}")

    def cancel(self) -> None:
        """Drop pending paths without delivering them."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending.clear()

    @property
    def pending_count(self) -> int:
        """Number of distinct paths waiting for the quiet period."""
        return len(self._pending)


class DebouncedWatcher:
    """Async filesystem watcher with quiet-period debouncing.

    Only changes made after ``start`` are reported. Watch errors go to the
    observers registered with ``on_error``; when there are none they are
    delivered through the change callback as an error ``WatchEvent``.

    Attributes:
        paths: Paths being watched
        delay_ms: Quiet period in milliseconds
    """

    def __init__(
        self,
        delay_ms: int = QUIET_PERIOD_MS,
        watch: WatchFactory | None = None,
    ) -> None:
        """Initialize the watcher.

        Args:
            delay_ms: Quiet period before a change is reported
            watch: awatch-compatible factory (default: ``watchfiles.awatch``,
                loaded lazily)
        """
        self.delay_ms = delay_ms
        self.paths: list[Path] = []
        self._watch = watch
        self._on_change: Callable[[WatchEvent], Any] | None = None
        self._error_observers: list[Callable[[BaseException], Any]] = []
        self._debouncer: Debouncer | None = None
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None
        self._callbacks: set[asyncio.Future[Any]] = set()

    def on_error(self, callback: Callable[[BaseException], Any]) -> None:
        """Register an observer for watch errors."""
        self._error_observers.append(callback)

    async def start(
        self,
        paths: Iterable[Path | str],
        on_change: Callable[[WatchEvent], Any],
    ) -> None:
        """Start watching ``paths``.

        Args:
            paths: Directories or files to watch
            on_change: Called (sync or async) with each stable change

        Raises:
            OptionalDependencyError: If no factory was given and watchfiles
                is not installed
        """
        if self._task is not None:
            logger.warning("DebouncedWatcher already running")
            return

        factory = self._watch or require_live_reload().watchfiles.awatch

        self.paths = [Path(p) for p in paths]
        self._on_change = on_change
        self._debouncer = Debouncer(self._emit_change, self.delay_ms)
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(factory))
        logger.debug(f"DebouncedWatcher started, watching {len(self.paths)} paths")

    async def stop(self) -> None:
        """Stop watching. Safe to call when not started."""
        if self._task is None:
            return

        if self._stop_event is not None:
            self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

        if self._debouncer is not None:
            self._debouncer.cancel()
            self._debouncer = None
        logger.debug("DebouncedWatcher stopped")

    def abort(self) -> None:
        """Stop watching without awaiting the watch task, for use when no loop can run."""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self._debouncer is not None:
            self._debouncer.cancel()
            self._debouncer = None

    async def _run(self, factory: WatchFactory) -> None:
        """Main watch loop - feeds raw changes into the debouncer."""
        try:
            async for changes in factory(
                *self.paths,
                stop_event=self._stop_event,
                watch_filter=self._watch_filter,
                recursive=True,
            ):
                for _change, path_str in changes:
                    if self._debouncer is not None:
                        self._debouncer.trigger(Path(path_str))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._report_error(e)

    @staticmethod
    def _watch_filter(change: Any, path: str) -> bool:
        """Report everything except deletions."""
        return getattr(change, "name", None) != "deleted"

    def _emit_change(self, path: Path) -> None:
        self._deliver(WatchEvent(path=path))

    def _report_error(self, error: BaseException) -> None:
        if not self._error_observers:
            self._deliver(WatchEvent(path=None, error=error))
            return
        for observer in list(self._error_observers):
            self._invoke(observer, error)

    def _deliver(self, event: WatchEvent) -> None:
        if self._on_change is None:
            logger.debug(f"Dropping watch event without a listener: {event}")
            return
        self._invoke(self._on_change, event)

    def _invoke(self, callback: Callable[[Any], Any], arg: Any) -> None:
        try:
            result = callback(arg)
        except Exception as e:
            logger.error(f"Watch callback failed: {e}")
            return
        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._callbacks.add(future)
            future.add_done_callback(self._callback_done)

    def _callback_done(self, future: asyncio.Future[Any]) -> None:
        self._callbacks.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Watch callback failed: {future.exception()}")

    @property
    def is_running(self) -> bool:
        """Check if the watcher is currently running."""
        return self._task is not None and not self._task.done()


__all__ = [
    "Debouncer",
    "DebouncedWatcher",
    "QUIET_PERIOD_MS",
    "WatchEvent",
]
