"""Collection of serve roots from a stream of path descriptors.

Callers (typically a build pipeline) hand over directory descriptors one by
one and then signal the end of the stream. Only directories become serve
roots: a descriptor that carries file content is dropped, as is anything
without a path. Completion freezes the roots and starts the server.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterable, Awaitable, Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from liveserve.errors import CollectorClosedError

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[tuple[Path, ...]], Awaitable[Any]]


@dataclass(frozen=True)
class PathItem:
    """A path descriptor.

    Attributes:
        path: Filesystem path the descriptor refers to
        contents: File content, or None for a bare directory reference
    """

    path: Path | str
    contents: bytes | None = None


def has_contents(item: Any) -> bool:
    """Check whether a descriptor carries readable content (is a file).

    Plain ``str`` / ``os.PathLike`` values carry content when they name an
    existing regular file.
    """
    if isinstance(item, (str, os.PathLike)):
        return Path(item).is_file()
    return getattr(item, "contents", None) is not None


def item_path(item: Any) -> Path | None:
    """Path of a descriptor, or None if it has none."""
    if isinstance(item, (str, os.PathLike)):
        return Path(item)
    path = getattr(item, "path", None)
    if path is None or path == "":
        return None
    return Path(path)


class RootCollector:
    """Accumulates serve roots until the input stream ends.

    Attributes:
        on_complete: Awaited with the frozen roots when collection completes
    """

    def __init__(self, on_complete: CompletionCallback | None = None) -> None:
        self.on_complete = on_complete
        self._roots: list[Path] = []
        self._frozen: tuple[Path, ...] | None = None

    def push(self, item: Any) -> bool:
        """Offer one descriptor.

        Returns:
            True if the item became a serve root, False if it was filtered

        Raises:
            CollectorClosedError: If collection already completed
        """
        if self._frozen is not None:
            raise CollectorClosedError("Cannot add serve roots after collection completed")

        if has_contents(item):
            logger.debug(f"Skipping file-like item {item_path(item)}: serve roots must be directories")
            return False

        path = item_path(item)
        if path is None:
            logger.debug(f"Skipping item without a path: {item!r}")
            return False

        self._roots.append(path)
        return True

    async def consume(self, items: Iterable[Any] | AsyncIterable[Any]) -> tuple[Path, ...]:
        """Push every item of a sync or async iterable, then complete."""
        if isinstance(items, AsyncIterable):
            async for item in items:
                self.push(item)
        else:
            for item in items:
                self.push(item)
        return await self.complete()

    async def complete(self) -> tuple[Path, ...]:
        """Freeze the roots and run the completion callback.

        Completing again returns the same roots without calling back.
        """
        if self._frozen is not None:
            return self._frozen

        self._frozen = tuple(self._roots)
        logger.debug(f"Collected {len(self._frozen)} serve roots")
        if self.on_complete is not None:
            await self.on_complete(self._frozen)
        return self._frozen

    @property
    def roots(self) -> tuple[Path, ...]:
        """Roots collected so far, in arrival order."""
        return self._frozen if self._frozen is not None else tuple(self._roots)

    @property
    def is_complete(self) -> bool:
        return self._frozen is not None


__all__ = [
    "PathItem",
    "RootCollector",
    "has_contents",
    "item_path",
]
