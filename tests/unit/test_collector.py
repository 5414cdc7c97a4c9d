"""Tests for serve root collection."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path
from types import SimpleNamespace

import pytest

from liveserve.collector import PathItem, RootCollector, has_contents, item_path
from liveserve.errors import CollectorClosedError


class TestDescriptors:
    """Tests for descriptor inspection helpers."""

    def test_path_item_without_contents(self) -> None:
        assert has_contents(PathItem("public")) is False
        assert item_path(PathItem("public")) == Path("public")

    def test_path_item_with_contents(self) -> None:
        assert has_contents(PathItem("public/app.js", contents=b"x")) is True

    def test_empty_contents_still_a_file(self) -> None:
        """An empty file is still a file."""
        assert has_contents(PathItem("empty.txt", contents=b"")) is True

    def test_plain_paths(self, tmp_path: Path) -> None:
        """Plain paths are files only when they name an existing regular file."""
        page = tmp_path / "page.html"
        page.write_text("<p>hi</p>")
        assert has_contents(page) is True
        assert has_contents(str(page)) is True
        assert has_contents(tmp_path) is False
        assert has_contents(str(tmp_path / "missing")) is False

    def test_duck_typed_item(self) -> None:
        """Any object with path/contents attributes is accepted."""
        item = SimpleNamespace(path="/srv/site", contents=None)
        assert has_contents(item) is False
        assert item_path(item) == Path("/srv/site")

    def test_item_without_path(self) -> None:
        assert item_path(SimpleNamespace(contents=None)) is None
        assert item_path(PathItem("")) is None


class TestRootCollector:
    """Tests for RootCollector."""

    def test_push_filters_files(self, tmp_path: Path) -> None:
        """Directories are kept in arrival order, files are dropped."""
        page = tmp_path / "index.html"
        page.write_text("hi")
        collector = RootCollector()

        assert collector.push(PathItem("a")) is True
        assert collector.push(PathItem("a/app.js", contents=b"js")) is False
        assert collector.push(page) is False
        assert collector.push(tmp_path) is True
        assert collector.push(PathItem("b")) is True
        assert collector.push(SimpleNamespace(contents=None)) is False

        assert collector.roots == (Path("a"), tmp_path, Path("b"))

    def test_duplicates_kept(self) -> None:
        """The same directory may appear twice."""
        collector = RootCollector()
        collector.push(PathItem("a"))
        collector.push(PathItem("a"))
        assert collector.roots == (Path("a"), Path("a"))

    @pytest.mark.asyncio
    async def test_complete_calls_back_once(self) -> None:
        """Completion freezes the roots and calls back exactly once."""
        received: list[tuple[Path, ...]] = []

        async def on_complete(roots: tuple[Path, ...]) -> None:
            received.append(roots)

        collector = RootCollector(on_complete=on_complete)
        collector.push(PathItem("a"))
        collector.push(PathItem("b"))

        first = await collector.complete()
        second = await collector.complete()

        assert first == second == (Path("a"), Path("b"))
        assert received == [(Path("a"), Path("b"))]
        assert collector.is_complete is True

    @pytest.mark.asyncio
    async def test_push_after_complete_raises(self) -> None:
        """No roots can be added once collection completed."""
        collector = RootCollector()
        await collector.complete()
        with pytest.raises(CollectorClosedError):
            collector.push(PathItem("late"))
        assert collector.roots == ()

    @pytest.mark.asyncio
    async def test_empty_stream(self) -> None:
        """An empty stream completes with no roots."""
        received: list[tuple[Path, ...]] = []

        async def on_complete(roots: tuple[Path, ...]) -> None:
            received.append(roots)

        collector = RootCollector(on_complete=on_complete)
        assert await collector.consume([]) == ()
        assert received == [()]

    @pytest.mark.asyncio
    async def test_consume_sync_iterable(self) -> None:
        collector = RootCollector()
        roots = await collector.consume(
            [PathItem("a"), PathItem("a/x.css", contents=b"body{}"), PathItem("b")]
        )
        assert roots == (Path("a"), Path("b"))

    @pytest.mark.asyncio
    async def test_consume_async_iterable(self) -> None:
        """Items may arrive from an async stream."""

        async def stream() -> AsyncIterator[PathItem]:
            yield PathItem("dist")
            yield PathItem("dist/bundle.js", contents=b"")
            yield PathItem("static")

        collector = RootCollector()
        assert await collector.consume(stream()) == (Path("dist"), Path("static"))
        assert collector.is_complete is True
