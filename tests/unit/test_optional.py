"""Tests for lazy loading of the live reload packages."""

from __future__ import annotations

import importlib
from collections.abc import Iterator
from types import ModuleType

import pytest

from liveserve.errors import ConfigError, ExitCode, OptionalDependencyError
from liveserve.optional import OPTIONAL_PACKAGES, OPTIONAL_PACKAGES_ERROR, require_live_reload


@pytest.fixture(autouse=True)
def fresh_cache() -> Iterator[None]:
    require_live_reload.cache_clear()
    yield
    require_live_reload.cache_clear()


def block_imports(monkeypatch: pytest.MonkeyPatch, *blocked: str) -> None:
    real_import = importlib.import_module

    def fake_import(name: str, package: str | None = None) -> ModuleType:
        if name in blocked:
            raise ImportError(f"No module named {name!r}")
        return real_import(name, package)

    monkeypatch.setattr("liveserve.optional.importlib.import_module", fake_import)


class TestRequireLiveReload:
    """Tests for require_live_reload."""

    def test_all_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        block_imports(monkeypatch, *OPTIONAL_PACKAGES)

        with pytest.raises(OptionalDependencyError) as exc_info:
            require_live_reload()

        error = exc_info.value
        assert error.missing == list(OPTIONAL_PACKAGES)
        assert error.message == OPTIONAL_PACKAGES_ERROR
        assert isinstance(error, ConfigError)
        assert error.exit_code == ExitCode.CONFIG_ERROR

    def test_one_missing_names_all(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The message always names the whole set, whichever one is missing."""
        block_imports(monkeypatch, "websockets")

        with pytest.raises(OptionalDependencyError) as exc_info:
            require_live_reload()

        assert "websockets" in exc_info.value.missing
        for name in OPTIONAL_PACKAGES:
            assert name in str(exc_info.value)
        assert exc_info.value.to_dict()["error"] == "OptionalDependencyError"

    def test_failure_not_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A later call retries the imports."""
        block_imports(monkeypatch, *OPTIONAL_PACKAGES)
        with pytest.raises(OptionalDependencyError):
            require_live_reload()
        monkeypatch.undo()

        for name in OPTIONAL_PACKAGES:
            pytest.importorskip(name)
        assert require_live_reload() is not None

    @pytest.mark.livereload
    def test_available(self) -> None:
        """With the packages installed, the client script is loaded."""
        for name in OPTIONAL_PACKAGES:
            pytest.importorskip(name)

        support = require_live_reload()

        assert support.watchfiles.__name__ == "watchfiles"
        assert support.websockets.__name__ == "websockets"
        assert "LiveReload" in support.client_script
        assert require_live_reload() is support
