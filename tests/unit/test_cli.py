"""Tests for the liveserve command line."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from click.testing import CliRunner

from liveserve import __version__
from liveserve.cli import main
from liveserve.config import LOG_PROFILES, ServerConfig
from liveserve.errors import ExitCode, OptionalDependencyError


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def run_mock(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> AsyncMock:
    """Replace the serve loop and keep config files out of reach."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("liveserve.cli.setup_logging", lambda verbosity: None)
    run = AsyncMock(return_value=ExitCode.SUCCESS)
    monkeypatch.setattr("liveserve.cli._run", run)
    return run


class TestCli:
    """Tests for the liveserve command."""

    def test_help(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Serve ROOTS over HTTP" in result.output
        assert "--live-reload" in result.output

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_defaults_to_cwd(self, runner: CliRunner, run_mock: AsyncMock) -> None:
        result = runner.invoke(main, [])
        assert result.exit_code == 0

        config, roots = run_mock.await_args.args
        assert isinstance(config, ServerConfig)
        assert config == ServerConfig()
        assert roots == (Path("."),)

    def test_options_reach_config(
        self, runner: CliRunner, run_mock: AsyncMock, tmp_path: Path
    ) -> None:
        first = tmp_path / "public"
        second = tmp_path / "static"
        first.mkdir()
        second.mkdir()

        result = runner.invoke(
            main,
            [
                str(first),
                str(second),
                "--port",
                "9000",
                "--index",
                "home.html",
                "--live-reload",
                "--log",
                "verbose",
            ],
        )
        assert result.exit_code == 0

        config, roots = run_mock.await_args.args
        assert roots == (first, second)
        assert config.port == 9000
        assert config.index == "home.html"
        assert config.live_reload is True
        assert config.log == LOG_PROFILES["verbose"]

    def test_config_file(self, runner: CliRunner, run_mock: AsyncMock, tmp_path: Path) -> None:
        config_file = tmp_path / "site.toml"
        config_file.write_text("port = 9100\n")

        result = runner.invoke(main, ["--config", str(config_file), "--host", "0.0.0.0"])
        assert result.exit_code == 0

        config, _ = run_mock.await_args.args
        assert config.port == 9100
        assert config.host == "0.0.0.0"

    def test_invalid_config_file(
        self, runner: CliRunner, run_mock: AsyncMock, tmp_path: Path
    ) -> None:
        config_file = tmp_path / "site.toml"
        config_file.write_text('log = "loud"\n')

        result = runner.invoke(main, ["--config", str(config_file)])
        assert result.exit_code == ExitCode.CONFIG_ERROR
        run_mock.assert_not_awaited()

    def test_log_profile_from_env(
        self, runner: CliRunner, run_mock: AsyncMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LIVESERVE_LOG", "quiet")
        result = runner.invoke(main, [])
        assert result.exit_code == 0

        config, _ = run_mock.await_args.args
        assert config.log == LOG_PROFILES["quiet"]

    def test_malformed_env_value(
        self, runner: CliRunner, run_mock: AsyncMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Undecodable environment values are a config error, not a traceback."""
        monkeypatch.setenv("LIVESERVE_MIDDLEWARE", "{not json")
        result = runner.invoke(main, [])
        assert result.exit_code == ExitCode.CONFIG_ERROR
        assert isinstance(result.exception, SystemExit)
        run_mock.assert_not_awaited()

    def test_port_out_of_range(self, runner: CliRunner, run_mock: AsyncMock) -> None:
        result = runner.invoke(main, ["--port", "70000"])
        assert result.exit_code == 2
        run_mock.assert_not_awaited()

    def test_missing_root(self, runner: CliRunner, run_mock: AsyncMock) -> None:
        result = runner.invoke(main, ["does-not-exist"])
        assert result.exit_code == 2

    def test_missing_packages_exit_code(self, runner: CliRunner, run_mock: AsyncMock) -> None:
        run_mock.side_effect = OptionalDependencyError("install them", missing=["watchfiles"])
        result = runner.invoke(main, ["--live-reload"])
        assert result.exit_code == ExitCode.CONFIG_ERROR

    def test_bind_error_exit_code(self, runner: CliRunner, run_mock: AsyncMock) -> None:
        run_mock.return_value = ExitCode.BIND_ERROR
        result = runner.invoke(main, [])
        assert result.exit_code == ExitCode.BIND_ERROR
