"""liveserve CLI - serve directories with optional live reload."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError
from pydantic_settings import SettingsError

from liveserve import __version__
from liveserve.config import LOG_PROFILES, ServerConfig
from liveserve.errors import ExitCode, LiveServeError
from liveserve.logging import print_error, setup_logging
from liveserve.server import LiveServer


@click.command("liveserve")
@click.argument(
    "roots",
    nargs=-1,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option("--host", type=str, default=None, help="Bind address (default: 127.0.0.1)")
@click.option(
    "--port", "-p", type=click.IntRange(0, 65535), default=None, help="HTTP port (default: 8000)"
)
@click.option("--index", type=str, default=None, help="Index file (default: index.html)")
@click.option(
    "--live-reload/--no-live-reload",
    "-l",
    default=None,
    help="Reload browsers when files change",
)
@click.option(
    "--log",
    "log_profile",
    type=click.Choice(list(LOG_PROFILES)),
    default=None,
    help="Which server events to log",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to a .liveserve.toml file",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug output")
@click.version_option(__version__, prog_name="liveserve")
def main(
    roots: tuple[Path, ...],
    host: str | None,
    port: int | None,
    index: str | None,
    live_reload: bool | None,
    log_profile: str | None,
    config_path: Path | None,
    verbose: bool,
) -> None:
    """Serve ROOTS over HTTP (default: the current directory).

    Earlier roots take precedence when several contain the same file.
    Press Ctrl+C to stop.

    \b
    Examples:
        liveserve public
        liveserve build static --port 9000
        liveserve site --live-reload --log verbose
    """
    setup_logging("verbose" if verbose else "normal")

    options: dict[str, Any] = {
        "host": host,
        "port": port,
        "index": index,
        "live_reload": live_reload,
        "log": log_profile,
    }
    overrides = {key: value for key, value in options.items() if value is not None}

    try:
        config = ServerConfig.load(config_path, **overrides)
    except (ValidationError, SettingsError) as e:
        print_error(f"Invalid configuration:\n{e}")
        sys.exit(ExitCode.CONFIG_ERROR)

    try:
        exit_code = asyncio.run(_run(config, roots or (Path("."),)))
    except LiveServeError as e:
        print_error(e.message)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        exit_code = ExitCode.SUCCESS

    sys.exit(exit_code)


async def _run(config: ServerConfig, roots: tuple[Path, ...]) -> ExitCode:
    """Serve until stopped by a signal."""
    server = LiveServer(config)
    await server.serve(roots)
    if server.bind_error is not None:
        return ExitCode.BIND_ERROR
    await server.wait_stopped()
    return ExitCode.SUCCESS


if __name__ == "__main__":
    main()
