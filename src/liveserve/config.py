"""Configuration models for liveserve.

All models are frozen: a configuration is resolved once when it is
constructed and cannot change while a server is using it.
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

CONFIG_FILENAME = ".liveserve.toml"

# Request paths the injector never touches (connect-livereload defaults)
DEFAULT_INJECT_IGNORE = (
    ".js",
    ".css",
    ".svg",
    ".ico",
    ".woff",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".pdf",
)


class LogSettings(BaseModel):
    """Which lifecycle event categories are written to the log."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    connection: bool = Field(default=False, description="Log accepted connections")
    request: bool = Field(default=False, description="Log each request line")
    error: bool = Field(default=True, description="Log server and transport errors")
    start: bool = Field(default=True, description="Log server start")
    stop: bool = Field(default=True, description="Log server stop")
    reload: bool = Field(default=False, description="Log change notifications")

    def enabled(self, category: str) -> bool:
        """Check whether a category is switched on (unknown categories are off)."""
        return bool(getattr(self, category, False))


LOG_PROFILES: dict[str, LogSettings] = {
    "default": LogSettings(),
    "verbose": LogSettings(
        connection=True, request=True, error=True, start=True, stop=True, reload=True
    ),
    "quiet": LogSettings(
        connection=False, request=False, error=True, start=False, stop=False, reload=False
    ),
}


class StaticFileOptions(BaseModel):
    """Options passed through to every static-file responder.

    Unknown keys are kept so callers can hand over option sets written for
    other static servers without them being rejected.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    dotfiles: Literal["ignore", "allow", "deny"] = Field(
        default="ignore",
        description="How to treat files and directories starting with a dot",
    )
    follow_symlink: bool = Field(
        default=False,
        description="Serve files reached through symlinks pointing outside the root",
    )
    redirect: bool = Field(
        default=True,
        description="Redirect directory requests to the trailing-slash form",
    )
    max_age: int = Field(
        default=0,
        ge=0,
        description="Cache-Control max-age in seconds (0 disables the header)",
    )
    index: str | None = Field(
        default=None,
        description="Index file; always replaced by ServerConfig.index",
    )


class LiveReloadOptions(BaseModel):
    """Options for the reload-script injector and notification sub-server."""

    model_config = ConfigDict(frozen=True, extra="allow")

    port: int = Field(
        default=35729,
        ge=0,
        le=65535,
        description="Port of the notification sub-server",
    )
    hostname: str | None = Field(
        default=None,
        description="Host baked into the client snippet (default: the page's host)",
    )
    src: str | None = Field(
        default=None,
        description="Full client script URL, overrides hostname and port",
    )
    ignore: tuple[str, ...] = Field(
        default=DEFAULT_INJECT_IGNORE,
        description="Request path suffixes never injected into",
    )
    include: tuple[str, ...] = Field(
        default=(),
        description="Regular expressions; when set, only matching paths are injected into",
    )


class MiddlewareOptions(BaseModel):
    """Pass-through options for the built-in middleware."""

    model_config = ConfigDict(frozen=True)

    serve_static: StaticFileOptions = Field(default_factory=StaticFileOptions)
    connect_livereload: LiveReloadOptions = Field(default_factory=LiveReloadOptions)


class ServerConfig(BaseSettings):
    """Main liveserve configuration.

    Attributes:
        host: Interface the HTTP listener binds to
        port: Listener port (0 picks a free port)
        index: Index file served for directory requests
        live_reload: Watch the serve roots and notify reload clients
        log: Per-category log switches, or the name of a profile
        middleware: Pass-through options for the built-in middleware
    """

    model_config = SettingsConfigDict(
        env_prefix="LIVESERVE_",
        env_nested_delimiter="__",
        extra="ignore",
        frozen=True,
    )

    host: str = Field(default="127.0.0.1", description="Server host to bind to")
    port: int = Field(default=8000, ge=0, le=65535, description="Server port")
    index: str = Field(default="index.html", description="Default index file")
    live_reload: bool = Field(default=False, description="Enable live reload")
    # NoDecode: LIVESERVE_LOG may be a bare profile name rather than JSON
    log: Annotated[LogSettings, NoDecode] = Field(default_factory=LogSettings)
    middleware: MiddlewareOptions = Field(default_factory=MiddlewareOptions)

    @field_validator("log", mode="before")
    @classmethod
    def _resolve_log_profile(cls, value: Any) -> Any:
        if isinstance(value, str):
            if value.lstrip().startswith("{"):
                return json.loads(value)
            try:
                return LOG_PROFILES[value.strip()]
            except KeyError:
                choices = ", ".join(LOG_PROFILES)
                raise ValueError(f"Unknown log profile {value!r} (expected one of: {choices})")
        return value

    @property
    def static_options(self) -> StaticFileOptions:
        """Static responder options with the index override applied."""
        return self.middleware.serve_static.model_copy(update={"index": self.index})

    @property
    def reload_port(self) -> int:
        """Port of the notification sub-server."""
        return self.middleware.connect_livereload.port

    @classmethod
    def load(cls, config_path: Path | None = None, **overrides: Any) -> ServerConfig:
        """Load configuration from file, environment and explicit overrides.

        Resolution order (highest to lowest priority):
        1. Keyword overrides
        2. Environment variables (LIVESERVE_*)
        3. Provided config file path
        4. .liveserve.toml in current directory
        5. .liveserve.toml in home directory
        6. Built-in defaults
        """
        config_data: dict[str, Any] = {}

        locations = []
        if config_path:
            locations.append(config_path)
        locations.extend(
            [
                Path.cwd() / CONFIG_FILENAME,
                Path.home() / CONFIG_FILENAME,
            ]
        )

        for loc in locations:
            if loc.exists():
                with open(loc, "rb") as f:
                    config_data = tomllib.load(f)
                break

        env_data = cls().model_dump(exclude_unset=True)
        return cls(**{**config_data, **env_data, **overrides})


__all__ = [
    "CONFIG_FILENAME",
    "DEFAULT_INJECT_IGNORE",
    "LOG_PROFILES",
    "LiveReloadOptions",
    "LogSettings",
    "MiddlewareOptions",
    "ServerConfig",
    "StaticFileOptions",
]
