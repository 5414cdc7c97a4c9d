"""Static-file responder middleware.

Maps request paths to files below one serve root. Requests it cannot answer
fall through to the next handler, which is how several roots are layered:
the first root holding a file wins.
"""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from starlette.concurrency import run_in_threadpool
from starlette.responses import PlainTextResponse, RedirectResponse, Response
from starlette.staticfiles import StaticFiles
from starlette.types import ASGIApp, Receive, Scope, Send

from liveserve.config import StaticFileOptions

logger = logging.getLogger(__name__)


class StaticFileResponder:
    """ASGI middleware serving files from one directory.

    Attributes:
        directory: The serve root
        options: Responder options; ``options.index`` names the index file
    """

    def __init__(
        self,
        app: ASGIApp,
        directory: Path | str,
        options: StaticFileOptions | None = None,
    ) -> None:
        self.app = app
        self.directory = Path(directory)
        self.options = options or StaticFileOptions(index="index.html")
        self.index = self.options.index or "index.html"
        self._files = StaticFiles(
            directory=self.directory,
            check_dir=False,
            follow_symlink=self.options.follow_symlink,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] not in ("GET", "HEAD"):
            await self.app(scope, receive, send)
            return

        response = await self.get_response(scope)
        if response is None:
            await self.app(scope, receive, send)
            return
        await response(scope, receive, send)

    async def get_response(self, scope: Scope) -> Response | None:
        """Build the response for ``scope``, or None to fall through."""
        path: str = scope["path"]
        parts = [part for part in path.split("/") if part]

        if self.options.dotfiles != "allow" and any(part.startswith(".") for part in parts):
            if self.options.dotfiles == "deny":
                return PlainTextResponse("Forbidden", status_code=403)
            return None

        relative = os.path.normpath(os.path.join(*parts)) if parts else "."
        full_path, stat_result = await run_in_threadpool(self._files.lookup_path, relative)
        if stat_result is None:
            return None

        if stat.S_ISDIR(stat_result.st_mode):
            if not path.endswith("/"):
                if not self.options.redirect:
                    return None
                return RedirectResponse(self._with_slash(scope), status_code=301)

            index_path, index_stat = await run_in_threadpool(
                self._files.lookup_path, os.path.join(relative, self.index)
            )
            if index_stat is None or not stat.S_ISREG(index_stat.st_mode):
                return None
            return self._file_response(index_path, index_stat, scope)

        if stat.S_ISREG(stat_result.st_mode):
            return self._file_response(full_path, stat_result, scope)
        return None

    def _file_response(self, full_path: str, stat_result: os.stat_result, scope: Scope) -> Response:
        response = self._files.file_response(full_path, stat_result, scope)
        if self.options.max_age:
            response.headers["cache-control"] = f"public, max-age={self.options.max_age}"
        return response

    @staticmethod
    def _with_slash(scope: Scope) -> str:
        location = scope["path"] + "/"
        query = scope.get("query_string", b"")
        if query:
            location += "?" + query.decode("latin-1")
        return location

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(directory={str(self.directory)!r}, index={self.index!r})"


__all__ = ["StaticFileResponder"]
