"""Reload-script injector middleware.

Inserts the LiveReload client snippet into HTML pages so the browser
connects to the notification sub-server. It sits in front of every static
responder, so pages from any serve root get the snippet.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from liveserve.config import DEFAULT_INJECT_IGNORE

# Marker used to detect pages that already load the client
SNIPPET_MARKER = b"livereload.js?snipver="

# Insertion points, tried in order: before the last </body>, before the last
# </html>, after the doctype.
_RULES: list[tuple[re.Pattern[bytes], bool]] = [
    (re.compile(rb"</body>(?![\s\S]*</body>)", re.IGNORECASE), True),
    (re.compile(rb"</html>(?![\s\S]*</html>)", re.IGNORECASE), True),
    (re.compile(rb"<!DOCTYPE.+?>", re.IGNORECASE), False),
]


def client_snippet(port: int, hostname: str | None = None, src: str | None = None) -> str:
    """Build the <script> block that loads livereload.js.

    Without ``hostname`` the browser uses the host the page came from.
    """
    if src is None:
        host = hostname or "' + (location.hostname || 'localhost') + '"
        src = f"//{host}:{port}/livereload.js?snipver=1"
    return (
        "\n<script>//<![CDATA[\n"
        f"document.write('<script src=\"{src}\"><\\/script>')\n"
        "//]]></script>\n"
    )


def inject_snippet(body: bytes, snippet: bytes) -> bytes:
    """Insert ``snippet`` into an HTML document.

    Returns the body unchanged when it already carries the client or has no
    usable insertion point.
    """
    if SNIPPET_MARKER in body:
        return body
    for pattern, before in _RULES:
        match = pattern.search(body)
        if match is None:
            continue
        if before:
            return body[: match.start()] + snippet + body[match.start() :]
        return body[: match.end()] + snippet + body[match.end() :]
    return body


class LiveReloadInjector:
    """ASGI middleware adding the LiveReload snippet to HTML responses.

    Only non-range GET requests that accept HTML are considered, minus
    ignored suffixes and, when ``include`` patterns are given, paths matching
    none. Responses are buffered when they are 200 ``text/html`` and not
    content-encoded; everything else streams through untouched.

    Attributes:
        port: Notification sub-server port
        snippet: Encoded snippet inserted into pages
    """

    def __init__(
        self,
        app: ASGIApp,
        port: int = 35729,
        hostname: str | None = None,
        src: str | None = None,
        ignore: Iterable[str] = DEFAULT_INJECT_IGNORE,
        include: Iterable[str] = (),
    ) -> None:
        self.app = app
        self.port = port
        self.ignore = tuple(suffix.lower() for suffix in ignore)
        self.include = [re.compile(pattern) for pattern in include]
        self.snippet = client_snippet(port, hostname, src).encode("utf-8")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if not self._wants_snippet(scope):
            await self.app(scope, receive, send)
            return

        start_message: Message | None = None
        chunks: list[bytes] = []

        async def send_with_snippet(message: Message) -> None:
            nonlocal start_message

            if message["type"] == "http.response.start":
                headers = Headers(raw=message["headers"])
                content_type = headers.get("content-type", "")
                if (
                    message["status"] == 200
                    and content_type.startswith("text/html")
                    and "content-encoding" not in headers
                ):
                    start_message = message
                    return
                await send(message)
                return

            if message["type"] != "http.response.body" or start_message is None:
                await send(message)
                return

            chunks.append(message.get("body", b""))
            if message.get("more_body", False):
                return

            body = inject_snippet(b"".join(chunks), self.snippet)
            headers = MutableHeaders(scope=start_message)
            headers["content-length"] = str(len(body))
            await send(start_message)
            await send({"type": "http.response.body", "body": body})

        await self.app(scope, receive, send_with_snippet)

    def _wants_snippet(self, scope: Scope) -> bool:
        if scope["type"] != "http" or scope["method"] != "GET":
            return False
        path = scope["path"].lower()
        if path.endswith(self.ignore):
            return False
        if self.include and not any(p.search(scope["path"]) for p in self.include):
            return False
        headers = Headers(scope=scope)
        if "range" in headers:
            return False
        return "html" in headers.get("accept", "")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(port={self.port})"


__all__ = [
    "LiveReloadInjector",
    "SNIPPET_MARKER",
    "client_snippet",
    "inject_snippet",
]
