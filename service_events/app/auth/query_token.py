"""
Promote a ``?token=`` query parameter to an Authorization header.

EventSource clients cannot set request headers, so the stream endpoint also
accepts the bearer token in the query string.
"""

from typing import Iterable
from urllib.parse import parse_qs

from starlette.types import ASGIApp, Receive, Scope, Send


class QueryTokenMiddleware:
    """Pure ASGI middleware; only touches requests without an Authorization header."""

    def __init__(self, app: ASGIApp, paths: Iterable[str] = ("/events/stream",), param: str = "token"):
        self.app = app
        self.paths = tuple(paths)
        self.param = param

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope.get("path") in self.paths:
            headers = list(scope.get("headers") or [])
            if not any(name.lower() == b"authorization" for name, _ in headers):
                query = parse_qs(scope.get("query_string", b"").decode("latin-1"))
                token = (query.get(self.param) or [""])[0].strip()
                if token:
                    headers.append((b"authorization", f"Bearer {token}".encode("latin-1")))
                    scope = dict(scope, headers=headers)
        await self.app(scope, receive, send)
