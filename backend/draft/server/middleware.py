"""ASGI middleware for the draft server."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Receive, Scope, Send


class LogContextMiddleware:
    """Give every request a clean structlog context.

    Handlers bind request-scoped keys such as session_id; they are cleared
    when the request finishes so nothing leaks into the next one served by
    the same task or thread.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        structlog.contextvars.clear_contextvars()
        try:
            await self.app(scope, receive, send)
        finally:
            structlog.contextvars.clear_contextvars()
