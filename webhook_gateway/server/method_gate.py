"""ASGI middleware restricting the surface to POST webhooks and GET /health."""

from __future__ import annotations

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

HEALTH_PATH = "/health"
ALLOWED_METHODS = "POST, GET"


class MethodGateMiddleware:
    """Answers 405 for anything that is neither ``POST <any>`` nor ``GET /health``."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope["method"]
        if method == "POST" or (method == "GET" and scope["path"] == HEALTH_PATH):
            await self.app(scope, receive, send)
            return

        response = JSONResponse(
            {"error": "Method not allowed"},
            status_code=405,
            headers={"Allow": ALLOWED_METHODS},
        )
        await response(scope, receive, send)
