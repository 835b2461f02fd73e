"""FastAPI application for the webhook gateway."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import UTC, datetime

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from webhook_gateway.audit.logger import AuditLogger
from webhook_gateway.config import load_settings
from webhook_gateway.models import Settings
from webhook_gateway.server.method_gate import HEALTH_PATH, MethodGateMiddleware
from webhook_gateway.webhook.pipeline import WebhookPipeline
from webhook_gateway.webhook.relay import WebhookRelay

logger = logging.getLogger(__name__)


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: settings are re-read from os.environ per request."""
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    audit_log = os.environ.get("AUDIT_LOG_PATH")
    audit_logger = AuditLogger.from_env(audit_log) if audit_log else None
    return create_app(lambda: load_settings(os.environ), audit_logger=audit_logger)


def create_app(
    settings_loader: Callable[[], Settings],
    relay_transport: httpx.AsyncBaseTransport | None = None,
    audit_logger: AuditLogger | None = None,
) -> FastAPI:
    """Create the gateway app.

    ``settings_loader`` runs once per webhook request; the Settings it returns
    are frozen and never shared between requests.
    """
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get(HEALTH_PATH)
    async def health() -> dict[str, str]:
        return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}

    @app.post("/{path:path}")
    async def webhook(request: Request, path: str) -> Response:
        try:
            settings = settings_loader()
            raw_body = await request.body()
            relay = WebhookRelay(
                settings.n8n_webhook_url,
                shared_secret=settings.n8n_webhook_secret,
                transport=relay_transport,
            )
            pipeline = WebhookPipeline(settings, relay, audit_logger)
            result = await pipeline.handle(raw_body, request.headers)
        except Exception:  # top-level boundary
            logger.exception("Unhandled error while processing webhook")
            return JSONResponse({"error": "Internal server error"}, status_code=500)

        return Response(
            content=result.body,
            status_code=result.status_code,
            headers=result.headers,
            media_type=result.content_type,
        )

    app.add_middleware(MethodGateMiddleware)

    return app
