"""Downstream relay.

Forwards the raw webhook body, byte for byte, to the automation endpoint
and hands its status and body back to the caller. At most once: no retry.

The deadline (8s) is shorter than the calling platform's own webhook
timeout (10s), so a slow downstream is reported here as 504 instead of
timing out at the caller.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from webhook_gateway.webhook.models import JSON_CONTENT_TYPE, GatewayResponse

logger = logging.getLogger(__name__)

RELAY_TIMEOUT_MS = 8_000
USER_AGENT = "RetellWebhookForwarder/1.0"
SHARED_SECRET_HEADER = "x-webhook-secret"


class WebhookRelay:
    """Single POST to the downstream URL with a hard deadline."""

    def __init__(
        self,
        url: str,
        shared_secret: str | None = None,
        timeout_ms: int = RELAY_TIMEOUT_MS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._shared_secret = shared_secret
        self._timeout_ms = timeout_ms
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": JSON_CONTENT_TYPE,
            "User-Agent": USER_AGENT,
        }
        # Lets the downstream verify the request came from this gateway
        if self._shared_secret:
            headers[SHARED_SECRET_HEADER] = self._shared_secret
        return headers

    async def forward(self, raw_body: bytes) -> GatewayResponse:
        """POST ``raw_body`` and map the outcome to a GatewayResponse.

        Downstream answered: its status and body verbatim.
        Deadline exceeded: 504. Any other transport failure: 502.
        """
        timeout_s = self._timeout_ms / 1000
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=timeout_s,
            ) as client:
                # wait_for bounds the whole exchange, not just each I/O phase
                resp = await asyncio.wait_for(
                    client.post(self._url, content=raw_body, headers=self._headers()),
                    timeout=timeout_s,
                )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.error("Forward to downstream timed out after %dms", self._timeout_ms)
            return GatewayResponse.error(
                "Gateway Timeout", 504, detail="Downstream did not respond in time",
            )
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            logger.error("Forward to downstream failed: %s", exc)
            return GatewayResponse.error(
                "Bad Gateway", 502, detail="Failed to reach downstream",
            )

        return GatewayResponse(
            status_code=resp.status_code,
            body=resp.content,
            content_type=resp.headers.get("content-type") or JSON_CONTENT_TYPE,
            from_downstream=True,
        )
