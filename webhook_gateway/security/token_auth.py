"""Static API token check (defense-in-depth, off by default)."""

from __future__ import annotations

import hmac
import logging

from webhook_gateway.webhook.models import GatewayResponse

logger = logging.getLogger(__name__)


def check_token(
    provided_token: str | None,
    configured_token: str | None,
    header_name: str,
) -> GatewayResponse | None:
    """Require the header value to equal the configured token.

    Enabled without a configured token fails closed with 500 so a missing
    secret never lets traffic through.
    """
    if not configured_token:
        logger.error("TOKEN_AUTH_ENABLED is true but API_TOKEN is not set")
        return GatewayResponse.error("Server misconfiguration", 500)

    if not provided_token or not hmac.compare_digest(
        provided_token.encode(), configured_token.encode(),
    ):
        logger.info("Token rejected on header %s", header_name)
        return GatewayResponse.error("Unauthorized", 401)

    return None
