"""Source IP allowlist.

The client IP is read from a header injected by the edge proxy in front of
the gateway (``cf-connecting-ip`` by default). Callers cannot set it, so it
is the only header this check trusts.

Policy for a missing header: when ``allow_missing`` is true the request is
let through with a warning. That only holds for local runs where no edge
proxy exists, and such deployments must set IP_FILTER_ENABLED=false or
IP_FILTER_ALLOW_MISSING_HEADER=false. With ``allow_missing`` false the
check fails closed with 403.
"""

from __future__ import annotations

import logging
from collections.abc import Collection

from webhook_gateway.webhook.models import GatewayResponse

logger = logging.getLogger(__name__)


def check_ip_allowlist(
    client_ip: str | None,
    allowed_ips: Collection[str],
    allow_missing: bool = True,
) -> GatewayResponse | None:
    """Exact-match the edge-supplied client IP. No CIDR, no normalization."""
    if not client_ip:
        if allow_missing:
            logger.warning("Client IP header missing; assuming local run")
            return None
        logger.info("IP rejected: client IP header missing")
        return GatewayResponse.error("Forbidden", 403)

    if client_ip not in allowed_ips:
        logger.info("IP rejected: %s", client_ip)
        return GatewayResponse.error("Forbidden", 403)

    return None
