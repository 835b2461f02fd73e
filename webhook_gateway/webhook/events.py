"""Event-type filtering.

Events outside the allowlist are acknowledged with 200 and a ``filtered``
status, never an error code: the caller did nothing wrong, the gateway just
chose not to forward the event.
"""

from __future__ import annotations

from collections.abc import Collection

from webhook_gateway.webhook.models import GatewayResponse


def is_event_allowed(event_name: str, allowed_events: Collection[str]) -> bool:
    """Case-insensitive; ``allowed_events`` is already lowercased by config."""
    return event_name.lower() in allowed_events


def filtered_response(event: str | None) -> GatewayResponse:
    return GatewayResponse.json(
        {
            "status": "filtered",
            "event": event,
            "message": f"Event '{event}' is not in the allowed list",
        },
        200,
    )
