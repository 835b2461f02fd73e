"""Webhook verification and forwarding pipeline.

Stages run in a fixed order and the first one to produce a response ends
the request:

1. IP allowlist       (IP_FILTER_ENABLED)
2. Signature check    (HMAC_ENABLED)
3. Static token check (TOKEN_AUTH_ENABLED)
4. JSON parse
5. Event filter
6. Relay to downstream

The raw body is read once by the caller and passed through untouched to
both the signature check and the relay.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import ValidationError

from webhook_gateway.models import (
    AuditEvent,
    AuditEventType,
    RiskLevel,
    Settings,
    WebhookEvent,
)
from webhook_gateway.security import (
    SIGNATURE_HEADER,
    check_ip_allowlist,
    check_signature,
    check_token,
)
from webhook_gateway.webhook.events import filtered_response, is_event_allowed
from webhook_gateway.webhook.models import GatewayResponse
from webhook_gateway.webhook.relay import WebhookRelay

if TYPE_CHECKING:
    from webhook_gateway.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InboundRequest:
    raw_body: bytes
    headers: Mapping[str, str]  # lowercase names

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())


Check = Callable[[InboundRequest], GatewayResponse | None]


class WebhookPipeline:
    """Runs one inbound webhook through every enabled check and the relay."""

    def __init__(
        self,
        settings: Settings,
        relay: WebhookRelay,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._settings = settings
        self._relay = relay
        self._audit = audit_logger

    def _security_checks(self) -> list[tuple[AuditEventType, Check]]:
        s = self._settings
        checks: list[tuple[AuditEventType, Check]] = []
        if s.ip_filter_enabled:
            checks.append((
                AuditEventType.IP_REJECTED,
                lambda req: check_ip_allowlist(
                    req.header(s.client_ip_header),
                    s.allowed_ips,
                    allow_missing=s.allow_missing_client_ip,
                ),
            ))
        if s.hmac_enabled:
            checks.append((
                AuditEventType.SIGNATURE_REJECTED,
                lambda req: check_signature(
                    req.raw_body, req.header(SIGNATURE_HEADER), s.retell_api_key,
                ),
            ))
        if s.token_auth_enabled:
            checks.append((
                AuditEventType.TOKEN_REJECTED,
                lambda req: check_token(
                    req.header(s.api_token_header), s.api_token, s.api_token_header,
                ),
            ))
        return checks

    async def handle(
        self, raw_body: bytes, headers: Mapping[str, str],
    ) -> GatewayResponse:
        request = InboundRequest(
            raw_body=raw_body,
            headers={k.lower(): v for k, v in headers.items()},
        )
        client_ip = request.header(self._settings.client_ip_header)

        for event_type, check in self._security_checks():
            response = check(request)
            if response is not None:
                self._record(
                    event_type, "rejected", RiskLevel.HIGH, client_ip,
                    status=response.status_code,
                )
                return response

        try:
            event = WebhookEvent.model_validate_json(raw_body)
        except ValidationError:
            logger.error("Failed to parse JSON body")
            self._record(
                AuditEventType.INVALID_PAYLOAD, "rejected", RiskLevel.MEDIUM, client_ip,
            )
            return GatewayResponse.error("Invalid JSON body", 400)

        ref = event.reference_id
        if not is_event_allowed(event.event_name, self._settings.allowed_events):
            logger.info("Filtered: event=%s call_id=%s", event.event_name, ref)
            self._record(
                AuditEventType.EVENT_FILTERED, "filtered", RiskLevel.INFO, client_ip,
                event=event.event_name, call_id=ref,
            )
            return filtered_response(event.event)

        logger.info("Forwarding: event=%s call_id=%s", event.event_name, ref)
        response = await self._relay.forward(raw_body)
        if response.from_downstream:
            self._record(
                AuditEventType.WEBHOOK_FORWARDED, "forwarded", RiskLevel.INFO, client_ip,
                event=event.event_name, call_id=ref, upstream_status=response.status_code,
            )
        else:
            self._record(
                AuditEventType.RELAY_FAILED, "failure", RiskLevel.MEDIUM, client_ip,
                event=event.event_name, call_id=ref, status=response.status_code,
            )
        return response

    def _record(
        self,
        event_type: AuditEventType,
        result: str,
        risk_level: RiskLevel,
        source_ip: str | None,
        **details: object,
    ) -> None:
        if self._audit is None:
            return
        event = AuditEvent(
            event_type=event_type,
            source_ip=source_ip,
            action="webhook",
            result=result,
            risk_level=risk_level,
            details=details or None,
        )
        # Audit failures never change the response
        try:
            self._audit.log(event)
        except OSError:
            logger.exception("Failed to write audit event %s", event_type.value)
