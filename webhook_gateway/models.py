"""Shared Pydantic data models for the webhook gateway."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class AuditEventType(str, Enum):
    IP_REJECTED = "ip_rejected"
    SIGNATURE_REJECTED = "signature_rejected"
    TOKEN_REJECTED = "token_rejected"
    INVALID_PAYLOAD = "invalid_payload"
    EVENT_FILTERED = "event_filtered"
    WEBHOOK_FORWARDED = "webhook_forwarded"
    RELAY_FAILED = "relay_failed"


class RiskLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# --- Settings ---


class Settings(BaseModel):
    """Typed, read-only gateway configuration for a single request."""

    model_config = ConfigDict(frozen=True)

    retell_api_key: str
    n8n_webhook_url: str
    n8n_webhook_secret: str | None = None
    allowed_events: frozenset[str] = frozenset({"call_analyzed"})
    allowed_ips: frozenset[str] = frozenset({"100.20.5.228"})
    api_token: str | None = None
    api_token_header: str = "x-api-token"
    client_ip_header: str = "cf-connecting-ip"
    hmac_enabled: bool = True
    ip_filter_enabled: bool = True
    token_auth_enabled: bool = False
    allow_missing_client_ip: bool = True


# --- Webhook payload ---


class WebhookEvent(BaseModel):
    """Minimal envelope of a call-platform webhook. Only `event` drives routing."""

    model_config = ConfigDict(extra="allow", frozen=True)

    event: str | None = None
    call: dict[str, Any] | None = None
    chat: dict[str, Any] | None = None

    @property
    def event_name(self) -> str:
        return (self.event or "").lower()

    @property
    def reference_id(self) -> str:
        """call_id, else chat_id, else 'unknown'. Used for log lines only."""
        for container, key in ((self.call, "call_id"), (self.chat, "chat_id")):
            if container and container.get(key):
                return str(container[key])
        return "unknown"


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    action: str
    result: str  # "forwarded" | "filtered" | "rejected" | "failure"
    risk_level: RiskLevel
    details: dict[str, object] | None = None
