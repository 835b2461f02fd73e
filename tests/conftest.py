"""Shared test fixtures for the webhook gateway."""

from __future__ import annotations

import json
import time
from typing import Any
from unittest.mock import MagicMock

import pytest

from webhook_gateway.audit.logger import AuditLogger
from webhook_gateway.models import Settings
from webhook_gateway.security.signature import sign_payload

API_KEY = "test-api-key"
DOWNSTREAM_URL = "https://n8n.example.com/webhook/retell"
EDGE_IP = "100.20.5.228"


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


# --- Factory functions for test data ---


def make_settings(**kwargs: Any) -> Settings:
    """Factory for Settings with every check disabled unless overridden."""
    defaults: dict[str, Any] = {
        "retell_api_key": API_KEY,
        "n8n_webhook_url": DOWNSTREAM_URL,
        "allowed_events": frozenset({"call_analyzed"}),
        "allowed_ips": frozenset({EDGE_IP}),
        "hmac_enabled": False,
        "ip_filter_enabled": False,
        "token_auth_enabled": False,
    }
    defaults.update(kwargs)
    return Settings(**defaults)


def make_body(event: str = "call_analyzed", call_id: str = "abc123") -> bytes:
    return json.dumps({"event": event, "call": {"call_id": call_id}}).encode()


def now_ms() -> int:
    return int(time.time() * 1000)


def signed_headers(body: bytes, key: str = API_KEY, timestamp_ms: int | None = None) -> dict[str, str]:
    return {"x-retell-signature": sign_payload(body, key, timestamp_ms)}
