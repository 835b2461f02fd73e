"""Environment variable parsing into typed Settings."""

from __future__ import annotations

from collections.abc import Mapping

from webhook_gateway.models import Settings

REQUIRED_VARS = ("RETELL_API_KEY", "N8N_WEBHOOK_URL")


class ConfigError(Exception):
    """Raised when a required environment variable is missing."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required environment variables: {', '.join(missing)}")


def parse_set(value: str | None, fallback: str, lowercase: bool = False) -> frozenset[str]:
    """Split a comma-separated value, trimming entries and dropping empties."""
    raw = value or fallback
    items = (item.strip() for item in raw.split(","))
    return frozenset(
        item.lower() if lowercase else item for item in items if item
    )


def parse_bool(value: str | None, fallback: bool) -> bool:
    """Unset or empty -> fallback; otherwise only 'true' (any case) is true."""
    if not value:
        return fallback
    return value.lower() == "true"


def load_settings(env: Mapping[str, str]) -> Settings:
    missing = [name for name in REQUIRED_VARS if not env.get(name)]
    if missing:
        raise ConfigError(missing)

    return Settings(
        retell_api_key=env["RETELL_API_KEY"],
        n8n_webhook_url=env["N8N_WEBHOOK_URL"],
        n8n_webhook_secret=env.get("N8N_WEBHOOK_SECRET") or None,
        allowed_events=parse_set(env.get("ALLOWED_EVENTS"), "call_analyzed", lowercase=True),
        allowed_ips=parse_set(env.get("ALLOWED_IPS"), "100.20.5.228"),
        api_token=env.get("API_TOKEN") or None,
        api_token_header=(env.get("API_TOKEN_HEADER") or "x-api-token").lower(),
        client_ip_header=(env.get("CLIENT_IP_HEADER") or "cf-connecting-ip").lower(),
        hmac_enabled=parse_bool(env.get("HMAC_ENABLED"), True),
        ip_filter_enabled=parse_bool(env.get("IP_FILTER_ENABLED"), True),
        token_auth_enabled=parse_bool(env.get("TOKEN_AUTH_ENABLED"), False),
        allow_missing_client_ip=parse_bool(env.get("IP_FILTER_ALLOW_MISSING_HEADER"), True),
    )
