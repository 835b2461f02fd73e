"""Call-platform webhook signature verification.

Header format: ``x-retell-signature: v=<timestamp_ms>,d=<hex_digest>``

    digest = HMAC-SHA256(key=api_key, msg=raw_body + str(timestamp_ms))

The body is used exactly as received; it is never re-serialized before
hashing. Digest comparison goes through hmac.compare_digest (constant-time).
Freshness is a symmetric window around the verifier's clock, so signatures
stamped slightly in the future (clock skew) are accepted too. There is no
replay cache: a valid signature can be replayed inside the window.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import time
from enum import Enum

from webhook_gateway.webhook.models import GatewayResponse

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-retell-signature"
SIGNATURE_FRESHNESS_MS = 5 * 60 * 1000

_SIGNATURE_RE = re.compile(r"v=([0-9]+),d=([a-f0-9]+)")
# 19 digits covers every int64 millisecond timestamp
_MAX_TIMESTAMP_DIGITS = 19


class SignatureFailure(str, Enum):
    """Why a signature was rejected. The value is the client-facing message."""

    MISSING = "Missing x-retell-signature header"
    MALFORMED = "Malformed signature"
    EXPIRED = "Signature expired"
    INVALID = "Invalid signature"


def parse_signature(header: str) -> tuple[int | None, str] | None:
    """Split ``v=<ts>,d=<hex>`` into (timestamp_ms, digest); None if malformed.

    A timestamp too long to be a real millisecond clock value comes back as
    None so the caller can reject it as expired without converting it.
    """
    match = _SIGNATURE_RE.fullmatch(header)
    if match is None:
        return None
    digits = match.group(1).lstrip("0") or "0"
    if len(digits) > _MAX_TIMESTAMP_DIGITS:
        return None, match.group(2)
    return int(digits), match.group(2)


def compute_digest(raw_body: bytes, timestamp_ms: int, secret_key: str) -> str:
    message = raw_body + str(timestamp_ms).encode()
    return hmac.new(secret_key.encode(), message, hashlib.sha256).hexdigest()


def sign_payload(
    raw_body: bytes, secret_key: str, timestamp_ms: int | None = None,
) -> str:
    """Build a signature header value the way the calling platform does."""
    ts = _now_ms() if timestamp_ms is None else timestamp_ms
    return f"v={ts},d={compute_digest(raw_body, ts, secret_key)}"


def verify_signature(
    raw_body: bytes,
    signature_header: str | None,
    secret_key: str,
    now_ms: int | None = None,
) -> SignatureFailure | None:
    """Return None when the signature is valid and fresh, else the failure kind."""
    if not signature_header:
        return SignatureFailure.MISSING

    parsed = parse_signature(signature_header)
    if parsed is None:
        return SignatureFailure.MALFORMED
    timestamp_ms, supplied = parsed

    now = _now_ms() if now_ms is None else now_ms
    if timestamp_ms is None or abs(now - timestamp_ms) > SIGNATURE_FRESHNESS_MS:
        return SignatureFailure.EXPIRED

    expected = compute_digest(raw_body, timestamp_ms, secret_key)
    if not hmac.compare_digest(expected, supplied):
        return SignatureFailure.INVALID

    return None


def check_signature(
    raw_body: bytes,
    signature_header: str | None,
    secret_key: str,
    now_ms: int | None = None,
) -> GatewayResponse | None:
    """Pipeline adapter: None to continue, or a 401 response."""
    failure = verify_signature(raw_body, signature_header, secret_key, now_ms)
    if failure is None:
        return None
    logger.info("Signature rejected: %s", failure.value)
    return GatewayResponse.error(failure.value, 401)


def _now_ms() -> int:
    return int(time.time() * 1000)
