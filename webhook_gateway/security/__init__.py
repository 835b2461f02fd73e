"""Request verification checks.

Each check returns None to let the request continue, or a GatewayResponse
that terminates the pipeline.
"""

from webhook_gateway.security.ip_filter import check_ip_allowlist
from webhook_gateway.security.signature import (
    SIGNATURE_FRESHNESS_MS,
    SIGNATURE_HEADER,
    SignatureFailure,
    check_signature,
    sign_payload,
    verify_signature,
)
from webhook_gateway.security.token_auth import check_token

__all__ = [
    "SIGNATURE_FRESHNESS_MS",
    "SIGNATURE_HEADER",
    "SignatureFailure",
    "check_ip_allowlist",
    "check_signature",
    "check_token",
    "sign_payload",
    "verify_signature",
]
