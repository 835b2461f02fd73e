"""Response model shared by every pipeline stage."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class GatewayResponse:
    """Terminal HTTP response produced by a check, the filter, or the relay."""

    status_code: int
    body: bytes
    content_type: str = JSON_CONTENT_TYPE
    headers: dict[str, str] = field(default_factory=dict)
    # True when status and body came from the downstream, not the gateway
    from_downstream: bool = False

    @classmethod
    def json(
        cls, payload: dict[str, Any], status_code: int, **headers: str,
    ) -> GatewayResponse:
        return cls(
            status_code=status_code,
            body=json.dumps(payload).encode(),
            headers=dict(headers),
        )

    @classmethod
    def error(
        cls, message: str, status_code: int, detail: str | None = None,
    ) -> GatewayResponse:
        payload: dict[str, Any] = {"error": message}
        if detail is not None:
            payload["detail"] = detail
        return cls.json(payload, status_code)

    def payload(self) -> Any:
        """Decode the body as JSON (test and logging convenience)."""
        return json.loads(self.body)
