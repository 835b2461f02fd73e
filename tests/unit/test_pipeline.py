"""Tests for the webhook verification pipeline: ordering and short-circuiting."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tests.conftest import EDGE_IP, make_body, make_settings, now_ms, signed_headers
from webhook_gateway.models import AuditEventType
from webhook_gateway.webhook.models import GatewayResponse
from webhook_gateway.webhook.pipeline import WebhookPipeline
from webhook_gateway.webhook.relay import WebhookRelay


def _make_pipeline(
    audit_logger: MagicMock | None = None,
    relay_response: GatewayResponse | None = None,
    **settings: Any,
) -> tuple[WebhookPipeline, AsyncMock]:
    relay = MagicMock(spec=WebhookRelay)
    relay.forward = AsyncMock(
        return_value=relay_response
        or GatewayResponse(status_code=200, body=b'{"ok":true}', from_downstream=True),
    )
    return WebhookPipeline(make_settings(**settings), relay, audit_logger), relay.forward


class TestCheckOrdering:
    @pytest.mark.asyncio
    async def test_all_disabled_forwards_allowed_event(self) -> None:
        pipeline, forward = _make_pipeline()
        body = make_body()
        result = await pipeline.handle(body, {})
        assert result.status_code == 200
        forward.assert_awaited_once_with(body)

    @pytest.mark.asyncio
    async def test_ip_check_runs_before_signature(self) -> None:
        pipeline, forward = _make_pipeline(ip_filter_enabled=True, hmac_enabled=True)
        with patch("webhook_gateway.webhook.pipeline.check_signature") as mock_sig:
            result = await pipeline.handle(make_body(), {"cf-connecting-ip": "1.2.3.4"})
        assert result.status_code == 403
        mock_sig.assert_not_called()
        forward.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_signature_runs_before_token(self) -> None:
        pipeline, forward = _make_pipeline(
            hmac_enabled=True, token_auth_enabled=True, api_token="tok",
        )
        with patch("webhook_gateway.webhook.pipeline.check_token") as mock_token:
            result = await pipeline.handle(make_body(), {"x-api-token": "tok"})
        assert result.status_code == 401
        assert result.payload() == {"error": "Missing x-retell-signature header"}
        mock_token.assert_not_called()
        forward.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_token_runs_before_json_parse(self) -> None:
        pipeline, forward = _make_pipeline(token_auth_enabled=True, api_token="tok")
        result = await pipeline.handle(b"not-json", {"x-api-token": "wrong"})
        assert result.status_code == 401
        assert result.payload() == {"error": "Unauthorized"}
        forward.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_token_enabled_without_secret_is_500(self) -> None:
        pipeline, forward = _make_pipeline(token_auth_enabled=True, api_token=None)
        result = await pipeline.handle(make_body(), {"x-api-token": "anything"})
        assert result.status_code == 500
        forward.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_all_checks_pass_then_forward(self) -> None:
        pipeline, forward = _make_pipeline(
            ip_filter_enabled=True, hmac_enabled=True,
            token_auth_enabled=True, api_token="tok",
        )
        body = make_body()
        headers = {"CF-Connecting-IP": EDGE_IP, "X-Api-Token": "tok", **signed_headers(body)}
        result = await pipeline.handle(body, headers)
        assert result.status_code == 200
        forward.assert_awaited_once_with(body)

    @pytest.mark.asyncio
    async def test_custom_header_names(self) -> None:
        pipeline, forward = _make_pipeline(
            ip_filter_enabled=True, client_ip_header="x-real-ip",
            token_auth_enabled=True, api_token="tok", api_token_header="x-custom-token",
        )
        headers = {"x-real-ip": EDGE_IP, "x-custom-token": "tok", "cf-connecting-ip": "9.9.9.9"}
        result = await pipeline.handle(make_body(), headers)
        assert result.status_code == 200

    @pytest.mark.asyncio
    async def test_missing_edge_header_rejected_when_policy_disabled(self) -> None:
        pipeline, forward = _make_pipeline(ip_filter_enabled=True, allow_missing_client_ip=False)
        result = await pipeline.handle(make_body(), {})
        assert result.status_code == 403
        forward.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_signature(self) -> None:
        pipeline, _ = _make_pipeline(hmac_enabled=True)
        body = make_body()
        result = await pipeline.handle(body, signed_headers(body, timestamp_ms=now_ms() - 600_000))
        assert result.status_code == 401
        assert result.payload() == {"error": "Signature expired"}


class TestPayloadHandling:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [b"not-json", b"", b"{", b"[1, 2]", b'"call_analyzed"'])
    async def test_invalid_payload_is_400(self, body: bytes) -> None:
        pipeline, forward = _make_pipeline()
        result = await pipeline.handle(body, {})
        assert result.status_code == 400
        assert result.payload() == {"error": "Invalid JSON body"}
        forward.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_filtered_event_is_200(self) -> None:
        pipeline, forward = _make_pipeline()
        result = await pipeline.handle(make_body(event="call_started"), {})
        assert result.status_code == 200
        assert result.payload()["status"] == "filtered"
        assert result.payload()["event"] == "call_started"
        forward.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_event_is_filtered(self) -> None:
        pipeline, forward = _make_pipeline()
        result = await pipeline.handle(b'{"call": {"call_id": "x"}}', {})
        assert result.status_code == 200
        assert result.payload()["status"] == "filtered"
        assert result.payload()["event"] is None
        forward.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_event_match_is_case_insensitive(self) -> None:
        pipeline, forward = _make_pipeline()
        body = make_body(event="CALL_ANALYZED")
        result = await pipeline.handle(body, {})
        assert result.status_code == 200
        forward.assert_awaited_once_with(body)

    @pytest.mark.asyncio
    async def test_relay_failure_returned_as_is(self) -> None:
        failure = GatewayResponse.error("Gateway Timeout", 504, detail="x")
        pipeline, forward = _make_pipeline(relay_response=failure)
        result = await pipeline.handle(make_body(), {})
        assert result is failure
        forward.assert_awaited_once()


class TestAuditTrail:
    @pytest.mark.asyncio
    async def test_rejection_audited_with_source_ip(self, mock_audit_logger: MagicMock) -> None:
        pipeline, _ = _make_pipeline(audit_logger=mock_audit_logger, ip_filter_enabled=True)
        await pipeline.handle(make_body(), {"cf-connecting-ip": "6.6.6.6"})
        event = mock_audit_logger.log.call_args[0][0]
        assert event.event_type == AuditEventType.IP_REJECTED
        assert event.source_ip == "6.6.6.6"
        assert event.result == "rejected"

    @pytest.mark.asyncio
    async def test_filtered_audited(self, mock_audit_logger: MagicMock) -> None:
        pipeline, _ = _make_pipeline(audit_logger=mock_audit_logger)
        await pipeline.handle(make_body(event="call_ended", call_id="c9"), {})
        event = mock_audit_logger.log.call_args[0][0]
        assert event.event_type == AuditEventType.EVENT_FILTERED
        assert event.details == {"event": "call_ended", "call_id": "c9"}

    @pytest.mark.asyncio
    async def test_forward_audited(self, mock_audit_logger: MagicMock) -> None:
        pipeline, _ = _make_pipeline(audit_logger=mock_audit_logger)
        await pipeline.handle(make_body(), {})
        event = mock_audit_logger.log.call_args[0][0]
        assert event.event_type == AuditEventType.WEBHOOK_FORWARDED
        assert event.details["upstream_status"] == 200

    @pytest.mark.asyncio
    async def test_relay_failure_audited(self, mock_audit_logger: MagicMock) -> None:
        pipeline, _ = _make_pipeline(
            audit_logger=mock_audit_logger,
            relay_response=GatewayResponse.error("Bad Gateway", 502),
        )
        await pipeline.handle(make_body(), {})
        event = mock_audit_logger.log.call_args[0][0]
        assert event.event_type == AuditEventType.RELAY_FAILED

    @pytest.mark.asyncio
    async def test_audit_never_contains_secrets(self, mock_audit_logger: MagicMock) -> None:
        pipeline, _ = _make_pipeline(
            audit_logger=mock_audit_logger, token_auth_enabled=True, api_token="tok-secret",
        )
        await pipeline.handle(make_body(), {"x-api-token": "guess"})
        dumped = mock_audit_logger.log.call_args[0][0].model_dump_json()
        assert "tok-secret" not in dumped
        assert "guess" not in dumped

    @pytest.mark.asyncio
    async def test_audit_write_failure_keeps_downstream_status(
        self, mock_audit_logger: MagicMock, caplog: pytest.LogCaptureFixture,
    ) -> None:
        mock_audit_logger.log.side_effect = OSError("disk full")
        pipeline, forward = _make_pipeline(
            audit_logger=mock_audit_logger,
            relay_response=GatewayResponse(status_code=201, body=b"{}", from_downstream=True),
        )
        result = await pipeline.handle(make_body(), {})
        assert result.status_code == 201
        forward.assert_awaited_once()
        assert "Failed to write audit event" in caplog.text

    @pytest.mark.asyncio
    async def test_audit_write_failure_keeps_rejection(self, mock_audit_logger: MagicMock) -> None:
        mock_audit_logger.log.side_effect = PermissionError("read-only")
        pipeline, _ = _make_pipeline(audit_logger=mock_audit_logger, hmac_enabled=True)
        result = await pipeline.handle(make_body(), {})
        assert result.status_code == 401
