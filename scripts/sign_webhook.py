#!/usr/bin/env python3
"""Sign a webhook body the way the call platform does, optionally sending it.

Prints the ``x-retell-signature`` header value for the body. With --send,
POSTs the body to a running gateway with that header and reports the reply.

Exit codes:
    0: signed (and, with --send, gateway answered 2xx)
    1: gateway answered non-2xx or could not be reached
    2: no signing key available

Usage:
    python scripts/sign_webhook.py payload.json [--key KEY] [--send URL]
    cat payload.json | python scripts/sign_webhook.py -
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

import httpx

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from webhook_gateway.security.signature import SIGNATURE_HEADER, sign_payload  # noqa: E402


def read_body(source: str) -> bytes:
    if source == "-":
        return sys.stdin.buffer.read()
    return Path(source).read_bytes()


def send(url: str, body: bytes, signature: str, extra_headers: dict[str, str]) -> int:
    headers = {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: signature,
        **extra_headers,
    }
    try:
        resp = httpx.post(url, content=body, headers=headers, timeout=15.0)
    except httpx.HTTPError as exc:
        print(f"ERROR: request failed: {exc}", file=sys.stderr)
        return 1
    print(f"{resp.status_code} {resp.text}")
    return 0 if resp.is_success else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Sign a webhook payload")
    parser.add_argument("body", help="Path to the JSON body, or '-' for stdin")
    parser.add_argument("--key", default=os.environ.get("RETELL_API_KEY"))
    parser.add_argument("--timestamp", type=int, help="Override timestamp (ms)")
    parser.add_argument("--send", metavar="URL", help="POST the signed body to URL")
    parser.add_argument(
        "--token", help="Value for the static token header (x-api-token)",
    )
    args = parser.parse_args(argv)

    if not args.key:
        print("ERROR: pass --key or set RETELL_API_KEY", file=sys.stderr)
        return 2

    body = read_body(args.body)
    signature = sign_payload(body, args.key, args.timestamp)
    print(f"{SIGNATURE_HEADER}: {signature}")

    if args.send:
        extra = {"x-api-token": args.token} if args.token else {}
        return send(args.send, body, signature, extra)
    return 0


if __name__ == "__main__":
    sys.exit(main())
