"""HMAC-SHA256 payload signing for webhook deliveries.

The signature covers the exact body bytes sent on the wire. Recipients
recompute it over the bytes they received and compare in constant time.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from collections.abc import Mapping
from typing import Any

DEFAULT_HEADER_PREFIX = "X-HookRelay"


def serialize_payload(payload: Any) -> bytes:
    """Serialize an event payload to the canonical body bytes.

    Compact JSON, keys in insertion order, UTF-8 without ASCII escaping.
    """
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_signature(payload: bytes | str, secret: str) -> str:
    """Compute the HMAC-SHA256 signature of a payload.

    Args:
        payload: Body bytes to sign. Strings are UTF-8 encoded.
        secret: Shared secret for HMAC.

    Returns:
        Base64-encoded digest.
    """
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    digest = hmac.new(
        key=secret.encode("utf-8"),
        msg=payload,
        digestmod=hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(payload: bytes | str, signature: str, secret: str) -> bool:
    """Verify the HMAC-SHA256 signature of a payload.

    Args:
        payload: Body bytes that were signed.
        signature: Base64 signature to check.
        secret: Shared secret for HMAC.

    Returns:
        True if the signature matches, False otherwise.
    """
    expected = compute_signature(payload, secret)
    # compare_digest rejects non-ASCII str input with TypeError
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))


def signature_header(prefix: str = DEFAULT_HEADER_PREFIX) -> str:
    """Name of the header carrying the signature."""
    return f"{prefix}-Signature"


def verify_request(
    body: bytes,
    headers: Mapping[str, str],
    secret: str,
    prefix: str = DEFAULT_HEADER_PREFIX,
) -> bool:
    """Verify an incoming webhook request on the receiving side.

    Args:
        body: Raw request body as received.
        headers: Request headers. Lookup is case-insensitive.
        secret: The subscription's shared secret.
        prefix: Header prefix configured on the sender.

    Returns:
        True if the signature header is present and valid.
    """
    wanted = signature_header(prefix).lower()
    signature = next((v for k, v in headers.items() if k.lower() == wanted), None)
    if not signature:
        return False
    return verify_signature(body, signature, secret)
