"""Shared helpers for HookRelay models."""

from __future__ import annotations

import secrets
from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def generate_secret() -> str:
    """Generate a random signing secret for a webhook subscription.

    Returns:
        A cryptographically secure random hex string (64 characters).
    """
    return secrets.token_hex(32)
