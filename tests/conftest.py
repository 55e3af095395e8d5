"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
import time
from collections.abc import Callable

import httpx
import pytest

from hookrelay.config import Settings
from hookrelay.storage import AuditLog, EventStore, WebhookLookupCache, WebhookRegistry


class RecordingEndpoint:
    """Fake webhook receiver for httpx.MockTransport.

    Records every request and answers with a status chosen per URL.
    Statuses listed in ``script`` are consumed in order; afterwards
    ``default_status`` is returned.
    """

    def __init__(self, default_status: int = 200) -> None:
        self.default_status = default_status
        self.requests: list[httpx.Request] = []
        self.times: list[float] = []
        self.script: dict[str, list[int]] = {}
        self.raise_for: dict[str, Exception] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.times.append(time.monotonic())
        url = str(request.url)
        if url in self.raise_for:
            raise self.raise_for[url]
        statuses = self.script.get(url)
        status = statuses.pop(0) if statuses else self.default_status
        return httpx.Response(status, text="ok" if status < 400 else "error")

    def requests_to(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url) == url]

    def bodies_to(self, url: str) -> list[object]:
        return [json.loads(r.content) for r in self.requests_to(url)]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def endpoint() -> RecordingEndpoint:
    """Fake receiver answering 200 unless scripted otherwise."""
    return RecordingEndpoint()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with fast retries for tests."""
    return Settings(
        env="test",
        max_retries=3,
        retry_base_delay_seconds=0.01,
        delivery_timeout_seconds=1.0,
        delivery_workers=2,
        log_format="text",
    )


@pytest.fixture
def event_store() -> EventStore:
    return EventStore()


@pytest.fixture
def clock() -> Callable[[], float]:
    """Manually advanced clock; call ``clock.advance(seconds)``."""

    class _Clock:
        def __init__(self) -> None:
            self.now = 1000.0

        def __call__(self) -> float:
            return self.now

        def advance(self, seconds: float) -> None:
            self.now += seconds

    return _Clock()


@pytest.fixture
def registry() -> WebhookRegistry:
    return WebhookRegistry(WebhookLookupCache(ttl_seconds=3600))


@pytest.fixture
def audit_log(event_store: EventStore, registry: WebhookRegistry) -> AuditLog:
    return AuditLog(event_store, registry)
