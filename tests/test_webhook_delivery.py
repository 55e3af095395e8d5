"""Unit tests for the webhook delivery dispatcher."""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest

from hookrelay.models import Event
from hookrelay.storage import AuditLog, EventStore, WebhookRegistry
from hookrelay.webhooks import RetryScheduler, WebhookDispatcher
from hookrelay.webhooks.signing import compute_signature, serialize_payload

from conftest import RecordingEndpoint

URL_A = "https://a.test/hook"
URL_B = "https://b.test/hook"
URL_C = "https://c.test/hook"


async def _event(events: EventStore, external_id: str = "evt-1") -> Event:
    event = await events.create(external_id, "job_created", {"job_id": "j1", "name": "café"})
    assert event is not None
    return event


@pytest.fixture
def scheduler() -> MagicMock:
    """Retry scheduler spy; no timers run."""
    return MagicMock(spec=RetryScheduler)


@pytest.fixture
def dispatcher(
    registry: WebhookRegistry,
    audit_log: AuditLog,
    scheduler: MagicMock,
    endpoint: RecordingEndpoint,
) -> WebhookDispatcher:
    return WebhookDispatcher(registry, audit_log, scheduler, transport=endpoint.transport)


class TestWebhookDispatcher:
    """Tests for WebhookDispatcher construction."""

    def test_init_defaults(self, registry: WebhookRegistry, audit_log: AuditLog) -> None:
        dispatcher = WebhookDispatcher(registry, audit_log)
        assert dispatcher._timeout == 10.0
        assert dispatcher._max_concurrent == 10
        assert dispatcher.retry_scheduler is None

    def test_binds_scheduler(
        self, registry: WebhookRegistry, audit_log: AuditLog, scheduler: MagicMock
    ) -> None:
        dispatcher = WebhookDispatcher(registry, audit_log, scheduler)
        scheduler.bind.assert_called_once_with(dispatcher)


class TestDeliverEvent:
    """Fan-out of one event to its subscribers."""

    @pytest.mark.asyncio
    async def test_no_subscribers(
        self, dispatcher: WebhookDispatcher, event_store: EventStore, endpoint: RecordingEndpoint
    ) -> None:
        event = await _event(event_store)
        summary = await dispatcher.deliver_event(event)
        assert (summary.delivered, summary.failed) == (0, 0)
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_fan_out_to_active_only(
        self,
        dispatcher: WebhookDispatcher,
        registry: WebhookRegistry,
        audit_log: AuditLog,
        event_store: EventStore,
        endpoint: RecordingEndpoint,
    ) -> None:
        """Each active subscriber gets one request; inactive ones get none."""
        await registry.create("job_created", URL_A)
        await registry.create("job_created", URL_B)
        inactive = await registry.create("job_created", URL_C)
        await registry.create("job_deleted", "https://d.test/hook")
        await registry.toggle_active(inactive.id)
        event = await _event(event_store)

        summary = await dispatcher.deliver_event(event)

        assert summary.delivered == 2
        assert len(endpoint.requests_to(URL_A)) == 1
        assert len(endpoint.requests_to(URL_B)) == 1
        assert endpoint.requests_to(URL_C) == []
        logs = await audit_log.get_by_event_id(event.id)
        assert sorted(log.webhook_id for log in logs) == [1, 2]
        assert all(log.status == "success" and log.attempt_count == 1 for log in logs)

    @pytest.mark.asyncio
    async def test_failure_does_not_block_others(
        self,
        dispatcher: WebhookDispatcher,
        registry: WebhookRegistry,
        audit_log: AuditLog,
        event_store: EventStore,
        endpoint: RecordingEndpoint,
        scheduler: MagicMock,
    ) -> None:
        """A failing subscriber is recorded and scheduled; the others still succeed."""
        await registry.create("job_created", URL_A)
        failing = await registry.create("job_created", URL_B)
        endpoint.script[URL_B] = [500]
        event = await _event(event_store)

        summary = await dispatcher.deliver_event(event)

        assert (summary.delivered, summary.failed) == (1, 1)
        scheduler.schedule.assert_called_once()
        args, kwargs = scheduler.schedule.call_args
        assert args[0].id == event.id
        assert args[1].id == failing.id
        assert kwargs == {"attempt": 1}
        failed = await audit_log.get_by_webhook_id(failing.id)
        assert failed[0].status == "failed"
        assert failed[0].response_code == 500

    @pytest.mark.asyncio
    async def test_no_scheduler_no_retry(
        self,
        registry: WebhookRegistry,
        audit_log: AuditLog,
        event_store: EventStore,
        endpoint: RecordingEndpoint,
    ) -> None:
        endpoint.default_status = 503
        dispatcher = WebhookDispatcher(registry, audit_log, transport=endpoint.transport)
        await registry.create("job_created", URL_A)

        summary = await dispatcher.deliver_event(await _event(event_store))

        assert summary.failed == 1


class TestDeliverToWebhook:
    """Single-webhook delivery, signing and outcome classification."""

    @pytest.mark.asyncio
    async def test_request_shape(
        self,
        dispatcher: WebhookDispatcher,
        registry: WebhookRegistry,
        event_store: EventStore,
        endpoint: RecordingEndpoint,
    ) -> None:
        """Body is the serialized payload, signed with the webhook secret."""
        webhook = await registry.create("job_created", URL_A, "s3cret")
        event = await _event(event_store)

        result = await dispatcher.deliver_to_webhook(event, webhook, attempt_count=3)

        assert result.success
        assert result.status == 200
        request = endpoint.requests[0]
        assert request.method == "POST"
        assert request.content == serialize_payload(event.payload)
        assert request.headers["content-type"] == "application/json"
        assert request.headers["x-hookrelay-signature"] == compute_signature(
            request.content, "s3cret"
        )
        assert request.headers["x-hookrelay-event-type"] == "job_created"
        assert request.headers["x-hookrelay-event-id"] == "evt-1"
        assert request.headers["x-hookrelay-attempt"] == "3"
        assert request.headers["x-hookrelay-timestamp"].endswith("+00:00")

    @pytest.mark.asyncio
    async def test_custom_header_prefix(
        self,
        registry: WebhookRegistry,
        audit_log: AuditLog,
        event_store: EventStore,
        endpoint: RecordingEndpoint,
    ) -> None:
        dispatcher = WebhookDispatcher(
            registry, audit_log, header_prefix="X-Acme", transport=endpoint.transport
        )
        webhook = await registry.create("job_created", URL_A)
        await dispatcher.deliver_to_webhook(await _event(event_store), webhook)
        assert "x-acme-signature" in endpoint.requests[0].headers

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [200, 201, 204, 299])
    async def test_2xx_is_success(
        self,
        dispatcher: WebhookDispatcher,
        registry: WebhookRegistry,
        event_store: EventStore,
        endpoint: RecordingEndpoint,
        status: int,
    ) -> None:
        endpoint.default_status = status
        webhook = await registry.create("job_created", URL_A)
        result = await dispatcher.deliver_to_webhook(await _event(event_store), webhook)
        assert result.success
        assert result.status == status

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [301, 400, 404, 500, 503])
    async def test_non_2xx_is_failure(
        self,
        dispatcher: WebhookDispatcher,
        registry: WebhookRegistry,
        audit_log: AuditLog,
        event_store: EventStore,
        endpoint: RecordingEndpoint,
        status: int,
    ) -> None:
        """Responses outside 2xx are failures carrying status and body excerpt."""
        endpoint.default_status = status
        webhook = await registry.create("job_created", URL_A)
        event = await _event(event_store)

        result = await dispatcher.deliver_to_webhook(event, webhook)

        assert not result.success
        assert result.status == status
        logs = await audit_log.get_by_event_id(event.id)
        assert logs[0].response_code == status
        assert logs[0].error_message is not None
        assert logs[0].error_message.startswith(f"HTTP {status}")

    @pytest.mark.asyncio
    async def test_any_response_as_success(
        self,
        registry: WebhookRegistry,
        audit_log: AuditLog,
        event_store: EventStore,
        endpoint: RecordingEndpoint,
    ) -> None:
        """With the lenient setting any received response counts as delivered."""
        endpoint.default_status = 500
        dispatcher = WebhookDispatcher(
            registry,
            audit_log,
            treat_any_response_as_success=True,
            transport=endpoint.transport,
        )
        webhook = await registry.create("job_created", URL_A)

        result = await dispatcher.deliver_to_webhook(await _event(event_store), webhook)

        assert result.success
        assert result.status == 500

    @pytest.mark.asyncio
    async def test_timeout(
        self,
        dispatcher: WebhookDispatcher,
        registry: WebhookRegistry,
        audit_log: AuditLog,
        event_store: EventStore,
        endpoint: RecordingEndpoint,
    ) -> None:
        """A timeout is a failure with response code 0."""
        endpoint.raise_for[URL_A] = httpx.ReadTimeout("timed out")
        webhook = await registry.create("job_created", URL_A)
        event = await _event(event_store)

        result = await dispatcher.deliver_to_webhook(event, webhook)

        assert not result.success
        assert result.status == 0
        assert result.error == "Request timeout"
        logs = await audit_log.get_by_event_id(event.id)
        assert logs[0].response_code == 0

    @pytest.mark.asyncio
    async def test_connection_error(
        self,
        dispatcher: WebhookDispatcher,
        registry: WebhookRegistry,
        event_store: EventStore,
        endpoint: RecordingEndpoint,
    ) -> None:
        endpoint.raise_for[URL_A] = httpx.ConnectError("connection refused")
        webhook = await registry.create("job_created", URL_A)

        result = await dispatcher.deliver_to_webhook(await _event(event_store), webhook)

        assert not result.success
        assert result.status == 0
        assert result.error == "ConnectError: connection refused"

    @pytest.mark.asyncio
    async def test_non_ascii_metadata(
        self,
        dispatcher: WebhookDispatcher,
        registry: WebhookRegistry,
        audit_log: AuditLog,
        event_store: EventStore,
        endpoint: RecordingEndpoint,
    ) -> None:
        """Non-ASCII event types and ids go out as UTF-8 header values."""
        webhook = await registry.create("café_created", URL_A)
        event = await event_store.create("évt-1", "café_created", {"job_id": "j1"})
        assert event is not None

        summary = await dispatcher.deliver_event(event)

        assert summary.delivered == 1
        request = endpoint.requests[0]
        assert request.headers["x-hookrelay-event-type"] == "café_created"
        assert request.headers["x-hookrelay-event-id"] == "évt-1"
        logs = await audit_log.get_by_event_id(event.id)
        assert [(log.webhook_id, log.status) for log in logs] == [(webhook.id, "success")]

    @pytest.mark.asyncio
    async def test_request_build_error_recorded(
        self,
        dispatcher: WebhookDispatcher,
        registry: WebhookRegistry,
        audit_log: AuditLog,
        event_store: EventStore,
        endpoint: RecordingEndpoint,
    ) -> None:
        """A request that can't be encoded is a failed attempt with code 0."""
        endpoint.raise_for[URL_A] = UnicodeEncodeError("ascii", "é", 0, 1, "not ascii")
        webhook = await registry.create("job_created", URL_A)
        event = await _event(event_store)

        result = await dispatcher.deliver_to_webhook(event, webhook)

        assert not result.success
        assert result.status == 0
        assert result.error is not None
        assert result.error.startswith("UnicodeEncodeError")
        logs = await audit_log.get_by_event_id(event.id)
        assert [(log.status, log.response_code) for log in logs] == [("failed", 0)]

    @pytest.mark.asyncio
    async def test_deleted_webhook_not_recorded(
        self,
        dispatcher: WebhookDispatcher,
        registry: WebhookRegistry,
        audit_log: AuditLog,
        event_store: EventStore,
    ) -> None:
        """A subscription removed mid-flight doesn't break delivery."""
        webhook = await registry.create("job_created", URL_A)
        await registry.delete(webhook.id)

        result = await dispatcher.deliver_to_webhook(await _event(event_store), webhook)

        assert result.success
        assert await audit_log.count() == 0


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_close_releases_client(
        self,
        dispatcher: WebhookDispatcher,
        registry: WebhookRegistry,
        event_store: EventStore,
    ) -> None:
        webhook = await registry.create("job_created", URL_A)
        await dispatcher.deliver_to_webhook(await _event(event_store), webhook)
        client = dispatcher._client
        assert client is not None

        await dispatcher.close()

        assert client.is_closed
        assert dispatcher._client is None
