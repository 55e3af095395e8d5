"""Tests for the RelayService facade."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from hookrelay.config import Settings
from hookrelay.exceptions import (
    InvalidStateError,
    NotFoundError,
    QueueFullError,
    ValidationError,
)
from hookrelay.models import Event
from hookrelay.service import RelayService
from hookrelay.webhooks.signing import verify_request

from conftest import RecordingEndpoint

URL_A = "https://a.test/hook"
URL_B = "https://b.test/hook"


@pytest.fixture
def relay(test_settings: Settings, endpoint: RecordingEndpoint) -> RelayService:
    """Service wired to the fake receiver, not yet started."""
    return RelayService.create(test_settings, transport=endpoint.transport)


class TestLifecycle:
    def test_create_wires_settings(self, test_settings: Settings) -> None:
        relay = RelayService.create(test_settings)
        assert relay.retry_scheduler.max_retries == 3
        assert relay.webhooks.cache.ttl_seconds == test_settings.webhook_cache_ttl_seconds
        assert relay.dispatcher.retry_scheduler is relay.retry_scheduler

    @pytest.mark.asyncio
    async def test_context_manager(self, relay: RelayService) -> None:
        async with relay:
            assert relay.queue.running
            assert relay.health()["workers_running"] is True
        assert not relay.queue.running


class TestIngest:
    """Event intake through the facade."""

    @pytest.mark.asyncio
    async def test_ingest_is_idempotent(
        self, relay: RelayService, endpoint: RecordingEndpoint
    ) -> None:
        """A re-sent external id stores nothing and delivers nothing."""
        async with relay:
            await relay.create_webhook("job_created", URL_A)

            first = await relay.ingest_event("evt-1", "job_created", {"job_id": "j1"})
            second = await relay.ingest_event("evt-1", "job_created", {"job_id": "j1"})
            await relay.drain()

            assert first is not None
            assert second is None
            assert len(await relay.list_events()) == 1
            assert len(endpoint.requests) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("external_id", "type", "payload", "field"),
        [
            ("", "job_created", {}, "external_id"),
            ("evt-1", "  ", {}, "type"),
            ("evt-1", "job_created", None, "payload"),
        ],
    )
    async def test_ingest_validation(
        self, relay: RelayService, external_id, type, payload, field
    ) -> None:
        async with relay:
            with pytest.raises(ValidationError) as exc_info:
                await relay.ingest_event(external_id, type, payload)
            assert exc_info.value.field == field
            assert await relay.list_events() == []

    @pytest.mark.asyncio
    async def test_ingest_without_workers(self, relay: RelayService) -> None:
        """Intake on a service that was never initialized is refused."""
        with pytest.raises(QueueFullError):
            await relay.ingest_event("evt-1", "job_created", {})
        assert await relay.list_events() == []

    @pytest.mark.asyncio
    async def test_refused_intake_is_not_stored(
        self, relay: RelayService, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An event the queue can't take is dropped, so a resend is not a duplicate."""
        async with relay:
            monkeypatch.setattr(
                relay.queue, "enqueue", MagicMock(side_effect=QueueFullError("full"))
            )
            with pytest.raises(QueueFullError):
                await relay.ingest_event("evt-1", "job_created", {})
            assert await relay.list_events() == []

            monkeypatch.undo()
            event = await relay.ingest_event("evt-1", "job_created", {})
            assert event is not None

    @pytest.mark.asyncio
    async def test_concurrent_intake_on_full_queue(
        self, test_settings: Settings, endpoint: RecordingEndpoint
    ) -> None:
        """Intakes racing for the last queue slot either queue or leave nothing stored."""
        settings = test_settings.model_copy(update={"delivery_queue_size": 1})
        relay = RelayService.create(settings, transport=endpoint.transport)
        async with relay:
            async with relay.events._lock:
                tasks = [
                    asyncio.create_task(relay.ingest_event(f"evt-{i}", "job_created", {}))
                    for i in (1, 2)
                ]
                # Both pass the depth check, then wait on the store
                await asyncio.sleep(0)
            results = await asyncio.gather(*tasks, return_exceptions=True)
            await relay.drain()

            accepted = [r for r in results if isinstance(r, Event)]
            refused = [r for r in results if isinstance(r, QueueFullError)]
            assert len(accepted) + len(refused) == 2
            assert accepted
            stored = await relay.list_events()
            assert [e.external_id for e in stored] == [e.external_id for e in accepted]

    @pytest.mark.asyncio
    async def test_job_created_scenario(
        self, relay: RelayService, endpoint: RecordingEndpoint
    ) -> None:
        """Two subscribers receive one signed copy each; the log has both."""
        async with relay:
            hook_a = await relay.create_webhook("job_created", URL_A, "secret-a")
            hook_b = await relay.create_webhook("job_created", URL_B, "secret-b")
            await relay.create_webhook("job_deleted", "https://c.test/hook")

            event = await relay.ingest_event("evt-1", "job_created", {"job_id": "j1"})
            assert event is not None
            await relay.drain()

            assert endpoint.bodies_to(URL_A) == [{"job_id": "j1"}]
            assert endpoint.bodies_to(URL_B) == [{"job_id": "j1"}]
            request_a = endpoint.requests_to(URL_A)[0]
            request_b = endpoint.requests_to(URL_B)[0]
            assert verify_request(request_a.content, request_a.headers, hook_a.secret)
            assert verify_request(request_b.content, request_b.headers, hook_b.secret)
            assert not verify_request(request_a.content, request_a.headers, hook_b.secret)

            logs = await relay.get_delivery_logs(event.id)
            assert sorted(log.target_url for log in logs) == [URL_A, URL_B]
            assert all(log.status == "success" for log in logs)
            assert all(log.event_type == "job_created" for log in logs)

            stats = await relay.get_stats()
            assert stats.success_count == 2
            assert stats.failure_count == 0

    @pytest.mark.asyncio
    async def test_failed_delivery_retried_to_exhaustion(
        self, relay: RelayService, endpoint: RecordingEndpoint
    ) -> None:
        """Delivery failures never reach the caller; they end up in the log."""
        endpoint.default_status = 500
        async with relay:
            await relay.create_webhook("job_created", URL_A)
            event = await relay.ingest_event("evt-1", "job_created", {"job_id": "j1"})
            assert event is not None
            await relay.drain()

            logs = await relay.get_delivery_logs(event.id)
            assert [log.attempt_count for log in logs] == [1, 2, 3]
            assert (await relay.get_stats()).failure_count == 3


class TestQueries:
    @pytest.mark.asyncio
    async def test_get_event_not_found(self, relay: RelayService) -> None:
        with pytest.raises(NotFoundError):
            await relay.get_event(1)
        with pytest.raises(NotFoundError):
            await relay.get_delivery_logs(1)

    @pytest.mark.asyncio
    async def test_list_by_type_and_page_clamp(self, relay: RelayService) -> None:
        async with relay:
            for i in range(5):
                await relay.ingest_event(f"evt-{i}", "job_created" if i % 2 else "other", {})
            await relay.drain()

            assert len(await relay.list_events_by_type("job_created")) == 2
            assert len(await relay.list_events(limit=2, offset=1)) == 2
            assert len(await relay.list_events(limit=10_000)) == 5

    @pytest.mark.asyncio
    async def test_list_delivery_logs_enriched(self, relay: RelayService) -> None:
        async with relay:
            await relay.create_webhook("job_created", URL_A)
            await relay.ingest_event("evt-1", "job_created", {})
            await relay.drain()

            logs = await relay.list_delivery_logs()

            assert len(logs) == 1
            assert logs[0].event_external_id == "evt-1"
            assert logs[0].target_url == URL_A


class TestRequeue:
    @pytest.mark.asyncio
    async def test_retry_delivery(self, relay: RelayService, endpoint: RecordingEndpoint) -> None:
        """Requeue marks a failed record pending without sending anything."""
        endpoint.script[URL_A] = [500]
        async with relay:
            await relay.create_webhook("job_created", URL_A)
            event = await relay.ingest_event("evt-1", "job_created", {})
            assert event is not None
            await relay.drain()
            failed = (await relay.get_delivery_logs(event.id))[0]
            sent = len(endpoint.requests)

            requeued = await relay.retry_delivery(failed.id)

            assert requeued.status == "pending"
            assert requeued.attempt_count == failed.attempt_count + 1
            assert len(endpoint.requests) == sent

            succeeded = (await relay.get_delivery_logs(event.id))[-1]
            with pytest.raises(InvalidStateError):
                await relay.retry_delivery(succeeded.id)
            with pytest.raises(NotFoundError):
                await relay.retry_delivery(999)


class TestWebhooks:
    @pytest.mark.asyncio
    async def test_crud(self, relay: RelayService) -> None:
        webhook = await relay.create_webhook("job_created", URL_A)

        assert (await relay.get_webhook(webhook.id)).target_url == URL_A
        updated = await relay.update_webhook(webhook.id, {"target_url": URL_B})
        assert updated.target_url == URL_B
        toggled = await relay.toggle_webhook(webhook.id)
        assert toggled.is_active is False
        assert [w.id for w in await relay.list_webhooks()] == [webhook.id]

        await relay.delete_webhook(webhook.id)

        assert await relay.list_webhooks() == []

    @pytest.mark.asyncio
    async def test_missing_webhook(self, relay: RelayService) -> None:
        with pytest.raises(NotFoundError):
            await relay.get_webhook(9)
        with pytest.raises(NotFoundError):
            await relay.update_webhook(9, {"is_active": False})
        with pytest.raises(NotFoundError):
            await relay.toggle_webhook(9)
        with pytest.raises(NotFoundError):
            await relay.delete_webhook(9)

    @pytest.mark.asyncio
    async def test_create_validation(self, relay: RelayService) -> None:
        with pytest.raises(ValidationError):
            await relay.create_webhook("", URL_A)
        with pytest.raises(ValidationError):
            await relay.create_webhook("job_created", "not-a-url")

    @pytest.mark.asyncio
    async def test_delete_cancels_pending_retries(
        self, endpoint: RecordingEndpoint
    ) -> None:
        """Deleting a webhook stops its retry chain."""
        endpoint.default_status = 500
        settings = Settings(env="test", retry_base_delay_seconds=30.0)
        relay = RelayService.create(settings, transport=endpoint.transport)
        async with relay:
            webhook = await relay.create_webhook("job_created", URL_A)
            await relay.ingest_event("evt-1", "job_created", {})
            await relay.queue.join()
            assert relay.retry_scheduler.pending_count == 1

            await relay.delete_webhook(webhook.id)
            await relay.retry_scheduler.wait_idle()

            assert relay.retry_scheduler.pending_count == 0
            assert len(endpoint.requests) == 1

    @pytest.mark.asyncio
    async def test_deactivated_webhook_gets_nothing(
        self, relay: RelayService, endpoint: RecordingEndpoint
    ) -> None:
        async with relay:
            webhook = await relay.create_webhook("job_created", URL_A)
            await relay.toggle_webhook(webhook.id)
            await relay.ingest_event("evt-1", "job_created", {})
            await relay.drain()
            assert endpoint.requests == []


def test_health_report(relay: RelayService) -> None:
    health = relay.health()
    assert health["storage"] == "healthy"
    assert health["queue_depth"] == 0
    assert health["pending_retries"] == 0
    assert "timestamp" in health
