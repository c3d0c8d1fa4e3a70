import json

import pytest

from application.ports.webhook_sender import DeliveryResult
from application.services.webhook_delivery_service import WebhookDeliveryEngine
from application.services.webhook_notification_service import (
    WebhookNotificationService,
    generate_notification_id,
    serialize_payload,
)
from domain.common.exceptions import (
    WebhookNotificationAlreadyExistsException,
    WebhookNotificationNotFoundException,
)
from domain.webhook.entity import WebhookEventType, WebhookStatus


def test_notification_ids_are_unique_and_prefixed():
    a, b = generate_notification_id(), generate_notification_id()
    assert a != b
    assert a.startswith("WHN-") and len(a) == 36


def test_serialize_payload_is_canonical():
    assert serialize_payload({"b": 1, "a": "x"}) == '{"a":"x","b":1}'
    assert serialize_payload('{"raw": true}') == '{"raw": true}'
    assert serialize_payload(b'{"raw":1}') == '{"raw":1}'


@pytest.mark.asyncio
async def test_enqueue_creates_immediately_due_notification(uow_factory, now):
    service = WebhookNotificationService(uow_factory)

    created = await service.enqueue(
        "https://merchant.example.com/hooks",
        WebhookEventType.REFUND_COMPLETED.value,
        {"refund_id": "REF-1", "status": "completed"},
        now,
        merchant_id="MER-1",
    )

    stored = await service.get(created.id)
    assert stored.status == WebhookStatus.PENDING
    assert stored.attempt_count == 0
    assert stored.next_attempt_at == now
    assert stored.is_due(now)
    assert json.loads(stored.payload) == {"refund_id": "REF-1", "status": "completed"}


@pytest.mark.asyncio
async def test_get_unknown_notification_raises(uow_factory):
    with pytest.raises(WebhookNotificationNotFoundException):
        await WebhookNotificationService(uow_factory).get("WHN-missing")


@pytest.mark.asyncio
async def test_enqueue_with_existing_id_is_rejected(uow_factory, now):
    service = WebhookNotificationService(uow_factory)
    await service.enqueue("https://a.example.com", "REFUND_COMPLETED", {}, now, notification_id="WHN-fixed")

    with pytest.raises(WebhookNotificationAlreadyExistsException):
        await service.enqueue("https://b.example.com", "REFUND_FAILED", {}, now, notification_id="WHN-fixed")

    assert (await service.get("WHN-fixed")).target_url == "https://a.example.com"


class _RejectingSender:
    async def send(self, notification):
        return DeliveryResult.from_status(410, elapsed_ms=3.0, body="gone")

    async def aclose(self):
        pass


@pytest.mark.asyncio
async def test_list_attempts_returns_delivery_history(uow_factory, now):
    service = WebhookNotificationService(uow_factory)
    created = await service.enqueue("https://merchant.example.com/hooks", "REFUND_COMPLETED", {}, now)
    assert await service.list_attempts(created.id) == []

    await WebhookDeliveryEngine(uow_factory, _RejectingSender(), max_attempts=1).process_retries(now)

    history = await service.list_attempts(created.id)
    assert len(history) == 1
    assert history[0].status_code == 410
    assert history[0].response_body == "gone"

    with pytest.raises(WebhookNotificationNotFoundException):
        await service.list_attempts("WHN-missing")
