from datetime import timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from application.ports.webhook_sender import DeliveryResult
from application.services.refund_lifecycle_service import RefundLifecycleManager
from application.services.webhook_delivery_service import WebhookDeliveryEngine
from domain.common.exceptions import (
    ConcurrentUpdateException,
    RefundAlreadyExistsException,
    RefundNotFoundException,
    WebhookNotificationAlreadyExistsException,
)
from domain.refund.entity import RefundStatus
from domain.webhook.backoff import BackoffPolicy
from domain.webhook.entity import WebhookDeliveryAttempt, WebhookStatus
from infrastructure.database import create_tables
from infrastructure.unit_of_work import sqlalchemy_uow_factory


@pytest_asyncio.fixture
async def sql_uow_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    await create_tables(engine)
    factory = sqlalchemy_uow_factory(async_sessionmaker(bind=engine, expire_on_commit=False))
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_refund_round_trip(sql_uow_factory, make_refund):
    refund = make_refund(description="duplicate charge")
    async with sql_uow_factory() as uow:
        created = await uow.refund_repository.create(refund)
    assert created.id is not None

    async with sql_uow_factory(readonly=True) as uow:
        stored = await uow.refund_repository.get_by_refund_id(refund.refund_id)
    assert stored.amount == refund.amount
    assert stored.status == RefundStatus.PROCESSING
    assert stored.created_at == refund.created_at
    assert stored.created_at.tzinfo == timezone.utc
    assert stored.description == "duplicate charge"


@pytest.mark.asyncio
async def test_duplicate_refund_id_rejected(sql_uow_factory, make_refund):
    refund = make_refund()
    async with sql_uow_factory() as uow:
        await uow.refund_repository.create(refund)

    with pytest.raises(RefundAlreadyExistsException):
        async with sql_uow_factory() as uow:
            await uow.refund_repository.create(refund)


@pytest.mark.asyncio
async def test_cutoff_is_inclusive(sql_uow_factory, make_refund, now):
    at_cutoff = make_refund(age_seconds=120)
    older = make_refund(age_seconds=500)
    younger = make_refund(age_seconds=119)
    async with sql_uow_factory() as uow:
        for r in (at_cutoff, older, younger):
            await uow.refund_repository.create(r)

    cutoff = now - timedelta(seconds=120)
    async with sql_uow_factory(readonly=True) as uow:
        found = await uow.refund_repository.find_by_status_and_cutoff(RefundStatus.PROCESSING, cutoff)
        limited = await uow.refund_repository.find_by_status_and_cutoff(RefundStatus.PROCESSING, cutoff, limit=1)

    assert {r.refund_id for r in found} == {at_cutoff.refund_id, older.refund_id}
    assert [r.refund_id for r in limited] == [older.refund_id]


@pytest.mark.asyncio
async def test_save_is_compare_and_swap(sql_uow_factory, make_refund, now):
    refund = make_refund()
    async with sql_uow_factory() as uow:
        await uow.refund_repository.create(refund)

    winner = make_refund(refund_id=refund.refund_id)
    winner.cancel(now)
    async with sql_uow_factory() as uow:
        await uow.refund_repository.save(winner, expected_status=RefundStatus.PROCESSING)

    loser = make_refund(refund_id=refund.refund_id)
    loser.complete(now, "ok")
    with pytest.raises(ConcurrentUpdateException):
        async with sql_uow_factory() as uow:
            await uow.refund_repository.save(loser, expected_status=RefundStatus.PROCESSING)

    async with sql_uow_factory(readonly=True) as uow:
        stored = await uow.refund_repository.get_by_refund_id(refund.refund_id)
        assert await uow.refund_repository.count_by_status(RefundStatus.CANCELLED) == 1
    assert stored.status == RefundStatus.CANCELLED


@pytest.mark.asyncio
async def test_save_unknown_refund(sql_uow_factory, make_refund, now):
    ghost = make_refund()
    ghost.complete(now, "ok")
    with pytest.raises(RefundNotFoundException):
        async with sql_uow_factory() as uow:
            await uow.refund_repository.save(ghost)


@pytest.mark.asyncio
async def test_lifecycle_tick_against_database(sql_uow_factory, make_refund, now):
    due, young = make_refund(age_seconds=600), make_refund(age_seconds=10)
    async with sql_uow_factory() as uow:
        await uow.refund_repository.create(due)
        await uow.refund_repository.create(young)

    report = await RefundLifecycleManager(sql_uow_factory).process_due_refunds(now)

    assert report.succeeded == 1
    async with sql_uow_factory(readonly=True) as uow:
        stored = await uow.refund_repository.get_by_refund_id(due.refund_id)
    assert stored.status == RefundStatus.COMPLETED
    assert stored.updated_at == now
    assert stored.gateway_refund_id == f"BANK-{due.refund_id}"


@pytest.mark.asyncio
async def test_webhook_due_selection_and_terminal_guard(sql_uow_factory, make_notification, now):
    due = make_notification(next_attempt_at=now - timedelta(seconds=1))
    later = make_notification(next_attempt_at=now + timedelta(minutes=5))
    async with sql_uow_factory() as uow:
        await uow.webhook_repository.create(due)
        await uow.webhook_repository.create(later)

    async with sql_uow_factory(readonly=True) as uow:
        found = await uow.webhook_repository.find_due_for_retry(now)
    assert [n.id for n in found] == [due.id]

    delivered = found[0]
    delivered.mark_delivered(now, 200)
    async with sql_uow_factory() as uow:
        await uow.webhook_repository.save(delivered, expected_attempt_count=0)

    # a stale copy cannot overwrite the terminal record
    stale = make_notification(id=due.id, next_attempt_at=due.next_attempt_at)
    stale.record_failure(now, "HTTP 500", now + timedelta(minutes=1), 500)
    with pytest.raises(ConcurrentUpdateException):
        async with sql_uow_factory() as uow:
            await uow.webhook_repository.save(stale, expected_attempt_count=0)

    async with sql_uow_factory(readonly=True) as uow:
        stored = await uow.webhook_repository.get_by_id(due.id)
        assert await uow.webhook_repository.count_by_status(WebhookStatus.DELIVERED) == 1
        assert await uow.webhook_repository.find_due_for_retry(now) == []
    assert stored.status == WebhookStatus.DELIVERED
    assert stored.attempt_count == 1


@pytest.mark.asyncio
async def test_webhook_attempt_count_mismatch(sql_uow_factory, make_notification, now):
    n = make_notification()
    async with sql_uow_factory() as uow:
        await uow.webhook_repository.create(n)

    n.record_failure(now, "HTTP 502", now + timedelta(minutes=1), 502)
    with pytest.raises(ConcurrentUpdateException):
        async with sql_uow_factory() as uow:
            await uow.webhook_repository.save(n, expected_attempt_count=5)


@pytest.mark.asyncio
async def test_duplicate_notification_id_rejected(sql_uow_factory, make_notification):
    n = make_notification()
    async with sql_uow_factory() as uow:
        await uow.webhook_repository.create(n)

    with pytest.raises(WebhookNotificationAlreadyExistsException):
        async with sql_uow_factory() as uow:
            await uow.webhook_repository.create(make_notification(id=n.id))


class ScriptedSender:
    def __init__(self, *results):
        self.results = list(results)

    async def send(self, notification):
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def aclose(self):
        pass


@pytest.mark.asyncio
async def test_failed_attempts_leave_one_history_row_each(sql_uow_factory, make_notification, now):
    n = make_notification()
    async with sql_uow_factory() as uow:
        await uow.webhook_repository.create(n)

    engine = WebhookDeliveryEngine(
        sql_uow_factory,
        ScriptedSender(
            DeliveryResult.from_status(500, elapsed_ms=30.0, body="boom"),
            DeliveryResult.from_status(429, elapsed_ms=5.0, body="slow down"),
            ConnectionResetError("peer reset"),
        ),
        max_attempts=3,
        backoff=BackoffPolicy(base=60, floor=60, cap=600, jitter=0.0),
    )
    clock = now
    for _ in range(3):
        await engine.process_retries(clock)
        async with sql_uow_factory(readonly=True) as uow:
            clock = (await uow.webhook_repository.get_by_id(n.id)).next_attempt_at

    async with sql_uow_factory(readonly=True) as uow:
        stored = await uow.webhook_repository.get_by_id(n.id)
        history = await uow.webhook_repository.list_attempts(n.id)

    assert stored.status == WebhookStatus.EXHAUSTED
    assert [(a.attempt_number, a.status_code) for a in history] == [(1, 500), (2, 429), (3, None)]
    assert [a.error_message for a in history[:2]] == ["HTTP 500: boom", "HTTP 429: slow down"]
    assert "ConnectionResetError" in history[2].error_message
    assert history[0].response_body == "boom"
    assert history[0].response_time_ms == 30
    assert history[0].sent_at == now
    assert history[0].sent_at.tzinfo == timezone.utc
    assert not any(a.success for a in history)


@pytest.mark.asyncio
async def test_attempt_number_is_unique_per_notification(sql_uow_factory, make_notification, now):
    n = make_notification()
    async with sql_uow_factory() as uow:
        await uow.webhook_repository.create(n)

    attempt = WebhookDeliveryAttempt(
        notification_id=n.id,
        attempt_number=1,
        success=False,
        sent_at=now,
        status_code=500,
    )
    async with sql_uow_factory() as uow:
        await uow.webhook_repository.add_attempt(attempt)

    with pytest.raises(ConcurrentUpdateException):
        async with sql_uow_factory() as uow:
            await uow.webhook_repository.add_attempt(attempt)

    async with sql_uow_factory(readonly=True) as uow:
        assert len(await uow.webhook_repository.list_attempts(n.id)) == 1
