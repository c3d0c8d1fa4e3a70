"""Pytest bootstrap configuration.

Ensure environment variables are set before test collection and module
imports that depend on application settings.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.refund.entity import Refund, RefundReason, RefundStatus
from domain.webhook.entity import WebhookNotification, WebhookStatus
from infrastructure.repositories.in_memory import InMemoryStore
from infrastructure.unit_of_work import in_memory_uow_factory


NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    return in_memory_uow_factory(store)


@pytest.fixture
def make_refund():
    counter = {"n": 0}

    def _make(age_seconds: float = 300, status: RefundStatus = RefundStatus.PROCESSING, **overrides) -> Refund:
        counter["n"] += 1
        created_at = NOW - timedelta(seconds=age_seconds)
        fields = dict(
            refund_id=f"REF-{counter['n']:04d}",
            payment_id=f"PAY-{counter['n']:04d}",
            transaction_id=f"TXN-{counter['n']:04d}",
            merchant_id="MER-1",
            customer_id="CUS-1",
            amount=Decimal("25.00"),
            currency="USD",
            status=status,
            reason=RefundReason.CUSTOMER_REQUEST,
            created_at=created_at,
        )
        fields.update(overrides)
        return Refund(**fields)

    return _make


@pytest.fixture
def make_notification():
    counter = {"n": 0}

    def _make(next_attempt_at: datetime = NOW, attempt_count: int = 0, **overrides) -> WebhookNotification:
        counter["n"] += 1
        fields = dict(
            id=f"WHN-{counter['n']:04d}",
            target_url="https://merchant.example.com/hooks",
            payload='{"event":"REFUND_COMPLETED","refund_id":"REF-1"}',
            event_type="REFUND_COMPLETED",
            status=WebhookStatus.PENDING,
            next_attempt_at=next_attempt_at,
            attempt_count=attempt_count,
            merchant_id="MER-1",
            created_at=NOW - timedelta(hours=1),
        )
        fields.update(overrides)
        return WebhookNotification(**fields)

    return _make
