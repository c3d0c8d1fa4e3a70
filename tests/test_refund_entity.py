from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException, InvalidRefundTransitionException
from domain.refund.entity import RefundStatus


def test_amount_is_quantized_and_currency_upper(make_refund):
    refund = make_refund(amount="10.005", currency="usd")
    assert refund.amount == Decimal("10.01")
    assert refund.currency == "USD"


@pytest.mark.parametrize("amount", ["0", "-1.00", "abc", "NaN"])
def test_invalid_amount_rejected(make_refund, amount):
    with pytest.raises(DomainValidationException):
        make_refund(amount=amount)


@pytest.mark.parametrize("currency", ["US", "USDX", "12A", ""])
def test_invalid_currency_rejected(make_refund, currency):
    with pytest.raises(DomainValidationException):
        make_refund(currency=currency)


def test_naive_timestamps_are_treated_as_utc(make_refund):
    refund = make_refund(created_at=datetime(2026, 1, 1, 8, 0, 0))
    assert refund.created_at.tzinfo == timezone.utc
    assert refund.updated_at == refund.created_at


def test_complete_sets_bank_fields(make_refund, now):
    refund = make_refund()
    refund.complete(now, "Refund confirmed by bank")
    assert refund.status == RefundStatus.COMPLETED
    assert refund.updated_at == now
    assert refund.gateway_response == "Refund confirmed by bank"
    assert refund.gateway_refund_id == f"BANK-{refund.refund_id}"
    assert refund.is_final_status()


def test_fail_and_cancel_from_processing(make_refund, now):
    failed = make_refund()
    failed.fail(now, "Insufficient funds")
    assert failed.status == RefundStatus.FAILED

    cancelled = make_refund()
    cancelled.cancel(now)
    assert cancelled.status == RefundStatus.CANCELLED


def test_terminal_refund_cannot_move(make_refund, now):
    refund = make_refund()
    refund.complete(now, "ok")
    with pytest.raises(InvalidRefundTransitionException):
        refund.fail(now, "late rejection")
    assert refund.status == RefundStatus.COMPLETED


def test_pending_must_pass_through_processing(make_refund, now):
    refund = make_refund(status=RefundStatus.PENDING)
    with pytest.raises(InvalidRefundTransitionException):
        refund.complete(now, "ok")
    refund.mark_processing(now, "submitted")
    refund.complete(now, "ok")
    assert refund.status == RefundStatus.COMPLETED


def test_is_due_boundary_is_inclusive(make_refund, now):
    assert make_refund(age_seconds=120).is_due(now, 120)
    assert make_refund(age_seconds=121).is_due(now, 120)
    assert not make_refund(age_seconds=119).is_due(now, 120)
    assert not make_refund(age_seconds=600, status=RefundStatus.PENDING).is_due(now, 120)


def test_is_due_accepts_naive_now(make_refund, now):
    refund = make_refund(age_seconds=300)
    assert refund.is_due(now.replace(tzinfo=None), 120)
    assert not refund.is_due(now.replace(tzinfo=None) - timedelta(minutes=10), 120)
