from datetime import timedelta

import pytest

from domain.common.exceptions import DomainValidationException, WebhookNotificationTerminalException
from domain.webhook.entity import MAX_ERROR_LENGTH, WebhookDeliveryAttempt, WebhookStatus


def test_mark_delivered(make_notification, now):
    n = make_notification()
    n.mark_delivered(now, 200)
    assert n.status == WebhookStatus.DELIVERED
    assert n.attempt_count == 1
    assert n.delivered_at == now
    assert n.last_response_code == 200


def test_record_failure_requires_later_next_attempt(make_notification, now):
    n = make_notification(next_attempt_at=now)
    with pytest.raises(DomainValidationException):
        n.record_failure(now, "HTTP 500", now)
    assert n.attempt_count == 0

    n.record_failure(now, "HTTP 500", now + timedelta(minutes=1), 500)
    assert n.status == WebhookStatus.PENDING
    assert n.attempt_count == 1
    assert n.last_error == "HTTP 500"


def test_long_errors_are_truncated(make_notification, now):
    n = make_notification()
    n.mark_exhausted(now, "x" * 5000)
    assert len(n.last_error) == MAX_ERROR_LENGTH


def test_terminal_records_are_immutable(make_notification, now):
    n = make_notification()
    n.mark_exhausted(now, "gave up")
    with pytest.raises(WebhookNotificationTerminalException):
        n.mark_delivered(now, 200)
    with pytest.raises(WebhookNotificationTerminalException):
        n.record_failure(now, "again", now + timedelta(hours=1))
    assert n.attempt_count == 1


def test_is_due(make_notification, now):
    assert make_notification(next_attempt_at=now).is_due(now)
    assert not make_notification(next_attempt_at=now + timedelta(seconds=1)).is_due(now)
    assert not make_notification(status=WebhookStatus.DELIVERED).is_due(now)


def test_delivery_attempt_truncates_body_and_error(now):
    attempt = WebhookDeliveryAttempt(
        notification_id="WHN-1",
        attempt_number=1,
        success=False,
        sent_at=now.replace(tzinfo=None),
        response_body="b" * 5000,
        error_message="e" * 5000,
    )
    assert len(attempt.response_body) == MAX_ERROR_LENGTH
    assert len(attempt.error_message) == MAX_ERROR_LENGTH
    assert attempt.sent_at == now


def test_delivery_attempt_numbers_start_at_one(now):
    with pytest.raises(DomainValidationException):
        WebhookDeliveryAttempt(notification_id="WHN-1", attempt_number=0, success=True, sent_at=now)
