from domain.common.exceptions import (
    BusinessException,
    ConcurrentUpdateException,
    DomainValidationException,
    InvalidRefundTransitionException,
    RefundAlreadyExistsException,
    RefundNotFoundException,
    WebhookNotificationAlreadyExistsException,
    WebhookNotificationNotFoundException,
    WebhookNotificationTerminalException,
)
from shared.codes import BusinessCode


def _all_exceptions():
    return [
        DomainValidationException("bad amount", field="amount"),
        RefundNotFoundException("REF-1"),
        RefundAlreadyExistsException("REF-1"),
        InvalidRefundTransitionException("REF-1", "completed", "failed"),
        WebhookNotificationNotFoundException("WHN-1"),
        WebhookNotificationAlreadyExistsException("WHN-1"),
        WebhookNotificationTerminalException("WHN-1", "delivered"),
        ConcurrentUpdateException("Refund", "REF-1"),
    ]


def test_every_business_code_has_an_exception():
    raised = {exc.code for exc in _all_exceptions()}
    assert raised == set(BusinessCode)


def test_exceptions_carry_message_and_details():
    for exc in _all_exceptions():
        assert isinstance(exc, BusinessException)
        assert str(exc) == exc.message
        assert exc.message_key

    dup = WebhookNotificationAlreadyExistsException("WHN-9")
    assert dup.code == BusinessCode.WEBHOOK_ALREADY_EXISTS
    assert dup.details == {"notification_id": "WHN-9"}
    assert dup.field == "id"
