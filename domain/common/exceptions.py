"""领域层业务异常定义，供领域与基础设施使用。

批处理循环按记录捕获这些异常并写入处理报告，不会向调度器抛出。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
        message_key: str | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
            message_key=message_key or "validation.domain",
        )


class RefundNotFoundException(BusinessException):
    def __init__(self, refund_id: str):
        super().__init__(
            code=BusinessCode.REFUND_NOT_FOUND,
            message=f"Refund {refund_id} not found",
            error_type="RefundNotFound",
            details={"refund_id": refund_id},
            message_key="refund.not_found",
        )


class RefundAlreadyExistsException(BusinessException):
    def __init__(self, refund_id: str):
        super().__init__(
            code=BusinessCode.REFUND_ALREADY_EXISTS,
            message=f"Refund {refund_id} already exists",
            error_type="RefundAlreadyExists",
            details={"refund_id": refund_id},
            field="refund_id",
            message_key="refund.already_exists",
        )


class InvalidRefundTransitionException(BusinessException):
    def __init__(self, refund_id: str, current: str, target: str):
        super().__init__(
            code=BusinessCode.REFUND_INVALID_TRANSITION,
            message=f"Refund {refund_id} cannot move from {current} to {target}",
            error_type="InvalidRefundTransition",
            details={"refund_id": refund_id, "current": current, "target": target},
            field="status",
            message_key="refund.transition.invalid",
        )


class WebhookNotificationNotFoundException(BusinessException):
    def __init__(self, notification_id: str):
        super().__init__(
            code=BusinessCode.WEBHOOK_NOT_FOUND,
            message=f"Webhook notification {notification_id} not found",
            error_type="WebhookNotificationNotFound",
            details={"notification_id": notification_id},
            message_key="webhook.not_found",
        )


class WebhookNotificationAlreadyExistsException(BusinessException):
    def __init__(self, notification_id: str):
        super().__init__(
            code=BusinessCode.WEBHOOK_ALREADY_EXISTS,
            message=f"Webhook notification {notification_id} already exists",
            error_type="WebhookNotificationAlreadyExists",
            details={"notification_id": notification_id},
            field="id",
            message_key="webhook.already_exists",
        )


class WebhookNotificationTerminalException(BusinessException):
    def __init__(self, notification_id: str, status: str):
        super().__init__(
            code=BusinessCode.WEBHOOK_TERMINAL,
            message=f"Webhook notification {notification_id} is terminal ({status})",
            error_type="WebhookNotificationTerminal",
            details={"notification_id": notification_id, "status": status},
            field="status",
            message_key="webhook.terminal",
        )


class ConcurrentUpdateException(BusinessException):
    """条件更新未命中：记录已被其他批次修改"""

    def __init__(self, entity: str, identifier: str):
        super().__init__(
            code=BusinessCode.CONCURRENT_UPDATE,
            message=f"{entity} {identifier} was modified concurrently",
            error_type="ConcurrentUpdate",
            details={"entity": entity, "id": identifier},
            message_key="record.concurrent_update",
        )
