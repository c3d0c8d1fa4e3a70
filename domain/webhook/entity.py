"""
Webhook 通知实体 - 出站回调的投递状态

业务规则：
1. attempt_count 只增不减
2. DELIVERED / EXHAUSTED 为终态，终态记录不可再修改
3. 每次失败后 next_attempt_at 必须严格递增
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    DomainValidationException,
    WebhookNotificationTerminalException,
)
from domain.common.time import ensure_utc


MAX_ERROR_LENGTH = 1000


class WebhookStatus(str, Enum):
    """通知投递状态"""
    PENDING = "pending"       # 待投递 / 等待重试
    DELIVERED = "delivered"   # 已送达（终态）
    EXHAUSTED = "exhausted"   # 重试次数耗尽（终态）


class WebhookEventType(str, Enum):
    """常用事件类型，event_type 字段本身是开放字符串"""
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"
    REFUND_CREATED = "REFUND_CREATED"
    REFUND_COMPLETED = "REFUND_COMPLETED"
    REFUND_FAILED = "REFUND_FAILED"


def _truncate(message: Optional[str]) -> Optional[str]:
    if message is None:
        return None
    return message[:MAX_ERROR_LENGTH]


@dataclass
class WebhookNotification:
    """出站 Webhook 通知"""

    id: str
    target_url: str
    payload: str  # 序列化后的事件体，创建后不可变
    event_type: str
    status: WebhookStatus
    next_attempt_at: datetime
    attempt_count: int = 0
    merchant_id: Optional[str] = None
    last_error: Optional[str] = None
    last_response_code: Optional[int] = None
    last_attempt_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.id:
            raise DomainValidationException("通知ID不能为空", field="id")
        if not self.target_url:
            raise DomainValidationException("目标地址不能为空", field="target_url")
        if self.attempt_count < 0:
            raise DomainValidationException(
                f"投递次数不能为负数: {self.attempt_count}",
                field="attempt_count",
            )
        self.status = WebhookStatus(self.status)
        self.next_attempt_at = ensure_utc(self.next_attempt_at)
        self.last_attempt_at = ensure_utc(self.last_attempt_at)
        self.delivered_at = ensure_utc(self.delivered_at)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at) or self.created_at

    def is_terminal(self) -> bool:
        return self.status in (WebhookStatus.DELIVERED, WebhookStatus.EXHAUSTED)

    def is_due(self, now: datetime) -> bool:
        return self.status == WebhookStatus.PENDING and self.next_attempt_at <= ensure_utc(now)

    def _ensure_mutable(self) -> None:
        if self.is_terminal():
            raise WebhookNotificationTerminalException(self.id, self.status.value)

    def mark_delivered(self, now: datetime, status_code: Optional[int] = None) -> None:
        """投递成功"""
        self._ensure_mutable()
        now = ensure_utc(now)
        self.status = WebhookStatus.DELIVERED
        self.attempt_count += 1
        self.last_attempt_at = now
        self.last_response_code = status_code
        self.delivered_at = now
        self.updated_at = now

    def record_failure(
        self,
        now: datetime,
        error: str,
        next_attempt_at: datetime,
        status_code: Optional[int] = None,
    ) -> None:
        """记录一次失败并安排下一次重试"""
        self._ensure_mutable()
        next_attempt_at = ensure_utc(next_attempt_at)
        if next_attempt_at <= self.next_attempt_at:
            raise DomainValidationException(
                f"下次投递时间必须晚于 {self.next_attempt_at.isoformat()}",
                field="next_attempt_at",
            )
        self._register_attempt(now, error, status_code)
        self.next_attempt_at = next_attempt_at

    def mark_exhausted(self, now: datetime, error: str, status_code: Optional[int] = None) -> None:
        """最后一次失败，不再重试"""
        self._ensure_mutable()
        self._register_attempt(now, error, status_code)
        self.status = WebhookStatus.EXHAUSTED

    def _register_attempt(self, now: datetime, error: str, status_code: Optional[int]) -> None:
        now = ensure_utc(now)
        self.attempt_count += 1
        self.last_error = _truncate(error)
        self.last_response_code = status_code
        self.last_attempt_at = now
        self.updated_at = now


@dataclass
class WebhookDeliveryAttempt:
    """一次投递尝试的记录（只追加，不修改）"""

    notification_id: str
    attempt_number: int
    success: bool
    sent_at: datetime
    status_code: Optional[int] = None
    response_body: Optional[str] = None
    error_message: Optional[str] = None
    response_time_ms: Optional[int] = None
    id: Optional[int] = None

    def __post_init__(self):
        if self.attempt_number < 1:
            raise DomainValidationException(
                f"投递序号必须从1开始: {self.attempt_number}",
                field="attempt_number",
            )
        self.sent_at = ensure_utc(self.sent_at)
        self.response_body = _truncate(self.response_body)
        self.error_message = _truncate(self.error_message)
