"""
退款领域实体 - 退款生命周期状态机

状态图：
    PENDING -> PROCESSING -> {COMPLETED, FAILED}
    PROCESSING -> CANCELLED（由外部驱动）

状态只能前进，不会回到更早的开放状态。所有时间戳由执行变更的调用方
显式传入，存储层不会隐式填充。
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    DomainValidationException,
    InvalidRefundTransitionException,
)
from domain.common.time import ensure_utc


class RefundStatus(str, Enum):
    """退款状态枚举"""
    PENDING = "pending"           # 待处理
    PROCESSING = "processing"     # 已提交银行，等待确认
    COMPLETED = "completed"       # 银行已确认
    FAILED = "failed"             # 银行拒绝
    CANCELLED = "cancelled"       # 已取消


class RefundReason(str, Enum):
    """退款原因枚举"""
    CUSTOMER_REQUEST = "customer_request"
    MERCHANT_REQUEST = "merchant_request"
    DUPLICATE_PAYMENT = "duplicate_payment"
    FRAUD = "fraud"
    TECHNICAL_ERROR = "technical_error"
    OTHER = "other"


# 允许的状态转换
ALLOWED_TRANSITIONS: dict[RefundStatus, frozenset[RefundStatus]] = {
    RefundStatus.PENDING: frozenset({RefundStatus.PROCESSING}),
    RefundStatus.PROCESSING: frozenset({
        RefundStatus.COMPLETED,
        RefundStatus.FAILED,
        RefundStatus.CANCELLED,
    }),
    RefundStatus.COMPLETED: frozenset(),
    RefundStatus.FAILED: frozenset(),
    RefundStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({
    RefundStatus.COMPLETED,
    RefundStatus.FAILED,
    RefundStatus.CANCELLED,
})

AMOUNT_QUANTUM = Decimal("0.01")


@dataclass
class Refund:
    """
    退款实体

    业务规则：
    1. refund_id 全局唯一，由存储层保证
    2. 金额必须大于0，按货币精度保留两位小数
    3. 货币代码必须是3位字母
    4. 状态转换必须遵循状态机
    """

    refund_id: str
    payment_id: str
    transaction_id: str
    merchant_id: str
    customer_id: str
    amount: Decimal
    currency: str  # ISO-4217
    status: RefundStatus
    reason: RefundReason
    created_at: datetime
    updated_at: Optional[datetime] = None

    id: Optional[int] = None
    description: Optional[str] = None
    gateway_response: Optional[str] = None
    gateway_refund_id: Optional[str] = None
    refund_date: Optional[datetime] = None

    def __post_init__(self):
        """初始化后验证"""
        if not self.refund_id:
            raise DomainValidationException("退款ID不能为空", field="refund_id")
        self.status = RefundStatus(self.status)
        self.reason = RefundReason(self.reason)
        self._validate_amount()
        self._validate_currency()
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at) or self.created_at
        self.refund_date = ensure_utc(self.refund_date)

    def _validate_amount(self) -> None:
        try:
            amount = Decimal(str(self.amount))
        except (InvalidOperation, ValueError):
            raise DomainValidationException(f"无效的退款金额: {self.amount}", field="amount")
        if not amount.is_finite() or amount <= 0:
            raise DomainValidationException(f"退款金额必须大于0: {self.amount}", field="amount")
        self.amount = amount.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)

    def _validate_currency(self) -> None:
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"无效的货币代码: {self.currency}", field="currency")
        self.currency = self.currency.upper()

    def _transition(self, target: RefundStatus, now: datetime) -> None:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidRefundTransitionException(self.refund_id, self.status.value, target.value)
        self.status = target
        self.updated_at = ensure_utc(now)

    def mark_processing(self, now: datetime, gateway_response: Optional[str] = None) -> None:
        """已提交银行，进入处理中"""
        self._transition(RefundStatus.PROCESSING, now)
        if gateway_response is not None:
            self.gateway_response = gateway_response

    def complete(
        self,
        now: datetime,
        gateway_response: str,
        gateway_refund_id: Optional[str] = None,
    ) -> None:
        """银行确认退款成功"""
        self._transition(RefundStatus.COMPLETED, now)
        self.gateway_response = gateway_response
        self.gateway_refund_id = gateway_refund_id or self.gateway_refund_id or f"BANK-{self.refund_id}"

    def fail(self, now: datetime, gateway_response: str) -> None:
        """银行拒绝退款"""
        self._transition(RefundStatus.FAILED, now)
        self.gateway_response = gateway_response

    def cancel(self, now: datetime, reason: Optional[str] = None) -> None:
        self._transition(RefundStatus.CANCELLED, now)
        self.gateway_response = reason or "Refund cancelled"

    def is_final_status(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_due(self, now: datetime, age_threshold_seconds: float) -> bool:
        """处理中且创建时间不晚于 now - 阈值（边界含等于）"""
        if self.status != RefundStatus.PROCESSING:
            return False
        age = (ensure_utc(now) - self.created_at).total_seconds()
        return age >= age_threshold_seconds
