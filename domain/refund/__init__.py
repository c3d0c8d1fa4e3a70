"""Refund lifecycle domain."""
from .entity import Refund, RefundStatus, RefundReason
from .repository import RefundRepository
from .settlement import (
    SettlementPolicy,
    SettlementDecision,
    SettlementOutcome,
    AutoApproveSettlement,
)

__all__ = [
    "Refund",
    "RefundStatus",
    "RefundReason",
    "RefundRepository",
    "SettlementPolicy",
    "SettlementDecision",
    "SettlementOutcome",
    "AutoApproveSettlement",
]
