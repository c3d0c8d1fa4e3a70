"""
Settlement decision point for in-flight refunds.

The lifecycle manager asks a SettlementPolicy what the bank said about a
PROCESSING refund once it is old enough. The default policy approves every
refund, standing in for an asynchronous bank confirmation.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

from .entity import Refund


DEFAULT_CONFIRMATION = "Refund confirmed by bank"


class SettlementOutcome(str, Enum):
    COMPLETE = "complete"
    FAIL = "fail"
    DEFER = "defer"  # leave in PROCESSING, revisit next tick


@dataclass(frozen=True)
class SettlementDecision:
    outcome: SettlementOutcome
    gateway_response: str = DEFAULT_CONFIRMATION
    gateway_refund_id: Optional[str] = None

    @classmethod
    def complete(cls, gateway_response: str = DEFAULT_CONFIRMATION, gateway_refund_id: Optional[str] = None) -> "SettlementDecision":
        return cls(SettlementOutcome.COMPLETE, gateway_response, gateway_refund_id)

    @classmethod
    def fail(cls, gateway_response: str) -> "SettlementDecision":
        return cls(SettlementOutcome.FAIL, gateway_response)

    @classmethod
    def defer(cls) -> "SettlementDecision":
        return cls(SettlementOutcome.DEFER, "")


@runtime_checkable
class SettlementPolicy(Protocol):
    """Decides how a due PROCESSING refund resolves.

    Implementations may perform IO (e.g. query the acquiring bank); raising
    is treated as a per-record failure and the refund is retried next tick.
    """

    async def decide(self, refund: Refund, now: datetime) -> SettlementDecision: ...


class AutoApproveSettlement:
    """Always confirms the refund."""

    def __init__(self, gateway_response: str = DEFAULT_CONFIRMATION) -> None:
        self.gateway_response = gateway_response

    async def decide(self, refund: Refund, now: datetime) -> SettlementDecision:
        return SettlementDecision.complete(self.gateway_response)
