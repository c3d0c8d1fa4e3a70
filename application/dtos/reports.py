"""
Batch processing report DTOs (Pydantic v2) returned by the tick entry points.

A report is the only thing a tick hands back to its caller; per-record
failures are collected here instead of being raised.
"""
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


ErrorStage = Literal["select", "settle", "deliver", "persist"]


class RecordError(BaseModel):
    record_id: Optional[str] = None
    stage: ErrorStage
    message: str


class ProcessingReport(BaseModel):
    job: str
    now: datetime
    selected: int = 0
    succeeded: int = 0
    failed: int = 0
    # webhook: failed attempts rescheduled for a later tick
    retried: int = 0
    # webhook: attempts exhausted, record kept for audit
    exhausted: int = 0
    # refund: settlement decision asked to wait
    deferred: int = 0
    # refund: bank rejected, moved to FAILED
    rejected: int = 0
    interrupted: bool = False
    errors: list[RecordError] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def processed(self) -> int:
        return (
            self.succeeded + self.failed + self.retried
            + self.exhausted + self.deferred + self.rejected
        )

    def add_error(self, stage: ErrorStage, message: str, record_id: Optional[str] = None) -> None:
        self.errors.append(RecordError(record_id=record_id, stage=stage, message=message))

    def summary(self) -> dict:
        """Flat key/value view for structured logging."""
        return {
            "job": self.job,
            "selected": self.selected,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "retried": self.retried,
            "exhausted": self.exhausted,
            "deferred": self.deferred,
            "rejected": self.rejected,
            "errors": len(self.errors),
            "interrupted": self.interrupted,
        }
