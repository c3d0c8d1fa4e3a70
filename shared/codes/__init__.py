"""
Shared business codes used across layers (Domain/Application/Infrastructure).

This package exposes BusinessCode at `shared.codes`; refund and webhook
specific codes live in the 21xxx / 22xxx ranges.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Parameter errors (1xxxx)
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    CONCURRENT_UPDATE = 20007

    # Refund lifecycle (21xxx)
    REFUND_NOT_FOUND = 21001
    REFUND_ALREADY_EXISTS = 21002
    REFUND_INVALID_TRANSITION = 21003

    # Webhook delivery (22xxx)
    WEBHOOK_NOT_FOUND = 22001
    WEBHOOK_TERMINAL = 22002
    WEBHOOK_ALREADY_EXISTS = 22003


__all__ = ["BusinessCode"]
