"""
Webhook sender port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from domain.webhook.entity import WebhookNotification


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    elapsed_ms: float = 0.0
    response_body: Optional[str] = None

    @classmethod
    def from_status(cls, status_code: int, elapsed_ms: float = 0.0, body: Optional[str] = None) -> "DeliveryResult":
        if 200 <= status_code < 300:
            return cls(success=True, status_code=status_code, elapsed_ms=elapsed_ms, response_body=body)
        error = f"HTTP {status_code}"
        if body:
            error = f"{error}: {body[:200]}"
        return cls(
            success=False,
            status_code=status_code,
            error=error,
            elapsed_ms=elapsed_ms,
            response_body=body,
        )


@runtime_checkable
class WebhookSender(Protocol):
    """Delivers one notification to its target endpoint.

    Transport exceptions may escape; the delivery engine counts them as a
    failed attempt exactly like a non-2xx result. Implementations must bound
    every attempt with a timeout.
    """

    async def send(self, notification: WebhookNotification) -> DeliveryResult: ...

    async def aclose(self) -> None: ...
