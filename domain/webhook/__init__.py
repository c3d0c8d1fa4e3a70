"""Outbound webhook notification domain."""
from .entity import WebhookNotification, WebhookDeliveryAttempt, WebhookStatus, WebhookEventType
from .backoff import BackoffPolicy
from .repository import WebhookNotificationRepository

__all__ = [
    "WebhookNotification",
    "WebhookDeliveryAttempt",
    "WebhookStatus",
    "WebhookEventType",
    "BackoffPolicy",
    "WebhookNotificationRepository",
]
