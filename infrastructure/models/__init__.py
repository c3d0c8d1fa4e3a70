"""Infrastructure models package exports."""
from .base import Base, metadata
from .refund import RefundModel
from .webhook_notification import WebhookNotificationModel
from .webhook_delivery_attempt import WebhookDeliveryAttemptModel

__all__ = [
    "Base",
    "metadata",
    "RefundModel",
    "WebhookNotificationModel",
    "WebhookDeliveryAttemptModel",
]
