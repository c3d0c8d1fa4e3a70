"""Celery beat schedule for the two settlement ticks.

Intervals come from settings so the Celery deployment and the in-process
scheduler (``main.py``) share one source of truth.
"""
from __future__ import annotations

from core.config import settings


CELERY_BEAT_SCHEDULE = {
    "refunds-process-due": {
        "task": "refunds.process_due",
        "schedule": settings.refund.tick_interval,
        # A tick older than one interval is superseded by the next one.
        "options": {"expires": settings.refund.tick_interval},
    },
    "webhooks-process-retries": {
        "task": "webhooks.process_retries",
        "schedule": settings.webhook.tick_interval,
        "options": {"expires": settings.webhook.tick_interval},
    },
}
