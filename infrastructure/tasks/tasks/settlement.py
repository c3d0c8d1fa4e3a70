"""Periodic settlement ticks executed by Celery beat.

Each task runs one bounded batch. When Redis is configured a non-blocking
lock named after the task guards against overlapping ticks across workers.
The lock is renewed while the tick runs and lapses one interval after a
crashed holder stops renewing it.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from celery import shared_task

from application.dtos.reports import ProcessingReport
from core.config import settings
from core.logging_config import get_logger
from infrastructure.database import dispose_engine
from infrastructure.external.cache.job_lock import RedisJobLock
from infrastructure.jobs import REFUND_JOB, WEBHOOK_JOB, Components, build_components
from ..utils.base_task import BaseTask


logger = get_logger(__name__)

TickCall = Callable[[Components, datetime], Awaitable[ProcessingReport]]


async def run_tick(job_name: str, interval: float, call: TickCall) -> Optional[dict]:
    """Build components, take the job lock, run one tick and tear everything down."""
    components = build_components(settings)
    lock = (
        RedisJobLock.from_url(settings.redis.url, settings.redis.namespace, settings.redis.lock_prefix)
        if settings.redis.url
        else None
    )
    try:
        now = datetime.now(timezone.utc)
        if lock is None:
            report = await call(components, now)
            return report.summary()
        async with lock.hold(job_name, ttl=interval) as acquired:
            if not acquired:
                logger.info("tick_skipped_still_running", job=job_name)
                return None
            report = await call(components, now)
            return report.summary()
    finally:
        await components.aclose()
        if lock is not None:
            await lock.aclose()
        # asyncio.run 每次新建事件循环，连接池不能跨循环复用
        await dispose_engine()


@shared_task(name=REFUND_JOB, bind=True, base=BaseTask, ignore_result=False)
def process_due_refunds(self) -> Optional[dict]:
    return asyncio.run(
        run_tick(
            REFUND_JOB,
            settings.refund.tick_interval,
            lambda c, now: c.refund_manager.process_due_refunds(now),
        )
    )


@shared_task(name=WEBHOOK_JOB, bind=True, base=BaseTask, ignore_result=False)
def process_webhook_retries(self) -> Optional[dict]:
    return asyncio.run(
        run_tick(
            WEBHOOK_JOB,
            settings.webhook.tick_interval,
            lambda c, now: c.webhook_engine.process_retries(now),
        )
    )
