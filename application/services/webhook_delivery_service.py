"""
Webhook 投递引擎 - 处理待投递/待重试的出站通知

投递语义为至少一次（at-least-once）：投递成功但写回失败时记录保持
PENDING，下一个 tick 会再次投递同一通知，接收方必须按通知 id 去重。
"""
from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Callable, Optional

from application.dtos.reports import ProcessingReport
from application.ports.webhook_sender import DeliveryResult, WebhookSender
from core.logging_config import get_logger
from domain.common.exceptions import ConcurrentUpdateException
from domain.common.time import ensure_utc
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.webhook.backoff import BackoffPolicy
from domain.webhook.entity import WebhookDeliveryAttempt, WebhookNotification, WebhookStatus


logger = get_logger(__name__)


class WebhookDeliveryEngine:
    """出站 Webhook 重试投递引擎"""

    job_name = "webhook_delivery"

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        sender: WebhookSender,
        *,
        max_attempts: int = 6,
        backoff: Optional[BackoffPolicy] = None,
        batch_size: Optional[int] = 100,
        delivery_timeout: Optional[float] = 10.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._uow_factory = uow_factory
        self.sender = sender
        self.max_attempts = max_attempts
        self.backoff = backoff or BackoffPolicy()
        self.batch_size = batch_size
        self.delivery_timeout = delivery_timeout

    async def process_retries(
        self,
        now: datetime,
        *,
        stop_event: Optional[asyncio.Event] = None,
    ) -> ProcessingReport:
        """
        投递所有到期的 PENDING 通知

        Args:
            now: 当前时间（调用方提供）
            stop_event: 停机信号；仅在两条记录之间检查

        Returns:
            ProcessingReport: succeeded=已送达, retried=已安排重试,
            exhausted=重试耗尽, failed=写回失败
        """
        now = ensure_utc(now)
        report = ProcessingReport(job=self.job_name, now=now)

        try:
            async with self._uow_factory(readonly=True) as uow:
                due = await uow.webhook_repository.find_due_for_retry(now, limit=self.batch_size)
        except Exception as exc:
            logger.error("webhook_selection_failed", error=str(exc), exc_info=True)
            report.add_error("select", str(exc))
            return report

        report.selected = len(due)
        if due:
            logger.info("webhook_due_batch_selected", count=len(due))

        for notification in due:
            if stop_event is not None and stop_event.is_set():
                report.interrupted = True
                logger.info("webhook_batch_interrupted", remaining=report.selected - report.processed)
                break
            await self._deliver_one(notification, now, report)

        logger.info("webhook_tick_completed", **report.summary())
        return report

    async def _attempt(self, notification: WebhookNotification) -> DeliveryResult:
        """单次投递；传输层异常与超时都视为一次失败"""
        start = time.monotonic()
        try:
            send = self.sender.send(notification)
            if self.delivery_timeout is not None:
                return await asyncio.wait_for(send, timeout=self.delivery_timeout)
            return await send
        except asyncio.TimeoutError:
            return DeliveryResult(
                success=False,
                error=f"Delivery timed out after {self.delivery_timeout}s",
                elapsed_ms=(time.monotonic() - start) * 1000,
            )
        except Exception as exc:
            return DeliveryResult(
                success=False,
                error=f"Delivery failed: {type(exc).__name__}: {exc}",
                elapsed_ms=(time.monotonic() - start) * 1000,
            )

    async def _deliver_one(self, notification: WebhookNotification, now: datetime, report: ProcessingReport) -> None:
        notification_id = notification.id
        expected_attempts = notification.attempt_count

        if notification.is_terminal():
            # 终态记录不应被选出，跳过且不做任何修改
            logger.warning("webhook_terminal_record_selected", notification_id=notification_id, status=notification.status.value)
            return

        result = await self._attempt(notification)
        attempt_number = expected_attempts + 1

        try:
            if result.success:
                notification.mark_delivered(now, result.status_code)
            elif attempt_number >= self.max_attempts:
                notification.mark_exhausted(now, result.error or "Delivery failed", result.status_code)
            else:
                next_attempt_at = self.backoff.next_attempt_at(
                    now,
                    attempt_number,
                    previous=notification.next_attempt_at,
                )
                notification.record_failure(
                    now,
                    result.error or "Delivery failed",
                    next_attempt_at,
                    result.status_code,
                )

            # 状态写回与投递记录同一事务；条件更新失败时不留下投递记录
            async with self._uow_factory() as uow:
                await uow.webhook_repository.save(notification, expected_attempt_count=expected_attempts)
                await uow.webhook_repository.add_attempt(
                    WebhookDeliveryAttempt(
                        notification_id=notification_id,
                        attempt_number=attempt_number,
                        success=result.success,
                        sent_at=now,
                        status_code=result.status_code,
                        response_body=result.response_body,
                        error_message=None if result.success else (result.error or "Delivery failed"),
                        response_time_ms=int(round(result.elapsed_ms)),
                    )
                )
        except Exception as exc:
            report.failed += 1
            report.add_error("persist", getattr(exc, "message", None) or str(exc), notification_id)
            if result.success:
                # 已送达但未写回：下个 tick 会重复投递，依赖接收方按 id 去重
                logger.warning(
                    "webhook_delivered_but_not_persisted",
                    notification_id=notification_id,
                    error=str(exc),
                )
            elif isinstance(exc, ConcurrentUpdateException):
                logger.warning("webhook_concurrent_update", notification_id=notification_id)
            else:
                logger.error("webhook_update_failed", notification_id=notification_id, error=str(exc), exc_info=True)
            return

        if notification.status == WebhookStatus.DELIVERED:
            report.succeeded += 1
            logger.info(
                "webhook_delivered",
                notification_id=notification_id,
                event_type=notification.event_type,
                attempt=attempt_number,
                status_code=result.status_code,
                elapsed_ms=round(result.elapsed_ms, 1),
            )
        elif notification.status == WebhookStatus.EXHAUSTED:
            report.exhausted += 1
            logger.warning(
                "webhook_exhausted",
                notification_id=notification_id,
                event_type=notification.event_type,
                attempts=notification.attempt_count,
                last_error=notification.last_error,
            )
        else:
            report.retried += 1
            logger.info(
                "webhook_delivery_failed",
                notification_id=notification_id,
                attempt=attempt_number,
                error=notification.last_error,
                next_attempt_at=notification.next_attempt_at.isoformat(),
            )
