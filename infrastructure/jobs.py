"""
按配置组装默认的两个周期任务：退款结算推进 / Webhook 重试投递
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from application.ports.webhook_sender import WebhookSender
from application.services.refund_lifecycle_service import RefundLifecycleManager
from application.services.webhook_delivery_service import WebhookDeliveryEngine
from core.config import Settings, settings as default_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.refund.settlement import AutoApproveSettlement, SettlementPolicy
from domain.webhook.backoff import BackoffPolicy
from infrastructure.external.webhooks import HttpWebhookSender
from infrastructure.scheduler import PeriodicJob, TickScheduler
from infrastructure.unit_of_work import sqlalchemy_uow_factory


REFUND_JOB = "refunds.process_due"
WEBHOOK_JOB = "webhooks.process_retries"


@dataclass
class Components:
    refund_manager: RefundLifecycleManager
    webhook_engine: WebhookDeliveryEngine

    async def aclose(self) -> None:
        await self.webhook_engine.sender.aclose()


def build_backoff(config: Settings) -> BackoffPolicy:
    b = config.webhook.backoff
    return BackoffPolicy(
        base=b.base,
        floor=b.floor,
        cap=b.cap,
        multiplier=b.multiplier,
        jitter=b.jitter,
    )


def build_components(
    config: Optional[Settings] = None,
    *,
    uow_factory: Optional[Callable[..., AbstractUnitOfWork]] = None,
    sender: Optional[WebhookSender] = None,
    settlement_policy: Optional[SettlementPolicy] = None,
) -> Components:
    """未显式注入的依赖都按配置创建"""
    config = config or default_settings
    uow_factory = uow_factory or sqlalchemy_uow_factory()
    sender = sender or HttpWebhookSender(
        timeout=config.webhook.delivery_timeout,
        signing_secret=config.webhook.signing_secret,
        user_agent=config.webhook.user_agent,
    )
    refund_manager = RefundLifecycleManager(
        uow_factory,
        age_threshold=config.refund.age_threshold,
        batch_size=config.refund.batch_size,
        settlement_policy=settlement_policy
        or AutoApproveSettlement(config.refund.confirmation_message),
    )
    webhook_engine = WebhookDeliveryEngine(
        uow_factory,
        sender,
        max_attempts=config.webhook.max_attempts,
        backoff=build_backoff(config),
        batch_size=config.webhook.batch_size,
        delivery_timeout=config.webhook.delivery_timeout,
    )
    return Components(refund_manager=refund_manager, webhook_engine=webhook_engine)


def build_scheduler(components: Components, config: Optional[Settings] = None) -> TickScheduler:
    config = config or default_settings
    scheduler = TickScheduler()
    scheduler.add_job(
        PeriodicJob(
            REFUND_JOB,
            config.refund.tick_interval,
            components.refund_manager.process_due_refunds,
        )
    )
    scheduler.add_job(
        PeriodicJob(
            WEBHOOK_JOB,
            config.webhook.tick_interval,
            components.webhook_engine.process_retries,
        )
    )
    return scheduler
