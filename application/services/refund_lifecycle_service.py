"""
退款生命周期应用服务 - 按年龄阈值推进处理中的退款

每个 tick 选出 status = PROCESSING 且 created_at <= now - 阈值 的退款，
交给结算策略决定结果，并逐条以比较并交换的方式持久化。单条失败只记入
报告，不影响同批其他退款；未推进的退款会在下一个 tick 重新被选中。
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional

from application.dtos.reports import ProcessingReport
from core.logging_config import get_logger
from domain.common.exceptions import ConcurrentUpdateException
from domain.common.time import ensure_utc
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.refund.entity import Refund, RefundStatus
from domain.refund.settlement import (
    AutoApproveSettlement,
    SettlementOutcome,
    SettlementPolicy,
)


logger = get_logger(__name__)


class RefundLifecycleManager:
    """退款状态机驱动器，只负责 PROCESSING 之后的结算推进"""

    job_name = "refund_lifecycle"

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        age_threshold: float = 120.0,
        batch_size: Optional[int] = 100,
        settlement_policy: Optional[SettlementPolicy] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.age_threshold = timedelta(seconds=age_threshold)
        self.batch_size = batch_size
        self.settlement_policy = settlement_policy or AutoApproveSettlement()

    async def process_due_refunds(
        self,
        now: datetime,
        *,
        stop_event: Optional[asyncio.Event] = None,
    ) -> ProcessingReport:
        """
        处理所有到期的处理中退款

        Args:
            now: 当前时间（调用方提供，服务内部不读时钟）
            stop_event: 停机信号；仅在两条记录之间检查

        Returns:
            ProcessingReport: 本批次的处理汇总，不会因单条失败而抛出
        """
        now = ensure_utc(now)
        report = ProcessingReport(job=self.job_name, now=now)
        cutoff = now - self.age_threshold

        try:
            async with self._uow_factory(readonly=True) as uow:
                due = await uow.refund_repository.find_by_status_and_cutoff(
                    RefundStatus.PROCESSING,
                    cutoff,
                    limit=self.batch_size,
                )
        except Exception as exc:
            logger.error("refund_selection_failed", cutoff=cutoff.isoformat(), error=str(exc), exc_info=True)
            report.add_error("select", str(exc))
            return report

        report.selected = len(due)
        if due:
            logger.info("refund_due_batch_selected", count=len(due), cutoff=cutoff.isoformat())

        for refund in due:
            if stop_event is not None and stop_event.is_set():
                report.interrupted = True
                logger.info("refund_batch_interrupted", remaining=report.selected - report.processed)
                break
            await self._process_one(refund, now, report)

        logger.info("refund_tick_completed", **report.summary())
        return report

    async def _process_one(self, refund: Refund, now: datetime, report: ProcessingReport) -> None:
        refund_id = refund.refund_id
        try:
            decision = await self.settlement_policy.decide(refund, now)
        except Exception as exc:
            report.failed += 1
            report.add_error("settle", str(exc), refund_id)
            logger.error("refund_settlement_decision_failed", refund_id=refund_id, error=str(exc), exc_info=True)
            return

        if decision.outcome == SettlementOutcome.DEFER:
            report.deferred += 1
            logger.debug("refund_settlement_deferred", refund_id=refund_id)
            return

        try:
            if decision.outcome == SettlementOutcome.COMPLETE:
                refund.complete(now, decision.gateway_response, decision.gateway_refund_id)
            else:
                refund.fail(now, decision.gateway_response)

            async with self._uow_factory() as uow:
                await uow.refund_repository.save(refund, expected_status=RefundStatus.PROCESSING)
        except ConcurrentUpdateException as exc:
            # 已被其他批次或外部流程（如取消）推进
            report.failed += 1
            report.add_error("persist", exc.message, refund_id)
            logger.warning("refund_concurrent_update", refund_id=refund_id)
            return
        except Exception as exc:
            report.failed += 1
            report.add_error("persist", str(exc), refund_id)
            logger.error("refund_update_failed", refund_id=refund_id, error=str(exc), exc_info=True)
            return

        if refund.status == RefundStatus.COMPLETED:
            report.succeeded += 1
            logger.info(
                "refund_completed",
                refund_id=refund_id,
                merchant_id=refund.merchant_id,
                amount=str(refund.amount),
                currency=refund.currency,
            )
        else:
            report.rejected += 1
            logger.warning("refund_rejected", refund_id=refund_id, gateway_response=refund.gateway_response)
