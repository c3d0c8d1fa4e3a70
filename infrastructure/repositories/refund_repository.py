"""
退款仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import (
    ConcurrentUpdateException,
    RefundAlreadyExistsException,
    RefundNotFoundException,
)
from domain.refund.entity import Refund, RefundStatus, RefundReason
from domain.refund.repository import RefundRepository
from infrastructure.models.refund import RefundModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyRefundRepository(RefundRepository):
    """退款仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: RefundModel) -> Refund:
        """将数据库模型转换为领域实体"""
        return Refund(
            id=model.id,
            refund_id=model.refund_id,
            payment_id=model.payment_id,
            transaction_id=model.transaction_id,
            merchant_id=model.merchant_id,
            customer_id=model.customer_id,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            status=RefundStatus(model.status),
            reason=RefundReason(model.reason),
            description=model.description,
            gateway_response=model.gateway_response,
            gateway_refund_id=model.gateway_refund_id,
            refund_date=model.refund_date,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Refund) -> RefundModel:
        """将领域实体转换为数据库模型"""
        return RefundModel(
            refund_id=entity.refund_id,
            payment_id=entity.payment_id,
            transaction_id=entity.transaction_id,
            merchant_id=entity.merchant_id,
            customer_id=entity.customer_id,
            amount=entity.amount,
            currency=entity.currency,
            status=entity.status.value,
            reason=entity.reason.value,
            description=entity.description,
            gateway_response=entity.gateway_response,
            gateway_refund_id=entity.gateway_refund_id,
            refund_date=entity.refund_date,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, refund: Refund) -> Refund:
        """创建退款记录"""
        db_refund = self._to_model(refund)
        self.session.add(db_refund)
        try:
            await self.session.flush()
        except IntegrityError:
            logger.warning("refund_create_conflict", refund_id=refund.refund_id)
            raise RefundAlreadyExistsException(refund.refund_id)
        await self.session.refresh(db_refund)

        logger.info(
            "refund_created",
            refund_id=db_refund.refund_id,
            payment_id=db_refund.payment_id,
            status=db_refund.status,
            amount=str(db_refund.amount),
        )
        return self._to_entity(db_refund)

    async def get_by_refund_id(self, refund_id: str) -> Optional[Refund]:
        """根据业务退款ID获取退款"""
        result = await self.session.execute(
            select(RefundModel).where(RefundModel.refund_id == refund_id)
        )
        db_refund = result.scalar_one_or_none()
        return self._to_entity(db_refund) if db_refund else None

    async def find_by_status_and_cutoff(
        self,
        status: RefundStatus,
        before: datetime,
        limit: Optional[int] = None,
    ) -> List[Refund]:
        """查询指定状态且 created_at <= before 的退款"""
        query = (
            select(RefundModel)
            .where(
                RefundModel.status == status.value,
                RefundModel.created_at <= before,
            )
            .order_by(RefundModel.created_at.asc())
        )
        if limit:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return [self._to_entity(r) for r in result.scalars().all()]

    async def save(
        self,
        refund: Refund,
        expected_status: Optional[RefundStatus] = None,
    ) -> Refund:
        """单条 UPDATE 完成写入；expected_status 作为比较并交换条件"""
        stmt = (
            update(RefundModel)
            .where(RefundModel.refund_id == refund.refund_id)
            .values(
                status=refund.status.value,
                gateway_response=refund.gateway_response,
                gateway_refund_id=refund.gateway_refund_id,
                description=refund.description,
                refund_date=refund.refund_date,
                updated_at=refund.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        if expected_status is not None:
            stmt = stmt.where(RefundModel.status == expected_status.value)

        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            exists = await self.session.execute(
                select(func.count(RefundModel.id)).where(RefundModel.refund_id == refund.refund_id)
            )
            if not exists.scalar_one():
                raise RefundNotFoundException(refund.refund_id)
            raise ConcurrentUpdateException("Refund", refund.refund_id)

        logger.debug("refund_updated", refund_id=refund.refund_id, status=refund.status.value)
        return refund

    async def count_by_status(self, status: RefundStatus) -> int:
        result = await self.session.execute(
            select(func.count(RefundModel.id)).where(RefundModel.status == status.value)
        )
        return result.scalar_one()
