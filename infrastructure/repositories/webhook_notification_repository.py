"""
Webhook 通知仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime
from typing import Optional, List

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import (
    ConcurrentUpdateException,
    WebhookNotificationAlreadyExistsException,
    WebhookNotificationNotFoundException,
)
from domain.webhook.entity import WebhookDeliveryAttempt, WebhookNotification, WebhookStatus
from domain.webhook.repository import WebhookNotificationRepository
from infrastructure.models.webhook_delivery_attempt import WebhookDeliveryAttemptModel
from infrastructure.models.webhook_notification import WebhookNotificationModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyWebhookNotificationRepository(WebhookNotificationRepository):
    """Webhook 通知仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: WebhookNotificationModel) -> WebhookNotification:
        return WebhookNotification(
            id=model.id,
            target_url=model.target_url,
            payload=model.payload,
            event_type=model.event_type,
            status=WebhookStatus(model.status),
            next_attempt_at=model.next_attempt_at,
            attempt_count=model.attempt_count,
            merchant_id=model.merchant_id,
            last_error=model.last_error,
            last_response_code=model.last_response_code,
            last_attempt_at=model.last_attempt_at,
            delivered_at=model.delivered_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: WebhookNotification) -> WebhookNotificationModel:
        return WebhookNotificationModel(
            id=entity.id,
            merchant_id=entity.merchant_id,
            event_type=entity.event_type,
            target_url=entity.target_url,
            payload=entity.payload,
            status=entity.status.value,
            attempt_count=entity.attempt_count,
            next_attempt_at=entity.next_attempt_at,
            last_error=entity.last_error,
            last_response_code=entity.last_response_code,
            last_attempt_at=entity.last_attempt_at,
            delivered_at=entity.delivered_at,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, notification: WebhookNotification) -> WebhookNotification:
        db_notification = self._to_model(notification)
        self.session.add(db_notification)
        try:
            await self.session.flush()
        except IntegrityError:
            logger.warning("webhook_notification_create_conflict", notification_id=notification.id)
            raise WebhookNotificationAlreadyExistsException(notification.id)
        logger.debug("webhook_notification_created", notification_id=notification.id)
        return notification

    async def get_by_id(self, notification_id: str) -> Optional[WebhookNotification]:
        result = await self.session.execute(
            select(WebhookNotificationModel).where(WebhookNotificationModel.id == notification_id)
        )
        db_notification = result.scalar_one_or_none()
        return self._to_entity(db_notification) if db_notification else None

    async def find_due_for_retry(
        self,
        now: datetime,
        limit: Optional[int] = None,
    ) -> List[WebhookNotification]:
        query = (
            select(WebhookNotificationModel)
            .where(
                WebhookNotificationModel.status == WebhookStatus.PENDING.value,
                WebhookNotificationModel.next_attempt_at <= now,
            )
            .order_by(WebhookNotificationModel.next_attempt_at.asc())
        )
        if limit:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return [self._to_entity(n) for n in result.scalars().all()]

    async def save(
        self,
        notification: WebhookNotification,
        expected_attempt_count: Optional[int] = None,
    ) -> WebhookNotification:
        """单条 UPDATE；只更新仍为 PENDING 的记录，终态记录永不再写"""
        stmt = (
            update(WebhookNotificationModel)
            .where(
                WebhookNotificationModel.id == notification.id,
                WebhookNotificationModel.status == WebhookStatus.PENDING.value,
            )
            .values(
                status=notification.status.value,
                attempt_count=notification.attempt_count,
                next_attempt_at=notification.next_attempt_at,
                last_error=notification.last_error,
                last_response_code=notification.last_response_code,
                last_attempt_at=notification.last_attempt_at,
                delivered_at=notification.delivered_at,
                updated_at=notification.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        if expected_attempt_count is not None:
            stmt = stmt.where(WebhookNotificationModel.attempt_count == expected_attempt_count)

        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            exists = await self.session.execute(
                select(func.count()).select_from(WebhookNotificationModel).where(
                    WebhookNotificationModel.id == notification.id
                )
            )
            if not exists.scalar_one():
                raise WebhookNotificationNotFoundException(notification.id)
            raise ConcurrentUpdateException("WebhookNotification", notification.id)

        logger.debug(
            "webhook_notification_updated",
            notification_id=notification.id,
            status=notification.status.value,
            attempt_count=notification.attempt_count,
        )
        return notification

    async def count_by_status(self, status: WebhookStatus) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(WebhookNotificationModel).where(
                WebhookNotificationModel.status == status.value
            )
        )
        return result.scalar_one()

    async def add_attempt(self, attempt: WebhookDeliveryAttempt) -> WebhookDeliveryAttempt:
        """追加投递记录；(notification_id, attempt_number) 唯一"""
        db_attempt = WebhookDeliveryAttemptModel(
            notification_id=attempt.notification_id,
            attempt_number=attempt.attempt_number,
            success=attempt.success,
            status_code=attempt.status_code,
            response_body=attempt.response_body,
            error_message=attempt.error_message,
            response_time_ms=attempt.response_time_ms,
            sent_at=attempt.sent_at,
        )
        self.session.add(db_attempt)
        try:
            await self.session.flush()
        except IntegrityError:
            raise ConcurrentUpdateException(
                "WebhookDeliveryAttempt",
                f"{attempt.notification_id}#{attempt.attempt_number}",
            )
        return self._attempt_to_entity(db_attempt)

    async def list_attempts(self, notification_id: str) -> List[WebhookDeliveryAttempt]:
        result = await self.session.execute(
            select(WebhookDeliveryAttemptModel)
            .where(WebhookDeliveryAttemptModel.notification_id == notification_id)
            .order_by(WebhookDeliveryAttemptModel.attempt_number.asc())
        )
        return [self._attempt_to_entity(a) for a in result.scalars().all()]

    def _attempt_to_entity(self, model: WebhookDeliveryAttemptModel) -> WebhookDeliveryAttempt:
        return WebhookDeliveryAttempt(
            id=model.id,
            notification_id=model.notification_id,
            attempt_number=model.attempt_number,
            success=model.success,
            status_code=model.status_code,
            response_body=model.response_body,
            error_message=model.error_message,
            response_time_ms=model.response_time_ms,
            sent_at=model.sent_at,
        )
