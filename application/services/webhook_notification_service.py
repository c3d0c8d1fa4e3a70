"""
Webhook 通知应用服务 - 事件发出方创建待投递通知
"""
from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any, Callable, List, Optional, Union

from core.logging_config import get_logger
from domain.common.exceptions import WebhookNotificationNotFoundException
from domain.common.time import ensure_utc
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.webhook.entity import WebhookDeliveryAttempt, WebhookNotification, WebhookStatus


logger = get_logger(__name__)


def generate_notification_id() -> str:
    return f"WHN-{uuid.uuid4().hex}"


def serialize_payload(payload: Union[str, bytes, dict, list]) -> str:
    """事件体序列化为规范 JSON（键排序），已序列化的字符串原样保留"""
    if isinstance(payload, bytes):
        return payload.decode("utf-8")
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str)


class WebhookNotificationService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def enqueue(
        self,
        target_url: str,
        event_type: str,
        payload: Any,
        now: datetime,
        *,
        merchant_id: Optional[str] = None,
        notification_id: Optional[str] = None,
    ) -> WebhookNotification:
        """创建一条立即可投递的 PENDING 通知"""
        now = ensure_utc(now)
        notification = WebhookNotification(
            id=notification_id or generate_notification_id(),
            target_url=target_url,
            payload=serialize_payload(payload),
            event_type=event_type,
            status=WebhookStatus.PENDING,
            next_attempt_at=now,
            attempt_count=0,
            merchant_id=merchant_id,
            created_at=now,
            updated_at=now,
        )
        async with self._uow_factory() as uow:
            created = await uow.webhook_repository.create(notification)
        logger.info(
            "webhook_enqueued",
            notification_id=created.id,
            event_type=event_type,
            merchant_id=merchant_id,
        )
        return created

    async def get(self, notification_id: str) -> WebhookNotification:
        async with self._uow_factory(readonly=True) as uow:
            notification = await uow.webhook_repository.get_by_id(notification_id)
        if notification is None:
            raise WebhookNotificationNotFoundException(notification_id)
        return notification

    async def list_attempts(self, notification_id: str) -> List[WebhookDeliveryAttempt]:
        """某条通知的投递历史，按投递序号升序"""
        async with self._uow_factory(readonly=True) as uow:
            if await uow.webhook_repository.get_by_id(notification_id) is None:
                raise WebhookNotificationNotFoundException(notification_id)
            return await uow.webhook_repository.list_attempts(notification_id)
