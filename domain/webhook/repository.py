"""
Webhook 通知仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List

from .entity import WebhookDeliveryAttempt, WebhookNotification, WebhookStatus


class WebhookNotificationRepository(ABC):
    """Webhook 通知仓储抽象接口"""

    @abstractmethod
    async def create(self, notification: WebhookNotification) -> WebhookNotification:
        """创建通知记录"""
        pass

    @abstractmethod
    async def get_by_id(self, notification_id: str) -> Optional[WebhookNotification]:
        """根据ID获取通知"""
        pass

    @abstractmethod
    async def find_due_for_retry(
        self,
        now: datetime,
        limit: Optional[int] = None,
    ) -> List[WebhookNotification]:
        """查询 status = PENDING 且 next_attempt_at <= now 的通知"""
        pass

    @abstractmethod
    async def save(
        self,
        notification: WebhookNotification,
        expected_attempt_count: Optional[int] = None,
    ) -> WebhookNotification:
        """
        原子更新单条通知

        只会更新存储中仍为 PENDING 的记录；指定 expected_attempt_count 时
        还要求存储中的投递次数一致，否则抛出 ConcurrentUpdateException。
        """
        pass

    @abstractmethod
    async def count_by_status(self, status: WebhookStatus) -> int:
        """统计指定状态的通知数量"""
        pass

    @abstractmethod
    async def add_attempt(self, attempt: WebhookDeliveryAttempt) -> WebhookDeliveryAttempt:
        """追加一条投递记录；与通知的 save 处于同一工作单元"""
        pass

    @abstractmethod
    async def list_attempts(self, notification_id: str) -> List[WebhookDeliveryAttempt]:
        """按投递序号升序返回某条通知的全部投递记录"""
        pass
