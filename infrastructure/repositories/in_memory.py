"""
内存仓储实现 - 用于测试与单进程部署

与 SQLAlchemy 实现保持相同的比较并交换语义；读写都做深拷贝，
调用方修改实体不会影响存储中的记录。
"""
from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from domain.common.exceptions import (
    ConcurrentUpdateException,
    RefundAlreadyExistsException,
    RefundNotFoundException,
    WebhookNotificationAlreadyExistsException,
    WebhookNotificationNotFoundException,
)
from domain.common.time import ensure_utc
from domain.refund.entity import Refund, RefundStatus
from domain.refund.repository import RefundRepository
from domain.webhook.entity import WebhookDeliveryAttempt, WebhookNotification, WebhookStatus
from domain.webhook.repository import WebhookNotificationRepository


@dataclass
class InMemoryStore:
    """内存"表"及其共享锁"""

    refunds: Dict[str, Refund] = field(default_factory=dict)
    webhooks: Dict[str, WebhookNotification] = field(default_factory=dict)
    webhook_attempts: Dict[str, List[WebhookDeliveryAttempt]] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    _next_refund_pk: int = 1
    _next_attempt_pk: int = 1

    def allocate_refund_pk(self) -> int:
        pk = self._next_refund_pk
        self._next_refund_pk += 1
        return pk

    def allocate_attempt_pk(self) -> int:
        pk = self._next_attempt_pk
        self._next_attempt_pk += 1
        return pk


class InMemoryRefundRepository(RefundRepository):
    def __init__(self, store: InMemoryStore):
        self._store = store

    async def create(self, refund: Refund) -> Refund:
        async with self._store.lock:
            if refund.refund_id in self._store.refunds:
                raise RefundAlreadyExistsException(refund.refund_id)
            stored = copy.deepcopy(refund)
            if stored.id is None:
                stored.id = self._store.allocate_refund_pk()
            self._store.refunds[stored.refund_id] = stored
            return copy.deepcopy(stored)

    async def get_by_refund_id(self, refund_id: str) -> Optional[Refund]:
        stored = self._store.refunds.get(refund_id)
        return copy.deepcopy(stored) if stored else None

    async def find_by_status_and_cutoff(
        self,
        status: RefundStatus,
        before: datetime,
        limit: Optional[int] = None,
    ) -> List[Refund]:
        before = ensure_utc(before)
        matches = sorted(
            (r for r in self._store.refunds.values() if r.status == status and r.created_at <= before),
            key=lambda r: r.created_at,
        )
        if limit:
            matches = matches[:limit]
        return [copy.deepcopy(r) for r in matches]

    async def save(
        self,
        refund: Refund,
        expected_status: Optional[RefundStatus] = None,
    ) -> Refund:
        async with self._store.lock:
            current = self._store.refunds.get(refund.refund_id)
            if current is None:
                raise RefundNotFoundException(refund.refund_id)
            if expected_status is not None and current.status != expected_status:
                raise ConcurrentUpdateException("Refund", refund.refund_id)
            self._store.refunds[refund.refund_id] = copy.deepcopy(refund)
            return refund

    async def count_by_status(self, status: RefundStatus) -> int:
        return sum(1 for r in self._store.refunds.values() if r.status == status)


class InMemoryWebhookNotificationRepository(WebhookNotificationRepository):
    def __init__(self, store: InMemoryStore):
        self._store = store

    async def create(self, notification: WebhookNotification) -> WebhookNotification:
        async with self._store.lock:
            if notification.id in self._store.webhooks:
                raise WebhookNotificationAlreadyExistsException(notification.id)
            self._store.webhooks[notification.id] = copy.deepcopy(notification)
            return notification

    async def get_by_id(self, notification_id: str) -> Optional[WebhookNotification]:
        stored = self._store.webhooks.get(notification_id)
        return copy.deepcopy(stored) if stored else None

    async def find_due_for_retry(
        self,
        now: datetime,
        limit: Optional[int] = None,
    ) -> List[WebhookNotification]:
        now = ensure_utc(now)
        matches = sorted(
            (n for n in self._store.webhooks.values() if n.is_due(now)),
            key=lambda n: n.next_attempt_at,
        )
        if limit:
            matches = matches[:limit]
        return [copy.deepcopy(n) for n in matches]

    async def save(
        self,
        notification: WebhookNotification,
        expected_attempt_count: Optional[int] = None,
    ) -> WebhookNotification:
        async with self._store.lock:
            current = self._store.webhooks.get(notification.id)
            if current is None:
                raise WebhookNotificationNotFoundException(notification.id)
            if current.status != WebhookStatus.PENDING:
                raise ConcurrentUpdateException("WebhookNotification", notification.id)
            if expected_attempt_count is not None and current.attempt_count != expected_attempt_count:
                raise ConcurrentUpdateException("WebhookNotification", notification.id)
            self._store.webhooks[notification.id] = copy.deepcopy(notification)
            return notification

    async def count_by_status(self, status: WebhookStatus) -> int:
        return sum(1 for n in self._store.webhooks.values() if n.status == status)

    async def add_attempt(self, attempt: WebhookDeliveryAttempt) -> WebhookDeliveryAttempt:
        async with self._store.lock:
            if attempt.notification_id not in self._store.webhooks:
                raise WebhookNotificationNotFoundException(attempt.notification_id)
            history = self._store.webhook_attempts.setdefault(attempt.notification_id, [])
            if any(a.attempt_number == attempt.attempt_number for a in history):
                raise ConcurrentUpdateException(
                    "WebhookDeliveryAttempt",
                    f"{attempt.notification_id}#{attempt.attempt_number}",
                )
            stored = copy.deepcopy(attempt)
            stored.id = self._store.allocate_attempt_pk()
            history.append(stored)
            return copy.deepcopy(stored)

    async def list_attempts(self, notification_id: str) -> List[WebhookDeliveryAttempt]:
        history = self._store.webhook_attempts.get(notification_id, [])
        return [copy.deepcopy(a) for a in sorted(history, key=lambda a: a.attempt_number)]
