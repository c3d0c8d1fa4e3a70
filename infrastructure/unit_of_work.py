"""Unit of Work 实现（SQLAlchemy 与内存两种）"""
from __future__ import annotations

from typing import Optional, Callable
import inspect

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.repositories.refund_repository import SQLAlchemyRefundRepository
from infrastructure.repositories.webhook_notification_repository import (
    SQLAlchemyWebhookNotificationRepository,
)
from infrastructure.repositories.in_memory import (
    InMemoryStore,
    InMemoryRefundRepository,
    InMemoryWebhookNotificationRepository,
)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work"""

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        if session_factory is None and session is None:
            from infrastructure.database import get_session_factory

            session_factory = get_session_factory()
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.refund_repository = SQLAlchemyRefundRepository(self.session)
        self.webhook_repository = SQLAlchemyWebhookNotificationRepository(self.session)
        # 仅在非只读模式下显式开启事务
        if not self._readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            tx = getattr(self, "_transaction", None)
            if tx is not None and getattr(tx, "is_active", False):
                close = getattr(tx, "close", None)
                if callable(close):
                    res = close()
                    if inspect.isawaitable(res):
                        await res
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self.refund_repository = None
            self.webhook_repository = None

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """内存 Unit of Work；每次写入都是单条原子操作，commit/rollback 只记录状态"""

    def __init__(self, store: InMemoryStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self.store = store

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self.refund_repository = InMemoryRefundRepository(self.store)
        self.webhook_repository = InMemoryWebhookNotificationRepository(self.store)
        return self

    async def commit(self) -> None:
        self._committed = True

    async def rollback(self) -> None:
        self._committed = False


def sqlalchemy_uow_factory(
    session_factory: Optional[Callable[[], AsyncSession]] = None,
) -> Callable[..., SQLAlchemyUnitOfWork]:
    """返回 uow_factory(readonly=...)，供应用服务注入"""

    def factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)

    return factory


def in_memory_uow_factory(store: Optional[InMemoryStore] = None) -> Callable[..., InMemoryUnitOfWork]:
    store = store if store is not None else InMemoryStore()

    def factory(*, readonly: bool = False) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(store, readonly=readonly)

    factory.store = store  # type: ignore[attr-defined]
    return factory
