"""
基于 Redis 的任务互斥锁

多个 worker 同时被 beat 触发时，只有拿到锁的那个执行本次 tick，
其余直接跳过（非阻塞）。持有期间后台每 ttl/2 续期一次，
tick 运行多久锁就持有多久；持有者崩溃后续期停止，锁在 ttl 内自动释放。
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis
from redis.asyncio.lock import Lock
from redis.exceptions import LockError, RedisError

from core.logging_config import get_logger


logger = get_logger(__name__)


class RedisJobLock:
    """命名空间隔离的非阻塞分布式锁"""

    def __init__(self, client: aioredis.Redis, namespace: str = "", prefix: str = "jobs"):
        self._client = client
        self._namespace = namespace.strip(":")
        self._prefix = prefix.strip(":")

    @classmethod
    def from_url(cls, url: str, namespace: str = "", prefix: str = "jobs") -> "RedisJobLock":
        client = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, namespace=namespace, prefix=prefix)

    def _format_key(self, name: str) -> str:
        parts = [p for p in (self._namespace, "lock", self._prefix, name) if p]
        return ":".join(parts)

    async def _keep_alive(self, lock: Lock, lock_key: str, ttl: float) -> None:
        """每 ttl/2 把剩余时间重置为 ttl，直到被取消或失去锁"""
        while True:
            await asyncio.sleep(ttl / 2)
            try:
                await lock.extend(ttl, replace_ttl=True)
            except (LockError, RedisError) as exc:
                logger.error("job_lock_extend_failed", lock_key=lock_key, error=str(exc))
                return

    @asynccontextmanager
    async def hold(self, name: str, ttl: float) -> AsyncIterator[bool]:
        """
        尝试获取锁；yield 是否拿到锁

        Args:
            name: 任务名
            ttl: 锁超时时间（秒）；持有期间自动续期
        """
        lock_key = self._format_key(name)
        lock = self._client.lock(lock_key, timeout=ttl, blocking=False)
        acquired = await lock.acquire()
        if not acquired:
            logger.info("job_lock_busy", lock_key=lock_key)
        keeper: Optional[asyncio.Task] = None
        if acquired:
            keeper = asyncio.create_task(self._keep_alive(lock, lock_key, ttl))
        try:
            yield acquired
        finally:
            if keeper is not None:
                keeper.cancel()
                try:
                    await keeper
                except asyncio.CancelledError:
                    pass
            if acquired:
                try:
                    await lock.release()
                except (LockError, RedisError) as exc:
                    # 续期失败后锁可能已过期，或连接断开
                    logger.warning("job_lock_release_failed", lock_key=lock_key, error=str(exc))

    async def aclose(self) -> None:
        await self._client.aclose()
