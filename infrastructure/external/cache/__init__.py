"""Redis 相关基础设施"""
from .job_lock import RedisJobLock

__all__ = ["RedisJobLock"]
