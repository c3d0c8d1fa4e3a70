"""
Webhook 重试退避策略 - 指数退避 + 抖动，带下限与上限

    delay(n) = max(floor, min(cap, base * multiplier ** (n - 1) * (1 + U[0, jitter))))

约束 0 <= jitter < multiplier - 1 保证未触顶前第 n+1 次的最小延迟
仍大于第 n 次的最大延迟，因此同一通知的延迟序列单调不减；floor > 0
保证 next_attempt_at 严格递增。
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from domain.common.exceptions import DomainValidationException


@dataclass
class BackoffPolicy:
    base: float = 60.0
    floor: float = 60.0
    cap: float = 6 * 3600.0
    multiplier: float = 2.0
    jitter: float = 0.2
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def __post_init__(self):
        if self.base <= 0:
            raise DomainValidationException(f"base 必须大于0: {self.base}", field="base")
        if self.floor <= 0:
            raise DomainValidationException(f"floor 必须大于0: {self.floor}", field="floor")
        if self.cap < self.floor:
            raise DomainValidationException(
                f"cap({self.cap}) 不能小于 floor({self.floor})",
                field="cap",
            )
        if self.multiplier <= 1:
            raise DomainValidationException(
                f"multiplier 必须大于1: {self.multiplier}",
                field="multiplier",
            )
        if not 0 <= self.jitter < self.multiplier - 1:
            raise DomainValidationException(
                f"jitter 必须位于 [0, multiplier - 1): {self.jitter}",
                field="jitter",
            )

    def delay_seconds(self, attempt_count: int) -> float:
        """第 attempt_count 次失败后的等待秒数（attempt_count 从 1 开始）"""
        exponent = max(attempt_count, 1) - 1
        try:
            raw = self.base * (float(self.multiplier) ** exponent)
        except OverflowError:
            raw = self.cap
        if self.jitter:
            raw *= 1 + self.rng.uniform(0, self.jitter)
        return max(self.floor, min(self.cap, raw))

    def delay(self, attempt_count: int) -> timedelta:
        return timedelta(seconds=self.delay_seconds(attempt_count))

    def next_attempt_at(self, now: datetime, attempt_count: int, previous: Optional[datetime] = None) -> datetime:
        """
        计算下次投递时间

        previous 为当前记录的 next_attempt_at；结果总是严格晚于它。
        """
        candidate = now + self.delay(attempt_count)
        if previous is not None and candidate <= previous:
            candidate = previous + timedelta(seconds=self.floor)
        return candidate
