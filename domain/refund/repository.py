"""
退款仓储接口 - 定义退款数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List

from .entity import Refund, RefundStatus


class RefundRepository(ABC):
    """退款仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, refund: Refund) -> Refund:
        """创建退款记录（refund_id 重复时抛出 RefundAlreadyExistsException）"""
        pass

    @abstractmethod
    async def get_by_refund_id(self, refund_id: str) -> Optional[Refund]:
        """根据业务退款ID获取退款"""
        pass

    @abstractmethod
    async def find_by_status_and_cutoff(
        self,
        status: RefundStatus,
        before: datetime,
        limit: Optional[int] = None,
    ) -> List[Refund]:
        """查询指定状态且 created_at <= before 的退款（顺序无关）"""
        pass

    @abstractmethod
    async def save(
        self,
        refund: Refund,
        expected_status: Optional[RefundStatus] = None,
    ) -> Refund:
        """
        原子更新单条退款记录

        指定 expected_status 时以比较并交换的方式更新：存储中的状态
        与之不符则抛出 ConcurrentUpdateException，不写入任何字段。
        """
        pass

    @abstractmethod
    async def count_by_status(self, status: RefundStatus) -> int:
        """统计指定状态的退款数量"""
        pass
