"""
退款数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, Index

from .base import Base


class RefundModel(Base):
    """
    退款数据库模型

    时间戳由领域实体显式赋值，这里不设置 default/onupdate
    """
    __tablename__ = "refunds"

    # 主键
    id = Column(Integer, primary_key=True, autoincrement=True)

    # 业务标识
    refund_id = Column(String(64), unique=True, nullable=False, comment="退款ID（全局唯一）")
    payment_id = Column(String(64), nullable=False, index=True, comment="支付ID")
    transaction_id = Column(String(64), nullable=False, comment="交易ID")
    merchant_id = Column(String(64), nullable=False, index=True, comment="商户ID")
    customer_id = Column(String(64), nullable=False, comment="客户ID")

    # 金额信息（使用 Numeric 存储精确金额）
    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="退款金额")
    currency = Column(String(3), nullable=False, comment="货币代码 ISO-4217")

    status = Column(
        String(20),
        nullable=False,
        comment="退款状态: pending/processing/completed/failed/cancelled"
    )
    reason = Column(String(32), nullable=False, comment="退款原因")
    description = Column(String(500), nullable=True, comment="退款说明")

    # 银行返回
    gateway_response = Column(Text, nullable=True, comment="银行/网关返回信息")
    gateway_refund_id = Column(String(100), nullable=True, comment="银行侧退款ID")

    # 时间戳
    refund_date = Column(DateTime(timezone=True), nullable=True, comment="退款申请时间")
    created_at = Column(DateTime(timezone=True), nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), nullable=False, comment="更新时间")

    __table_args__ = (
        Index("ix_refunds_status_created_at", "status", "created_at"),
    )

    def __repr__(self):
        return (
            f"<RefundModel(id={self.id}, refund_id='{self.refund_id}', "
            f"amount={self.amount}, status='{self.status}')>"
        )
