"""
Webhook 通知数据库模型
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Index

from .base import Base


class WebhookNotificationModel(Base):
    """出站 Webhook 通知及最近一次投递结果"""
    __tablename__ = "webhook_notifications"

    id = Column(String(64), primary_key=True, comment="通知ID")
    merchant_id = Column(String(64), nullable=True, index=True, comment="商户ID")
    event_type = Column(String(64), nullable=False, comment="事件类型")
    target_url = Column(String(1024), nullable=False, comment="投递地址")
    payload = Column(Text, nullable=False, comment="事件体（序列化后，不可变）")

    status = Column(String(20), nullable=False, comment="投递状态: pending/delivered/exhausted")
    attempt_count = Column(Integer, nullable=False, default=0, comment="已投递次数")
    next_attempt_at = Column(DateTime(timezone=True), nullable=False, comment="最早下次投递时间")

    last_error = Column(String(1000), nullable=True, comment="最近一次失败原因")
    last_response_code = Column(Integer, nullable=True, comment="最近一次HTTP状态码")
    last_attempt_at = Column(DateTime(timezone=True), nullable=True, comment="最近一次投递时间")
    delivered_at = Column(DateTime(timezone=True), nullable=True, comment="送达时间")

    created_at = Column(DateTime(timezone=True), nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), nullable=False, comment="更新时间")

    __table_args__ = (
        Index("ix_webhook_notifications_status_next_attempt", "status", "next_attempt_at"),
    )

    def __repr__(self):
        return (
            f"<WebhookNotificationModel(id='{self.id}', status='{self.status}', "
            f"attempt_count={self.attempt_count})>"
        )
