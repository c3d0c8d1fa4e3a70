"""
Webhook 投递记录数据库模型
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from .base import Base


class WebhookDeliveryAttemptModel(Base):
    """每次投递尝试一行，只追加"""
    __tablename__ = "webhook_delivery_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_id = Column(
        String(64),
        ForeignKey("webhook_notifications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="通知ID",
    )
    attempt_number = Column(Integer, nullable=False, comment="第几次投递，从1开始")
    success = Column(Boolean, nullable=False, comment="是否送达")
    status_code = Column(Integer, nullable=True, comment="HTTP状态码，传输失败时为空")
    response_body = Column(Text, nullable=True, comment="响应体（截断）")
    error_message = Column(String(1000), nullable=True, comment="失败原因")
    response_time_ms = Column(Integer, nullable=True, comment="响应耗时（毫秒）")
    sent_at = Column(DateTime(timezone=True), nullable=False, comment="投递时间")

    __table_args__ = (
        UniqueConstraint("notification_id", "attempt_number"),
    )

    def __repr__(self):
        return (
            f"<WebhookDeliveryAttemptModel(notification_id='{self.notification_id}', "
            f"attempt_number={self.attempt_number}, status_code={self.status_code})>"
        )
