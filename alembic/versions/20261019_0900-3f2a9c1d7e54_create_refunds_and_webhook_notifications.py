"""create_refunds_and_webhook_notifications

Revision ID: 3f2a9c1d7e54
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7e54'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'refunds',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('refund_id', sa.String(length=64), nullable=False, comment='退款ID（全局唯一）'),
        sa.Column('payment_id', sa.String(length=64), nullable=False, comment='支付ID'),
        sa.Column('transaction_id', sa.String(length=64), nullable=False, comment='交易ID'),
        sa.Column('merchant_id', sa.String(length=64), nullable=False, comment='商户ID'),
        sa.Column('customer_id', sa.String(length=64), nullable=False, comment='客户ID'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='退款金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码 ISO-4217'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='退款状态: pending/processing/completed/failed/cancelled'),
        sa.Column('reason', sa.String(length=32), nullable=False, comment='退款原因'),
        sa.Column('description', sa.String(length=500), nullable=True, comment='退款说明'),
        sa.Column('gateway_response', sa.Text(), nullable=True, comment='银行/网关返回信息'),
        sa.Column('gateway_refund_id', sa.String(length=100), nullable=True, comment='银行侧退款ID'),
        sa.Column('refund_date', sa.DateTime(timezone=True), nullable=True, comment='退款申请时间'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id', name='pk_refunds'),
        sa.UniqueConstraint('refund_id', name='uq_refunds_refund_id'),
    )
    op.create_index('ix_refunds_payment_id', 'refunds', ['payment_id'], unique=False)
    op.create_index('ix_refunds_merchant_id', 'refunds', ['merchant_id'], unique=False)
    # 退款 tick 的选择条件：status + created_at
    op.create_index('ix_refunds_status_created_at', 'refunds', ['status', 'created_at'], unique=False)

    op.create_table(
        'webhook_notifications',
        sa.Column('id', sa.String(length=64), nullable=False, comment='通知ID'),
        sa.Column('merchant_id', sa.String(length=64), nullable=True, comment='商户ID'),
        sa.Column('event_type', sa.String(length=64), nullable=False, comment='事件类型'),
        sa.Column('target_url', sa.String(length=1024), nullable=False, comment='投递地址'),
        sa.Column('payload', sa.Text(), nullable=False, comment='事件体（序列化后，不可变）'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='投递状态: pending/delivered/exhausted'),
        sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0', comment='已投递次数'),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=False, comment='最早下次投递时间'),
        sa.Column('last_error', sa.String(length=1000), nullable=True, comment='最近一次失败原因'),
        sa.Column('last_response_code', sa.Integer(), nullable=True, comment='最近一次HTTP状态码'),
        sa.Column('last_attempt_at', sa.DateTime(timezone=True), nullable=True, comment='最近一次投递时间'),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True, comment='送达时间'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id', name='pk_webhook_notifications'),
    )
    op.create_index('ix_webhook_notifications_merchant_id', 'webhook_notifications', ['merchant_id'], unique=False)
    op.create_index(
        'ix_webhook_notifications_status_next_attempt',
        'webhook_notifications',
        ['status', 'next_attempt_at'],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index('ix_webhook_notifications_status_next_attempt', table_name='webhook_notifications')
    op.drop_index('ix_webhook_notifications_merchant_id', table_name='webhook_notifications')
    op.drop_table('webhook_notifications')

    op.drop_index('ix_refunds_status_created_at', table_name='refunds')
    op.drop_index('ix_refunds_merchant_id', table_name='refunds')
    op.drop_index('ix_refunds_payment_id', table_name='refunds')
    op.drop_table('refunds')
