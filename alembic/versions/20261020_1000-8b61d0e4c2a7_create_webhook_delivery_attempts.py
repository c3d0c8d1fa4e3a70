"""create_webhook_delivery_attempts

Revision ID: 8b61d0e4c2a7
Revises: 3f2a9c1d7e54
Create Date: 2026-10-20 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '8b61d0e4c2a7'
down_revision: Union[str, None] = '3f2a9c1d7e54'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'webhook_delivery_attempts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('notification_id', sa.String(length=64), nullable=False, comment='通知ID'),
        sa.Column('attempt_number', sa.Integer(), nullable=False, comment='第几次投递，从1开始'),
        sa.Column('success', sa.Boolean(), nullable=False, comment='是否送达'),
        sa.Column('status_code', sa.Integer(), nullable=True, comment='HTTP状态码，传输失败时为空'),
        sa.Column('response_body', sa.Text(), nullable=True, comment='响应体（截断）'),
        sa.Column('error_message', sa.String(length=1000), nullable=True, comment='失败原因'),
        sa.Column('response_time_ms', sa.Integer(), nullable=True, comment='响应耗时（毫秒）'),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=False, comment='投递时间'),
        sa.ForeignKeyConstraint(
            ['notification_id'],
            ['webhook_notifications.id'],
            name='fk_webhook_delivery_attempts_notification_id_webhook_notifications',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_webhook_delivery_attempts'),
        sa.UniqueConstraint(
            'notification_id',
            'attempt_number',
            name='uq_webhook_delivery_attempts_notification_id',
        ),
    )
    op.create_index(
        'ix_webhook_delivery_attempts_notification_id',
        'webhook_delivery_attempts',
        ['notification_id'],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index('ix_webhook_delivery_attempts_notification_id', table_name='webhook_delivery_attempts')
    op.drop_table('webhook_delivery_attempts')
