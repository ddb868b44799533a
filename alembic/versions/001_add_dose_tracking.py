"""Add dose tracking, stock and notification tables

Revision ID: 001_add_dose_tracking
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_add_dose_tracking'
down_revision = None
branch_labels = None
depends_on = None


json_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('timezone', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('dose_text', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_items_user_id', 'items', ['user_id'])

    op.create_table(
        'dose_instances',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('item_id', sa.String(36), sa.ForeignKey('items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('due_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='scheduled'),
        sa.Column('taken_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delay_minutes', sa.Integer(), nullable=True),
        sa.Column('skip_reason', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_dose_instances_item_id', 'dose_instances', ['item_id'])
    op.create_index('ix_dose_instances_item_due', 'dose_instances', ['item_id', 'due_at'])
    op.create_index('ix_dose_instances_status_due', 'dose_instances', ['status', 'due_at'])

    op.create_table(
        'stock',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('item_id', sa.String(36), sa.ForeignKey('items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('units_left', sa.Float(), nullable=False, server_default='0'),
        sa.Column('units_total', sa.Float(), nullable=False, server_default='0'),
        sa.Column('consumption_history', json_type, nullable=False),
        sa.Column('projected_end_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_refill_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('units_left >= 0', name='ck_stock_units_left_non_negative'),
    )
    op.create_index('ix_stock_item_id', 'stock', ['item_id'], unique=True)
    op.create_index('ix_stock_projected_end_at', 'stock', ['projected_end_at'])

    op.create_table(
        'notification_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('dose_id', sa.String(36), sa.ForeignKey('dose_instances.id', ondelete='SET NULL'), nullable=True),
        sa.Column('notification_type', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('priority', sa.String(), nullable=False, server_default='normal'),
        sa.Column('metadata', json_type, nullable=False),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('delivery_status', sa.String(), nullable=False, server_default='scheduled'),
        sa.Column('channel_results', json_type, nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('claim_token', sa.String(36), nullable=True),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_notification_logs_user_id', 'notification_logs', ['user_id'])
    op.create_index('ix_notification_logs_dose_id', 'notification_logs', ['dose_id'])
    op.create_index('ix_notification_logs_status_scheduled', 'notification_logs', ['delivery_status', 'scheduled_at'])
    op.create_index('ix_notification_logs_dose_scheduled', 'notification_logs', ['dose_id', 'scheduled_at'])

    op.create_table(
        'notification_preferences',
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), primary_key=True),
        sa.Column('push_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('push_token', sa.String(), nullable=True),
        sa.Column('email_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('chat_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('chat_address', sa.String(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )


def downgrade():
    op.drop_table('notification_preferences')

    op.drop_index('ix_notification_logs_dose_scheduled', table_name='notification_logs')
    op.drop_index('ix_notification_logs_status_scheduled', table_name='notification_logs')
    op.drop_index('ix_notification_logs_dose_id', table_name='notification_logs')
    op.drop_index('ix_notification_logs_user_id', table_name='notification_logs')
    op.drop_table('notification_logs')

    op.drop_index('ix_stock_projected_end_at', table_name='stock')
    op.drop_index('ix_stock_item_id', table_name='stock')
    op.drop_table('stock')

    op.drop_index('ix_dose_instances_status_due', table_name='dose_instances')
    op.drop_index('ix_dose_instances_item_due', table_name='dose_instances')
    op.drop_index('ix_dose_instances_item_id', table_name='dose_instances')
    op.drop_table('dose_instances')

    op.drop_index('ix_items_user_id', table_name='items')
    op.drop_table('items')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
