"""initial

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Listing Groups
    op.create_table('listing_groups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('calculation_type', sa.String(), nullable=False, server_default='checkout'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # Listings (id is the provider listing id)
    op.create_table('listings',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('nickname', sa.String(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('owner_email', sa.String(), nullable=True),
        sa.Column('pm_fee_percentage', sa.Numeric(precision=5, scale=2), nullable=False, server_default='15'),
        sa.Column('is_cohost_on_airbnb', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('airbnb_pass_through_tax', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('disregard_tax', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cleaning_fee_pass_through', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cleaning_fee', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('waive_commission', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('waive_commission_until', sa.DATE(), nullable=True),
        sa.Column('new_pm_fee_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('new_pm_fee_percentage', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('new_pm_fee_start_date', sa.DATE(), nullable=True),
        sa.Column('group_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('pm_fee_percentage > 0 AND pm_fee_percentage <= 100', name='ck_listings_pm_fee_range'),
        sa.ForeignKeyConstraint(['group_id'], ['listing_groups.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )

    # Uploaded Expenses
    op.create_table('uploaded_expenses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=True),
        sa.Column('date', sa.DATE(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('type', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('vendor', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_uploaded_expenses_property_id'), 'uploaded_expenses', ['property_id'], unique=False)
    op.create_index(op.f('ix_uploaded_expenses_date'), 'uploaded_expenses', ['date'], unique=False)

    # Statements
    op.create_table('statements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('scope_key', sa.String(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=True),
        sa.Column('property_ids', sa.JSON(), nullable=True),
        sa.Column('property_name', sa.String(), nullable=True),
        sa.Column('group_id', sa.Integer(), nullable=True),
        sa.Column('group_name', sa.String(), nullable=True),
        sa.Column('is_combined_statement', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('week_start_date', sa.DATE(), nullable=False),
        sa.Column('week_end_date', sa.DATE(), nullable=False),
        sa.Column('calculation_type', sa.String(), nullable=False, server_default='checkout'),
        sa.Column('total_revenue', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_expenses', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_upsells', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('pm_commission', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('pm_percentage', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('total_cleaning_fee', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('owner_payout', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='draft'),
        sa.Column('listing_settings_snapshot', sa.JSON(), nullable=True),
        sa.Column('reservations', sa.JSON(), nullable=True),
        sa.Column('expenses', sa.JSON(), nullable=True),
        sa.Column('ll_cover_expenses', sa.JSON(), nullable=True),
        sa.Column('cleaning_mismatch_warning', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='statements_pkey'),
        sa.UniqueConstraint('scope_key', 'week_start_date', 'week_end_date', name='uq_statement_scope_period')
    )
    op.create_index('ix_statements_status', 'statements', ['status'], unique=False)

    # Tag Schedules
    op.create_table('tag_schedules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tag_name', sa.String(), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('frequency_type', sa.String(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=True),
        sa.Column('day_of_month', sa.Integer(), nullable=True),
        sa.Column('biweekly_anchor_date', sa.DATE(), nullable=True),
        sa.Column('time_of_day', sa.String(length=5), nullable=False, server_default='09:00'),
        sa.Column('skip_dates', sa.JSON(), nullable=True),
        sa.Column('calculation_type', sa.String(), nullable=False, server_default='checkout'),
        sa.Column('last_notified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_scheduled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tag_schedules_tag_name'), 'tag_schedules', ['tag_name'], unique=True)

    # Tag Notifications
    op.create_table('tag_notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tag_name', sa.String(), nullable=False),
        sa.Column('schedule_id', sa.Integer(), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='unread'),
        sa.Column('listing_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('scheduled_for', sa.DateTime(timezone=True), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actioned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['schedule_id'], ['tag_schedules.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tag_notifications_tag_name'), 'tag_notifications', ['tag_name'], unique=False)
    op.create_index(op.f('ix_tag_notifications_status'), 'tag_notifications', ['status'], unique=False)
    op.create_index(op.f('ix_tag_notifications_scheduled_for'), 'tag_notifications', ['scheduled_for'], unique=False)


def downgrade() -> None:
    op.drop_table('tag_notifications')
    op.drop_table('tag_schedules')
    op.drop_index('ix_statements_status', table_name='statements')
    op.drop_table('statements')
    op.drop_table('uploaded_expenses')
    op.drop_table('listings')
    op.drop_table('listing_groups')
