"""initial loyalty schema

Revision ID: 0001
Revises:
Create Date: 2026-10-17 09:00:00

"""
from alembic import op
import sqlalchemy as sa


revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('loyalty_points', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint('loyalty_points >= 0', name='ck_users_loyalty_points_non_negative'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table(
        'coupons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('discount_type', sa.String(length=16), nullable=False),
        sa.Column('discount_value', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('minimum_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('maximum_discount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('used_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_coupons_id'), 'coupons', ['id'], unique=False)
    op.create_index(op.f('ix_coupons_code'), 'coupons', ['code'], unique=True)

    op.create_table(
        'coupon_usage',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('coupon_id', sa.Integer(), nullable=False),
        sa.Column('order_ref', sa.String(), nullable=True),
        sa.Column('used_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'coupon_id', name='uq_coupon_usage_user_coupon'),
    )
    op.create_index(op.f('ix_coupon_usage_id'), 'coupon_usage', ['id'], unique=False)
    op.create_index(op.f('ix_coupon_usage_user_id'), 'coupon_usage', ['user_id'], unique=False)
    op.create_index(op.f('ix_coupon_usage_coupon_id'), 'coupon_usage', ['coupon_id'], unique=False)
    op.create_index(op.f('ix_coupon_usage_used_at'), 'coupon_usage', ['used_at'], unique=False)

    op.create_table(
        'loyalty_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('order_ref', sa.String(), nullable=True),
        sa.Column('coupon_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_loyalty_transactions_id'), 'loyalty_transactions', ['id'], unique=False)
    op.create_index(op.f('ix_loyalty_transactions_user_id'), 'loyalty_transactions', ['user_id'], unique=False)
    op.create_index(op.f('ix_loyalty_transactions_type'), 'loyalty_transactions', ['type'], unique=False)
    op.create_index(op.f('ix_loyalty_transactions_order_ref'), 'loyalty_transactions', ['order_ref'], unique=False)
    op.create_index('ix_loyalty_transactions_user_created', 'loyalty_transactions', ['user_id', 'created_at'], unique=False)
    op.create_index(
        'uq_loyalty_transactions_earned_order',
        'loyalty_transactions',
        ['user_id', 'order_ref'],
        unique=True,
        postgresql_where=sa.text("type = 'EARNED'"),
        sqlite_where=sa.text("type = 'EARNED'"),
    )

    op.create_table(
        'milestone_rewards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('milestone_points', sa.Integer(), nullable=False),
        sa.Column('reward_type', sa.String(), server_default='VOUCHER', nullable=False),
        sa.Column('reward_value', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('voucher_code', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['voucher_code'], ['coupons.code']),
        sa.PrimaryKeyConstraint('id'),
        # One reward per user and threshold, also under concurrent checks
        sa.UniqueConstraint('user_id', 'milestone_points', name='uq_milestone_rewards_user_points'),
    )
    op.create_index(op.f('ix_milestone_rewards_id'), 'milestone_rewards', ['id'], unique=False)
    op.create_index(op.f('ix_milestone_rewards_user_id'), 'milestone_rewards', ['user_id'], unique=False)
    op.create_index(op.f('ix_milestone_rewards_milestone_points'), 'milestone_rewards', ['milestone_points'], unique=False)


def downgrade() -> None:
    op.drop_table('milestone_rewards')
    op.drop_table('loyalty_transactions')
    op.drop_table('coupon_usage')
    op.drop_table('coupons')
    op.drop_table('users')
