"""add_checkout_tables

Revision ID: 4b1e6c2a9d10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4b1e6c2a9d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True, comment='邮箱'),
        sa.Column('name', sa.String(length=255), nullable=True, comment='显示名'),
        sa.Column('is_creator', sa.Boolean(), nullable=False, server_default='false', comment='是否已激活创作者账户'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=False)

    op.create_table(
        'contents',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('creator_id', sa.String(length=36), nullable=True, comment='内容创作者'),
        sa.Column('title', sa.String(length=255), nullable=False, comment='标题'),
        sa.Column('price', sa.Integer(), nullable=True, comment='价格（XOF，整数）'),
        sa.Column('status', sa.String(length=50), nullable=True, server_default='published', comment='内容状态'),
        sa.Column('views', sa.Integer(), nullable=False, server_default='0', comment='浏览次数'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['creator_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_contents_creator_id', 'contents', ['creator_id'], unique=False)
    op.create_index('ix_contents_created_at', 'contents', ['created_at'], unique=False)
    op.create_index('ix_contents_price_created', 'contents', ['price', 'created_at'], unique=False)

    op.create_table(
        'transactions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False, comment='付款人'),
        sa.Column('creator_id', sa.String(length=36), nullable=True, comment='收款创作者'),
        sa.Column('content_id', sa.String(length=36), nullable=True, comment='购买的内容'),
        sa.Column('amount', sa.Integer(), nullable=False, comment='金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='XOF'),
        sa.Column('payment_method', sa.String(length=50), nullable=False, server_default='mobile_money'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='paid'),
        sa.Column('type', sa.String(length=50), nullable=False, comment='content_purchase / creator_activation'),
        sa.Column('payment_reference', sa.String(length=200), nullable=True, comment='支付渠道流水号'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['content_id'], ['contents.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_reference', name='uq_transactions_payment_reference'),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'], unique=False)
    op.create_index('ix_transactions_creator_id', 'transactions', ['creator_id'], unique=False)
    op.create_index('ix_transactions_status', 'transactions', ['status'], unique=False)
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'], unique=False)
    op.create_index('ix_transactions_user_created', 'transactions', ['user_id', 'created_at'], unique=False)

    op.create_table(
        'purchases',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('content_id', sa.String(length=36), nullable=False),
        sa.Column('transaction_id', sa.String(length=36), nullable=False),
        sa.Column('amount_paid', sa.Integer(), nullable=False),
        sa.Column('purchased_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['content_id'], ['contents.id']),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'content_id', name='uq_purchases_user_content'),
    )
    op.create_index('ix_purchases_user_id', 'purchases', ['user_id'], unique=False)
    op.create_index('ix_purchases_content_id', 'purchases', ['content_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_purchases_content_id', table_name='purchases')
    op.drop_index('ix_purchases_user_id', table_name='purchases')
    op.drop_table('purchases')

    op.drop_index('ix_transactions_user_created', table_name='transactions')
    op.drop_index('ix_transactions_created_at', table_name='transactions')
    op.drop_index('ix_transactions_status', table_name='transactions')
    op.drop_index('ix_transactions_creator_id', table_name='transactions')
    op.drop_index('ix_transactions_user_id', table_name='transactions')
    op.drop_table('transactions')

    op.drop_index('ix_contents_price_created', table_name='contents')
    op.drop_index('ix_contents_created_at', table_name='contents')
    op.drop_index('ix_contents_creator_id', table_name='contents')
    op.drop_table('contents')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
