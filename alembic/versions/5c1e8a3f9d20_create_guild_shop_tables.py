"""create_guild_shop_tables

Revision ID: 5c1e8a3f9d20
Revises:
Create Date: 2026-10-19 10:12:44.518230

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '5c1e8a3f9d20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('guild_configs',
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('guild_id', sa.String(length=32), nullable=False),
    sa.Column('guild_name', sqlmodel.sql.sqltypes.AutoString(length=100), nullable=True),
    sa.Column('owner_discord_id', sa.String(length=32), nullable=False),
    sa.PrimaryKeyConstraint('guild_id')
    )
    op.create_index(op.f('ix_guild_configs_owner_discord_id'), 'guild_configs', ['owner_discord_id'], unique=False)

    op.create_table('users',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('discord_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=True),
    sa.Column('email', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
    sa.Column('display_name', sqlmodel.sql.sqltypes.AutoString(length=100), nullable=True),
    sa.Column('avatar_url', sqlmodel.sql.sqltypes.AutoString(length=500), nullable=True),
    sa.Column('is_admin', sa.Boolean(), server_default=sa.text('false'), nullable=False, comment="Platform admin: may manage any guild's shop"),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_discord_id'), 'users', ['discord_id'], unique=True)

    op.create_table('guild_authorized_users',
    sa.Column('id', sa.Uuid(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('guild_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=False),
    sa.Column('discord_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=False),
    sa.Column('role', sqlmodel.sql.sqltypes.AutoString(length=20), server_default=sa.text("'admin'"), nullable=False),
    sa.Column('added_by_discord_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=True),
    sa.ForeignKeyConstraint(['guild_id'], ['guild_configs.guild_id']),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('guild_id', 'discord_id', name='uq_guild_authorized_user')
    )
    op.create_index(op.f('ix_guild_authorized_users_id'), 'guild_authorized_users', ['id'], unique=False)
    op.create_index(op.f('ix_guild_authorized_users_guild_id'), 'guild_authorized_users', ['guild_id'], unique=False)
    op.create_index(op.f('ix_guild_authorized_users_discord_id'), 'guild_authorized_users', ['discord_id'], unique=False)

    op.create_table('guild_stripe_config',
    sa.Column('guild_id', sa.String(length=32), nullable=False),
    sa.Column('stripe_secret_key', sa.Text(), nullable=True),
    sa.Column('enabled', sa.Boolean(), server_default=sa.text('false'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_by_discord_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=True),
    sa.ForeignKeyConstraint(['guild_id'], ['guild_configs.guild_id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('guild_id')
    )

    op.create_table('guild_shop_items',
    sa.Column('id', sa.Uuid(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('guild_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=False),
    sa.Column('name', sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('price_amount_cents', sa.Integer(), nullable=False),
    sa.Column('currency', sqlmodel.sql.sqltypes.AutoString(length=3), server_default=sa.text("'eur'"), nullable=False),
    sa.Column('delivery_kind', sa.String(length=20), server_default='role', nullable=False),
    sa.Column('discord_role_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=True),
    sa.Column('enabled', sa.Boolean(), server_default=sa.text('true'), nullable=False),
    sa.Column('sort_order', sa.Integer(), server_default=sa.text('0'), nullable=False),
    sa.ForeignKeyConstraint(['guild_id'], ['guild_configs.guild_id']),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_guild_shop_items_id'), 'guild_shop_items', ['id'], unique=False)
    op.create_index(op.f('ix_guild_shop_items_guild_id'), 'guild_shop_items', ['guild_id'], unique=False)

    op.create_table('guild_shop_coupons',
    sa.Column('id', sa.Uuid(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('guild_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=False),
    sa.Column('code', sa.String(length=50), nullable=False),
    sa.Column('discount_type', sa.String(length=20), server_default='percentage', nullable=False),
    sa.Column('discount_value', sa.Integer(), nullable=False),
    sa.Column('valid_from', sa.DateTime(timezone=True), nullable=True),
    sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
    sa.Column('max_redemptions', sa.Integer(), nullable=True),
    sa.Column('redemption_count', sa.Integer(), server_default=sa.text('0'), nullable=False),
    sa.ForeignKeyConstraint(['guild_id'], ['guild_configs.guild_id']),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('guild_id', 'code', name='uq_guild_shop_coupon_code')
    )
    op.create_index(op.f('ix_guild_shop_coupons_id'), 'guild_shop_coupons', ['id'], unique=False)
    op.create_index(op.f('ix_guild_shop_coupons_guild_id'), 'guild_shop_coupons', ['guild_id'], unique=False)

    op.create_table('guild_shop_orders',
    sa.Column('id', sa.Uuid(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('guild_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=False),
    sa.Column('buyer_discord_id', sa.String(length=32), nullable=False),
    sa.Column('shop_item_id', sa.UUID(), nullable=False),
    sa.Column('amount_cents', sa.Integer(), nullable=False),
    sa.Column('currency', sqlmodel.sql.sqltypes.AutoString(length=3), nullable=False),
    sa.Column('delivery_kind', sqlmodel.sql.sqltypes.AutoString(length=20), nullable=False),
    sa.ForeignKeyConstraint(['guild_id'], ['guild_configs.guild_id']),
    sa.ForeignKeyConstraint(['shop_item_id'], ['guild_shop_items.id'], ondelete='RESTRICT'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_guild_shop_orders_id'), 'guild_shop_orders', ['id'], unique=False)
    op.create_index(op.f('ix_guild_shop_orders_guild_id'), 'guild_shop_orders', ['guild_id'], unique=False)
    op.create_index(op.f('ix_guild_shop_orders_buyer_discord_id'), 'guild_shop_orders', ['buyer_discord_id'], unique=False)
    op.create_index(op.f('ix_guild_shop_orders_shop_item_id'), 'guild_shop_orders', ['shop_item_id'], unique=False)

    op.create_table('guild_shop_payments',
    sa.Column('id', sa.Uuid(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('guild_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=False),
    sa.Column('provider', sqlmodel.sql.sqltypes.AutoString(length=30), nullable=False),
    sa.Column('transaction_ref', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
    sa.ForeignKeyConstraint(['guild_id'], ['guild_configs.guild_id']),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('guild_id', 'provider', 'transaction_ref', name='uq_guild_shop_payment_ref')
    )
    op.create_index(op.f('ix_guild_shop_payments_id'), 'guild_shop_payments', ['id'], unique=False)
    op.create_index(op.f('ix_guild_shop_payments_guild_id'), 'guild_shop_payments', ['guild_id'], unique=False)

    op.create_table('guild_shop_codes',
    sa.Column('id', sa.Uuid(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('guild_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=False),
    sa.Column('code', sa.String(length=32), nullable=False),
    sa.Column('shop_item_id', sa.UUID(), nullable=False),
    sa.Column('order_id', sa.UUID(), nullable=True),
    sa.Column('buyer_discord_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=True),
    sa.Column('redeemed_by_discord_id', sa.String(length=32), nullable=True),
    sa.Column('redeemed_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(['guild_id'], ['guild_configs.guild_id']),
    sa.ForeignKeyConstraint(['shop_item_id'], ['guild_shop_items.id'], ondelete='RESTRICT'),
    sa.ForeignKeyConstraint(['order_id'], ['guild_shop_orders.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('guild_id', 'code', name='uq_guild_shop_code'),
    sa.CheckConstraint('(redeemed_at IS NULL) = (redeemed_by_discord_id IS NULL)', name='ck_guild_shop_code_redemption_pair')
    )
    op.create_index(op.f('ix_guild_shop_codes_id'), 'guild_shop_codes', ['id'], unique=False)
    op.create_index(op.f('ix_guild_shop_codes_guild_id'), 'guild_shop_codes', ['guild_id'], unique=False)
    op.create_index(op.f('ix_guild_shop_codes_shop_item_id'), 'guild_shop_codes', ['shop_item_id'], unique=False)
    op.create_index(op.f('ix_guild_shop_codes_redeemed_by_discord_id'), 'guild_shop_codes', ['redeemed_by_discord_id'], unique=False)

    op.create_table('guild_shop_subscriptions',
    sa.Column('id', sa.Uuid(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('guild_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=False),
    sa.Column('buyer_discord_id', sa.String(length=32), nullable=False),
    sa.Column('shop_item_id', sa.UUID(), nullable=False),
    sa.Column('billing_reference', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True, comment='Payment provider subscription id (e.g. sub_...)'),
    sa.Column('status', sa.String(length=20), server_default='active', nullable=False),
    sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=False),
    sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('ended_by_discord_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=True, comment='Actor who cancelled; NULL for expiry'),
    sa.ForeignKeyConstraint(['guild_id'], ['guild_configs.guild_id']),
    sa.ForeignKeyConstraint(['shop_item_id'], ['guild_shop_items.id'], ondelete='RESTRICT'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_guild_shop_subscriptions_id'), 'guild_shop_subscriptions', ['id'], unique=False)
    op.create_index(op.f('ix_guild_shop_subscriptions_guild_id'), 'guild_shop_subscriptions', ['guild_id'], unique=False)
    op.create_index(op.f('ix_guild_shop_subscriptions_buyer_discord_id'), 'guild_shop_subscriptions', ['buyer_discord_id'], unique=False)
    op.create_index('ix_guild_shop_subscriptions_period_end', 'guild_shop_subscriptions', ['status', 'current_period_end'], unique=False)
    op.create_index(
        'uq_guild_shop_subscription_active',
        'guild_shop_subscriptions',
        ['guild_id', 'buyer_discord_id', 'shop_item_id'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table('guild_shop_audit_log',
    sa.Column('id', sa.Uuid(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('guild_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=False),
    sa.Column('action', sa.String(length=50), nullable=False),
    sa.Column('actor_discord_id', sqlmodel.sql.sqltypes.AutoString(length=32), nullable=True),
    sa.Column('details', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.ForeignKeyConstraint(['guild_id'], ['guild_configs.guild_id']),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_guild_shop_audit_log_id'), 'guild_shop_audit_log', ['id'], unique=False)
    op.create_index(op.f('ix_guild_shop_audit_log_guild_id'), 'guild_shop_audit_log', ['guild_id'], unique=False)
    op.create_index(op.f('ix_guild_shop_audit_log_action'), 'guild_shop_audit_log', ['action'], unique=False)


def downgrade() -> None:
    op.drop_table('guild_shop_audit_log')
    op.drop_index('uq_guild_shop_subscription_active', table_name='guild_shop_subscriptions')
    op.drop_index('ix_guild_shop_subscriptions_period_end', table_name='guild_shop_subscriptions')
    op.drop_table('guild_shop_subscriptions')
    op.drop_table('guild_shop_codes')
    op.drop_table('guild_shop_payments')
    op.drop_table('guild_shop_orders')
    op.drop_table('guild_shop_coupons')
    op.drop_table('guild_shop_items')
    op.drop_table('guild_stripe_config')
    op.drop_table('guild_authorized_users')
    op.drop_table('users')
    op.drop_table('guild_configs')
