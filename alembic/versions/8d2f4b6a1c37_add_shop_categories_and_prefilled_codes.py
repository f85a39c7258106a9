"""add_shop_categories_and_prefilled_codes

Revision ID: 8d2f4b6a1c37
Revises: 5c1e8a3f9d20
Create Date: 2026-10-19 15:40:02.114870

Adds dashboard categories for shop items and the code pool behind the
'prefilled' delivery kind:
1. guild_shop_categories: named, colored groups ordered by sort_order
2. guild_shop_items.category_id: nullable, cleared when the category is deleted
3. guild_shop_prefilled_codes: admin-supplied codes, each delivered to at most one buyer
"""

from collections.abc import Sequence

import sqlalchemy as sa
import sqlmodel

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8d2f4b6a1c37"
down_revision: str | None = "5c1e8a3f9d20"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "guild_shop_categories",
        sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("guild_id", sqlmodel.sql.sqltypes.AutoString(length=32), nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
        sa.Column(
            "color",
            sqlmodel.sql.sqltypes.AutoString(length=7),
            server_default=sa.text("'#5865F2'"),
            nullable=False,
        ),
        sa.Column("sort_order", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.ForeignKeyConstraint(["guild_id"], ["guild_configs.guild_id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_guild_shop_categories_id"), "guild_shop_categories", ["id"], unique=False)
    op.create_index(
        op.f("ix_guild_shop_categories_guild_id"), "guild_shop_categories", ["guild_id"], unique=False
    )

    op.add_column("guild_shop_items", sa.Column("category_id", sa.UUID(), nullable=True))
    op.create_foreign_key(
        "guild_shop_items_category_id_fkey",
        "guild_shop_items",
        "guild_shop_categories",
        ["category_id"],
        ["id"],
        ondelete="SET NULL",
    )
    op.create_index(
        op.f("ix_guild_shop_items_category_id"), "guild_shop_items", ["category_id"], unique=False
    )

    op.create_table(
        "guild_shop_prefilled_codes",
        sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("guild_id", sqlmodel.sql.sqltypes.AutoString(length=32), nullable=False),
        sa.Column("code", sa.String(length=255), nullable=False),
        sa.Column("shop_item_id", sa.UUID(), nullable=False),
        sa.Column("order_id", sa.UUID(), nullable=True),
        sa.Column("assigned_to_discord_id", sa.String(length=32), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["guild_id"], ["guild_configs.guild_id"]),
        sa.ForeignKeyConstraint(["shop_item_id"], ["guild_shop_items.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["order_id"], ["guild_shop_orders.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("shop_item_id", "code", name="uq_guild_shop_prefilled_code"),
        sa.CheckConstraint(
            "(assigned_at IS NULL) = (assigned_to_discord_id IS NULL)",
            name="ck_guild_shop_prefilled_assignment_pair",
        ),
    )
    op.create_index(
        op.f("ix_guild_shop_prefilled_codes_id"), "guild_shop_prefilled_codes", ["id"], unique=False
    )
    op.create_index(
        op.f("ix_guild_shop_prefilled_codes_guild_id"),
        "guild_shop_prefilled_codes",
        ["guild_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_guild_shop_prefilled_codes_assigned_to_discord_id"),
        "guild_shop_prefilled_codes",
        ["assigned_to_discord_id"],
        unique=False,
    )
    # Pool claims scan the oldest available code of one item
    op.create_index(
        "ix_guild_shop_prefilled_available",
        "guild_shop_prefilled_codes",
        ["shop_item_id", "created_at"],
        unique=False,
        postgresql_where=sa.text("assigned_at IS NULL"),
    )


def downgrade() -> None:
    op.drop_index("ix_guild_shop_prefilled_available", table_name="guild_shop_prefilled_codes")
    op.drop_table("guild_shop_prefilled_codes")
    op.drop_index(op.f("ix_guild_shop_items_category_id"), table_name="guild_shop_items")
    op.drop_constraint("guild_shop_items_category_id_fkey", "guild_shop_items", type_="foreignkey")
    op.drop_column("guild_shop_items", "category_id")
    op.drop_table("guild_shop_categories")
