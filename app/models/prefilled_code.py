"""Prefilled code model - admin-supplied stock for prefilled-delivery items."""

import uuid as uuid_pkg
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlmodel import Field, SQLModel

from app.models.base import CreatedAtMixin, GuildScopedMixin, UUIDMixin


class ShopPrefilledCode(UUIDMixin, CreatedAtMixin, GuildScopedMixin, SQLModel, table=True):
    """
    One code from an item's pool (a game key, a voucher from another shop).

    Either available (assigned_at and assigned_to_discord_id both NULL) or
    delivered to exactly one buyer. Each purchase claims one available row
    with a conditional UPDATE; delivered rows are never deleted.
    """

    __tablename__ = "guild_shop_prefilled_codes"
    __table_args__ = (
        UniqueConstraint("shop_item_id", "code", name="uq_guild_shop_prefilled_code"),
        CheckConstraint(
            "(assigned_at IS NULL) = (assigned_to_discord_id IS NULL)",
            name="ck_guild_shop_prefilled_assignment_pair",
        ),
        Index(
            "ix_guild_shop_prefilled_available",
            "shop_item_id",
            "created_at",
            postgresql_where=text("assigned_at IS NULL"),
        ),
    )

    code: str = Field(sa_column=Column(String(255), nullable=False))
    shop_item_id: uuid_pkg.UUID = Field(
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("guild_shop_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    order_id: uuid_pkg.UUID | None = Field(
        default=None,
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("guild_shop_orders.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    assigned_to_discord_id: str | None = Field(
        default=None,
        sa_column=Column(String(32), nullable=True, index=True),
    )
    assigned_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )

    @property
    def is_assigned(self) -> bool:
        return self.assigned_at is not None
