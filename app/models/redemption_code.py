"""Redemption code model - single-use secrets minted for code-delivery purchases."""

import uuid as uuid_pkg
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlmodel import Field, Relationship, SQLModel

from app.models.base import CreatedAtMixin, GuildScopedMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.shop_item import ShopItem


class RedemptionCode(UUIDMixin, CreatedAtMixin, GuildScopedMixin, SQLModel, table=True):
    """
    A code that grants one shop item to whoever redeems it first.

    Either unused (redeemed_by_discord_id and redeemed_at both NULL) or used
    (both set). The unused -> used write is a conditional UPDATE on
    redeemed_at IS NULL; rows are never deleted and double as the audit trail.
    """

    __tablename__ = "guild_shop_codes"
    __table_args__ = (
        UniqueConstraint("guild_id", "code", name="uq_guild_shop_code"),
        CheckConstraint(
            "(redeemed_at IS NULL) = (redeemed_by_discord_id IS NULL)",
            name="ck_guild_shop_code_redemption_pair",
        ),
    )

    code: str = Field(sa_column=Column(String(32), nullable=False))
    shop_item_id: uuid_pkg.UUID = Field(
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("guild_shop_items.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
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
    buyer_discord_id: str | None = Field(default=None, max_length=32, nullable=True)
    redeemed_by_discord_id: str | None = Field(
        default=None,
        sa_column=Column(String(32), nullable=True, index=True),
    )
    redeemed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    expires_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )

    # Relationships
    shop_item: Optional["ShopItem"] = Relationship()

    @property
    def is_redeemed(self) -> bool:
        return self.redeemed_at is not None
