"""Shop subscription model - recurring purchases held by a buyer."""

import uuid as uuid_pkg
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlmodel import Field, Relationship, SQLModel

from app.models.base import GuildScopedMixin, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.shop_item import ShopItem


class ShopSubscriptionStatus(str, Enum):
    """Subscription lifecycle states. CANCELLED and EXPIRED are terminal."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ShopSubscription(UUIDMixin, TimestampMixin, GuildScopedMixin, SQLModel, table=True):
    """
    A buyer's subscription to a guild shop item.

    At most one ACTIVE row exists per (guild, buyer, item); the partial unique
    index enforces it at the database level. Ended rows stay for history and a
    later purchase starts a fresh row.
    """

    __tablename__ = "guild_shop_subscriptions"
    __table_args__ = (
        Index(
            "uq_guild_shop_subscription_active",
            "guild_id",
            "buyer_discord_id",
            "shop_item_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
        ),
        Index("ix_guild_shop_subscriptions_period_end", "status", "current_period_end"),
    )

    buyer_discord_id: str = Field(
        sa_column=Column(String(32), nullable=False, index=True),
    )
    shop_item_id: uuid_pkg.UUID = Field(
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("guild_shop_items.id", ondelete="RESTRICT"),
            nullable=False,
        ),
    )
    billing_reference: str | None = Field(
        default=None,
        max_length=255,
        nullable=True,
        sa_column_kwargs={"comment": "Payment provider subscription id (e.g. sub_...)"},
    )
    status: str = Field(
        default=ShopSubscriptionStatus.ACTIVE.value,
        sa_column=Column(
            String(20),
            nullable=False,
            server_default=ShopSubscriptionStatus.ACTIVE.value,
        ),
    )
    current_period_end: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    ended_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    ended_by_discord_id: str | None = Field(
        default=None,
        max_length=32,
        nullable=True,
        sa_column_kwargs={"comment": "Actor who cancelled; NULL for expiry"},
    )

    # Relationships
    shop_item: Optional["ShopItem"] = Relationship()

    @property
    def is_active(self) -> bool:
        return self.status == ShopSubscriptionStatus.ACTIVE.value
