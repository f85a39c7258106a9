"""Shop item model - what a guild sells and how it is delivered."""

import uuid as uuid_pkg
from enum import Enum

from sqlalchemy import Column, ForeignKey, String, Text, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlmodel import Field, SQLModel

from app.models.base import GuildScopedMixin, TimestampMixin, UUIDMixin


class DeliveryKind(str, Enum):
    """How a purchased item is fulfilled."""

    CODE = "code"  # One-time redemption code (gift card)
    ROLE = "role"  # Discord role granted on purchase
    SUBSCRIPTION = "subscription"  # Role held while a recurring payment is active
    PREFILLED = "prefilled"  # Next code from an admin-supplied pool


class ShopItem(UUIDMixin, TimestampMixin, GuildScopedMixin, SQLModel, table=True):
    """A purchasable item in a guild's shop. Prices are in minor currency units."""

    __tablename__ = "guild_shop_items"

    name: str = Field(max_length=100, nullable=False)
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    price_amount_cents: int = Field(nullable=False)
    currency: str = Field(
        default="eur",
        max_length=3,
        nullable=False,
        sa_column_kwargs={"server_default": text("'eur'")},
    )
    delivery_kind: str = Field(
        default=DeliveryKind.ROLE.value,
        sa_column=Column(String(20), nullable=False, server_default=DeliveryKind.ROLE.value),
    )
    discord_role_id: str | None = Field(default=None, max_length=32, nullable=True)
    enabled: bool = Field(
        default=True,
        nullable=False,
        sa_column_kwargs={"server_default": text("true")},
    )
    sort_order: int = Field(
        default=0,
        nullable=False,
        sa_column_kwargs={"server_default": text("0")},
    )
    category_id: uuid_pkg.UUID | None = Field(
        default=None,
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("guild_shop_categories.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )


class ShopItemCreate(SQLModel):
    """Schema for creating a shop item."""

    name: str
    description: str | None = None
    price_amount_cents: int
    currency: str = "eur"
    delivery_kind: DeliveryKind = DeliveryKind.ROLE
    discord_role_id: str | None = None
    enabled: bool = True
    sort_order: int = 0
    category_id: uuid_pkg.UUID | None = None


class ShopItemUpdate(SQLModel):
    """Schema for updating a shop item. Only provided fields are applied."""

    name: str | None = None
    description: str | None = None
    price_amount_cents: int | None = None
    currency: str | None = None
    discord_role_id: str | None = None
    enabled: bool | None = None
    sort_order: int | None = None
    category_id: uuid_pkg.UUID | None = None
