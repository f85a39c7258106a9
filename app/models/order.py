"""Order models - completed one-time purchases and claimed payment references."""

import uuid as uuid_pkg

from sqlalchemy import Column, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlmodel import Field, SQLModel

from app.models.base import CreatedAtMixin, GuildScopedMixin, UUIDMixin


class ShopOrder(UUIDMixin, CreatedAtMixin, GuildScopedMixin, SQLModel, table=True):
    """
    Immutable record of a completed one-time purchase.

    Written once at payment confirmation and never updated. amount_cents is
    what was actually charged (after any coupon), not the list price.
    """

    __tablename__ = "guild_shop_orders"

    buyer_discord_id: str = Field(
        sa_column=Column(String(32), nullable=False, index=True),
    )
    shop_item_id: uuid_pkg.UUID = Field(
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("guild_shop_items.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
    )
    amount_cents: int = Field(nullable=False)
    currency: str = Field(max_length=3, nullable=False)
    delivery_kind: str = Field(max_length=20, nullable=False)


class ProcessedPayment(UUIDMixin, CreatedAtMixin, GuildScopedMixin, SQLModel, table=True):
    """
    One row per payment confirmation that has been acted on.

    The unique (guild, provider, transaction_ref) tuple is what keeps a
    replayed webhook from recording the same purchase twice.
    """

    __tablename__ = "guild_shop_payments"
    __table_args__ = (
        UniqueConstraint("guild_id", "provider", "transaction_ref", name="uq_guild_shop_payment_ref"),
    )

    provider: str = Field(max_length=30, nullable=False)
    transaction_ref: str = Field(max_length=255, nullable=False)
