"""Shop coupon model - guild-scoped discount codes."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, String, UniqueConstraint, text
from sqlmodel import Field, SQLModel

from app.models.base import GuildScopedMixin, TimestampMixin, UUIDMixin


class DiscountType(str, Enum):
    """How a coupon's discount_value is interpreted."""

    PERCENTAGE = "percentage"  # 1-100, percent off the list price
    FIXED = "fixed"  # minor currency units off the list price


class ShopCoupon(UUIDMixin, TimestampMixin, GuildScopedMixin, SQLModel, table=True):
    """
    Discount code for a guild's shop.

    Codes are stored normalized (upper-case, no whitespace) so lookups are
    exact matches. redemption_count only moves when a purchase using the
    coupon is confirmed, never on preview or checkout.
    """

    __tablename__ = "guild_shop_coupons"
    __table_args__ = (UniqueConstraint("guild_id", "code", name="uq_guild_shop_coupon_code"),)

    code: str = Field(sa_column=Column(String(50), nullable=False))
    discount_type: str = Field(
        default=DiscountType.PERCENTAGE.value,
        sa_column=Column(String(20), nullable=False, server_default=DiscountType.PERCENTAGE.value),
    )
    discount_value: int = Field(nullable=False)
    valid_from: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    valid_until: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    max_redemptions: int | None = Field(default=None, nullable=True)
    redemption_count: int = Field(
        default=0,
        nullable=False,
        sa_column_kwargs={"server_default": text("0")},
    )


class ShopCouponCreate(SQLModel):
    """Schema for creating a coupon."""

    code: str
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: int
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    max_redemptions: int | None = None
