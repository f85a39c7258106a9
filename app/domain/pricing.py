"""Coupon pricing engine.

Pure functions: given a coupon row (or None), a list price and the
evaluation time, decide whether the coupon applies and what to charge.
Nothing here reads the clock or writes to the database; incrementing a
coupon's redemption_count happens only when the purchase is confirmed.
"""

import uuid as uuid_pkg
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from app.models.coupon import DiscountType, ShopCoupon

# The smallest amount a discounted purchase may cost
MIN_CHARGE_CENTS = 1


class CouponError(str, Enum):
    """User-facing reasons a coupon does not apply."""

    INVALID_CODE = "invalid code"
    NOT_YET_VALID = "not yet valid"
    EXPIRED = "expired"
    REDEMPTION_LIMIT_REACHED = "redemption limit reached"


@dataclass(frozen=True)
class CouponEvaluation:
    """Result of evaluating a coupon against a price."""

    valid: bool
    error: CouponError | None = None
    final_amount_cents: int | None = None
    discount_cents: int = 0
    coupon_id: uuid_pkg.UUID | None = None

    @classmethod
    def rejected(cls, error: CouponError) -> "CouponEvaluation":
        return cls(valid=False, error=error)


def normalize_code(raw_code: str) -> str:
    """Upper-case and strip all whitespace, so ' ab-cd ' and 'AB-CD' match."""
    return "".join(raw_code.split()).upper()


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are treated as UTC
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def compute_discount(discount_type: str, discount_value: int, price_cents: int) -> int:
    """
    Discount in minor units for a price.

    Percentages are clamped to 0-100 and rounded down. Fixed discounts are
    capped at price - 1 so the charge never reaches zero.
    """
    if discount_type == DiscountType.PERCENTAGE.value:
        percent = max(0, min(100, discount_value))
        return price_cents * percent // 100
    return max(0, min(discount_value, price_cents - MIN_CHARGE_CENTS))


def evaluate_coupon(
    coupon: ShopCoupon | None,
    price_cents: int,
    now: datetime,
) -> CouponEvaluation:
    """
    Decide whether `coupon` applies at `now` and compute the charge.

    Checks, in order: existence, validity window start, validity window end,
    redemption limit. On success final_amount_cents is in [1, price_cents].

    Raises ValueError if price_cents is below the minimum charge; shop items
    are validated on creation so this only signals a caller bug.
    """
    if price_cents < MIN_CHARGE_CENTS:
        raise ValueError(f"price_cents must be at least {MIN_CHARGE_CENTS}")

    if coupon is None:
        return CouponEvaluation.rejected(CouponError.INVALID_CODE)

    at = _as_utc(now)
    if coupon.valid_from is not None and at < _as_utc(coupon.valid_from):
        return CouponEvaluation.rejected(CouponError.NOT_YET_VALID)
    if coupon.valid_until is not None and at > _as_utc(coupon.valid_until):
        return CouponEvaluation.rejected(CouponError.EXPIRED)
    if coupon.max_redemptions is not None and coupon.redemption_count >= coupon.max_redemptions:
        return CouponEvaluation.rejected(CouponError.REDEMPTION_LIMIT_REACHED)

    discount = compute_discount(coupon.discount_type, coupon.discount_value, price_cents)
    final_amount = max(MIN_CHARGE_CENTS, price_cents - discount)

    return CouponEvaluation(
        valid=True,
        final_amount_cents=final_amount,
        discount_cents=price_cents - final_amount,
        coupon_id=coupon.id,
    )
