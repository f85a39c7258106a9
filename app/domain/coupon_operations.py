"""Domain operations for shop coupons."""

import logging
import uuid as uuid_pkg
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.base_operations import BaseOperations, store_operation
from app.domain.pricing import CouponEvaluation, evaluate_coupon, normalize_code
from app.models.coupon import DiscountType, ShopCoupon, ShopCouponCreate

logger = logging.getLogger(__name__)


class CouponOperations(BaseOperations[ShopCoupon]):
    """CRUD operations and evaluation for ShopCoupon."""

    def __init__(self) -> None:
        super().__init__(ShopCoupon)

    @store_operation
    async def get_by_code(
        self,
        db: AsyncSession,
        guild_id: str,
        raw_code: str,
    ) -> ShopCoupon | None:
        """Look up a coupon by its user-supplied code, scoped to the guild."""
        code = normalize_code(raw_code)
        if not code:
            return None

        statement = select(ShopCoupon).where(
            ShopCoupon.guild_id == guild_id,  # type: ignore[arg-type]
            ShopCoupon.code == code,  # type: ignore[arg-type]
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def evaluate(
        self,
        db: AsyncSession,
        guild_id: str,
        raw_code: str,
        item_price_cents: int,
        now: datetime,
    ) -> CouponEvaluation:
        """
        Evaluate a code against an item price at `now`.

        Read-only: previews and checkouts never consume a redemption slot.
        """
        coupon = await self.get_by_code(db, guild_id, raw_code)
        return evaluate_coupon(coupon, item_price_cents, now)

    async def create_coupon(
        self,
        db: AsyncSession,
        guild_id: str,
        data: ShopCouponCreate,
    ) -> ShopCoupon:
        """
        Create a coupon for a guild.

        Raises ValueError if the code is empty or taken, the value is out of
        range for its discount type, or the validity window is inverted.
        """
        code = normalize_code(data.code)
        if not code:
            raise ValueError("code is required")
        if len(code) > 50:
            raise ValueError("code must be at most 50 characters")

        if data.discount_type == DiscountType.PERCENTAGE and not 1 <= data.discount_value <= 100:
            raise ValueError("Percentage must be between 1 and 100")
        if data.discount_type == DiscountType.FIXED and data.discount_value < 1:
            raise ValueError("Fixed discount must be at least 1 cent")

        if data.max_redemptions is not None and data.max_redemptions < 1:
            raise ValueError("max_redemptions must be positive")
        if data.valid_from and data.valid_until and data.valid_from >= data.valid_until:
            raise ValueError("valid_from must be before valid_until")

        if await self.get_by_code(db, guild_id, code):
            raise ValueError("A coupon with this code already exists")

        coupon = await self.create(
            db,
            obj_in={
                "code": code,
                "discount_type": data.discount_type.value,
                "discount_value": data.discount_value,
                "valid_from": data.valid_from,
                "valid_until": data.valid_until,
                "max_redemptions": data.max_redemptions,
            },
            guild_id=guild_id,
        )
        logger.info(f"Created coupon {code} for guild {guild_id}")
        return coupon

    @store_operation
    async def increment_redemptions(
        self,
        db: AsyncSession,
        guild_id: str,
        coupon_id: uuid_pkg.UUID,
    ) -> bool:
        """
        Count one confirmed purchase against a coupon.

        The increment is done in SQL so concurrent confirmations never lose
        a count. The limit itself is checked at evaluation time only, so two
        purchases racing for the last slot can both succeed.

        Returns False if the coupon no longer exists.
        """
        statement = (
            update(ShopCoupon)
            .where(
                ShopCoupon.id == coupon_id,  # type: ignore[arg-type]
                ShopCoupon.guild_id == guild_id,  # type: ignore[arg-type]
            )
            .values(redemption_count=ShopCoupon.redemption_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(statement)
        if result.rowcount == 0:
            logger.warning(f"Coupon {coupon_id} vanished before its redemption was counted")
            return False
        return True


# Singleton instance
coupon_ops = CouponOperations()
