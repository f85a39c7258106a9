"""Guild shop coupon API."""

import logging
import uuid as uuid_pkg
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from app.api.deps import CurrentUser, DbSession, require_guild_access
from app.domain.coupon_operations import coupon_ops
from app.domain.shop_item_operations import shop_item_ops
from app.models.coupon import ShopCoupon, ShopCouponCreate
from app.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/guilds/{guild_id}/shop/coupons", tags=["shop"])


# ─────────────────────────────────────────────────────────────────────────────
# Request/Response Schemas
# ─────────────────────────────────────────────────────────────────────────────


class CouponResponse(BaseModel):
    id: str
    code: str
    discount_type: str
    discount_value: int
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    max_redemptions: int | None = None
    redemption_count: int
    created_at: datetime


class CouponPreviewRequest(BaseModel):
    code: str
    item_id: uuid_pkg.UUID


class CouponPreviewResponse(BaseModel):
    """Outcome of applying a code to an item. Nothing is consumed."""

    valid: bool
    error: str | None = None
    original_amount_cents: int
    final_amount_cents: int | None = None
    discount_cents: int = 0


def _coupon_response(coupon: ShopCoupon) -> CouponResponse:
    return CouponResponse(
        id=str(coupon.id),
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
        valid_from=coupon.valid_from,
        valid_until=coupon.valid_until,
        max_redemptions=coupon.max_redemptions,
        redemption_count=coupon.redemption_count,
        created_at=coupon.created_at,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Endpoints
# ─────────────────────────────────────────────────────────────────────────────


@router.get("", response_model=list[CouponResponse])
async def list_coupons(
    guild_id: str,
    db: DbSession,
    _user: User = Depends(require_guild_access),
) -> list[CouponResponse]:
    """List the guild's coupons, newest first."""
    coupons = await coupon_ops.list_for_guild(db, guild_id)
    return [_coupon_response(c) for c in coupons]


@router.post("", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_coupon(
    guild_id: str,
    data: ShopCouponCreate,
    db: DbSession,
    _user: User = Depends(require_guild_access),
) -> CouponResponse:
    """Create a coupon. Codes are stored upper-case without whitespace."""
    try:
        coupon = await coupon_ops.create_coupon(db, guild_id, data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None

    await db.commit()
    return _coupon_response(coupon)


@router.delete("/{coupon_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_coupon(
    guild_id: str,
    coupon_id: uuid_pkg.UUID,
    db: DbSession,
    _user: User = Depends(require_guild_access),
) -> None:
    """Delete a coupon."""
    deleted = await coupon_ops.delete_for_guild(db, guild_id, coupon_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found")
    await db.commit()


@router.post("/preview", response_model=CouponPreviewResponse)
async def preview_coupon(
    guild_id: str,
    data: CouponPreviewRequest,
    db: DbSession,
    _current_user: CurrentUser,
) -> CouponPreviewResponse:
    """
    Show what a code would do to an item's price.

    A rejected code is a normal 200 response with valid=false.
    """
    item = await shop_item_ops.get_enabled(db, guild_id, data.item_id)
    if not item:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Shop item not found or disabled",
        )

    evaluation = await coupon_ops.evaluate(
        db, guild_id, data.code, item.price_amount_cents, datetime.now(UTC)
    )
    return CouponPreviewResponse(
        valid=evaluation.valid,
        error=evaluation.error.value if evaluation.error else None,
        original_amount_cents=item.price_amount_cents,
        final_amount_cents=evaluation.final_amount_cents,
        discount_cents=evaluation.discount_cents,
    )
