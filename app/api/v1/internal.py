"""Internal API endpoints, protected by shared secret, not user auth.

These endpoints are called by the Discord bot, the payment webhook adapter
and cron jobs, not by human users. They bypass Supabase JWT auth and
instead validate a shared secret via the X-Internal-Secret header. The
caller supplies the Discord id it is acting for.
"""

import logging
import uuid as uuid_pkg
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.api.deps import DbSession, verify_internal_secret
from app.api.v1.redeem import RedeemResponse, redeem_for
from app.domain.coupon_operations import coupon_ops
from app.domain.ledger_operations import ledger_ops
from app.domain.shop_item_operations import shop_item_ops
from app.models.shop_item import DeliveryKind
from app.services.role_grants import role_grant_service
from app.services.scheduler import run_subscription_sweep

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(verify_internal_secret)],
)

# Billing period assumed when the provider does not report one
DEFAULT_SUBSCRIPTION_PERIOD = timedelta(days=30)


# ─────────────────────────────────────────────────────────────────────────────
# Request/Response Schemas
# ─────────────────────────────────────────────────────────────────────────────


class PaymentConfirmation(BaseModel):
    """One confirmed real-world payment, delivered exactly once per transaction_ref."""

    discord_id: str = Field(min_length=1, max_length=32)
    shop_item_id: uuid_pkg.UUID
    amount_cents: int = Field(ge=1)
    currency: str = Field(default="eur", min_length=3, max_length=3)
    provider: str = Field(default="stripe", min_length=1, max_length=30)
    transaction_ref: str = Field(min_length=1, max_length=255)
    coupon_id: uuid_pkg.UUID | None = None
    billing_reference: str | None = None
    period_end: datetime | None = None


class PaymentConfirmationResponse(BaseModel):
    status: str  # "ok" or "already_processed"
    order_id: str | None = None
    code: str | None = None
    prefilled_code: str | None = None
    pool_empty: bool = False
    subscription_id: str | None = None
    role_granted: bool | None = None


class InternalRedeemRequest(BaseModel):
    discord_id: str = Field(min_length=1, max_length=32)
    code: str


# ─────────────────────────────────────────────────────────────────────────────
# Endpoints
# ─────────────────────────────────────────────────────────────────────────────


@router.post("/guilds/{guild_id}/shop/payments", response_model=PaymentConfirmationResponse)
async def confirm_payment(
    guild_id: str,
    data: PaymentConfirmation,
    db: DbSession,
) -> PaymentConfirmationResponse:
    """
    Record a confirmed payment.

    The (guild, provider, transaction_ref) tuple is claimed first; a replay
    is acknowledged without touching the ledger. The coupon is counted and
    the role granted only for the first delivery.
    """
    item = await shop_item_ops.get_for_guild(db, guild_id, data.shop_item_id)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shop item not found")

    claimed = await ledger_ops.claim_payment(db, guild_id, data.provider, data.transaction_ref)
    if not claimed:
        return PaymentConfirmationResponse(status="already_processed")

    response = PaymentConfirmationResponse(status="ok")
    delivery_kind = DeliveryKind(item.delivery_kind)

    if delivery_kind == DeliveryKind.SUBSCRIPTION:
        period_end = data.period_end or datetime.now(UTC) + DEFAULT_SUBSCRIPTION_PERIOD
        change = await ledger_ops.record_subscription_payment(
            db,
            guild_id,
            data.discord_id,
            item.id,
            period_end=period_end,
            billing_reference=data.billing_reference,
        )
        if change.subscription:
            response.subscription_id = str(change.subscription.id)
    else:
        record = await ledger_ops.record_one_time_purchase(
            db,
            guild_id,
            data.discord_id,
            item.id,
            charged_cents=data.amount_cents,
            currency=data.currency,
            delivery_kind=delivery_kind,
        )
        response.order_id = str(record.order.id)
        if record.code:
            response.code = record.code.code
        if record.prefilled_code:
            response.prefilled_code = record.prefilled_code.code
        response.pool_empty = record.pool_empty

    if data.coupon_id:
        await coupon_ops.increment_redemptions(db, guild_id, data.coupon_id)

    await db.commit()

    if item.discord_role_id and delivery_kind in (DeliveryKind.ROLE, DeliveryKind.SUBSCRIPTION):
        outcome = await role_grant_service.grant_role(guild_id, data.discord_id, item.discord_role_id)
        response.role_granted = outcome.ok

    logger.info(
        f"Processed {data.provider} payment {data.transaction_ref} "
        f"for item {item.id} in guild {guild_id}"
    )
    return response


@router.post("/guilds/{guild_id}/redeem", response_model=RedeemResponse)
async def redeem_for_user(
    guild_id: str,
    data: InternalRedeemRequest,
    db: DbSession,
) -> RedeemResponse:
    """Redeem a code on behalf of a Discord user (bot command). Not rate limited."""
    return await redeem_for(db, guild_id, data.code, data.discord_id.strip())


@router.post("/shop/subscriptions/sweep")
async def trigger_subscription_sweep() -> dict[str, Any]:
    """
    Expire lapsed subscriptions now.

    Shares the scheduler's advisory lock, so it is a no-op while the hourly
    job is running elsewhere.
    """
    report = await run_subscription_sweep()
    if report is None:
        return {"status": "skipped"}
    return {"status": "ok", **report}
