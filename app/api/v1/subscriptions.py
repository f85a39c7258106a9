"""Guild shop subscription API: dashboard listing, admin revoke, buyer cancel."""

import logging
import uuid as uuid_pkg
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import DbSession, require_discord_id, require_guild_access
from app.domain.guild_operations import guild_ops
from app.domain.ledger_operations import LedgerError, SubscriptionChange, ledger_ops
from app.domain.shop_item_operations import shop_item_ops
from app.models.subscription import ShopSubscription, ShopSubscriptionStatus
from app.models.user import User
from app.services.stripe_service import stripe_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/guilds/{guild_id}/shop/subscriptions", tags=["shop"])


# ─────────────────────────────────────────────────────────────────────────────
# Request/Response Schemas
# ─────────────────────────────────────────────────────────────────────────────


class ShopSubscriptionResponse(BaseModel):
    id: str
    buyer_discord_id: str
    item_id: str
    item_name: str | None = None
    status: str
    billing_reference: str | None = None
    current_period_end: datetime
    ended_at: datetime | None = None
    ended_by_discord_id: str | None = None
    created_at: datetime


class SubscriptionActionResponse(BaseModel):
    success: bool
    subscription: ShopSubscriptionResponse
    role_retracted: bool | None = None


def _subscription_response(
    sub: ShopSubscription,
    item_name: str | None = None,
) -> ShopSubscriptionResponse:
    return ShopSubscriptionResponse(
        id=str(sub.id),
        buyer_discord_id=sub.buyer_discord_id,
        item_id=str(sub.shop_item_id),
        item_name=item_name,
        status=sub.status,
        billing_reference=sub.billing_reference,
        current_period_end=sub.current_period_end,
        ended_at=sub.ended_at,
        ended_by_discord_id=sub.ended_by_discord_id,
        created_at=sub.created_at,
    )


def _raise_for_error(change: SubscriptionChange) -> None:
    if change.error == LedgerError.SUBSCRIPTION_NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=change.error.value)
    if change.error is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=change.error.value)


async def _action_response(
    db: AsyncSession,
    guild_id: str,
    change: SubscriptionChange,
) -> SubscriptionActionResponse:
    """Commit the ended subscription, then stop billing on the provider side."""
    await db.commit()

    sub = change.subscription
    assert sub is not None
    if sub.billing_reference:
        api_key = await guild_ops.get_stripe_secret(db, guild_id)
        if api_key:
            stripe_service.cancel_subscription(api_key, sub.billing_reference)

    item_name = sub.shop_item.name if sub.shop_item else None
    return SubscriptionActionResponse(
        success=True,
        subscription=_subscription_response(sub, item_name),
        role_retracted=change.retraction.ok if change.retraction else None,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Endpoints
# ─────────────────────────────────────────────────────────────────────────────


@router.get("", response_model=list[ShopSubscriptionResponse])
async def list_subscriptions(
    guild_id: str,
    db: DbSession,
    status_filter: Literal["active", "cancelled", "expired", "all"] = Query(
        default="active", alias="status"
    ),
    _user: User = Depends(require_guild_access),
) -> list[ShopSubscriptionResponse]:
    """List subscriptions for the dashboard, filtered by status."""
    status_value = None if status_filter == "all" else ShopSubscriptionStatus(status_filter)
    subs = await ledger_ops.list_subscriptions(db, guild_id, status=status_value)
    names = await shop_item_ops.get_names(db, {s.shop_item_id for s in subs})
    return [_subscription_response(s, names.get(s.shop_item_id)) for s in subs]


@router.post("/{subscription_id}/revoke", response_model=SubscriptionActionResponse)
async def revoke_subscription(
    guild_id: str,
    subscription_id: uuid_pkg.UUID,
    db: DbSession,
    current_user: User = Depends(require_guild_access),
) -> SubscriptionActionResponse:
    """Admin: end an active subscription and retract its role."""
    change = await ledger_ops.revoke_subscription(
        db, guild_id, subscription_id, actor_discord_id=current_user.discord_id
    )
    _raise_for_error(change)
    return await _action_response(db, guild_id, change)


@router.post("/{subscription_id}/cancel", response_model=SubscriptionActionResponse)
async def cancel_own_subscription(
    guild_id: str,
    subscription_id: uuid_pkg.UUID,
    db: DbSession,
    discord_id: str = Depends(require_discord_id),
) -> SubscriptionActionResponse:
    """Buyer: cancel your own active subscription."""
    change = await ledger_ops.cancel_subscription(db, guild_id, subscription_id, discord_id)
    _raise_for_error(change)
    return await _action_response(db, guild_id, change)
