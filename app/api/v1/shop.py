"""Guild shop API: items, checkout, billing portal, buyer status, sales and payment settings."""

import logging
import uuid as uuid_pkg
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from stripe import StripeError

from app.api.deps import CurrentUser, DbSession, require_discord_id, require_guild_access
from app.config import settings
from app.domain.coupon_operations import coupon_ops
from app.domain.guild_operations import guild_ops
from app.domain.ledger_operations import ledger_ops
from app.domain.prefilled_code_operations import prefilled_code_ops
from app.domain.shop_item_operations import shop_item_ops
from app.models.shop_item import DeliveryKind, ShopItem, ShopItemCreate, ShopItemUpdate
from app.models.user import User
from app.services.stripe_service import stripe_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/guilds/{guild_id}/shop", tags=["shop"])


# ─────────────────────────────────────────────────────────────────────────────
# Request/Response Schemas
# ─────────────────────────────────────────────────────────────────────────────


class ShopItemResponse(BaseModel):
    """Shop item as shown in the store and dashboard."""

    id: str
    name: str
    description: str | None = None
    price_amount_cents: int
    currency: str
    delivery_kind: str
    discord_role_id: str | None = None
    enabled: bool
    sort_order: int
    category_id: str | None = None


class CheckoutRequest(BaseModel):
    """Start a checkout for one item, optionally with a coupon."""

    item_id: uuid_pkg.UUID
    coupon_code: str | None = None


class CheckoutResponse(BaseModel):
    url: str
    session_id: str
    amount_cents: int
    discount_cents: int = 0


class SubscriptionStatusResponse(BaseModel):
    id: str
    item_id: str
    current_period_end: datetime
    billing_reference: str | None = None


class OwnedCodeResponse(BaseModel):
    code: str
    item_id: str
    created_at: datetime
    expires_at: datetime | None = None


class DeliveredCodeResponse(BaseModel):
    code: str
    item_id: str
    delivered_at: datetime


class MyStatusResponse(BaseModel):
    """What the signed-in buyer holds in this guild."""

    owned_item_ids: list[str]
    subscriptions: list[SubscriptionStatusResponse]
    codes: list[OwnedCodeResponse]
    delivered_codes: list[DeliveredCodeResponse] = []


class PortalResponse(BaseModel):
    url: str


class SaleResponse(BaseModel):
    id: str
    buyer_discord_id: str
    item_id: str
    item_name: str | None = None
    amount_cents: int
    currency: str
    delivery_kind: str
    created_at: datetime


class PaymentSettingsResponse(BaseModel):
    """Payment settings. The secret key itself is never returned."""

    enabled: bool
    has_secret_key: bool
    encryption_enabled: bool
    updated_at: datetime | None = None


class PaymentSettingsUpdate(BaseModel):
    enabled: bool
    stripe_secret_key: str | None = Field(
        default=None,
        description="Omit to keep the stored key, empty string to clear it",
    )


def _item_response(item: ShopItem) -> ShopItemResponse:
    return ShopItemResponse(
        id=str(item.id),
        name=item.name,
        description=item.description,
        price_amount_cents=item.price_amount_cents,
        currency=item.currency,
        delivery_kind=item.delivery_kind,
        discord_role_id=item.discord_role_id,
        enabled=item.enabled,
        sort_order=item.sort_order,
        category_id=str(item.category_id) if item.category_id else None,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Items
# ─────────────────────────────────────────────────────────────────────────────


@router.get("/items", response_model=list[ShopItemResponse])
async def list_items(
    guild_id: str,
    db: DbSession,
    current_user: CurrentUser,
    include_disabled: bool = False,
    category_id: uuid_pkg.UUID | None = None,
) -> list[ShopItemResponse]:
    """
    List a guild's shop items, optionally one category only.

    Buyers see enabled items; include_disabled is reserved for users with
    dashboard access.
    """
    if include_disabled and not await guild_ops.has_access(db, guild_id, current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    items = await shop_item_ops.list_items(
        db, guild_id, include_disabled=include_disabled, category_id=category_id
    )
    return [_item_response(item) for item in items]


@router.post("/items", response_model=ShopItemResponse, status_code=status.HTTP_201_CREATED)
async def create_item(
    guild_id: str,
    data: ShopItemCreate,
    db: DbSession,
    _user: User = Depends(require_guild_access),
) -> ShopItemResponse:
    """Create a shop item."""
    try:
        item = await shop_item_ops.create_item(db, guild_id, data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None

    await db.commit()
    logger.info(f"Created shop item {item.id} in guild {guild_id}")
    return _item_response(item)


@router.get("/items/{item_id}", response_model=ShopItemResponse)
async def get_item(
    guild_id: str,
    item_id: uuid_pkg.UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> ShopItemResponse:
    """Get one item. Disabled items are only visible with dashboard access."""
    item = await shop_item_ops.get_for_guild(db, guild_id, item_id)
    if item and not item.enabled and not await guild_ops.has_access(db, guild_id, current_user):
        item = None
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shop item not found")
    return _item_response(item)


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    guild_id: str,
    item_id: uuid_pkg.UUID,
    db: DbSession,
    _user: User = Depends(require_guild_access),
) -> None:
    """Delete an item that has never been sold. Sold items can only be disabled."""
    item = await shop_item_ops.get_for_guild(db, guild_id, item_id)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shop item not found")

    try:
        await shop_item_ops.delete_item(db, item)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from None

    await db.commit()
    logger.info(f"Deleted shop item {item_id} in guild {guild_id}")


@router.patch("/items/{item_id}", response_model=ShopItemResponse)
async def update_item(
    guild_id: str,
    item_id: uuid_pkg.UUID,
    data: ShopItemUpdate,
    db: DbSession,
    _user: User = Depends(require_guild_access),
) -> ShopItemResponse:
    """Update or disable a shop item."""
    item = await shop_item_ops.get_for_guild(db, guild_id, item_id)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shop item not found")

    try:
        item = await shop_item_ops.update_item(db, item, data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None

    await db.commit()
    return _item_response(item)


# ─────────────────────────────────────────────────────────────────────────────
# Buyer Endpoints
# ─────────────────────────────────────────────────────────────────────────────


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    guild_id: str,
    data: CheckoutRequest,
    db: DbSession,
    discord_id: str = Depends(require_discord_id),
) -> CheckoutResponse:
    """
    Start a Stripe Checkout for one item.

    The coupon is evaluated here but only counted when the payment is
    confirmed, so abandoned checkouts never use up a coupon.
    """
    item = await shop_item_ops.get_enabled(db, guild_id, data.item_id)
    if not item:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Shop item not found or disabled",
        )

    if item.delivery_kind == DeliveryKind.SUBSCRIPTION.value:
        existing = await ledger_ops.get_active_subscription(
            db, guild_id, discord_id, item.id, now=datetime.now(UTC)
        )
        if existing:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You already have an active subscription for this item",
            )
    elif item.delivery_kind == DeliveryKind.PREFILLED.value:
        if await prefilled_code_ops.count_available(db, item.id) == 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This item is sold out",
            )

    api_key = await guild_ops.get_stripe_secret(db, guild_id)
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This server has not set up payments yet.",
        )

    amount_cents = item.price_amount_cents
    discount_cents = 0
    coupon_id: str | None = None
    if data.coupon_code and data.coupon_code.strip():
        evaluation = await coupon_ops.evaluate(
            db, guild_id, data.coupon_code, item.price_amount_cents, datetime.now(UTC)
        )
        if not evaluation.valid or evaluation.final_amount_cents is None:
            detail = evaluation.error.value if evaluation.error else "invalid code"
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
        amount_cents = evaluation.final_amount_cents
        discount_cents = evaluation.discount_cents
        coupon_id = str(evaluation.coupon_id)

    base_url = settings.frontend_url.rstrip("/")
    try:
        session = stripe_service.create_checkout_session(
            api_key=api_key,
            guild_id=guild_id,
            item=item,
            amount_cents=amount_cents,
            discord_id=discord_id,
            success_url=f"{base_url}/store/{guild_id}/thank-you",
            cancel_url=f"{base_url}/store/{guild_id}",
            coupon_id=coupon_id,
        )
    except StripeError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to create checkout",
        ) from None

    return CheckoutResponse(
        url=session.url,
        session_id=session.id,
        amount_cents=amount_cents,
        discount_cents=discount_cents,
    )


@router.get("/my-status", response_model=MyStatusResponse)
async def get_my_status(
    guild_id: str,
    db: DbSession,
    discord_id: str = Depends(require_discord_id),
) -> MyStatusResponse:
    """Items the buyer owns, their live subscriptions and unredeemed codes."""
    entitlements = await ledger_ops.get_entitlements(db, guild_id, discord_id)

    return MyStatusResponse(
        owned_item_ids=sorted(str(i) for i in entitlements.owned_item_ids),
        subscriptions=[
            SubscriptionStatusResponse(
                id=str(sub.id),
                item_id=str(sub.shop_item_id),
                current_period_end=sub.current_period_end,
                billing_reference=sub.billing_reference,
            )
            for sub in entitlements.active_subscriptions
        ],
        codes=[
            OwnedCodeResponse(
                code=code.code,
                item_id=str(code.shop_item_id),
                created_at=code.created_at,
                expires_at=code.expires_at,
            )
            for code in entitlements.unredeemed_codes
        ],
        delivered_codes=[
            DeliveredCodeResponse(
                code=code.code,
                item_id=str(code.shop_item_id),
                delivered_at=code.assigned_at,
            )
            for code in entitlements.delivered_codes
        ],
    )


@router.post("/portal", response_model=PortalResponse)
async def create_portal_session(
    guild_id: str,
    db: DbSession,
    discord_id: str = Depends(require_discord_id),
) -> PortalResponse:
    """
    Open the Stripe Customer Portal for the buyer's subscriptions in this
    guild, so they can update payment details or cancel.
    """
    entitlements = await ledger_ops.get_entitlements(db, guild_id, discord_id)
    billing_reference = next(
        (s.billing_reference for s in entitlements.active_subscriptions if s.billing_reference),
        None,
    )
    if not billing_reference:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No active subscription to manage",
        )

    api_key = await guild_ops.get_stripe_secret(db, guild_id)
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This server has not set up payments yet.",
        )

    base_url = settings.frontend_url.rstrip("/")
    try:
        url = stripe_service.create_portal_session(
            api_key, billing_reference, return_url=f"{base_url}/store/{guild_id}"
        )
    except StripeError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to create portal session",
        ) from None

    return PortalResponse(url=url)


# ─────────────────────────────────────────────────────────────────────────────
# Dashboard Endpoints
# ─────────────────────────────────────────────────────────────────────────────


@router.get("/sales", response_model=list[SaleResponse])
async def list_sales(
    guild_id: str,
    db: DbSession,
    limit: int = Query(default=50, ge=1, le=100),
    _user: User = Depends(require_guild_access),
) -> list[SaleResponse]:
    """Recent one-time sales, newest first."""
    orders = await ledger_ops.list_orders(db, guild_id, limit=limit)
    names = await shop_item_ops.get_names(db, {o.shop_item_id for o in orders})

    return [
        SaleResponse(
            id=str(order.id),
            buyer_discord_id=order.buyer_discord_id,
            item_id=str(order.shop_item_id),
            item_name=names.get(order.shop_item_id),
            amount_cents=order.amount_cents,
            currency=order.currency,
            delivery_kind=order.delivery_kind,
            created_at=order.created_at,
        )
        for order in orders
    ]


@router.get("/settings", response_model=PaymentSettingsResponse)
async def get_payment_settings(
    guild_id: str,
    db: DbSession,
    _user: User = Depends(require_guild_access),
) -> PaymentSettingsResponse:
    """Payment settings for the dashboard."""
    config = await guild_ops.get_stripe_config(db, guild_id)
    if config is None:
        return PaymentSettingsResponse(
            enabled=False,
            has_secret_key=False,
            encryption_enabled=settings.encryption_enabled,
        )

    return PaymentSettingsResponse(
        enabled=config.enabled,
        has_secret_key=bool(config.stripe_secret_key),
        encryption_enabled=settings.encryption_enabled,
        updated_at=config.updated_at,
    )


@router.put("/settings", response_model=PaymentSettingsResponse)
async def update_payment_settings(
    guild_id: str,
    data: PaymentSettingsUpdate,
    db: DbSession,
    current_user: User = Depends(require_guild_access),
) -> PaymentSettingsResponse:
    """Enable/disable payments and store the guild's Stripe secret key."""
    try:
        config = await guild_ops.upsert_stripe_config(
            db,
            guild_id,
            enabled=data.enabled,
            updated_by_discord_id=current_user.discord_id,
            secret_key=data.stripe_secret_key,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None

    await db.commit()
    return PaymentSettingsResponse(
        enabled=config.enabled,
        has_secret_key=bool(config.stripe_secret_key),
        encryption_enabled=settings.encryption_enabled,
        updated_at=config.updated_at,
    )
