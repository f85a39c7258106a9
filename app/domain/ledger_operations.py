"""Redemption and entitlement ledger for guild shops.

The ledger is the only writer of orders, code redemptions and subscription
state. Every state transition that can race (code unused -> used,
subscription active -> ended) is a single conditional UPDATE through
BaseOperations.compare_and_set, never a read-then-write pair.
"""

import logging
import secrets
import uuid as uuid_pkg
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.domain.base_operations import BaseOperations, store_operation
from app.domain.prefilled_code_operations import prefilled_code_ops
from app.domain.pricing import normalize_code
from app.models.audit_log import ShopAuditAction, ShopAuditLog
from app.models.order import ProcessedPayment, ShopOrder
from app.models.prefilled_code import ShopPrefilledCode
from app.models.redemption_code import RedemptionCode
from app.models.shop_item import DeliveryKind
from app.models.subscription import ShopSubscription, ShopSubscriptionStatus
from app.services.role_grants import EffectOutcome, role_grant_service

logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # No I, O, 0, 1 (confusing)
CODE_GROUPS = 3
CODE_GROUP_LENGTH = 4
MAX_CODE_ATTEMPTS = 5
MAX_LISTING_LIMIT = 100
SWEEP_BATCH_SIZE = 500


def generate_shop_code() -> str:
    """
    Generate a redemption code in format: XXXX-XXXX-XXXX

    Drawn from `secrets` since the code alone is enough to claim the item.
    """
    groups = [
        "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_GROUP_LENGTH))
        for _ in range(CODE_GROUPS)
    ]
    return "-".join(groups)


class LedgerError(str, Enum):
    """User-facing ledger failures. Returned in results, never raised."""

    CODE_NOT_FOUND = "Code not found"
    ALREADY_REDEEMED = "This code has already been used"
    CODE_EXPIRED = "This code has expired"
    SUBSCRIPTION_NOT_FOUND = "Subscription not found"
    SUBSCRIPTION_NOT_ACTIVE = "Subscription is not active"


@dataclass
class PurchaseRecord:
    """Rows written for one confirmed one-time purchase."""

    order: ShopOrder
    code: RedemptionCode | None = None
    prefilled_code: ShopPrefilledCode | None = None
    pool_empty: bool = False


@dataclass
class RedemptionResult:
    """Outcome of a redemption attempt."""

    ok: bool
    error: LedgerError | None = None
    code: RedemptionCode | None = None
    shop_item_id: uuid_pkg.UUID | None = None
    shop_item_name: str | None = None
    role_id: str | None = None


@dataclass
class SubscriptionChange:
    """Outcome of a subscription write."""

    ok: bool
    error: LedgerError | None = None
    subscription: ShopSubscription | None = None
    started: bool = False
    retraction: EffectOutcome | None = None


@dataclass
class Entitlements:
    """What a buyer currently holds in one guild."""

    owned_item_ids: set[uuid_pkg.UUID] = field(default_factory=set)
    active_subscriptions: list[ShopSubscription] = field(default_factory=list)
    unredeemed_codes: list[RedemptionCode] = field(default_factory=list)
    delivered_codes: list[ShopPrefilledCode] = field(default_factory=list)


@dataclass
class SweepReport:
    """Summary of one expiry sweep."""

    expired: int = 0
    retractions_failed: int = 0
    subscription_ids: list[uuid_pkg.UUID] = field(default_factory=list)


class LedgerOperations:
    """Orders, redemption codes and subscription state for guild shops."""

    def __init__(self) -> None:
        self.orders = BaseOperations(ShopOrder)
        self.codes = BaseOperations(RedemptionCode)
        self.subscriptions = BaseOperations(ShopSubscription)

    # ─────────────────────────────────────────────────────────────────────────
    # Audit
    # ─────────────────────────────────────────────────────────────────────────

    async def log_event(
        self,
        db: AsyncSession,
        guild_id: str,
        action: ShopAuditAction,
        actor_discord_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> ShopAuditLog:
        """Append an audit row for a ledger transition."""
        event = ShopAuditLog(
            guild_id=guild_id,
            action=action.value,
            actor_discord_id=actor_discord_id,
            details=details,
        )
        db.add(event)
        await db.flush()
        return event

    # ─────────────────────────────────────────────────────────────────────────
    # Purchases
    # ─────────────────────────────────────────────────────────────────────────

    @store_operation
    async def claim_payment(
        self,
        db: AsyncSession,
        guild_id: str,
        provider: str,
        transaction_ref: str,
    ) -> bool:
        """
        Claim a payment confirmation for processing.

        Returns False if this (guild, provider, transaction_ref) was already
        claimed, in which case the caller must not record anything.
        """
        statement = (
            insert(ProcessedPayment)
            .values(guild_id=guild_id, provider=provider, transaction_ref=transaction_ref)
            .on_conflict_do_nothing(constraint="uq_guild_shop_payment_ref")
            .returning(ProcessedPayment.id)
        )
        result = await db.execute(statement)
        claimed = result.scalar_one_or_none() is not None
        if not claimed:
            logger.info(f"Duplicate {provider} payment {transaction_ref} for guild {guild_id}")
        return claimed

    @store_operation
    async def _code_exists(self, db: AsyncSession, guild_id: str, code: str) -> bool:
        statement = select(RedemptionCode.id).where(
            RedemptionCode.guild_id == guild_id,  # type: ignore[arg-type]
            RedemptionCode.code == code,  # type: ignore[arg-type]
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none() is not None

    async def mint_code(
        self,
        db: AsyncSession,
        guild_id: str,
        shop_item_id: uuid_pkg.UUID,
        buyer_discord_id: str | None = None,
        order_id: uuid_pkg.UUID | None = None,
        expires_at: datetime | None = None,
    ) -> RedemptionCode:
        """Create one unused redemption code for an item."""
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_shop_code()
            if not await self._code_exists(db, guild_id, code):
                break
        else:
            raise RuntimeError("Could not generate a unique redemption code")

        return await self.codes.create(
            db,
            obj_in={
                "code": code,
                "shop_item_id": shop_item_id,
                "order_id": order_id,
                "buyer_discord_id": buyer_discord_id,
                "expires_at": expires_at,
            },
            guild_id=guild_id,
        )

    async def record_one_time_purchase(
        self,
        db: AsyncSession,
        guild_id: str,
        buyer_discord_id: str,
        shop_item_id: uuid_pkg.UUID,
        charged_cents: int,
        currency: str,
        delivery_kind: DeliveryKind,
        code_expires_at: datetime | None = None,
    ) -> PurchaseRecord:
        """
        Record a confirmed one-time purchase.

        Appends the order and, for code delivery, exactly one unused code
        bound to the buyer and item. Prefilled delivery claims one code from
        the item's pool instead. Does not deduplicate: call claim_payment
        first and only proceed when it returns True.
        """
        if charged_cents < 1:
            raise ValueError("charged_cents must be a positive number")
        if delivery_kind == DeliveryKind.SUBSCRIPTION:
            raise ValueError("Subscription items are recorded with record_subscription_payment")

        order = await self.orders.create(
            db,
            obj_in={
                "buyer_discord_id": buyer_discord_id,
                "shop_item_id": shop_item_id,
                "amount_cents": charged_cents,
                "currency": currency.lower(),
                "delivery_kind": delivery_kind.value,
            },
            guild_id=guild_id,
        )
        await self.log_event(
            db,
            guild_id,
            ShopAuditAction.PURCHASE_RECORDED,
            actor_discord_id=buyer_discord_id,
            details={
                "order_id": str(order.id),
                "shop_item_id": str(shop_item_id),
                "amount_cents": charged_cents,
                "currency": order.currency,
            },
        )

        code = None
        if delivery_kind == DeliveryKind.CODE:
            code = await self.mint_code(
                db,
                guild_id,
                shop_item_id,
                buyer_discord_id=buyer_discord_id,
                order_id=order.id,
                expires_at=code_expires_at,
            )
            await self.log_event(
                db,
                guild_id,
                ShopAuditAction.CODE_MINTED,
                actor_discord_id=buyer_discord_id,
                details={"code_id": str(code.id), "order_id": str(order.id)},
            )

        record = PurchaseRecord(order=order, code=code)
        if delivery_kind == DeliveryKind.PREFILLED:
            await self._deliver_prefilled(db, record, buyer_discord_id)

        logger.info(
            f"Recorded {delivery_kind.value} purchase of item {shop_item_id} "
            f"by {buyer_discord_id} in guild {guild_id}"
        )
        return record

    async def _deliver_prefilled(
        self,
        db: AsyncSession,
        record: PurchaseRecord,
        buyer_discord_id: str,
    ) -> None:
        """
        Hand the buyer the next code from the item's pool.

        The order stands even when the pool has run dry; the pool_empty
        audit row is what tells the guild to deliver by hand.
        """
        order = record.order
        prefilled = await prefilled_code_ops.claim_next(
            db,
            order.guild_id,
            order.shop_item_id,
            buyer_discord_id,
            order_id=order.id,
        )
        if prefilled is None:
            record.pool_empty = True
            logger.warning(
                f"Prefilled pool for item {order.shop_item_id} is empty, "
                f"order {order.id} needs manual delivery"
            )
            await self.log_event(
                db,
                order.guild_id,
                ShopAuditAction.PREFILLED_POOL_EMPTY,
                actor_discord_id=buyer_discord_id,
                details={"order_id": str(order.id), "shop_item_id": str(order.shop_item_id)},
            )
            return

        record.prefilled_code = prefilled
        await self.log_event(
            db,
            order.guild_id,
            ShopAuditAction.PREFILLED_CODE_DELIVERED,
            actor_discord_id=buyer_discord_id,
            details={"prefilled_code_id": str(prefilled.id), "order_id": str(order.id)},
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Redemption
    # ─────────────────────────────────────────────────────────────────────────

    @store_operation
    async def get_code(
        self,
        db: AsyncSession,
        guild_id: str,
        raw_code: str,
    ) -> RedemptionCode | None:
        """Look up a code (with its item) by user-supplied text."""
        code = normalize_code(raw_code)
        if not code:
            return None

        statement = (
            select(RedemptionCode)
            .where(
                RedemptionCode.guild_id == guild_id,  # type: ignore[arg-type]
                RedemptionCode.code == code,  # type: ignore[arg-type]
            )
            .options(selectinload(RedemptionCode.shop_item))  # type: ignore[arg-type]
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def redeem_code(
        self,
        db: AsyncSession,
        guild_id: str,
        raw_code: str,
        redeemer_discord_id: str,
        now: datetime | None = None,
    ) -> RedemptionResult:
        """
        Redeem a code at most once.

        The unused -> used write only lands where redeemed_at is still NULL,
        so of two concurrent attempts exactly one succeeds and the other
        gets ALREADY_REDEEMED.
        """
        now = now or datetime.now(UTC)

        code = await self.get_code(db, guild_id, raw_code)
        if code is None:
            return RedemptionResult(ok=False, error=LedgerError.CODE_NOT_FOUND)
        if code.is_redeemed:
            return RedemptionResult(ok=False, error=LedgerError.ALREADY_REDEEMED)
        if code.expires_at is not None and _as_utc(code.expires_at) < now:
            return RedemptionResult(ok=False, error=LedgerError.CODE_EXPIRED)

        won = await self.codes.compare_and_set(
            db,
            code.id,
            expected={"redeemed_at": None},
            values={"redeemed_at": now, "redeemed_by_discord_id": redeemer_discord_id},
        )
        if not won:
            logger.info(f"Lost redemption race for code {code.id} in guild {guild_id}")
            return RedemptionResult(ok=False, error=LedgerError.ALREADY_REDEEMED)

        await db.refresh(code, attribute_names=["redeemed_at", "redeemed_by_discord_id"])
        await self.log_event(
            db,
            guild_id,
            ShopAuditAction.CODE_REDEEMED,
            actor_discord_id=redeemer_discord_id,
            details={"code_id": str(code.id), "shop_item_id": str(code.shop_item_id)},
        )

        item = code.shop_item
        return RedemptionResult(
            ok=True,
            code=code,
            shop_item_id=code.shop_item_id,
            shop_item_name=item.name if item else None,
            role_id=item.discord_role_id if item else None,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Entitlements
    # ─────────────────────────────────────────────────────────────────────────

    @store_operation
    async def get_entitlements(
        self,
        db: AsyncSession,
        guild_id: str,
        buyer_discord_id: str,
        now: datetime | None = None,
    ) -> Entitlements:
        """
        What the buyer holds in this guild.

        Owned items are the union of purchased and redeemed items. Active
        subscriptions whose period already ended are left out even before
        the sweep marks them expired.
        """
        now = now or datetime.now(UTC)

        orders_result = await db.execute(
            select(ShopOrder.shop_item_id).where(
                ShopOrder.guild_id == guild_id,  # type: ignore[arg-type]
                ShopOrder.buyer_discord_id == buyer_discord_id,  # type: ignore[arg-type]
            )
        )
        redeemed_result = await db.execute(
            select(RedemptionCode.shop_item_id).where(
                RedemptionCode.guild_id == guild_id,  # type: ignore[arg-type]
                RedemptionCode.redeemed_by_discord_id == buyer_discord_id,  # type: ignore[arg-type]
                RedemptionCode.redeemed_at.is_not(None),  # type: ignore[union-attr]
            )
        )
        subs_result = await db.execute(
            select(ShopSubscription)
            .where(
                ShopSubscription.guild_id == guild_id,  # type: ignore[arg-type]
                ShopSubscription.buyer_discord_id == buyer_discord_id,  # type: ignore[arg-type]
                ShopSubscription.status == ShopSubscriptionStatus.ACTIVE.value,  # type: ignore[arg-type]
                ShopSubscription.current_period_end > now,  # type: ignore[arg-type]
            )
            .order_by(ShopSubscription.current_period_end.asc())  # type: ignore[attr-defined]
        )
        codes_result = await db.execute(
            select(RedemptionCode)
            .where(
                RedemptionCode.guild_id == guild_id,  # type: ignore[arg-type]
                RedemptionCode.buyer_discord_id == buyer_discord_id,  # type: ignore[arg-type]
                RedemptionCode.redeemed_at.is_(None),  # type: ignore[union-attr]
            )
            .order_by(RedemptionCode.created_at.desc())  # type: ignore[attr-defined]
        )

        delivered = await prefilled_code_ops.list_delivered(db, guild_id, buyer_discord_id)

        owned = set(orders_result.scalars().all()) | set(redeemed_result.scalars().all())
        return Entitlements(
            owned_item_ids=owned,
            active_subscriptions=list(subs_result.scalars().all()),
            unredeemed_codes=list(codes_result.scalars().all()),
            delivered_codes=delivered,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Subscriptions
    # ─────────────────────────────────────────────────────────────────────────

    @store_operation
    async def get_subscription(
        self,
        db: AsyncSession,
        guild_id: str,
        subscription_id: uuid_pkg.UUID,
    ) -> ShopSubscription | None:
        """Get a subscription (with its item), scoped to guild."""
        statement = (
            select(ShopSubscription)
            .where(
                ShopSubscription.guild_id == guild_id,  # type: ignore[arg-type]
                ShopSubscription.id == subscription_id,  # type: ignore[arg-type]
            )
            .options(selectinload(ShopSubscription.shop_item))  # type: ignore[arg-type]
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    @store_operation
    async def get_active_subscription(
        self,
        db: AsyncSession,
        guild_id: str,
        buyer_discord_id: str,
        shop_item_id: uuid_pkg.UUID,
        now: datetime | None = None,
    ) -> ShopSubscription | None:
        """
        The one active row for (guild, buyer, item), if any.

        With `now`, a row whose period already ended is treated as lapsed and
        not returned. Without it the row is returned until the sweep expires
        it, which is what renewals need: a late payment extends that row
        rather than starting a second active one.
        """
        statement = select(ShopSubscription).where(
            ShopSubscription.guild_id == guild_id,  # type: ignore[arg-type]
            ShopSubscription.buyer_discord_id == buyer_discord_id,  # type: ignore[arg-type]
            ShopSubscription.shop_item_id == shop_item_id,  # type: ignore[arg-type]
            ShopSubscription.status == ShopSubscriptionStatus.ACTIVE.value,  # type: ignore[arg-type]
        )
        if now is not None:
            statement = statement.where(
                ShopSubscription.current_period_end > now  # type: ignore[arg-type]
            )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def record_subscription_payment(
        self,
        db: AsyncSession,
        guild_id: str,
        buyer_discord_id: str,
        shop_item_id: uuid_pkg.UUID,
        period_end: datetime,
        billing_reference: str | None = None,
    ) -> SubscriptionChange:
        """
        Record a successful subscription payment.

        The first payment starts an active row; later payments extend the
        active row's period. Periods never move backwards.
        """
        subscription = await self.get_active_subscription(
            db, guild_id, buyer_discord_id, shop_item_id
        )

        if subscription is None:
            subscription = await self.subscriptions.create(
                db,
                obj_in={
                    "buyer_discord_id": buyer_discord_id,
                    "shop_item_id": shop_item_id,
                    "billing_reference": billing_reference,
                    "status": ShopSubscriptionStatus.ACTIVE.value,
                    "current_period_end": period_end,
                },
                guild_id=guild_id,
            )
            await self.log_event(
                db,
                guild_id,
                ShopAuditAction.SUBSCRIPTION_STARTED,
                actor_discord_id=buyer_discord_id,
                details={
                    "subscription_id": str(subscription.id),
                    "shop_item_id": str(shop_item_id),
                    "current_period_end": period_end.isoformat(),
                },
            )
            logger.info(f"Started subscription {subscription.id} in guild {guild_id}")
            return SubscriptionChange(ok=True, subscription=subscription, started=True)

        previous_end = subscription.current_period_end
        updates: dict[str, Any] = {"current_period_end": max(_as_utc(previous_end), _as_utc(period_end))}
        if billing_reference:
            updates["billing_reference"] = billing_reference
        subscription = await self.subscriptions.update(db, subscription, updates)

        await self.log_event(
            db,
            guild_id,
            ShopAuditAction.SUBSCRIPTION_RENEWED,
            actor_discord_id=buyer_discord_id,
            details={
                "subscription_id": str(subscription.id),
                "previous_period_end": previous_end.isoformat(),
                "current_period_end": subscription.current_period_end.isoformat(),
            },
        )
        return SubscriptionChange(ok=True, subscription=subscription)

    async def _end_subscription(
        self,
        db: AsyncSession,
        guild_id: str,
        subscription_id: uuid_pkg.UUID,
        actor_discord_id: str | None,
        action: ShopAuditAction,
        owner_discord_id: str | None = None,
        now: datetime | None = None,
    ) -> SubscriptionChange:
        now = now or datetime.now(UTC)

        subscription = await self.get_subscription(db, guild_id, subscription_id)
        if subscription is None:
            return SubscriptionChange(ok=False, error=LedgerError.SUBSCRIPTION_NOT_FOUND)
        # Buyers only see their own rows
        if owner_discord_id is not None and subscription.buyer_discord_id != owner_discord_id:
            return SubscriptionChange(ok=False, error=LedgerError.SUBSCRIPTION_NOT_FOUND)
        if not subscription.is_active:
            return SubscriptionChange(
                ok=False, error=LedgerError.SUBSCRIPTION_NOT_ACTIVE, subscription=subscription
            )

        won = await self.subscriptions.compare_and_set(
            db,
            subscription.id,
            expected={"status": ShopSubscriptionStatus.ACTIVE.value},
            values={
                "status": ShopSubscriptionStatus.CANCELLED.value,
                "ended_at": now,
                "ended_by_discord_id": actor_discord_id,
                "updated_at": now,
            },
        )
        if not won:
            return SubscriptionChange(
                ok=False, error=LedgerError.SUBSCRIPTION_NOT_ACTIVE, subscription=subscription
            )

        await db.refresh(
            subscription,
            attribute_names=["status", "ended_at", "ended_by_discord_id", "updated_at"],
        )
        await self.log_event(
            db,
            guild_id,
            action,
            actor_discord_id=actor_discord_id,
            details={
                "subscription_id": str(subscription.id),
                "buyer_discord_id": subscription.buyer_discord_id,
            },
        )
        logger.info(f"Subscription {subscription.id} in guild {guild_id}: {action.value}")

        retraction = await self._retract_role(subscription)
        return SubscriptionChange(ok=True, subscription=subscription, retraction=retraction)

    async def revoke_subscription(
        self,
        db: AsyncSession,
        guild_id: str,
        subscription_id: uuid_pkg.UUID,
        actor_discord_id: str | None,
        now: datetime | None = None,
    ) -> SubscriptionChange:
        """
        Admin revoke: active -> cancelled, then retract the item's role.

        A failed retraction is logged on the result and does not undo the
        state change.
        """
        return await self._end_subscription(
            db,
            guild_id,
            subscription_id,
            actor_discord_id,
            ShopAuditAction.SUBSCRIPTION_REVOKED,
            now=now,
        )

    async def cancel_subscription(
        self,
        db: AsyncSession,
        guild_id: str,
        subscription_id: uuid_pkg.UUID,
        buyer_discord_id: str,
        now: datetime | None = None,
    ) -> SubscriptionChange:
        """Buyer self-service cancel of their own active subscription."""
        return await self._end_subscription(
            db,
            guild_id,
            subscription_id,
            buyer_discord_id,
            ShopAuditAction.SUBSCRIPTION_CANCELLED,
            owner_discord_id=buyer_discord_id,
            now=now,
        )

    async def expire_lapsed_subscriptions(
        self,
        db: AsyncSession,
        now: datetime | None = None,
    ) -> SweepReport:
        """
        Move active subscriptions whose period has ended to expired.

        Runs across all guilds. Each row is ended with its own conditional
        update, so a concurrent cancel simply wins and the row is skipped.
        """
        now = now or datetime.now(UTC)
        report = SweepReport()

        lapsed = await self._list_lapsed(db, now)
        for subscription in lapsed:
            won = await self.subscriptions.compare_and_set(
                db,
                subscription.id,
                expected={"status": ShopSubscriptionStatus.ACTIVE.value},
                values={
                    "status": ShopSubscriptionStatus.EXPIRED.value,
                    "ended_at": now,
                    "updated_at": now,
                },
            )
            if not won:
                continue

            await self.log_event(
                db,
                subscription.guild_id,
                ShopAuditAction.SUBSCRIPTION_EXPIRED,
                details={
                    "subscription_id": str(subscription.id),
                    "buyer_discord_id": subscription.buyer_discord_id,
                    "current_period_end": subscription.current_period_end.isoformat(),
                },
            )
            report.expired += 1
            report.subscription_ids.append(subscription.id)

            retraction = await self._retract_role(subscription)
            if retraction is not None and not retraction.ok:
                report.retractions_failed += 1

        if report.expired:
            logger.info(
                f"Expired {report.expired} lapsed subscription(s), "
                f"{report.retractions_failed} role retraction(s) failed"
            )
        return report

    @store_operation
    async def _list_lapsed(self, db: AsyncSession, now: datetime) -> list[ShopSubscription]:
        statement = (
            select(ShopSubscription)
            .where(
                ShopSubscription.status == ShopSubscriptionStatus.ACTIVE.value,  # type: ignore[arg-type]
                ShopSubscription.current_period_end <= now,  # type: ignore[arg-type]
            )
            .options(selectinload(ShopSubscription.shop_item))  # type: ignore[arg-type]
            .order_by(ShopSubscription.current_period_end.asc())  # type: ignore[attr-defined]
            .limit(SWEEP_BATCH_SIZE)
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def _retract_role(self, subscription: ShopSubscription) -> EffectOutcome | None:
        item = subscription.shop_item
        if item is None or not item.discord_role_id:
            return None
        return await role_grant_service.revoke_role(
            subscription.guild_id, subscription.buyer_discord_id, item.discord_role_id
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Listings
    # ─────────────────────────────────────────────────────────────────────────

    @store_operation
    async def list_orders(
        self,
        db: AsyncSession,
        guild_id: str,
        limit: int = 50,
    ) -> list[ShopOrder]:
        """Recent orders, newest first."""
        limit = max(1, min(limit, MAX_LISTING_LIMIT))
        statement = (
            select(ShopOrder)
            .where(ShopOrder.guild_id == guild_id)  # type: ignore[arg-type]
            .order_by(ShopOrder.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    @store_operation
    async def list_subscriptions(
        self,
        db: AsyncSession,
        guild_id: str,
        status: ShopSubscriptionStatus | None = ShopSubscriptionStatus.ACTIVE,
        limit: int = 100,
    ) -> list[ShopSubscription]:
        """Subscriptions for a guild, optionally filtered by status (None = all)."""
        limit = max(1, min(limit, MAX_LISTING_LIMIT))
        statement = select(ShopSubscription).where(
            ShopSubscription.guild_id == guild_id  # type: ignore[arg-type]
        )
        if status is not None:
            statement = statement.where(
                ShopSubscription.status == status.value  # type: ignore[arg-type]
            )
        statement = statement.order_by(
            ShopSubscription.created_at.desc()  # type: ignore[attr-defined]
        ).limit(limit)
        result = await db.execute(statement)
        return list(result.scalars().all())


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


# Singleton instance
ledger_ops = LedgerOperations()
