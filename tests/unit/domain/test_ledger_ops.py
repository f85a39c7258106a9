"""Unit tests for LedgerOperations: purchases, redemption, entitlements, subscriptions.

All DB calls are mocked. Role grants/retractions go through the autouse
mock_external_services fixture unless a test patches them itself.
"""

import re
import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from app.domain.ledger_operations import (
    CODE_ALPHABET,
    LedgerError,
    LedgerOperations,
    generate_shop_code,
)
from app.domain.prefilled_code_operations import prefilled_code_ops
from app.models.audit_log import ShopAuditAction
from app.models.shop_item import DeliveryKind
from app.services.role_grants import EffectOutcome, role_grant_service

from tests.helpers.mock_factories import (
    BUYER_DISCORD_ID,
    GUILD_ID,
    OWNER_DISCORD_ID,
    make_mock_order,
    make_mock_prefilled_code,
    make_mock_redemption_code,
    make_mock_shop_item,
    make_mock_shop_subscription,
    mock_scalar_result,
    mock_scalars_result,
)

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)


class TestGenerateShopCode:
    def test_format(self):
        code = generate_shop_code()
        assert re.fullmatch(r"[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}", code)

    def test_avoids_confusable_characters(self):
        chars = set("".join(generate_shop_code() for _ in range(50)).replace("-", ""))
        assert chars <= set(CODE_ALPHABET)
        assert not chars & {"I", "O", "0", "1"}


# ─────────────────────────────────────────────────────────────────────────────
# Purchases
# ─────────────────────────────────────────────────────────────────────────────


class TestClaimPayment:
    def setup_method(self):
        self.ops = LedgerOperations()
        self.db = AsyncMock()

    @pytest.mark.asyncio
    async def test_first_delivery_is_claimed(self):
        self.db.execute = AsyncMock(return_value=mock_scalar_result(uuid.uuid4()))
        assert await self.ops.claim_payment(self.db, GUILD_ID, "stripe", "pi_1") is True

    @pytest.mark.asyncio
    async def test_replay_is_not_claimed(self):
        self.db.execute = AsyncMock(return_value=mock_scalar_result(None))
        assert await self.ops.claim_payment(self.db, GUILD_ID, "stripe", "pi_1") is False


class TestMintCode:
    def setup_method(self):
        self.ops = LedgerOperations()
        self.db = AsyncMock()

    @pytest.mark.asyncio
    async def test_retries_on_collision(self):
        item_id = uuid.uuid4()
        with (
            patch.object(self.ops, "_code_exists", AsyncMock(side_effect=[True, False])),
            patch.object(self.ops.codes, "create", AsyncMock()) as mock_create,
        ):
            await self.ops.mint_code(self.db, GUILD_ID, item_id, buyer_discord_id=BUYER_DISCORD_ID)

        obj_in = mock_create.call_args.kwargs["obj_in"]
        assert obj_in["shop_item_id"] == item_id
        assert obj_in["buyer_discord_id"] == BUYER_DISCORD_ID
        assert "redeemed_at" not in obj_in

    @pytest.mark.asyncio
    async def test_gives_up_after_repeated_collisions(self):
        with patch.object(self.ops, "_code_exists", AsyncMock(return_value=True)):
            with pytest.raises(RuntimeError, match="unique redemption code"):
                await self.ops.mint_code(self.db, GUILD_ID, uuid.uuid4())


class TestRecordOneTimePurchase:
    def setup_method(self):
        self.ops = LedgerOperations()
        self.db = AsyncMock()
        self.item_id = uuid.uuid4()
        self.order = make_mock_order(shop_item_id=self.item_id)

    @pytest.mark.asyncio
    async def test_role_purchase_writes_order_only(self):
        with (
            patch.object(self.ops.orders, "create", AsyncMock(return_value=self.order)) as mock_create,
            patch.object(self.ops, "mint_code", AsyncMock()) as mock_mint,
            patch.object(self.ops, "log_event", AsyncMock()) as mock_log,
        ):
            record = await self.ops.record_one_time_purchase(
                self.db, GUILD_ID, BUYER_DISCORD_ID, self.item_id, 800, "EUR", DeliveryKind.ROLE
            )

        assert record.order == self.order
        assert record.code is None
        assert mock_create.call_args.kwargs["obj_in"]["amount_cents"] == 800
        assert mock_create.call_args.kwargs["obj_in"]["currency"] == "eur"
        mock_mint.assert_not_called()
        assert mock_log.call_args[0][2] == ShopAuditAction.PURCHASE_RECORDED

    @pytest.mark.asyncio
    async def test_code_purchase_mints_one_code_for_buyer(self):
        code = make_mock_redemption_code(shop_item_id=self.item_id)
        with (
            patch.object(self.ops.orders, "create", AsyncMock(return_value=self.order)),
            patch.object(self.ops, "mint_code", AsyncMock(return_value=code)) as mock_mint,
            patch.object(self.ops, "log_event", AsyncMock()) as mock_log,
        ):
            record = await self.ops.record_one_time_purchase(
                self.db, GUILD_ID, BUYER_DISCORD_ID, self.item_id, 1000, "eur", DeliveryKind.CODE
            )

        assert record.code == code
        mock_mint.assert_awaited_once()
        assert mock_mint.call_args.kwargs["buyer_discord_id"] == BUYER_DISCORD_ID
        assert mock_mint.call_args.kwargs["order_id"] == self.order.id
        actions = [c[0][2] for c in mock_log.call_args_list]
        assert actions == [ShopAuditAction.PURCHASE_RECORDED, ShopAuditAction.CODE_MINTED]

    @pytest.mark.asyncio
    async def test_prefilled_purchase_claims_pool_code(self):
        pooled = make_mock_prefilled_code(shop_item_id=self.item_id)
        with (
            patch.object(self.ops.orders, "create", AsyncMock(return_value=self.order)),
            patch.object(self.ops, "mint_code", AsyncMock()) as mock_mint,
            patch.object(
                prefilled_code_ops, "claim_next", AsyncMock(return_value=pooled)
            ) as mock_claim,
            patch.object(self.ops, "log_event", AsyncMock()) as mock_log,
        ):
            record = await self.ops.record_one_time_purchase(
                self.db, GUILD_ID, BUYER_DISCORD_ID, self.item_id, 500, "eur", DeliveryKind.PREFILLED
            )

        assert record.prefilled_code == pooled
        assert record.pool_empty is False
        assert record.code is None
        mock_mint.assert_not_called()
        assert mock_claim.call_args[0][3] == BUYER_DISCORD_ID
        assert mock_claim.call_args.kwargs["order_id"] == self.order.id
        actions = [c[0][2] for c in mock_log.call_args_list]
        assert actions == [
            ShopAuditAction.PURCHASE_RECORDED,
            ShopAuditAction.PREFILLED_CODE_DELIVERED,
        ]

    @pytest.mark.asyncio
    async def test_prefilled_purchase_with_empty_pool_keeps_order(self):
        with (
            patch.object(self.ops.orders, "create", AsyncMock(return_value=self.order)),
            patch.object(prefilled_code_ops, "claim_next", AsyncMock(return_value=None)),
            patch.object(self.ops, "log_event", AsyncMock()) as mock_log,
        ):
            record = await self.ops.record_one_time_purchase(
                self.db, GUILD_ID, BUYER_DISCORD_ID, self.item_id, 500, "eur", DeliveryKind.PREFILLED
            )

        assert record.order == self.order
        assert record.prefilled_code is None
        assert record.pool_empty is True
        assert mock_log.call_args[0][2] == ShopAuditAction.PREFILLED_POOL_EMPTY

    @pytest.mark.asyncio
    async def test_rejects_zero_charge(self):
        with pytest.raises(ValueError, match="positive"):
            await self.ops.record_one_time_purchase(
                self.db, GUILD_ID, BUYER_DISCORD_ID, self.item_id, 0, "eur", DeliveryKind.ROLE
            )

    @pytest.mark.asyncio
    async def test_rejects_subscription_items(self):
        with pytest.raises(ValueError, match="record_subscription_payment"):
            await self.ops.record_one_time_purchase(
                self.db,
                GUILD_ID,
                BUYER_DISCORD_ID,
                self.item_id,
                500,
                "eur",
                DeliveryKind.SUBSCRIPTION,
            )


# ─────────────────────────────────────────────────────────────────────────────
# Redemption
# ─────────────────────────────────────────────────────────────────────────────


class TestRedeemCode:
    def setup_method(self):
        self.ops = LedgerOperations()
        self.db = AsyncMock()
        self.item = make_mock_shop_item(name="Gift", discord_role_id="400")

    @pytest.mark.asyncio
    async def test_unknown_code(self):
        with patch.object(self.ops, "get_code", AsyncMock(return_value=None)):
            result = await self.ops.redeem_code(self.db, GUILD_ID, "NOPE", BUYER_DISCORD_ID, NOW)

        assert result.ok is False
        assert result.error == LedgerError.CODE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_used_code_is_rejected_without_write(self):
        code = make_mock_redemption_code(redeemed_at=NOW - timedelta(days=1))
        with (
            patch.object(self.ops, "get_code", AsyncMock(return_value=code)),
            patch.object(self.ops.codes, "compare_and_set", AsyncMock()) as mock_cas,
        ):
            result = await self.ops.redeem_code(self.db, GUILD_ID, code.code, BUYER_DISCORD_ID, NOW)

        assert result.error == LedgerError.ALREADY_REDEEMED
        mock_cas.assert_not_called()

    @pytest.mark.asyncio
    async def test_expired_code(self):
        code = make_mock_redemption_code(expires_at=NOW - timedelta(seconds=1))
        with (
            patch.object(self.ops, "get_code", AsyncMock(return_value=code)),
            patch.object(self.ops.codes, "compare_and_set", AsyncMock()) as mock_cas,
        ):
            result = await self.ops.redeem_code(self.db, GUILD_ID, code.code, BUYER_DISCORD_ID, NOW)

        assert result.error == LedgerError.CODE_EXPIRED
        mock_cas.assert_not_called()

    @pytest.mark.asyncio
    async def test_code_is_still_valid_at_its_expiry_instant(self):
        code = make_mock_redemption_code(
            expires_at=NOW, shop_item=self.item, shop_item_id=self.item.id
        )
        with (
            patch.object(self.ops, "get_code", AsyncMock(return_value=code)),
            patch.object(self.ops.codes, "compare_and_set", AsyncMock(return_value=True)),
            patch.object(self.ops, "log_event", AsyncMock()),
        ):
            result = await self.ops.redeem_code(self.db, GUILD_ID, code.code, BUYER_DISCORD_ID, NOW)

        assert result.ok is True
        assert result.error is None

    @pytest.mark.asyncio
    async def test_lost_race_reports_already_redeemed(self):
        code = make_mock_redemption_code(shop_item=self.item)
        with (
            patch.object(self.ops, "get_code", AsyncMock(return_value=code)),
            patch.object(self.ops.codes, "compare_and_set", AsyncMock(return_value=False)),
            patch.object(self.ops, "log_event", AsyncMock()) as mock_log,
        ):
            result = await self.ops.redeem_code(self.db, GUILD_ID, code.code, BUYER_DISCORD_ID, NOW)

        assert result.ok is False
        assert result.error == LedgerError.ALREADY_REDEEMED
        mock_log.assert_not_called()

    @pytest.mark.asyncio
    async def test_redeems_unused_code(self):
        code = make_mock_redemption_code(shop_item=self.item, shop_item_id=self.item.id)
        with (
            patch.object(self.ops, "get_code", AsyncMock(return_value=code)),
            patch.object(
                self.ops.codes, "compare_and_set", AsyncMock(return_value=True)
            ) as mock_cas,
            patch.object(self.ops, "log_event", AsyncMock()) as mock_log,
        ):
            result = await self.ops.redeem_code(
                self.db, GUILD_ID, "  abcd-efgh-jklm ", BUYER_DISCORD_ID, NOW
            )

        assert result.ok is True
        assert result.shop_item_id == self.item.id
        assert result.shop_item_name == "Gift"
        assert result.role_id == "400"

        kwargs = mock_cas.call_args.kwargs
        assert kwargs["expected"] == {"redeemed_at": None}
        assert kwargs["values"] == {"redeemed_at": NOW, "redeemed_by_discord_id": BUYER_DISCORD_ID}
        self.db.refresh.assert_awaited_once()
        assert mock_log.call_args[0][2] == ShopAuditAction.CODE_REDEEMED


# ─────────────────────────────────────────────────────────────────────────────
# Entitlements
# ─────────────────────────────────────────────────────────────────────────────


class TestGetEntitlements:
    @pytest.mark.asyncio
    async def test_unions_purchased_and_redeemed_items(self):
        bought, redeemed = uuid.uuid4(), uuid.uuid4()
        sub = make_mock_shop_subscription()
        code = make_mock_redemption_code()
        delivered = make_mock_prefilled_code(assigned_to_discord_id=BUYER_DISCORD_ID)
        db = AsyncMock()
        db.execute = AsyncMock(
            side_effect=[
                mock_scalars_result([bought]),
                mock_scalars_result([redeemed, bought]),
                mock_scalars_result([sub]),
                mock_scalars_result([code]),
                mock_scalars_result([delivered]),
            ]
        )

        result = await LedgerOperations().get_entitlements(db, GUILD_ID, BUYER_DISCORD_ID, NOW)

        assert result.owned_item_ids == {bought, redeemed}
        assert result.active_subscriptions == [sub]
        assert result.unredeemed_codes == [code]
        assert result.delivered_codes == [delivered]

    @pytest.mark.asyncio
    async def test_lapsed_subscriptions_are_filtered_in_query(self):
        db = AsyncMock()
        db.execute = AsyncMock(return_value=mock_scalars_result([]))

        await LedgerOperations().get_entitlements(db, GUILD_ID, BUYER_DISCORD_ID, NOW)

        subs_query = db.execute.call_args_list[2][0][0]
        assert "current_period_end >" in str(subs_query)
        assert NOW in subs_query.compile().params.values()


# ─────────────────────────────────────────────────────────────────────────────
# Subscriptions
# ─────────────────────────────────────────────────────────────────────────────


class TestGetActiveSubscription:
    @pytest.mark.asyncio
    async def test_lapsed_period_is_filtered_when_now_given(self):
        db = AsyncMock()
        db.execute = AsyncMock(return_value=mock_scalar_result(None))

        result = await LedgerOperations().get_active_subscription(
            db, GUILD_ID, BUYER_DISCORD_ID, uuid.uuid4(), now=NOW
        )

        assert result is None
        query = db.execute.call_args[0][0]
        assert "current_period_end >" in str(query)
        assert NOW in query.compile().params.values()

    @pytest.mark.asyncio
    async def test_renewal_lookup_keeps_lapsed_active_row(self):
        db = AsyncMock()
        db.execute = AsyncMock(return_value=mock_scalar_result(None))

        await LedgerOperations().get_active_subscription(
            db, GUILD_ID, BUYER_DISCORD_ID, uuid.uuid4()
        )

        assert "current_period_end" not in str(db.execute.call_args[0][0].whereclause)


class TestRecordSubscriptionPayment:
    def setup_method(self):
        self.ops = LedgerOperations()
        self.db = AsyncMock()
        self.item_id = uuid.uuid4()

    @pytest.mark.asyncio
    async def test_first_payment_starts_active_row(self):
        sub = make_mock_shop_subscription(shop_item_id=self.item_id)
        period_end = NOW + timedelta(days=30)
        with (
            patch.object(self.ops, "get_active_subscription", AsyncMock(return_value=None)),
            patch.object(self.ops.subscriptions, "create", AsyncMock(return_value=sub)) as mock_create,
            patch.object(self.ops, "log_event", AsyncMock()) as mock_log,
        ):
            change = await self.ops.record_subscription_payment(
                self.db, GUILD_ID, BUYER_DISCORD_ID, self.item_id, period_end, "sub_1"
            )

        assert change.ok is True
        assert change.started is True
        obj_in = mock_create.call_args.kwargs["obj_in"]
        assert obj_in["status"] == "active"
        assert obj_in["current_period_end"] == period_end
        assert obj_in["billing_reference"] == "sub_1"
        assert mock_log.call_args[0][2] == ShopAuditAction.SUBSCRIPTION_STARTED

    @pytest.mark.asyncio
    async def test_renewal_extends_existing_row(self):
        sub = make_mock_shop_subscription(current_period_end=NOW)
        new_end = NOW + timedelta(days=30)
        with (
            patch.object(self.ops, "get_active_subscription", AsyncMock(return_value=sub)),
            patch.object(self.ops.subscriptions, "create", AsyncMock()) as mock_create,
            patch.object(self.ops.subscriptions, "update", AsyncMock(return_value=sub)) as mock_update,
            patch.object(self.ops, "log_event", AsyncMock()) as mock_log,
        ):
            change = await self.ops.record_subscription_payment(
                self.db, GUILD_ID, BUYER_DISCORD_ID, sub.shop_item_id, new_end
            )

        assert change.started is False
        mock_create.assert_not_called()
        assert mock_update.call_args[0][2] == {"current_period_end": new_end}
        assert mock_log.call_args[0][2] == ShopAuditAction.SUBSCRIPTION_RENEWED

    @pytest.mark.asyncio
    async def test_period_never_moves_backwards(self):
        later = NOW + timedelta(days=60)
        sub = make_mock_shop_subscription(current_period_end=later)
        with (
            patch.object(self.ops, "get_active_subscription", AsyncMock(return_value=sub)),
            patch.object(self.ops.subscriptions, "update", AsyncMock(return_value=sub)) as mock_update,
            patch.object(self.ops, "log_event", AsyncMock()),
        ):
            await self.ops.record_subscription_payment(
                self.db, GUILD_ID, BUYER_DISCORD_ID, sub.shop_item_id, NOW
            )

        assert mock_update.call_args[0][2]["current_period_end"] == later


class TestRevokeSubscription:
    def setup_method(self):
        self.ops = LedgerOperations()
        self.db = AsyncMock()
        self.item = make_mock_shop_item(delivery_kind="subscription", discord_role_id="400")

    @pytest.mark.asyncio
    async def test_not_found(self):
        with patch.object(self.ops, "get_subscription", AsyncMock(return_value=None)):
            change = await self.ops.revoke_subscription(
                self.db, GUILD_ID, uuid.uuid4(), OWNER_DISCORD_ID, NOW
            )

        assert change.ok is False
        assert change.error == LedgerError.SUBSCRIPTION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_already_cancelled_is_left_unchanged(self, mock_external_services):
        sub = make_mock_shop_subscription(status="cancelled", shop_item=self.item)
        with (
            patch.object(self.ops, "get_subscription", AsyncMock(return_value=sub)),
            patch.object(self.ops.subscriptions, "compare_and_set", AsyncMock()) as mock_cas,
        ):
            change = await self.ops.revoke_subscription(
                self.db, GUILD_ID, sub.id, OWNER_DISCORD_ID, NOW
            )

        assert change.ok is False
        assert change.error == LedgerError.SUBSCRIPTION_NOT_ACTIVE
        assert sub.status == "cancelled"
        mock_cas.assert_not_called()
        mock_external_services["revoke_role"].assert_not_called()

    @pytest.mark.asyncio
    async def test_revokes_active_and_retracts_role(self, mock_external_services):
        sub = make_mock_shop_subscription(shop_item=self.item)
        with (
            patch.object(self.ops, "get_subscription", AsyncMock(return_value=sub)),
            patch.object(
                self.ops.subscriptions, "compare_and_set", AsyncMock(return_value=True)
            ) as mock_cas,
            patch.object(self.ops, "log_event", AsyncMock()) as mock_log,
        ):
            change = await self.ops.revoke_subscription(
                self.db, GUILD_ID, sub.id, OWNER_DISCORD_ID, NOW
            )

        assert change.ok is True
        assert change.retraction is not None and change.retraction.ok is True
        kwargs = mock_cas.call_args.kwargs
        assert kwargs["expected"] == {"status": "active"}
        assert kwargs["values"]["status"] == "cancelled"
        assert kwargs["values"]["ended_by_discord_id"] == OWNER_DISCORD_ID
        assert mock_log.call_args[0][2] == ShopAuditAction.SUBSCRIPTION_REVOKED
        mock_external_services["revoke_role"].assert_awaited_once_with(
            GUILD_ID, sub.buyer_discord_id, "400"
        )

    @pytest.mark.asyncio
    async def test_failed_retraction_keeps_state_change(self):
        sub = make_mock_shop_subscription(shop_item=self.item)
        failed = EffectOutcome("revoke", GUILD_ID, sub.buyer_discord_id, "400", ok=False, error="HTTP 500")
        with (
            patch.object(self.ops, "get_subscription", AsyncMock(return_value=sub)),
            patch.object(self.ops.subscriptions, "compare_and_set", AsyncMock(return_value=True)),
            patch.object(self.ops, "log_event", AsyncMock()),
            patch.object(role_grant_service, "revoke_role", AsyncMock(return_value=failed)),
        ):
            change = await self.ops.revoke_subscription(
                self.db, GUILD_ID, sub.id, OWNER_DISCORD_ID, NOW
            )

        assert change.ok is True
        assert change.retraction == failed

    @pytest.mark.asyncio
    async def test_concurrent_end_loses_cas(self):
        sub = make_mock_shop_subscription(shop_item=self.item)
        with (
            patch.object(self.ops, "get_subscription", AsyncMock(return_value=sub)),
            patch.object(self.ops.subscriptions, "compare_and_set", AsyncMock(return_value=False)),
            patch.object(self.ops, "log_event", AsyncMock()) as mock_log,
        ):
            change = await self.ops.revoke_subscription(
                self.db, GUILD_ID, sub.id, OWNER_DISCORD_ID, NOW
            )

        assert change.error == LedgerError.SUBSCRIPTION_NOT_ACTIVE
        mock_log.assert_not_called()


class TestCancelSubscription:
    def setup_method(self):
        self.ops = LedgerOperations()
        self.db = AsyncMock()

    @pytest.mark.asyncio
    async def test_other_buyers_row_looks_missing(self):
        sub = make_mock_shop_subscription(buyer_discord_id="someone-else")
        with patch.object(self.ops, "get_subscription", AsyncMock(return_value=sub)):
            change = await self.ops.cancel_subscription(
                self.db, GUILD_ID, sub.id, BUYER_DISCORD_ID, NOW
            )

        assert change.error == LedgerError.SUBSCRIPTION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_buyer_cancels_own_row(self):
        sub = make_mock_shop_subscription()
        with (
            patch.object(self.ops, "get_subscription", AsyncMock(return_value=sub)),
            patch.object(
                self.ops.subscriptions, "compare_and_set", AsyncMock(return_value=True)
            ) as mock_cas,
            patch.object(self.ops, "log_event", AsyncMock()) as mock_log,
        ):
            change = await self.ops.cancel_subscription(
                self.db, GUILD_ID, sub.id, BUYER_DISCORD_ID, NOW
            )

        assert change.ok is True
        # No item loaded, so there is no role to retract
        assert change.retraction is None
        assert mock_cas.call_args.kwargs["values"]["ended_by_discord_id"] == BUYER_DISCORD_ID
        assert mock_log.call_args[0][2] == ShopAuditAction.SUBSCRIPTION_CANCELLED


class TestExpireLapsedSubscriptions:
    def setup_method(self):
        self.ops = LedgerOperations()
        self.db = AsyncMock()

    @pytest.mark.asyncio
    async def test_expires_each_lapsed_row(self):
        item = make_mock_shop_item(delivery_kind="subscription", discord_role_id="400")
        won = make_mock_shop_subscription(current_period_end=NOW - timedelta(hours=1), shop_item=item)
        raced = make_mock_shop_subscription(current_period_end=NOW - timedelta(hours=2), shop_item=item)
        with (
            patch.object(self.ops, "_list_lapsed", AsyncMock(return_value=[raced, won])),
            patch.object(
                self.ops.subscriptions, "compare_and_set", AsyncMock(side_effect=[False, True])
            ) as mock_cas,
            patch.object(self.ops, "log_event", AsyncMock()) as mock_log,
        ):
            report = await self.ops.expire_lapsed_subscriptions(self.db, NOW)

        assert report.expired == 1
        assert report.subscription_ids == [won.id]
        assert report.retractions_failed == 0
        assert mock_cas.call_args.kwargs["values"]["status"] == "expired"
        assert mock_log.call_args[0][2] == ShopAuditAction.SUBSCRIPTION_EXPIRED

    @pytest.mark.asyncio
    async def test_counts_failed_retractions(self):
        item = make_mock_shop_item(delivery_kind="subscription", discord_role_id="400")
        sub = make_mock_shop_subscription(current_period_end=NOW - timedelta(hours=1), shop_item=item)
        failed = EffectOutcome("revoke", GUILD_ID, sub.buyer_discord_id, "400", ok=False)
        with (
            patch.object(self.ops, "_list_lapsed", AsyncMock(return_value=[sub])),
            patch.object(self.ops.subscriptions, "compare_and_set", AsyncMock(return_value=True)),
            patch.object(self.ops, "log_event", AsyncMock()),
            patch.object(role_grant_service, "revoke_role", AsyncMock(return_value=failed)),
        ):
            report = await self.ops.expire_lapsed_subscriptions(self.db, NOW)

        assert report.expired == 1
        assert report.retractions_failed == 1

    @pytest.mark.asyncio
    async def test_nothing_lapsed(self):
        with patch.object(self.ops, "_list_lapsed", AsyncMock(return_value=[])):
            report = await self.ops.expire_lapsed_subscriptions(self.db, NOW)

        assert report.expired == 0
        assert report.subscription_ids == []


class TestListings:
    @pytest.mark.asyncio
    async def test_order_limit_is_clamped(self):
        db = AsyncMock()
        db.execute = AsyncMock(return_value=mock_scalars_result([make_mock_order()]))

        orders = await LedgerOperations().list_orders(db, GUILD_ID, limit=10_000)

        assert len(orders) == 1
        assert 100 in db.execute.call_args[0][0].compile().params.values()

    @pytest.mark.asyncio
    async def test_subscription_status_filter(self):
        db = AsyncMock()
        db.execute = AsyncMock(return_value=mock_scalars_result([]))

        await LedgerOperations().list_subscriptions(db, GUILD_ID, status=None)

        assert "status" not in str(db.execute.call_args[0][0]).split("WHERE")[1]
