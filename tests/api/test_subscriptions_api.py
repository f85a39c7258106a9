"""Subscription API endpoint tests: listing, admin revoke, buyer cancel."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from app.domain.guild_operations import guild_ops
from app.domain.ledger_operations import LedgerError, SubscriptionChange, ledger_ops
from app.domain.shop_item_operations import shop_item_ops
from app.models.subscription import ShopSubscriptionStatus
from app.services.role_grants import EffectOutcome

from tests.helpers.mock_factories import (
    BUYER_DISCORD_ID,
    GUILD_ID,
    make_mock_shop_item,
    make_mock_shop_subscription,
)

BASE = f"/api/v1/guilds/{GUILD_ID}/shop/subscriptions"


def _ended(status: str = "cancelled", billing_reference: str | None = "sub_1") -> SubscriptionChange:
    item = make_mock_shop_item(name="Monthly", delivery_kind="subscription")
    sub = make_mock_shop_subscription(
        status=status, shop_item=item, billing_reference=billing_reference
    )
    retraction = EffectOutcome("revoke", GUILD_ID, sub.buyer_discord_id, "400", ok=True)
    return SubscriptionChange(ok=True, subscription=sub, retraction=retraction)


@pytest.mark.asyncio
async def test_list_active_by_default(api_client: AsyncClient, dashboard_access):
    sub = make_mock_shop_subscription()
    with (
        patch.object(ledger_ops, "list_subscriptions", AsyncMock(return_value=[sub])) as mock_list,
        patch.object(shop_item_ops, "get_names", AsyncMock(return_value={sub.shop_item_id: "Monthly"})),
    ):
        resp = await api_client.get(BASE)

    assert resp.status_code == 200
    assert resp.json()[0]["item_name"] == "Monthly"
    assert mock_list.call_args.kwargs["status"] == ShopSubscriptionStatus.ACTIVE


@pytest.mark.asyncio
async def test_list_all(api_client: AsyncClient, dashboard_access):
    with (
        patch.object(ledger_ops, "list_subscriptions", AsyncMock(return_value=[])) as mock_list,
        patch.object(shop_item_ops, "get_names", AsyncMock(return_value={})),
    ):
        resp = await api_client.get(BASE, params={"status": "all"})

    assert resp.status_code == 200
    assert mock_list.call_args.kwargs["status"] is None


@pytest.mark.asyncio
async def test_list_forbidden(api_client: AsyncClient, no_dashboard_access):
    resp = await api_client.get(BASE)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_revoke(api_client: AsyncClient, mock_db, test_user, dashboard_access, mock_external_services):
    change = _ended()
    with (
        patch.object(ledger_ops, "revoke_subscription", AsyncMock(return_value=change)) as mock_revoke,
        patch.object(guild_ops, "get_stripe_secret", AsyncMock(return_value="sk_test_guild")),
    ):
        resp = await api_client.post(f"{BASE}/{change.subscription.id}/revoke")

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["role_retracted"] is True
    assert data["subscription"]["status"] == "cancelled"
    assert mock_revoke.call_args.kwargs["actor_discord_id"] == test_user.discord_id
    mock_db.commit.assert_awaited_once()
    mock_external_services["cancel_subscription"].assert_called_once_with("sk_test_guild", "sub_1")


@pytest.mark.asyncio
async def test_revoke_already_cancelled(api_client: AsyncClient, mock_db, dashboard_access, mock_external_services):
    change = SubscriptionChange(ok=False, error=LedgerError.SUBSCRIPTION_NOT_ACTIVE)
    with patch.object(ledger_ops, "revoke_subscription", AsyncMock(return_value=change)):
        resp = await api_client.post(f"{BASE}/{uuid.uuid4()}/revoke")

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Subscription is not active"
    mock_db.commit.assert_not_called()
    mock_external_services["cancel_subscription"].assert_not_called()


@pytest.mark.asyncio
async def test_revoke_missing(api_client: AsyncClient, dashboard_access):
    change = SubscriptionChange(ok=False, error=LedgerError.SUBSCRIPTION_NOT_FOUND)
    with patch.object(ledger_ops, "revoke_subscription", AsyncMock(return_value=change)):
        resp = await api_client.post(f"{BASE}/{uuid.uuid4()}/revoke")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_revoke_forbidden(api_client: AsyncClient, no_dashboard_access):
    with patch.object(ledger_ops, "revoke_subscription", AsyncMock()) as mock_revoke:
        resp = await api_client.post(f"{BASE}/{uuid.uuid4()}/revoke")

    assert resp.status_code == 403
    mock_revoke.assert_not_called()


@pytest.mark.asyncio
async def test_buyer_cancels_own(api_client: AsyncClient, mock_db, mock_external_services):
    change = _ended(billing_reference=None)
    with patch.object(ledger_ops, "cancel_subscription", AsyncMock(return_value=change)) as mock_cancel:
        resp = await api_client.post(f"{BASE}/{change.subscription.id}/cancel")

    assert resp.status_code == 200
    assert mock_cancel.call_args[0][3] == BUYER_DISCORD_ID
    mock_db.commit.assert_awaited_once()
    # No provider subscription to stop
    mock_external_services["cancel_subscription"].assert_not_called()
