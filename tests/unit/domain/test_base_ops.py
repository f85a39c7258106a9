"""Unit tests for BaseOperations: generic CRUD with all DB calls mocked.

Uses the ShopCoupon model as the concrete type since BaseOperations requires
a real SQLModel class for select() to build valid query expressions.
"""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.exceptions import StoreUnavailable
from app.domain.base_operations import BaseOperations
from app.models.coupon import ShopCoupon
from app.models.redemption_code import RedemptionCode

from tests.helpers.mock_factories import (
    GUILD_ID,
    mock_rowcount_result,
    mock_scalar_result,
    mock_scalars_result,
)


class TestBaseGet:
    """Tests for BaseOperations.get() and get_for_guild()."""

    def setup_method(self):
        self.ops = BaseOperations(ShopCoupon)
        self.db = AsyncMock()

    @pytest.mark.asyncio
    async def test_get_returns_record(self):
        record = MagicMock()
        self.db.execute = AsyncMock(return_value=mock_scalar_result(record))

        result = await self.ops.get(self.db, uuid.uuid4())
        assert result == record

    @pytest.mark.asyncio
    async def test_get_for_guild_returns_none_for_other_guild(self):
        self.db.execute = AsyncMock(return_value=mock_scalar_result(None))

        result = await self.ops.get_for_guild(self.db, "other-guild", uuid.uuid4())
        assert result is None


class TestBaseListForGuild:
    def setup_method(self):
        self.ops = BaseOperations(ShopCoupon)
        self.db = AsyncMock()

    @pytest.mark.asyncio
    async def test_returns_list_of_records(self):
        records = [MagicMock(), MagicMock()]
        self.db.execute = AsyncMock(return_value=mock_scalars_result(records))

        result = await self.ops.list_for_guild(self.db, GUILD_ID)
        assert len(result) == 2

    @pytest.mark.asyncio
    async def test_returns_empty_list(self):
        self.db.execute = AsyncMock(return_value=mock_scalars_result([]))

        result = await self.ops.list_for_guild(self.db, GUILD_ID)
        assert result == []


class TestBaseCreate:
    def setup_method(self):
        self.ops = BaseOperations(ShopCoupon)
        self.db = AsyncMock()
        self.db.add = MagicMock()

    @pytest.mark.asyncio
    async def test_sets_guild_and_flushes(self):
        result = await self.ops.create(
            self.db,
            obj_in={"code": "SPRING20", "discount_type": "percentage", "discount_value": 20},
            guild_id=GUILD_ID,
        )

        assert result.guild_id == GUILD_ID
        assert result.code == "SPRING20"
        self.db.add.assert_called_once_with(result)
        self.db.flush.assert_awaited_once()
        self.db.refresh.assert_awaited_once_with(result)


class TestBaseUpdate:
    def setup_method(self):
        self.ops = BaseOperations(ShopCoupon)
        self.db = AsyncMock()
        self.db.add = MagicMock()

    @pytest.mark.asyncio
    async def test_applies_all_keys_including_none(self):
        coupon = ShopCoupon(guild_id=GUILD_ID, code="A", discount_value=10, max_redemptions=5)

        result = await self.ops.update(self.db, coupon, {"discount_value": 15, "max_redemptions": None})

        assert result.discount_value == 15
        assert result.max_redemptions is None
        self.db.flush.assert_awaited_once()


class TestBaseDeleteForGuild:
    def setup_method(self):
        self.ops = BaseOperations(ShopCoupon)
        self.db = AsyncMock()

    @pytest.mark.asyncio
    async def test_deletes_when_found(self):
        record = MagicMock()
        self.db.execute = AsyncMock(return_value=mock_scalar_result(record))

        assert await self.ops.delete_for_guild(self.db, GUILD_ID, uuid.uuid4()) is True
        self.db.delete.assert_awaited_once_with(record)

    @pytest.mark.asyncio
    async def test_returns_false_when_missing(self):
        self.db.execute = AsyncMock(return_value=mock_scalar_result(None))

        assert await self.ops.delete_for_guild(self.db, GUILD_ID, uuid.uuid4()) is False
        self.db.delete.assert_not_called()


class TestCompareAndSet:
    """The conditional UPDATE wins only when exactly one row matched."""

    def setup_method(self):
        self.ops = BaseOperations(RedemptionCode)
        self.db = AsyncMock()

    @pytest.mark.asyncio
    async def test_returns_true_when_row_updated(self):
        self.db.execute = AsyncMock(return_value=mock_rowcount_result(1))

        won = await self.ops.compare_and_set(
            self.db,
            uuid.uuid4(),
            expected={"redeemed_at": None},
            values={"redeemed_by_discord_id": "1"},
        )
        assert won is True

    @pytest.mark.asyncio
    async def test_returns_false_when_condition_no_longer_holds(self):
        self.db.execute = AsyncMock(return_value=mock_rowcount_result(0))

        won = await self.ops.compare_and_set(
            self.db,
            uuid.uuid4(),
            expected={"redeemed_at": None},
            values={"redeemed_by_discord_id": "1"},
        )
        assert won is False

    @pytest.mark.asyncio
    async def test_null_expectation_compiles_to_is_null(self):
        self.db.execute = AsyncMock(return_value=mock_rowcount_result(1))

        await self.ops.compare_and_set(
            self.db,
            uuid.uuid4(),
            expected={"redeemed_at": None},
            values={"redeemed_by_discord_id": "1"},
        )

        statement = self.db.execute.call_args[0][0]
        assert "redeemed_at IS NULL" in str(statement)


class TestStoreOperation:
    """Connectivity faults become StoreUnavailable; SQL errors pass through."""

    def setup_method(self):
        self.ops = BaseOperations(ShopCoupon)
        self.db = AsyncMock()

    @pytest.mark.asyncio
    async def test_operational_error_is_store_unavailable(self):
        self.db.execute = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("connection refused"))
        )

        with pytest.raises(StoreUnavailable):
            await self.ops.get(self.db, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_integrity_error_is_not_translated(self):
        self.db.execute = AsyncMock(
            side_effect=IntegrityError("INSERT", {}, Exception("duplicate key"))
        )

        with pytest.raises(IntegrityError):
            await self.ops.get(self.db, uuid.uuid4())
