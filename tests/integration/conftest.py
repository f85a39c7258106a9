"""Integration test conftest: real PostgreSQL, opt-in.

Runs against a migrated database (alembic upgrade head) pointed to by
DATABASE_URL_DIRECT. Skipped unless GUILDSHOP_INTEGRATION_DB=1.

Tests that race two sessions need real commits, so instead of the
rollback-savepoint pattern each test gets its own guild id and every row
under it is deleted afterwards.
"""

from __future__ import annotations

import os
import uuid

import pytest
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config.settings import settings
from app.models import (
    GuildConfig,
    ProcessedPayment,
    RedemptionCode,
    ShopAuditLog,
    ShopCategory,
    ShopItem,
    ShopOrder,
    ShopPrefilledCode,
    ShopSubscription,
)


@pytest.fixture(autouse=True)
def _require_database(request):
    """Auto-mark all tests in this directory as integration and gate them."""
    request.node.add_marker(pytest.mark.integration)
    if not os.getenv("GUILDSHOP_INTEGRATION_DB"):
        pytest.skip("Set GUILDSHOP_INTEGRATION_DB=1 to run database integration tests")


@pytest.fixture
async def session_maker():
    engine = create_async_engine(settings.database_url_direct, pool_size=4, max_overflow=0)
    try:
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
async def test_guild(session_maker):
    """A registered guild that is wiped (with everything under it) after the test."""
    guild_id = f"9{uuid.uuid4().int % 10**17:017d}"
    async with session_maker() as db:
        db.add(GuildConfig(guild_id=guild_id, guild_name="__test_guild", owner_discord_id="1"))
        await db.commit()

    yield guild_id

    async with session_maker() as db:
        for model in (
            ShopAuditLog,
            ProcessedPayment,
            ShopPrefilledCode,
            RedemptionCode,
            ShopSubscription,
            ShopOrder,
            ShopItem,
            ShopCategory,
            GuildConfig,
        ):
            await db.execute(delete(model).where(model.guild_id == guild_id))
        await db.commit()


@pytest.fixture
async def test_code_item(session_maker, test_guild):
    """An enabled code-delivery item in test_guild."""
    async with session_maker() as db:
        item = ShopItem(
            guild_id=test_guild,
            name="Gift card",
            price_amount_cents=1000,
            delivery_kind="code",
        )
        db.add(item)
        await db.commit()
        return item


@pytest.fixture
async def test_prefilled_item(session_maker, test_guild):
    """An enabled prefilled-delivery item in test_guild with an empty pool."""
    async with session_maker() as db:
        item = ShopItem(
            guild_id=test_guild,
            name="Game key",
            price_amount_cents=1500,
            delivery_kind="prefilled",
        )
        db.add(item)
        await db.commit()
        return item
