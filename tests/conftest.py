"""Root conftest: test infrastructure for all backend tests.

Provides:
- Mocked AsyncSession (no database needed for unit and API tests)
- API client with dependency overrides for auth and DB
- Autouse mocks for external effects (Discord bot, Stripe)
- Rate limiter reset between tests

Integration tests that need PostgreSQL live under tests/integration and
opt in with GUILDSHOP_INTEGRATION_DB=1.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.rate_limit import rate_limiter
from app.models.user import User
from app.services.role_grants import EffectOutcome, role_grant_service
from app.services.stripe_service import CheckoutSession, stripe_service

from tests.helpers.mock_factories import BUYER_DISCORD_ID, GUILD_ID


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers", "integration: needs a migrated PostgreSQL database"
    )


# ─────────────────────────────────────────────────────────────────────────────
# Database + User Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def mock_db() -> AsyncMock:
    """AsyncSession stand-in. add() is sync on the real session."""
    db = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def test_user() -> User:
    """A signed-in buyer with a linked Discord account."""
    return User(
        id=uuid.uuid4(),
        discord_id=BUYER_DISCORD_ID,
        email=f"__test_{uuid.uuid4().hex[:8]}@example.com",
        display_name="Test User",
        is_admin=False,
        created_at=datetime.now(UTC),
    )


@pytest.fixture
def guild_id() -> str:
    return GUILD_ID


# ─────────────────────────────────────────────────────────────────────────────
# API Client
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
async def api_client(mock_db: AsyncMock, test_user: User):
    """HTTP client that bypasses JWT auth and uses the mocked DB session.

    Overrides: get_current_user, get_db
    """
    from app.api.deps.auth import get_current_user
    from app.core.database import get_db
    from app.main import app

    app.dependency_overrides[get_current_user] = lambda: test_user

    async def override_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ─────────────────────────────────────────────────────────────────────────────
# External Service Mocks (autouse)
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def mock_external_services():
    """SAFETY: Always mock external effects.

    Prevents role changes on real guilds and Stripe API calls. Tests that
    exercise the services themselves build their own instances or call the
    static methods on the class.
    """

    def _outcome(action: str):
        async def _effect(guild_id: str, discord_id: str, role_id: str) -> EffectOutcome:
            return EffectOutcome(action, guild_id, discord_id, role_id, ok=True)

        return AsyncMock(side_effect=_effect)

    with (
        patch.object(role_grant_service, "grant_role", _outcome("grant")) as mock_grant,
        patch.object(role_grant_service, "revoke_role", _outcome("revoke")) as mock_revoke,
        patch.object(
            stripe_service,
            "create_checkout_session",
            MagicMock(
                return_value=CheckoutSession(
                    id="cs_test_123", url="https://checkout.stripe.com/c/cs_test_123"
                )
            ),
        ) as mock_checkout,
        patch.object(
            stripe_service, "cancel_subscription", MagicMock(return_value=True)
        ) as mock_cancel,
        patch.object(
            stripe_service,
            "create_portal_session",
            MagicMock(return_value="https://billing.stripe.com/p/session/test_123"),
        ) as mock_portal,
    ):
        yield {
            "grant_role": mock_grant,
            "revoke_role": mock_revoke,
            "create_checkout_session": mock_checkout,
            "cancel_subscription": mock_cancel,
            "create_portal_session": mock_portal,
        }


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    rate_limiter._requests.clear()
    yield
    rate_limiter._requests.clear()
