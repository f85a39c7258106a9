"""API test fixtures: dashboard access variants and internal-caller auth.

Builds on root conftest fixtures (mock_db, test_user, api_client,
mock_external_services). Domain operations are patched per test, so these
tests cover routing, status codes, response shapes and commit ordering.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from app.config import settings
from app.domain.guild_operations import guild_ops

INTERNAL_SECRET = "test-internal-secret"


# ─────────────────────────────────────────────────────────────────────────────
# Auth Variant Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def dashboard_access():
    """The signed-in user manages the guild (owner, authorized user or admin)."""
    with patch.object(guild_ops, "has_access", AsyncMock(return_value=True)) as mock_access:
        yield mock_access


@pytest.fixture
def no_dashboard_access():
    """The signed-in user is a plain buyer in the guild."""
    with patch.object(guild_ops, "has_access", AsyncMock(return_value=False)) as mock_access:
        yield mock_access


@pytest.fixture
def internal_headers(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Configure the shared secret and return the header the bot would send."""
    monkeypatch.setattr(settings, "internal_api_secret", INTERNAL_SECRET)
    return {"X-Internal-Secret": INTERNAL_SECRET}
