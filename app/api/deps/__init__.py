"""API dependencies - re-exports from submodules."""

from .auth import (
    CurrentUser,
    DbSession,
    get_current_user,
    get_discord_id,
    get_or_create_user,
    verify_token,
)
from .guild import (
    enforce_redeem_rate_limit,
    get_client_id,
    require_discord_id,
    require_guild_access,
    verify_internal_secret,
)

__all__ = [
    "CurrentUser",
    "DbSession",
    "get_current_user",
    "get_discord_id",
    "get_or_create_user",
    "verify_token",
    "enforce_redeem_rate_limit",
    "get_client_id",
    "require_discord_id",
    "require_guild_access",
    "verify_internal_secret",
]
