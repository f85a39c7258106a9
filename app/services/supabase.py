"""Supabase admin client for server-side identity lookups."""

import asyncio
import logging
import uuid as uuid_pkg
from typing import Any

from supabase import Client, create_client

from app.config.settings import settings

logger = logging.getLogger(__name__)


def get_supabase_admin_client() -> Client:
    """
    Get Supabase client with service role key for admin operations.

    Used to read a user's linked OAuth identities, which the user cannot
    edit, unlike the user_metadata carried in their access token.

    IMPORTANT: Never expose this client to frontend or use anon key here.
    """
    if not settings.supabase_service_role_key:
        raise ValueError(
            "SUPABASE_SERVICE_ROLE_KEY not configured. "
            "Set it in .env to resolve Discord identities server-side."
        )

    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key,
    )


def _identity_discord_id(identity: Any) -> str | None:
    if getattr(identity, "provider", None) != "discord":
        return None
    data = getattr(identity, "identity_data", None) or {}
    provider_id = data.get("provider_id") or data.get("sub") or getattr(identity, "id", None)
    return str(provider_id) if provider_id else None


async def fetch_discord_identity(user_id: uuid_pkg.UUID) -> str | None:
    """
    Discord snowflake of the identity linked to a Supabase user, if any.

    Returns None when the user has no Discord identity or the admin API
    cannot be reached; the caller leaves the account unlinked and retries
    on a later request.
    """
    try:
        supabase = get_supabase_admin_client()

        # Run in thread pool since supabase-py is synchronous
        response = await asyncio.to_thread(
            supabase.auth.admin.get_user_by_id,
            str(user_id),
        )
    except ValueError as e:
        logger.warning(f"Supabase service role key not configured: {e}")
        return None
    except Exception as e:
        logger.error(f"Failed to load Supabase identities for user {user_id}: {e}")
        return None

    user = getattr(response, "user", None)
    for identity in getattr(user, "identities", None) or []:
        discord_id = _identity_discord_id(identity)
        if discord_id:
            return discord_id
    return None
