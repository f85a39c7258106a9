"""Buyer and dashboard authentication.

Shop users sign in through Supabase Auth with the Discord OAuth provider.
Tokens are ES256 JWTs checked against the project's JWKS; the local user
row is keyed by the Supabase user id and carries the Discord snowflake
that every shop action is recorded under.
"""

import logging
import time
import uuid as uuid_pkg
from typing import Annotated, Any

import httpx
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from jose.backends import ECKey
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.database import get_db
from app.models.user import User
from app.services.supabase import fetch_discord_identity

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

JWT_ALGORITHMS = ["ES256"]
JWT_AUDIENCE = "authenticated"
JWKS_TTL_SECONDS = 3600.0

# Signing keys rotate rarely; one fetch per hour per instance
_jwks: dict[str, Any] = {}
_jwks_fetched_at: float = 0.0


def _credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )


async def get_jwks(force_refresh: bool = False) -> dict[str, Any]:
    """The project's JWKS, cached for JWKS_TTL_SECONDS."""
    global _jwks_fetched_at
    fresh = time.monotonic() - _jwks_fetched_at < JWKS_TTL_SECONDS
    if _jwks and fresh and not force_refresh:
        return _jwks

    async with httpx.AsyncClient() as client:
        response = await client.get(settings.supabase_jwks_url)
        response.raise_for_status()
    _jwks.clear()
    _jwks.update(response.json())
    _jwks_fetched_at = time.monotonic()
    return _jwks


def get_signing_key(jwks: dict[str, Any], token: str) -> ECKey:
    """Get the signing key from JWKS that matches the token's kid."""
    kid = jwt.get_unverified_header(token).get("kid")
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return ECKey(key, algorithm="ES256")
    raise ValueError("Unable to find matching key in JWKS")


async def verify_token(token: str) -> dict[str, Any]:
    """
    Verify a Supabase access token and return its claims.

    A token signed with a key we have not seen yet gets one retry against
    a freshly fetched JWKS before it is rejected.
    """
    try:
        for force_refresh in (False, True):
            jwks = await get_jwks(force_refresh=force_refresh)
            try:
                return jwt.decode(
                    token,
                    get_signing_key(jwks, token),
                    algorithms=JWT_ALGORITHMS,
                    audience=JWT_AUDIENCE,
                )
            except (JWTError, ValueError) as e:
                if force_refresh:
                    raise _credentials_error() from e
                logger.info("JWT validation failed with cached JWKS, forcing refresh")
    except httpx.HTTPError as e:
        logger.error(f"Could not fetch JWKS: {e}")
        raise _credentials_error() from None
    raise _credentials_error()


def get_discord_id(app_metadata: dict[str, Any], user_metadata: dict[str, Any]) -> str | None:
    """Discord snowflake from a Supabase token, if the user signed in with Discord."""
    if app_metadata.get("provider") not in (None, "discord") and "discord" not in (
        app_metadata.get("providers") or []
    ):
        return None
    provider_id = user_metadata.get("provider_id") or user_metadata.get("sub")
    return str(provider_id) if provider_id else None


def _has_discord_provider(app_metadata: dict[str, Any]) -> bool:
    return app_metadata.get("provider") == "discord" or "discord" in (
        app_metadata.get("providers") or []
    )


async def resolve_discord_id(user_id: uuid_pkg.UUID, claims: dict[str, Any]) -> str | None:
    """
    Discord snowflake to bind to a user that has none yet.

    user_metadata is writable by the user, so when the Supabase admin API is
    configured the snowflake is read from the linked identity instead.
    """
    app_metadata = claims.get("app_metadata") or {}
    if not _has_discord_provider(app_metadata):
        return None
    if settings.identity_lookup_enabled:
        return await fetch_discord_identity(user_id)
    return get_discord_id(app_metadata, claims.get("user_metadata") or {})


async def get_or_create_user(db: AsyncSession, claims: dict[str, Any]) -> User:
    """
    Load the user for verified claims, creating the row on first sight.

    The Discord snowflake is bound once, when the row is created or on the
    first request after a Discord identity is linked. A bound snowflake is
    never replaced from token claims.
    """
    try:
        user_id = uuid_pkg.UUID(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
        ) from None

    user_metadata = claims.get("user_metadata") or {}

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        discord_id = await resolve_discord_id(user_id, claims)
        user = User(
            id=user_id,
            discord_id=discord_id,
            email=claims.get("email"),
            display_name=user_metadata.get("full_name") or user_metadata.get("name"),
            avatar_url=user_metadata.get("avatar_url"),
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        logger.info(f"Created user {user_id} (discord {discord_id})")
    elif user.discord_id is None:
        discord_id = await resolve_discord_id(user_id, claims)
        if discord_id:
            user.discord_id = discord_id
            db.add(user)
            await db.flush()
            logger.info(f"Linked discord {discord_id} to user {user_id}")

    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Authenticated user for the bearer token. 401 if missing or invalid."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    claims = await verify_token(credentials.credentials)
    return await get_or_create_user(db, claims)


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
