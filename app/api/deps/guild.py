"""Guild access control dependencies."""

import hmac

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.database import get_db
from app.core.rate_limit import REDEEM_LIMIT, rate_limiter
from app.domain.guild_operations import guild_ops
from app.models.user import User

from .auth import get_current_user


def require_discord_id(current_user: User = Depends(get_current_user)) -> str:
    """
    The caller's Discord id.

    Every shop action is keyed by Discord identity; accounts without a
    linked Discord login cannot buy or redeem.
    """
    if not current_user.discord_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No Discord ID linked to this account",
        )
    return current_user.discord_id


async def require_guild_access(
    guild_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Require dashboard access to the guild in the path.

    Granted to the guild owner, its authorized users, and platform admins.
    Raises 403 otherwise.
    """
    if not await guild_ops.has_access(db, guild_id, current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied",
        )
    return current_user


def verify_internal_secret(x_internal_secret: str = Header(...)) -> None:
    """Validate the X-Internal-Secret header against the configured secret."""
    if not settings.internal_calls_enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Internal secret not configured",
        )
    if not hmac.compare_digest(x_internal_secret, settings.internal_api_secret):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid internal secret",
        )


def get_client_id(request: Request) -> str:
    """
    Identify the caller for rate limiting.

    uvicorn's ProxyHeadersMiddleware has already replaced client.host with
    the forwarded address when running behind the proxy.
    """
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_redeem_rate_limit(request: Request) -> None:
    """Per-client sliding window on code redemption (429 with Retry-After)."""
    rate_limiter.check_rate_limit(get_client_id(request), "redeem", REDEEM_LIMIT)
