"""Thin client for the Discord bot control plane.

The bot owns the gateway connection; this service asks it over HTTP to add
or remove a member's role. Calls are detached effects: the outcome is
logged and returned, never raised, so a bot outage cannot undo a ledger
write that has already happened.
"""

import logging
from dataclasses import dataclass

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectOutcome:
    """Result of one role grant or retraction attempt."""

    action: str
    guild_id: str
    discord_id: str
    role_id: str
    ok: bool
    error: str | None = None


class RoleGrantService:
    """Grant and revoke Discord roles via the bot's internal API."""

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if settings.internal_api_secret:
            headers["X-Internal-Secret"] = settings.internal_api_secret
        return headers

    def _member_roles_url(self, guild_id: str, discord_id: str) -> str:
        base = settings.bot_api_url.rstrip("/")
        return f"{base}/api/discord/{guild_id}/users/{discord_id}/roles"

    async def _send(
        self,
        action: str,
        method: str,
        url: str,
        guild_id: str,
        discord_id: str,
        role_id: str,
        json: dict | None = None,
    ) -> EffectOutcome:
        try:
            async with httpx.AsyncClient(timeout=settings.bot_api_timeout_seconds) as client:
                response = await client.request(method, url, json=json, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error = f"HTTP {e.response.status_code}: {e.response.text}"
        except httpx.RequestError as e:
            error = f"Request failed: {e}"
        else:
            logger.info(f"[roles] {action} role {role_id} for {discord_id} in guild {guild_id}")
            return EffectOutcome(action, guild_id, discord_id, role_id, ok=True)

        logger.error(
            f"[roles] Failed to {action} role {role_id} for {discord_id} "
            f"in guild {guild_id}: {error}"
        )
        return EffectOutcome(action, guild_id, discord_id, role_id, ok=False, error=error)

    async def grant_role(self, guild_id: str, discord_id: str, role_id: str) -> EffectOutcome:
        """Add a role to a guild member."""
        return await self._send(
            "grant",
            "POST",
            self._member_roles_url(guild_id, discord_id),
            guild_id,
            discord_id,
            role_id,
            json={"roleId": role_id},
        )

    async def revoke_role(self, guild_id: str, discord_id: str, role_id: str) -> EffectOutcome:
        """Remove a role from a guild member."""
        return await self._send(
            "revoke",
            "DELETE",
            f"{self._member_roles_url(guild_id, discord_id)}/{role_id}",
            guild_id,
            discord_id,
            role_id,
        )


role_grant_service = RoleGrantService()
