"""Domain operations for guild tenants, dashboard grants and Stripe settings."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.access import has_guild_access
from app.core.encryption import secret_encryption
from app.domain.base_operations import store_operation
from app.models.guild import GuildAuthorizedUser, GuildConfig, GuildStripeConfig
from app.models.user import User

logger = logging.getLogger(__name__)


class GuildOperations:
    """Operations for GuildConfig and the rows hanging directly off it."""

    @store_operation
    async def get(self, db: AsyncSession, guild_id: str) -> GuildConfig | None:
        """Get a registered guild."""
        statement = select(GuildConfig).where(GuildConfig.guild_id == guild_id)  # type: ignore[arg-type]
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    @store_operation
    async def get_authorized_ids(self, db: AsyncSession, guild_id: str) -> set[str]:
        """Discord ids explicitly granted dashboard access."""
        statement = select(GuildAuthorizedUser.discord_id).where(
            GuildAuthorizedUser.guild_id == guild_id  # type: ignore[arg-type]
        )
        result = await db.execute(statement)
        return set(result.scalars().all())

    async def has_access(self, db: AsyncSession, guild_id: str, user: User) -> bool:
        """
        Check whether a user may manage a guild's shop.

        Unregistered guilds grant nobody access except platform admins.
        """
        if user.is_admin:
            return True

        guild = await self.get(db, guild_id)
        if guild is None:
            return False

        authorized = await self.get_authorized_ids(db, guild_id)
        return has_guild_access(
            user.discord_id,
            owner_discord_id=guild.owner_discord_id,
            authorized_discord_ids=authorized,
            is_platform_admin=user.is_admin,
        )

    @store_operation
    async def get_stripe_config(
        self,
        db: AsyncSession,
        guild_id: str,
    ) -> GuildStripeConfig | None:
        """Get the guild's Stripe settings row."""
        statement = select(GuildStripeConfig).where(
            GuildStripeConfig.guild_id == guild_id  # type: ignore[arg-type]
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_stripe_secret(self, db: AsyncSession, guild_id: str) -> str | None:
        """Decrypted secret key, or None if the guild cannot take payments."""
        config = await self.get_stripe_config(db, guild_id)
        if config is None or not config.is_ready or config.stripe_secret_key is None:
            return None
        return secret_encryption.decrypt(config.stripe_secret_key)

    @store_operation
    async def upsert_stripe_config(
        self,
        db: AsyncSession,
        guild_id: str,
        enabled: bool,
        updated_by_discord_id: str | None,
        secret_key: str | None = None,
    ) -> GuildStripeConfig:
        """
        Create or update the guild's Stripe settings.

        A None secret_key keeps the stored key; an empty string clears it.
        Raises ValueError when enabling without a key.
        """
        config = await self.get_stripe_config(db, guild_id)
        if config is None:
            config = GuildStripeConfig(guild_id=guild_id)

        if secret_key is not None:
            secret_key = secret_key.strip()
            if secret_key and not secret_key.startswith(("sk_", "rk_")):
                raise ValueError("Stripe secret key must start with sk_ or rk_")
            config.stripe_secret_key = secret_encryption.encrypt(secret_key) if secret_key else None

        if enabled and not config.stripe_secret_key:
            raise ValueError("A Stripe secret key is required to enable payments")

        config.enabled = enabled
        config.updated_by_discord_id = updated_by_discord_id
        db.add(config)
        await db.flush()
        await db.refresh(config)

        logger.info(f"Stripe settings updated for guild {guild_id} (enabled={enabled})")
        return config


# Singleton instance
guild_ops = GuildOperations()
