"""Guild models - tenant configuration, dashboard grants and payment settings."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, UniqueConstraint, text
from sqlmodel import Field, SQLModel

from app.models.base import CreatedAtMixin, GuildScopedMixin, TimestampMixin, UUIDMixin


class GuildConfig(TimestampMixin, SQLModel, table=True):
    """
    A guild (Discord server) registered with the platform.

    The guild is the tenant: every shop row hangs off guild_id and nothing
    is shared between guilds.
    """

    __tablename__ = "guild_configs"

    guild_id: str = Field(
        sa_column=Column(String(32), primary_key=True, nullable=False),
    )
    guild_name: str | None = Field(default=None, max_length=100, nullable=True)
    owner_discord_id: str = Field(
        sa_column=Column(String(32), nullable=False, index=True),
    )


class GuildAuthorizedUser(UUIDMixin, CreatedAtMixin, GuildScopedMixin, SQLModel, table=True):
    """Explicit dashboard grant for a non-owner member."""

    __tablename__ = "guild_authorized_users"
    __table_args__ = (
        UniqueConstraint("guild_id", "discord_id", name="uq_guild_authorized_user"),
    )

    discord_id: str = Field(max_length=32, nullable=False, index=True)
    role: str = Field(
        default="admin",
        max_length=20,
        nullable=False,
        sa_column_kwargs={"server_default": text("'admin'")},
    )
    added_by_discord_id: str | None = Field(default=None, max_length=32, nullable=True)


class GuildStripeConfig(SQLModel, table=True):
    """
    Per-guild Stripe account settings.

    Each guild sells through its own Stripe account. The secret key is
    stored Fernet-encrypted (see app.core.encryption).
    """

    __tablename__ = "guild_stripe_config"

    guild_id: str = Field(
        sa_column=Column(
            String(32),
            ForeignKey("guild_configs.guild_id", ondelete="CASCADE"),
            primary_key=True,
            nullable=False,
        ),
    )
    stripe_secret_key: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
    )
    enabled: bool = Field(
        default=False,
        nullable=False,
        sa_column_kwargs={"server_default": text("false")},
    )
    updated_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=lambda: datetime.now(UTC),
        nullable=False,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"server_default": text("now()"), "onupdate": text("now()")},
    )
    updated_by_discord_id: str | None = Field(default=None, max_length=32, nullable=True)

    @property
    def is_ready(self) -> bool:
        """True when checkout can be started for this guild."""
        return self.enabled and bool(self.stripe_secret_key)
