import uuid as uuid_pkg
from datetime import UTC, datetime

from sqlalchemy import DateTime, text
from sqlmodel import Field, SQLModel


class UUIDMixin(SQLModel):
    """Mixin providing UUID primary key."""

    id: uuid_pkg.UUID = Field(
        default_factory=uuid_pkg.uuid4,
        primary_key=True,
        index=True,
        nullable=False,
        sa_column_kwargs={"server_default": text("gen_random_uuid()")},
    )


class CreatedAtMixin(SQLModel):
    """Mixin providing created_at only, for append-only rows."""

    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=lambda: datetime.now(UTC),
        nullable=False,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"server_default": text("now()")},
    )


class TimestampMixin(CreatedAtMixin):
    """Mixin providing created_at and updated_at timestamps."""

    updated_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=lambda: datetime.now(UTC),
        nullable=False,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"server_default": text("now()"), "onupdate": text("now()")},
    )


class GuildScopedMixin(SQLModel):
    """Mixin for rows owned by exactly one guild.

    Discord snowflakes are stored as strings; they overflow BIGINT-safe
    JSON handling on the frontend otherwise.
    """

    guild_id: str = Field(
        foreign_key="guild_configs.guild_id",
        max_length=32,
        nullable=False,
        index=True,
    )
