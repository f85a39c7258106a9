import asyncio
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config
from sqlmodel import SQLModel

from app.config import settings
# Import all models to ensure they're registered with SQLModel.metadata
from app.models import (  # noqa: F401
    GuildAuthorizedUser,
    GuildConfig,
    GuildStripeConfig,
    ProcessedPayment,
    RedemptionCode,
    ShopAuditLog,
    ShopCategory,
    ShopCoupon,
    ShopItem,
    ShopOrder,
    ShopPrefilledCode,
    ShopSubscription,
    User,
)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata


def include_object(obj: Any, name: str | None, type_: str, reflected: bool, compare_to: Any) -> bool:
    """Only diff tables this service owns.

    The shared database also holds tables owned by other services; autogenerate
    must not propose dropping them.
    """
    if type_ == "table" and reflected and compare_to is None:
        return False
    return True


def _context_options() -> dict[str, Any]:
    return {
        "target_metadata": target_metadata,
        "include_object": include_object,
        "compare_type": True,
        "compare_server_default": True,
    }


def run_migrations_offline() -> None:
    """Emit SQL for the migrations without connecting (alembic upgrade --sql)."""
    context.configure(
        url=settings.database_url_direct,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_context_options(),
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, **_context_options())

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations over the direct connection (DDL cannot go through the pooler)."""
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = settings.database_url_direct

    connectable = async_engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
