from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from app.config import settings

# Transaction pooled connection for request handling (via Supabase pooler on port 6543)
# Note: Transaction pooler doesn't support prepared statements, so we disable them
#
# Pool sizing: pool_size=10 base + max_overflow=20 = 30 max connections per instance.
# Instances are stateless; the database is the only shared state between them.
engine = create_async_engine(
    settings.database_url,
    echo=False,
    future=True,
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,  # Detects stale connections before use
    pool_recycle=300,  # Recycle connections every 5 min (Supabase pooler compatibility)
    pool_timeout=30,  # Wait up to 30s for a connection from pool
    connect_args={
        "statement_cache_size": 0,
        "prepared_statement_cache_size": 0,
        "command_timeout": 60,  # Query timeout in seconds (prevents hung queries)
    },
)

# Direct connection for DDL and session-level advisory locks (port 5432).
# PgBouncer transaction pooling does not keep session state between statements.
direct_engine = create_async_engine(
    settings.database_url_direct,
    echo=False,
    future=True,
    pool_pre_ping=True,
    pool_size=3,  # Small pool - only used by the scheduler and init_db
    max_overflow=5,
    connect_args={
        "command_timeout": 300,
    },
)

async_session_maker = sessionmaker(  # type: ignore[call-overload]
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

direct_session_maker = sessionmaker(  # type: ignore[call-overload]
    direct_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields an async database session.

    The whole request runs in one transaction: committed when the handler
    returns, rolled back on any exception so a failed request leaves no
    partial writes behind.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create all tables (for development only - use Alembic in production).

    Uses direct connection since DDL operations require it.
    """
    async with direct_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
