import functools
import logging
import uuid as uuid_pkg
from collections.abc import Awaitable, Callable
from typing import Any, Generic, ParamSpec, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from app.core.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=SQLModel)
P = ParamSpec("P")
R = TypeVar("R")


def store_operation(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Translate database connectivity faults into StoreUnavailable.

    Constraint violations and other SQL errors are left alone; only the
    "could not talk to the database" family is mapped, so callers can
    answer with a generic retryable failure.
    """

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func(*args, **kwargs)
        except (OperationalError, InterfaceError, PoolTimeoutError) as e:
            logger.error(f"Store unavailable in {func.__qualname__}: {e}")
            raise StoreUnavailable(func.__qualname__) from e

    return wrapper


class BaseOperations(Generic[ModelType]):
    """Base CRUD operations for guild-scoped models."""

    def __init__(self, model: type[ModelType]):
        self.model = model

    @store_operation
    async def get(self, db: AsyncSession, id: uuid_pkg.UUID) -> ModelType | None:
        """Get a single record by ID."""
        statement = select(self.model).where(self.model.id == id)
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    @store_operation
    async def get_for_guild(
        self,
        db: AsyncSession,
        guild_id: str,
        id: uuid_pkg.UUID,
    ) -> ModelType | None:
        """Get a record by ID, scoped to guild."""
        statement = select(self.model).where(
            self.model.id == id,
            self.model.guild_id == guild_id,
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    @store_operation
    async def list_for_guild(
        self,
        db: AsyncSession,
        guild_id: str,
        skip: int = 0,
        limit: int = 100,
    ) -> list[ModelType]:
        """Get multiple records for a guild with pagination, newest first."""
        statement = (
            select(self.model)
            .where(self.model.guild_id == guild_id)
            .offset(skip)
            .limit(limit)
            .order_by(self.model.created_at.desc())
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    @store_operation
    async def create(
        self,
        db: AsyncSession,
        obj_in: dict,
        guild_id: str,
    ) -> ModelType:
        """Create a new record."""
        db_obj = self.model(**obj_in, guild_id=guild_id)
        db.add(db_obj)
        await db.flush()
        await db.refresh(db_obj)
        return db_obj

    @store_operation
    async def update(
        self,
        db: AsyncSession,
        db_obj: ModelType,
        obj_in: dict,
    ) -> ModelType:
        """Update an existing record.

        All keys in obj_in are applied, including None values.
        Callers should use model_dump(exclude_unset=True) to omit
        fields that were not explicitly provided.
        """
        for field, value in obj_in.items():
            setattr(db_obj, field, value)
        db.add(db_obj)
        await db.flush()
        await db.refresh(db_obj)
        return db_obj

    @store_operation
    async def delete_for_guild(
        self,
        db: AsyncSession,
        guild_id: str,
        id: uuid_pkg.UUID,
    ) -> bool:
        """Delete a record (scoped to guild)."""
        db_obj = await self.get_for_guild(db, guild_id=guild_id, id=id)
        if db_obj:
            await db.delete(db_obj)
            await db.flush()
            return True
        return False

    @store_operation
    async def compare_and_set(
        self,
        db: AsyncSession,
        id: uuid_pkg.UUID,
        expected: dict[str, Any],
        values: dict[str, Any],
    ) -> bool:
        """
        Atomically update a row only if it still matches `expected`.

        Issues a single `UPDATE ... WHERE id = :id AND <expected>` so two
        concurrent writers cannot both win; a None in `expected` means
        `IS NULL`. Returns True if this call performed the write.

        Instances already loaded in the session are not synchronized;
        refresh them if you need the new values.
        """
        conditions = [self.model.id == id]
        for field, value in expected.items():
            column = getattr(self.model, field)
            conditions.append(column.is_(None) if value is None else column == value)

        statement = (
            update(self.model)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(statement)
        return result.rowcount == 1
