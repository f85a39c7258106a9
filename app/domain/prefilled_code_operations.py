"""Domain operations for the code pools behind prefilled-delivery items.

Admins upload codes in bulk; each one-time purchase of the item claims the
oldest available code for the buyer. The claim is a single UPDATE over a
SKIP LOCKED subselect, so concurrent purchases never receive the same code.
"""

import logging
import re
import uuid as uuid_pkg
from datetime import UTC, datetime

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.base_operations import BaseOperations, store_operation
from app.models.prefilled_code import ShopPrefilledCode

logger = logging.getLogger(__name__)

MAX_CODES_PER_UPLOAD = 1000
MAX_CODE_LENGTH = 255
CODE_SEPARATORS = re.compile(r"[\n,;]+")


def parse_codes(raw: list[str] | str) -> list[str]:
    """
    Codes from an upload: a list, or one string split on newlines, commas
    and semicolons. Blank entries are dropped and duplicates collapsed,
    keeping first-seen order.

    Raises ValueError if nothing is left, the batch is too large, or a
    code is longer than MAX_CODE_LENGTH.
    """
    parts = raw if isinstance(raw, list) else CODE_SEPARATORS.split(raw)
    codes = list(dict.fromkeys(p.strip() for p in parts if isinstance(p, str) and p.strip()))

    if not codes:
        raise ValueError("Provide codes (array or newline/comma-separated string)")
    if len(codes) > MAX_CODES_PER_UPLOAD:
        raise ValueError(f"At most {MAX_CODES_PER_UPLOAD} codes per upload")
    if any(len(code) > MAX_CODE_LENGTH for code in codes):
        raise ValueError(f"Codes must be at most {MAX_CODE_LENGTH} characters")
    return codes


class PrefilledCodeOperations(BaseOperations[ShopPrefilledCode]):
    """Pool management and delivery for ShopPrefilledCode."""

    def __init__(self) -> None:
        super().__init__(ShopPrefilledCode)

    @store_operation
    async def list_codes(
        self,
        db: AsyncSession,
        guild_id: str,
        shop_item_id: uuid_pkg.UUID,
    ) -> list[ShopPrefilledCode]:
        """All codes in an item's pool, delivered ones included, newest first."""
        statement = (
            select(ShopPrefilledCode)
            .where(
                ShopPrefilledCode.guild_id == guild_id,  # type: ignore[arg-type]
                ShopPrefilledCode.shop_item_id == shop_item_id,  # type: ignore[arg-type]
            )
            .order_by(ShopPrefilledCode.created_at.desc())  # type: ignore[attr-defined]
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    @store_operation
    async def count_available(self, db: AsyncSession, shop_item_id: uuid_pkg.UUID) -> int:
        statement = select(func.count()).where(
            ShopPrefilledCode.shop_item_id == shop_item_id,  # type: ignore[arg-type]
            ShopPrefilledCode.assigned_at.is_(None),  # type: ignore[union-attr]
        )
        result = await db.execute(statement)
        return result.scalar_one()

    @store_operation
    async def add_codes(
        self,
        db: AsyncSession,
        guild_id: str,
        shop_item_id: uuid_pkg.UUID,
        codes: list[str],
    ) -> list[ShopPrefilledCode]:
        """Insert codes into the pool. Codes already in it are skipped."""
        statement = (
            insert(ShopPrefilledCode)
            .values(
                [
                    {"guild_id": guild_id, "shop_item_id": shop_item_id, "code": code}
                    for code in codes
                ]
            )
            .on_conflict_do_nothing(constraint="uq_guild_shop_prefilled_code")
            .returning(ShopPrefilledCode)
        )
        result = await db.execute(statement)
        inserted = list(result.scalars().all())
        logger.info(
            f"Added {len(inserted)} of {len(codes)} prefilled codes to item {shop_item_id}"
        )
        return inserted

    async def delete_code(
        self,
        db: AsyncSession,
        guild_id: str,
        shop_item_id: uuid_pkg.UUID,
        code_id: uuid_pkg.UUID,
    ) -> bool:
        """
        Remove an available code from the pool.

        Returns False if no such code exists for the item. Raises ValueError
        for a delivered code, which stays as the buyer's delivery record.
        """
        code = await self.get_for_guild(db, guild_id, code_id)
        if code is None or code.shop_item_id != shop_item_id:
            return False
        if code.is_assigned:
            raise ValueError("This code has already been delivered")

        await db.delete(code)
        await db.flush()
        return True

    @store_operation
    async def claim_next(
        self,
        db: AsyncSession,
        guild_id: str,
        shop_item_id: uuid_pkg.UUID,
        buyer_discord_id: str,
        order_id: uuid_pkg.UUID | None = None,
        now: datetime | None = None,
    ) -> ShopPrefilledCode | None:
        """
        Deliver the oldest available code to a buyer.

        Returns None when the pool is empty. Rows locked by a concurrent
        claim are skipped, not waited on.
        """
        now = now or datetime.now(UTC)
        candidate = (
            select(ShopPrefilledCode.id)
            .where(
                ShopPrefilledCode.guild_id == guild_id,  # type: ignore[arg-type]
                ShopPrefilledCode.shop_item_id == shop_item_id,  # type: ignore[arg-type]
                ShopPrefilledCode.assigned_at.is_(None),  # type: ignore[union-attr]
            )
            .order_by(ShopPrefilledCode.created_at.asc())  # type: ignore[attr-defined]
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        statement = (
            update(ShopPrefilledCode)
            .where(
                ShopPrefilledCode.id == candidate,  # type: ignore[arg-type]
                ShopPrefilledCode.assigned_at.is_(None),  # type: ignore[union-attr]
            )
            .values(
                assigned_to_discord_id=buyer_discord_id,
                assigned_at=now,
                order_id=order_id,
            )
            .returning(ShopPrefilledCode)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    @store_operation
    async def list_delivered(
        self,
        db: AsyncSession,
        guild_id: str,
        buyer_discord_id: str,
    ) -> list[ShopPrefilledCode]:
        """Codes delivered to a buyer in this guild, newest first."""
        statement = (
            select(ShopPrefilledCode)
            .where(
                ShopPrefilledCode.guild_id == guild_id,  # type: ignore[arg-type]
                ShopPrefilledCode.assigned_to_discord_id == buyer_discord_id,  # type: ignore[arg-type]
            )
            .order_by(ShopPrefilledCode.assigned_at.desc())  # type: ignore[union-attr]
        )
        result = await db.execute(statement)
        return list(result.scalars().all())


# Singleton instance
prefilled_code_ops = PrefilledCodeOperations()
