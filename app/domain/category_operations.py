"""Domain operations for shop categories."""

import re
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.base_operations import BaseOperations, store_operation
from app.models.category import (
    DEFAULT_CATEGORY_COLOR,
    ShopCategory,
    ShopCategoryCreate,
    ShopCategoryUpdate,
)

HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


def _clean_color(raw: str | None) -> str:
    color = (raw or "").strip() or DEFAULT_CATEGORY_COLOR
    if not HEX_COLOR.match(color):
        raise ValueError("color must be a hex value like #5865F2")
    return color.upper()


class CategoryOperations(BaseOperations[ShopCategory]):
    """CRUD operations for ShopCategory model."""

    def __init__(self) -> None:
        super().__init__(ShopCategory)

    @store_operation
    async def list_categories(self, db: AsyncSession, guild_id: str) -> list[ShopCategory]:
        """A guild's categories by sort_order, then name."""
        statement = (
            select(ShopCategory)
            .where(ShopCategory.guild_id == guild_id)  # type: ignore[arg-type]
            .order_by(
                ShopCategory.sort_order.asc(),  # type: ignore[attr-defined]
                ShopCategory.name.asc(),  # type: ignore[attr-defined]
            )
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def create_category(
        self,
        db: AsyncSession,
        guild_id: str,
        data: ShopCategoryCreate,
    ) -> ShopCategory:
        """Create a category. Raises ValueError on a blank name or bad color."""
        name = data.name.strip()
        if not name:
            raise ValueError("name is required")

        return await self.create(
            db,
            obj_in={
                "name": name,
                "color": _clean_color(data.color),
                "sort_order": data.sort_order,
            },
            guild_id=guild_id,
        )

    async def update_category(
        self,
        db: AsyncSession,
        category: ShopCategory,
        data: ShopCategoryUpdate,
    ) -> ShopCategory:
        """Apply a partial update, on the same rules as create_category."""
        updates: dict[str, Any] = data.model_dump(exclude_unset=True)

        if "name" in updates:
            updates["name"] = (updates["name"] or "").strip()
            if not updates["name"]:
                raise ValueError("name is required")
        if "color" in updates:
            updates["color"] = _clean_color(updates["color"])
        if "sort_order" in updates and updates["sort_order"] is None:
            del updates["sort_order"]

        return await self.update(db, category, updates)


# Singleton instance
category_ops = CategoryOperations()
