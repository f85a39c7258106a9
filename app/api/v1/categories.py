"""Guild shop category API (dashboard only)."""

import logging
import uuid as uuid_pkg

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from app.api.deps import DbSession, require_guild_access
from app.domain.category_operations import category_ops
from app.models.category import ShopCategory, ShopCategoryCreate, ShopCategoryUpdate
from app.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/guilds/{guild_id}/shop/categories", tags=["shop"])


class CategoryResponse(BaseModel):
    id: str
    name: str
    color: str
    sort_order: int


def _category_response(category: ShopCategory) -> CategoryResponse:
    return CategoryResponse(
        id=str(category.id),
        name=category.name,
        color=category.color,
        sort_order=category.sort_order,
    )


@router.get("", response_model=list[CategoryResponse])
async def list_categories(
    guild_id: str,
    db: DbSession,
    _user: User = Depends(require_guild_access),
) -> list[CategoryResponse]:
    categories = await category_ops.list_categories(db, guild_id)
    return [_category_response(c) for c in categories]


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    guild_id: str,
    data: ShopCategoryCreate,
    db: DbSession,
    _user: User = Depends(require_guild_access),
) -> CategoryResponse:
    try:
        category = await category_ops.create_category(db, guild_id, data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None

    await db.commit()
    logger.info(f"Created shop category {category.id} in guild {guild_id}")
    return _category_response(category)


@router.patch("/{category_id}", response_model=CategoryResponse)
async def update_category(
    guild_id: str,
    category_id: uuid_pkg.UUID,
    data: ShopCategoryUpdate,
    db: DbSession,
    _user: User = Depends(require_guild_access),
) -> CategoryResponse:
    category = await category_ops.get_for_guild(db, guild_id, category_id)
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")

    try:
        category = await category_ops.update_category(db, category, data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None

    await db.commit()
    return _category_response(category)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    guild_id: str,
    category_id: uuid_pkg.UUID,
    db: DbSession,
    _user: User = Depends(require_guild_access),
) -> None:
    """Delete a category. Its items stay in the shop, uncategorized."""
    deleted = await category_ops.delete_for_guild(db, guild_id, category_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")

    await db.commit()
    logger.info(f"Deleted shop category {category_id} in guild {guild_id}")
