"""Guild shop API for the code pools behind prefilled-delivery items."""

import logging
import uuid as uuid_pkg
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import DbSession, require_guild_access
from app.domain.prefilled_code_operations import parse_codes, prefilled_code_ops
from app.domain.shop_item_operations import shop_item_ops
from app.models.prefilled_code import ShopPrefilledCode
from app.models.shop_item import DeliveryKind, ShopItem
from app.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/guilds/{guild_id}/shop/items/{item_id}/prefilled", tags=["shop"])


# ─────────────────────────────────────────────────────────────────────────────
# Request/Response Schemas
# ─────────────────────────────────────────────────────────────────────────────


class PrefilledCodeResponse(BaseModel):
    id: str
    code: str
    assigned_to_discord_id: str | None = None
    assigned_at: datetime | None = None
    created_at: datetime


class PrefilledPoolResponse(BaseModel):
    codes: list[PrefilledCodeResponse]
    available: int


class PrefilledCodesUpload(BaseModel):
    """A list of codes, or one string separated by newlines, commas or semicolons."""

    codes: list[str] | str


class PrefilledUploadResponse(BaseModel):
    added: int
    skipped: int


def _code_response(code: ShopPrefilledCode) -> PrefilledCodeResponse:
    return PrefilledCodeResponse(
        id=str(code.id),
        code=code.code,
        assigned_to_discord_id=code.assigned_to_discord_id,
        assigned_at=code.assigned_at,
        created_at=code.created_at,
    )


async def _get_prefilled_item(db: AsyncSession, guild_id: str, item_id: uuid_pkg.UUID) -> ShopItem:
    item = await shop_item_ops.get_for_guild(db, guild_id, item_id)
    if not item or item.delivery_kind != DeliveryKind.PREFILLED.value:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Prefilled shop item not found",
        )
    return item


# ─────────────────────────────────────────────────────────────────────────────
# Endpoints
# ─────────────────────────────────────────────────────────────────────────────


@router.get("", response_model=PrefilledPoolResponse)
async def list_prefilled_codes(
    guild_id: str,
    item_id: uuid_pkg.UUID,
    db: DbSession,
    _user: User = Depends(require_guild_access),
) -> PrefilledPoolResponse:
    """The item's pool, delivered codes included, with the count still available."""
    item = await _get_prefilled_item(db, guild_id, item_id)
    codes = await prefilled_code_ops.list_codes(db, guild_id, item.id)
    return PrefilledPoolResponse(
        codes=[_code_response(c) for c in codes],
        available=sum(1 for c in codes if not c.is_assigned),
    )


@router.post("", response_model=PrefilledUploadResponse, status_code=status.HTTP_201_CREATED)
async def add_prefilled_codes(
    guild_id: str,
    item_id: uuid_pkg.UUID,
    data: PrefilledCodesUpload,
    db: DbSession,
    _user: User = Depends(require_guild_access),
) -> PrefilledUploadResponse:
    """Bulk-add codes. Codes already in the pool are skipped."""
    item = await _get_prefilled_item(db, guild_id, item_id)
    try:
        codes = parse_codes(data.codes)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None

    inserted = await prefilled_code_ops.add_codes(db, guild_id, item.id, codes)
    await db.commit()
    return PrefilledUploadResponse(added=len(inserted), skipped=len(codes) - len(inserted))


@router.delete("/{code_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_prefilled_code(
    guild_id: str,
    item_id: uuid_pkg.UUID,
    code_id: uuid_pkg.UUID,
    db: DbSession,
    _user: User = Depends(require_guild_access),
) -> None:
    """Remove an undelivered code from the pool."""
    item = await _get_prefilled_item(db, guild_id, item_id)
    try:
        deleted = await prefilled_code_ops.delete_code(db, guild_id, item.id, code_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from None
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Code not found")

    await db.commit()
