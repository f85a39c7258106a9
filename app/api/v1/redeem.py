"""Redemption code API for buyers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import DbSession, enforce_redeem_rate_limit, require_discord_id
from app.domain.ledger_operations import LedgerError, ledger_ops
from app.services.role_grants import role_grant_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/guilds/{guild_id}/redeem", tags=["shop"])

_ERROR_STATUS = {
    LedgerError.CODE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    LedgerError.ALREADY_REDEEMED: status.HTTP_400_BAD_REQUEST,
    LedgerError.CODE_EXPIRED: status.HTTP_400_BAD_REQUEST,
}


class RedeemRequest(BaseModel):
    code: str


class RedeemResponse(BaseModel):
    success: bool
    message: str
    item_id: str | None = None
    item_name: str | None = None
    role_granted: bool = False


async def redeem_for(
    db: AsyncSession,
    guild_id: str,
    raw_code: str,
    discord_id: str,
) -> RedeemResponse:
    """
    Redeem a code for a Discord user and hand out the item's role.

    The redemption is committed before the role is granted. If the bot
    cannot be reached the code still counts as used; the failure is logged
    and reported in the response.
    """
    if not raw_code.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Code is required")

    result = await ledger_ops.redeem_code(db, guild_id, raw_code, discord_id)
    if not result.ok:
        error = result.error or LedgerError.CODE_NOT_FOUND
        raise HTTPException(
            status_code=_ERROR_STATUS.get(error, status.HTTP_400_BAD_REQUEST),
            detail=error.value,
        )

    await db.commit()
    logger.info(f"Code redeemed by {discord_id} in guild {guild_id}")

    role_granted = False
    message = "Code redeemed!"
    if result.role_id:
        outcome = await role_grant_service.grant_role(guild_id, discord_id, result.role_id)
        role_granted = outcome.ok
        message = (
            "Code redeemed! You received the role."
            if outcome.ok
            else "Code redeemed, but the role could not be assigned yet. Contact the server staff."
        )

    return RedeemResponse(
        success=True,
        message=message,
        item_id=str(result.shop_item_id) if result.shop_item_id else None,
        item_name=result.shop_item_name,
        role_granted=role_granted,
    )


@router.post(
    "",
    response_model=RedeemResponse,
    dependencies=[Depends(enforce_redeem_rate_limit)],
)
async def redeem_code(
    guild_id: str,
    data: RedeemRequest,
    db: DbSession,
    discord_id: str = Depends(require_discord_id),
) -> RedeemResponse:
    """Redeem a shop code. Rate limited per client."""
    return await redeem_for(db, guild_id, data.code, discord_id)
