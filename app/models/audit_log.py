"""Shop audit log - append-only record of ledger transitions."""

from enum import Enum
from typing import Any

from sqlalchemy import Column, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from app.models.base import CreatedAtMixin, GuildScopedMixin, UUIDMixin


class ShopAuditAction(str, Enum):
    """Types of ledger events for audit logging."""

    PURCHASE_RECORDED = "purchase.recorded"
    CODE_MINTED = "code.minted"
    CODE_REDEEMED = "code.redeemed"
    PREFILLED_CODE_DELIVERED = "prefilled.delivered"
    PREFILLED_POOL_EMPTY = "prefilled.pool_empty"
    SUBSCRIPTION_STARTED = "subscription.started"
    SUBSCRIPTION_RENEWED = "subscription.renewed"
    SUBSCRIPTION_REVOKED = "subscription.revoked"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled"
    SUBSCRIPTION_EXPIRED = "subscription.expired"


class ShopAuditLog(UUIDMixin, CreatedAtMixin, GuildScopedMixin, SQLModel, table=True):
    """
    Shop audit log.

    Tracks every entitlement change for support and dispute handling.
    """

    __tablename__ = "guild_shop_audit_log"

    action: str = Field(
        sa_column=Column(String(50), nullable=False, index=True),
    )
    actor_discord_id: str | None = Field(default=None, max_length=32, nullable=True)
    details: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSONB, nullable=True),
    )
