"""Domain operations for shop items."""

import uuid as uuid_pkg

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.base_operations import BaseOperations, store_operation
from app.domain.category_operations import category_ops
from app.models.order import ShopOrder
from app.models.redemption_code import RedemptionCode
from app.models.shop_item import DeliveryKind, ShopItem, ShopItemCreate, ShopItemUpdate
from app.models.subscription import ShopSubscription

# Delivery kinds that hand the buyer a Discord role
ROLE_DELIVERIES = {DeliveryKind.ROLE.value, DeliveryKind.SUBSCRIPTION.value}


class ShopItemOperations(BaseOperations[ShopItem]):
    """CRUD operations for ShopItem model."""

    def __init__(self) -> None:
        super().__init__(ShopItem)

    @store_operation
    async def list_items(
        self,
        db: AsyncSession,
        guild_id: str,
        include_disabled: bool = False,
        category_id: uuid_pkg.UUID | None = None,
    ) -> list[ShopItem]:
        """List a guild's items in display order, optionally one category only."""
        statement = select(ShopItem).where(ShopItem.guild_id == guild_id)  # type: ignore[arg-type]
        if not include_disabled:
            statement = statement.where(ShopItem.enabled.is_(True))  # type: ignore[attr-defined]
        if category_id is not None:
            statement = statement.where(
                ShopItem.category_id == category_id  # type: ignore[arg-type]
            )
        statement = statement.order_by(
            ShopItem.sort_order.asc(),  # type: ignore[attr-defined]
            ShopItem.created_at.asc(),  # type: ignore[attr-defined]
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    @store_operation
    async def get_enabled(
        self,
        db: AsyncSession,
        guild_id: str,
        item_id: uuid_pkg.UUID,
    ) -> ShopItem | None:
        """Get an item that is currently for sale."""
        statement = select(ShopItem).where(
            ShopItem.guild_id == guild_id,  # type: ignore[arg-type]
            ShopItem.id == item_id,  # type: ignore[arg-type]
            ShopItem.enabled.is_(True),  # type: ignore[attr-defined]
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    @store_operation
    async def get_names(
        self,
        db: AsyncSession,
        item_ids: set[uuid_pkg.UUID],
    ) -> dict[uuid_pkg.UUID, str]:
        """Map item ids to names for listing annotations."""
        if not item_ids:
            return {}
        statement = select(ShopItem.id, ShopItem.name).where(
            ShopItem.id.in_(item_ids)  # type: ignore[attr-defined]
        )
        result = await db.execute(statement)
        return {row.id: row.name for row in result.all()}

    async def create_item(
        self,
        db: AsyncSession,
        guild_id: str,
        data: ShopItemCreate,
    ) -> ShopItem:
        """
        Create a shop item.

        Raises ValueError if the name is blank, the price is below one minor
        unit, a role-delivering item has no role, or the category belongs to
        another guild. Prefilled items never carry a role.
        """
        name = data.name.strip()
        if not name:
            raise ValueError("name is required")
        if data.price_amount_cents < 1:
            raise ValueError("price_amount_cents must be a positive number")

        role_id = (data.discord_role_id or "").strip() or None
        if data.delivery_kind.value in ROLE_DELIVERIES and not role_id:
            raise ValueError("Select a Discord role for this item")
        if data.delivery_kind == DeliveryKind.PREFILLED:
            role_id = None
        if data.category_id is not None:
            await self._check_category(db, guild_id, data.category_id)

        return await self.create(
            db,
            obj_in={
                "name": name,
                "description": (data.description or "").strip() or None,
                "price_amount_cents": data.price_amount_cents,
                "currency": (data.currency.strip() or "eur").lower(),
                "delivery_kind": data.delivery_kind.value,
                "discord_role_id": role_id,
                "enabled": data.enabled,
                "sort_order": data.sort_order,
                "category_id": data.category_id,
            },
            guild_id=guild_id,
        )

    async def update_item(
        self,
        db: AsyncSession,
        item: ShopItem,
        data: ShopItemUpdate,
    ) -> ShopItem:
        """
        Apply a partial update. Delivery kind is fixed once created, since
        orders and subscriptions already reference it.

        Raises ValueError on the same rules as create_item.
        """
        updates = data.model_dump(exclude_unset=True)

        if "name" in updates:
            updates["name"] = (updates["name"] or "").strip()
            if not updates["name"]:
                raise ValueError("name is required")
        if "price_amount_cents" in updates and (updates["price_amount_cents"] or 0) < 1:
            raise ValueError("price_amount_cents must be a positive number")
        if "currency" in updates:
            updates["currency"] = ((updates["currency"] or "").strip() or "eur").lower()
        if "discord_role_id" in updates:
            updates["discord_role_id"] = (updates["discord_role_id"] or "").strip() or None
            if item.delivery_kind in ROLE_DELIVERIES and not updates["discord_role_id"]:
                raise ValueError("Select a Discord role for this item")
            if item.delivery_kind == DeliveryKind.PREFILLED.value:
                updates["discord_role_id"] = None
        if updates.get("category_id") is not None:
            await self._check_category(db, item.guild_id, updates["category_id"])

        return await self.update(db, item, updates)

    @store_operation
    async def has_sales_history(self, db: AsyncSession, item_id: uuid_pkg.UUID) -> bool:
        """Whether any order, issued code or subscription references the item."""
        statement = select(
            exists().where(ShopOrder.shop_item_id == item_id)  # type: ignore[arg-type]
            | exists().where(RedemptionCode.shop_item_id == item_id)  # type: ignore[arg-type]
            | exists().where(ShopSubscription.shop_item_id == item_id)  # type: ignore[arg-type]
        )
        result = await db.execute(statement)
        return bool(result.scalar())

    async def delete_item(self, db: AsyncSession, item: ShopItem) -> None:
        """
        Delete an item along with its undelivered prefilled codes.

        Raises ValueError once the item has been sold; disable it instead so
        the ledger keeps its references.
        """
        if await self.has_sales_history(db, item.id):
            raise ValueError("This item has sales history. Disable it instead")

        await db.delete(item)
        await db.flush()

    async def _check_category(
        self,
        db: AsyncSession,
        guild_id: str,
        category_id: uuid_pkg.UUID,
    ) -> None:
        if await category_ops.get_for_guild(db, guild_id, category_id) is None:
            raise ValueError("Category not found")


# Singleton instance
shop_item_ops = ShopItemOperations()
