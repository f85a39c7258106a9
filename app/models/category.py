"""Shop category model - dashboard grouping for a guild's items."""

from sqlalchemy import text
from sqlmodel import Field, SQLModel

from app.models.base import GuildScopedMixin, TimestampMixin, UUIDMixin

DEFAULT_CATEGORY_COLOR = "#5865F2"  # Discord blurple


class ShopCategory(UUIDMixin, TimestampMixin, GuildScopedMixin, SQLModel, table=True):
    """A named group of items. Deleting one leaves its items uncategorized."""

    __tablename__ = "guild_shop_categories"

    name: str = Field(max_length=100, nullable=False)
    color: str = Field(
        default=DEFAULT_CATEGORY_COLOR,
        max_length=7,
        nullable=False,
        sa_column_kwargs={"server_default": text(f"'{DEFAULT_CATEGORY_COLOR}'")},
    )
    sort_order: int = Field(
        default=0,
        nullable=False,
        sa_column_kwargs={"server_default": text("0")},
    )


class ShopCategoryCreate(SQLModel):
    """Schema for creating a category."""

    name: str
    color: str = DEFAULT_CATEGORY_COLOR
    sort_order: int = 0


class ShopCategoryUpdate(SQLModel):
    """Schema for updating a category. Only provided fields are applied."""

    name: str | None = None
    color: str | None = None
    sort_order: int | None = None
