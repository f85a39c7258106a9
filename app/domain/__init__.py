from app.domain.category_operations import category_ops
from app.domain.coupon_operations import coupon_ops
from app.domain.guild_operations import guild_ops
from app.domain.ledger_operations import ledger_ops
from app.domain.prefilled_code_operations import prefilled_code_ops
from app.domain.shop_item_operations import shop_item_ops

__all__ = [
    "guild_ops",
    "shop_item_ops",
    "category_ops",
    "prefilled_code_ops",
    "coupon_ops",
    "ledger_ops",
]
