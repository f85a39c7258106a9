from app.api.v1 import (
    categories,
    coupons,
    internal,
    prefilled_codes,
    redeem,
    shop,
    subscriptions,
)

__all__ = [
    "shop",
    "categories",
    "prefilled_codes",
    "coupons",
    "redeem",
    "subscriptions",
    "internal",
]
