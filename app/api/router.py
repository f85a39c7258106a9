from fastapi import APIRouter

from app.api.v1 import (
    categories,
    coupons,
    internal,
    prefilled_codes,
    redeem,
    shop,
    subscriptions,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(shop.router)
api_router.include_router(categories.router)
api_router.include_router(prefilled_codes.router)
api_router.include_router(coupons.router)
api_router.include_router(redeem.router)
api_router.include_router(subscriptions.router)
api_router.include_router(internal.router)
