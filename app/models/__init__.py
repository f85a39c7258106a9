from app.models.audit_log import ShopAuditAction, ShopAuditLog
from app.models.category import ShopCategory, ShopCategoryCreate, ShopCategoryUpdate
from app.models.coupon import DiscountType, ShopCoupon, ShopCouponCreate
from app.models.guild import GuildAuthorizedUser, GuildConfig, GuildStripeConfig
from app.models.order import ProcessedPayment, ShopOrder
from app.models.prefilled_code import ShopPrefilledCode
from app.models.redemption_code import RedemptionCode
from app.models.shop_item import DeliveryKind, ShopItem, ShopItemCreate, ShopItemUpdate
from app.models.subscription import ShopSubscription, ShopSubscriptionStatus
from app.models.user import User

__all__ = [
    "User",
    "GuildConfig",
    "GuildAuthorizedUser",
    "GuildStripeConfig",
    "ShopItem",
    "ShopItemCreate",
    "ShopItemUpdate",
    "DeliveryKind",
    "ShopCategory",
    "ShopCategoryCreate",
    "ShopCategoryUpdate",
    "ShopPrefilledCode",
    "ShopCoupon",
    "ShopCouponCreate",
    "DiscountType",
    "ShopOrder",
    "ProcessedPayment",
    "RedemptionCode",
    "ShopSubscription",
    "ShopSubscriptionStatus",
    "ShopAuditLog",
    "ShopAuditAction",
]
