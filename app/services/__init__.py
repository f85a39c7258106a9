# Services package

from app.services.role_grants import EffectOutcome, RoleGrantService, role_grant_service
from app.services.stripe_service import CheckoutSession, StripeService, stripe_service

__all__ = [
    # Discord bot control plane
    "EffectOutcome",
    "RoleGrantService",
    "role_grant_service",
    # Payments
    "CheckoutSession",
    "StripeService",
    "stripe_service",
]
