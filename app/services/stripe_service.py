"""Stripe payment service for guild shop checkouts, billing portal and cancellations."""

import logging
from dataclasses import dataclass

import stripe
from stripe import StripeError

from app.config import settings
from app.models.shop_item import DeliveryKind, ShopItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    """Checkout session handed back to the buyer."""

    id: str
    url: str


class StripeService:
    """
    Handles all Stripe API interactions.

    All methods are static and stateless. Every guild sells through its own
    Stripe account, so each call takes the guild's secret key explicitly
    instead of relying on a global stripe.api_key.
    """

    @staticmethod
    def _request_options(api_key: str) -> dict[str, str]:
        return {"api_key": api_key, "stripe_version": settings.stripe_api_version}

    @staticmethod
    def build_line_item(item: ShopItem, amount_cents: int) -> dict[str, object]:
        """One line item priced inline at the amount actually charged."""
        product_data: dict[str, str] = {"name": item.name}
        if item.description:
            product_data["description"] = item.description

        price_data: dict[str, object] = {
            "currency": (item.currency or "eur").lower(),
            "unit_amount": amount_cents,
            "product_data": product_data,
        }
        if item.delivery_kind == DeliveryKind.SUBSCRIPTION.value:
            price_data["recurring"] = {"interval": "month"}

        return {"quantity": 1, "price_data": price_data}

    @staticmethod
    def create_checkout_session(
        api_key: str,
        guild_id: str,
        item: ShopItem,
        amount_cents: int,
        discord_id: str,
        success_url: str,
        cancel_url: str,
        coupon_id: str | None = None,
    ) -> CheckoutSession:
        """
        Create a Stripe Checkout session for one shop item.

        Subscription items use mode=subscription with a monthly recurring
        price; everything else is a one-time payment. The metadata lets the
        payment confirmation attribute the sale and count the coupon.
        """
        if amount_cents < 1:
            raise ValueError("amount_cents must be a positive number")

        metadata = {
            "guild_id": guild_id,
            "shop_item_id": str(item.id),
            "discord_id": discord_id,
        }
        if coupon_id:
            metadata["coupon_id"] = coupon_id

        is_subscription = item.delivery_kind == DeliveryKind.SUBSCRIPTION.value
        extra: dict[str, object] = {}
        if is_subscription:
            extra["subscription_data"] = {"metadata": metadata}
        else:
            extra["payment_intent_data"] = {"metadata": metadata}

        try:
            session = stripe.checkout.Session.create(
                mode="subscription" if is_subscription else "payment",
                line_items=[StripeService.build_line_item(item, amount_cents)],  # type: ignore[list-item]
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                **extra,  # type: ignore[arg-type]
                **StripeService._request_options(api_key),  # type: ignore[arg-type]
            )
            logger.info(
                f"Created checkout session {session.id} for item {item.id} "
                f"in guild {guild_id}, amount={amount_cents}"
            )
            return CheckoutSession(id=session.id, url=session.url or "")
        except StripeError as e:
            logger.error(f"Failed to create checkout session for guild {guild_id}: {e}")
            raise

    @staticmethod
    def create_portal_session(
        api_key: str,
        stripe_subscription_id: str,
        return_url: str,
    ) -> str:
        """
        Create a Stripe Customer Portal session for the customer behind a
        subscription, so the buyer can manage billing themselves.

        Returns the portal session URL.
        """
        options = StripeService._request_options(api_key)
        try:
            subscription = stripe.Subscription.retrieve(
                stripe_subscription_id,
                **options,  # type: ignore[arg-type]
            )
            customer = subscription.customer
            customer_id = customer if isinstance(customer, str) else customer.id
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
                **options,  # type: ignore[arg-type]
            )
            return session.url
        except StripeError as e:
            logger.error(f"Failed to create portal session for {stripe_subscription_id}: {e}")
            raise

    @staticmethod
    def cancel_subscription(api_key: str, stripe_subscription_id: str) -> bool:
        """
        Cancel a Stripe subscription immediately.

        Returns False on failure (logs the error, never raises) since the
        ledger has already ended the subscription on our side.
        """
        try:
            stripe.Subscription.cancel(
                stripe_subscription_id,
                **StripeService._request_options(api_key),  # type: ignore[arg-type]
            )
            logger.info(f"Cancelled Stripe subscription {stripe_subscription_id}")
            return True
        except StripeError as e:
            logger.error(f"Failed to cancel Stripe subscription {stripe_subscription_id}: {e}")
            return False


# Singleton instance
stripe_service = StripeService()
