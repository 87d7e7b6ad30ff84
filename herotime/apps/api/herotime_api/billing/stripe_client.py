"""Stripe billing client.

Every call is a single unretried attempt with the secret key passed
explicitly. Provider failures are re-raised as ``BillingProviderError``.
Subscriptions are normalized into ``BillingSubscription`` so the reconciler
never reads raw Stripe objects.

Environment Variables:
- STRIPE_SECRET_KEY: Secret API key (required at first use)
- STRIPE_PRO_PLAN_PRICE_ID / STRIPE_PREMIUM_PLAN_PRICE_ID: Plan prices
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import stripe

from herotime_api.config import env
from herotime_api.errors import BillingProviderError

logger = logging.getLogger(__name__)


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a Stripe object or plain mapping."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        value = getattr(obj, key, default)
    return default if value is None else value


@dataclass(frozen=True)
class BillingSubscription:
    """Provider subscription, reduced to the fields we reconcile on.

    Timestamps are epoch seconds as reported by the provider.
    """

    id: str
    status: str
    price_id: Optional[str]
    item_id: Optional[str]
    cancel_at_period_end: bool
    cancel_at: Optional[int] = None
    item_period_end: Optional[int] = None
    period_end: Optional[int] = None

    @classmethod
    def from_stripe(cls, raw: Any) -> "BillingSubscription":
        items = _get(_get(raw, "items"), "data", [])
        first_item = items[0] if items else None
        return cls(
            id=_get(raw, "id"),
            status=_get(raw, "status", ""),
            price_id=_get(_get(first_item, "price"), "id"),
            item_id=_get(first_item, "id"),
            cancel_at_period_end=bool(_get(raw, "cancel_at_period_end", False)),
            cancel_at=_get(raw, "cancel_at"),
            item_period_end=_get(first_item, "current_period_end"),
            period_end=_get(raw, "current_period_end"),
        )

    @property
    def is_canceling(self) -> bool:
        return self.cancel_at_period_end and self.status == "active"

    def resolved_period_end(self) -> Optional[int]:
        """Cancellation time when canceling, else item period end, else subscription's."""
        if self.cancel_at_period_end and self.cancel_at:
            return self.cancel_at
        return self.item_period_end or self.period_end


class BillingClient:
    """Stripe customers, checkout sessions and subscription updates."""

    def __init__(self, api_key: Optional[str] = None):
        """Initialize billing client.

        Raises:
            ConfigurationError: If STRIPE_SECRET_KEY is not configured
        """
        self.api_key = api_key or env.get_stripe_secret_key()

    def _call(self, operation: str, fn, *args, **kwargs):
        try:
            return fn(*args, api_key=self.api_key, **kwargs)
        except stripe.StripeError as e:
            logger.error(
                f"Stripe {operation} failed: {type(e).__name__}",
                extra={"event": "billing.stripe_error", "operation": operation},
            )
            raise BillingProviderError(diagnostic=f"{operation}: {e}") from e

    def create_customer(self, email: str, user_id: str) -> str:
        """Create a customer tagged with our user id; returns the customer id."""
        customer = self._call(
            "customer.create",
            stripe.Customer.create,
            email=email,
            metadata={"userId": user_id},
        )
        logger.info(
            "Stripe customer created",
            extra={"event": "billing.customer_created", "user_id": user_id},
        )
        return _get(customer, "id")

    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        user_id: str,
        success_url: str,
        cancel_url: str,
    ) -> str:
        """Start a subscription checkout; returns the hosted checkout URL.

        The user id rides along as metadata on both the session and the
        resulting subscription.
        """
        session = self._call(
            "checkout.create",
            stripe.checkout.Session.create,
            customer=customer_id,
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            mode="subscription",
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={"userId": user_id},
            subscription_data={"metadata": {"userId": user_id}},
        )
        url = _get(session, "url")
        if not url:
            raise BillingProviderError(diagnostic="checkout.create: session has no url")
        return url

    def get_active_subscription(self, customer_id: str) -> Optional[BillingSubscription]:
        result = self._call(
            "subscription.list",
            stripe.Subscription.list,
            customer=customer_id,
            status="active",
            limit=1,
        )
        data = _get(result, "data", [])
        return BillingSubscription.from_stripe(data[0]) if data else None

    def retrieve_subscription(self, subscription_id: str) -> BillingSubscription:
        raw = self._call("subscription.retrieve", stripe.Subscription.retrieve, subscription_id)
        return BillingSubscription.from_stripe(raw)

    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> BillingSubscription:
        raw = self._call(
            "subscription.cancel_at_period_end" if cancel else "subscription.uncancel",
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=cancel,
        )
        return BillingSubscription.from_stripe(raw)

    def change_price(
        self,
        subscription_id: str,
        item_id: str,
        price_id: str,
        prorate: bool,
    ) -> BillingSubscription:
        """Swap the subscription's price.

        Args:
            prorate: True bills the difference now and restarts the cycle
                (upgrades); False changes the price with no charge or refund
        """
        extra: dict[str, Any]
        if prorate:
            extra = {"proration_behavior": "always_invoice", "billing_cycle_anchor": "now"}
        else:
            extra = {"proration_behavior": "none"}
        raw = self._call(
            "subscription.change_price",
            stripe.Subscription.modify,
            subscription_id,
            items=[{"id": item_id, "price": price_id}],
            **extra,
        )
        return BillingSubscription.from_stripe(raw)
