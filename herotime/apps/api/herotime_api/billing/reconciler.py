"""Subscription reconciliation.

Keeps the local ``users`` row (plan, generations_limit, subscription_status,
current_period_end) consistent with the billing provider while honoring two
deferred changes the user can queue:

- scheduled downgrade: ``scheduled_plan`` set, applied at period end
- pending cancellation: status ``canceling``, applied at period end

Protection rule: while either is pending, sync never overwrites plan or
generations_limit; the user keeps what they paid for until the boundary.

Status machine:
    none → active → canceling → active (reactivated)
                              → canceled (period elapsed)

Every mutating operation runs under the per-user lock. Provider calls are
single attempts; a failure aborts the operation without rollback of earlier
provider calls.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import redis
from sqlalchemy.orm import Session

from herotime_api.billing.stripe_client import BillingClient, BillingSubscription
from herotime_api.config import env
from herotime_api.db.models import User
from herotime_api.db.repo_users import UserRepository
from herotime_api.errors import ConfigurationError, SubscriptionStateError
from herotime_api.locks import UserLock
from herotime_api.observability import metrics
from herotime_api.plans import (
    FREE,
    PAID_PLANS,
    can_select_plan,
    generations_limit_for,
    is_downgrade,
    plan_from_price_id,
)

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_CANCELING = "canceling"
STATUS_CANCELED = "canceled"


def _from_epoch(timestamp: Optional[int]) -> Optional[datetime]:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class SubscriptionReconciler:
    """Applies subscription changes locally and at the billing provider."""

    def __init__(self, db: Session, billing: BillingClient, redis_client: redis.Redis):
        self.users = UserRepository(db)
        self.billing = billing
        self.redis = redis_client

    def _lock(self, user_id: str) -> UserLock:
        return UserLock(self.redis, user_id)

    # ------------------------------------------------------------------
    # sync
    # ------------------------------------------------------------------

    def sync(self, user_id: str, email: str) -> User:
        """Pull the provider's view into the local row and return it."""
        with self._lock(user_id):
            return self._sync(user_id, email)

    def _sync(self, user_id: str, email: str) -> User:
        user, created = self.users.get_or_create(user_id, email)
        if created or not user.stripe_customer_id:
            return user

        active = self.billing.get_active_subscription(user.stripe_customer_id)

        if active is None:
            if user.plan == FREE:
                return user
            previous = user.plan
            user = self.users.update_fields(
                user_id,
                {
                    "plan": FREE,
                    "generations_limit": generations_limit_for(FREE),
                    "subscription_status": STATUS_CANCELED,
                    "stripe_subscription_id": None,
                    "scheduled_plan": None,
                },
            )
            metrics.log_subscription_change(
                user_id, "sync_downgrade", previous, FREE, STATUS_CANCELED
            )
            return user

        provider_plan = plan_from_price_id(active.price_id) or FREE
        status = STATUS_CANCELING if active.is_canceling else active.status
        updates = {
            "stripe_subscription_id": active.id,
            "subscription_status": status,
            "current_period_end": _from_epoch(active.resolved_period_end()),
        }

        protected = user.scheduled_plan is not None or status == STATUS_CANCELING
        if protected:
            logger.info(
                "Plan protected until period end",
                extra={
                    "event": "subscription.plan_protected",
                    "user_id": user_id,
                    "plan": user.plan,
                    "scheduled_plan": user.scheduled_plan,
                    "subscription_status": status,
                },
            )
            if user.scheduled_plan == user.plan:
                updates["scheduled_plan"] = None
        else:
            updates["plan"] = provider_plan
            updates["generations_limit"] = generations_limit_for(provider_plan)

        return self.users.update_fields(user_id, updates)

    # ------------------------------------------------------------------
    # cancel / reactivate
    # ------------------------------------------------------------------

    def cancel_at_period_end(self, user_id: str) -> Optional[datetime]:
        """Schedule cancellation; returns when the subscription ends.

        A queued downgrade is first reverted to the current plan's price
        (no proration) so reactivating later restores what was paid for.

        Raises:
            SubscriptionStateError: 400 if there is no subscription
        """
        with self._lock(user_id):
            user = self.users.get(user_id)
            if user is None or not user.stripe_subscription_id:
                raise SubscriptionStateError("No active subscription")
            subscription_id = user.stripe_subscription_id

            if user.scheduled_plan:
                current_price = env.get_plan_price_id(user.plan)
                if not current_price:
                    raise ConfigurationError(
                        diagnostic=f"No price ID configured for plan: {user.plan}"
                    )
                current = self.billing.retrieve_subscription(subscription_id)
                self.billing.change_price(
                    subscription_id, current.item_id, current_price, prorate=False
                )
                logger.info(
                    "Reverted scheduled downgrade before canceling",
                    extra={
                        "event": "subscription.downgrade_reverted",
                        "user_id": user_id,
                        "plan": user.plan,
                        "scheduled_plan": user.scheduled_plan,
                    },
                )

            canceled = self.billing.set_cancel_at_period_end(subscription_id, True)
            period_end = _from_epoch(canceled.resolved_period_end()) or user.current_period_end

            self.users.update_fields(
                user_id,
                {
                    "subscription_status": STATUS_CANCELING,
                    "current_period_end": period_end,
                    "scheduled_plan": None,
                },
            )
            metrics.log_subscription_change(
                user_id, "cancel", user.plan, user.plan, STATUS_CANCELING
            )
            return period_end

    def reactivate(self, user_id: str) -> BillingSubscription:
        """Remove a pending cancellation.

        Raises:
            SubscriptionStateError: 404 without a subscription, 400 when the
                subscription is not canceling
        """
        with self._lock(user_id):
            user = self.users.get(user_id)
            if user is None or not user.stripe_subscription_id:
                raise SubscriptionStateError("No active subscription found", status_code=404)
            if user.subscription_status != STATUS_CANCELING:
                raise SubscriptionStateError("Subscription is not scheduled for cancellation")

            return self._reactivate(user)

    def _reactivate(self, user: User) -> BillingSubscription:
        subscription = self.billing.set_cancel_at_period_end(user.stripe_subscription_id, False)
        self.users.update_fields(
            user.id,
            {"subscription_status": STATUS_ACTIVE, "scheduled_plan": None},
        )
        metrics.log_subscription_change(user.id, "reactivate", user.plan, user.plan, STATUS_ACTIVE)
        return subscription

    # ------------------------------------------------------------------
    # change plan
    # ------------------------------------------------------------------

    def change_plan(self, user_id: str, email: str, target: str, origin: str) -> str:
        """Move the user to ``target`` and return where the client goes next.

        - no active subscription: hosted checkout URL
        - same plan while canceling: reactivation
        - downgrade: new price now with no proration, plan/limit at period end
        - upgrade: prorated price change billed now, then an immediate sync

        Raises:
            SubscriptionStateError: 400 for unknown or disallowed plans
            ConfigurationError: The plan's price id is not configured
        """
        if target not in PAID_PLANS:
            raise SubscriptionStateError("Invalid plan")
        price_id = env.get_plan_price_id(target)
        if not price_id:
            raise ConfigurationError(diagnostic=f"Plan price ID not configured: {target}")

        with self._lock(user_id):
            user, _ = self.users.get_or_create(user_id, email)

            customer_id = user.stripe_customer_id
            if not customer_id:
                customer_id = self.billing.create_customer(email, user_id)
                user = self.users.update_fields(user_id, {"stripe_customer_id": customer_id})

            active = self.billing.get_active_subscription(customer_id)
            if active is None:
                url = self.billing.create_checkout_session(
                    customer_id,
                    price_id,
                    user_id,
                    success_url=f"{origin}/settings?session=success",
                    cancel_url=f"{origin}/pricing?session=canceled",
                )
                metrics.log_subscription_change(user_id, "checkout", user.plan, target)
                return url

            canceling = user.subscription_status == STATUS_CANCELING
            if not user.stripe_subscription_id:
                user = self.users.update_fields(user_id, {"stripe_subscription_id": active.id})

            if target == user.plan and canceling:
                self._reactivate(user)
                return f"{origin}/settings?updated=true&reactivated=true"

            if not can_select_plan(user.plan, target, canceling, user.scheduled_plan):
                raise SubscriptionStateError(f"Plan {target} cannot be selected")

            if canceling:
                self.billing.set_cancel_at_period_end(active.id, False)

            if is_downgrade(user.plan, target):
                self.billing.change_price(active.id, active.item_id, price_id, prorate=False)
                self.users.update_fields(
                    user_id,
                    {"scheduled_plan": target, "subscription_status": STATUS_ACTIVE},
                )
                metrics.log_subscription_change(
                    user_id, "downgrade", user.plan, target, STATUS_ACTIVE
                )
                return f"{origin}/settings?updated=true&downgraded=true"

            previous = user.plan
            self.billing.change_price(active.id, active.item_id, price_id, prorate=True)
            self.users.update_fields(
                user_id,
                {"scheduled_plan": None, "subscription_status": STATUS_ACTIVE},
            )
            self._sync(user_id, email)
            metrics.log_subscription_change(user_id, "upgrade", previous, target, STATUS_ACTIVE)
            return f"{origin}/settings?updated=true"
