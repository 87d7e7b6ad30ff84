"""Subscription endpoints (Stripe).

Handlers are plain ``def``: the per-user lock and the billing SDK both block,
so FastAPI runs them in its threadpool.
"""

import logging

import redis
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from herotime_api.auth.session_auth import AuthContext, get_auth_context
from herotime_api.billing.reconciler import SubscriptionReconciler
from herotime_api.billing.stripe_client import BillingClient
from herotime_api.config import env
from herotime_api.db.session import get_db
from herotime_api.providers import get_billing, get_redis_client
from herotime_api.schemas import (
    CancelSubscriptionResponse,
    CheckoutSessionRequest,
    ReactivatedSubscription,
    ReactivateSubscriptionResponse,
    RedirectResponse,
    SubscriptionResponse,
    SubscriptionSnapshot,
)

router = APIRouter(prefix="/api/stripe", tags=["billing"])
logger = logging.getLogger(__name__)


def get_reconciler(
    db: Session = Depends(get_db),
    billing: BillingClient = Depends(get_billing),
    redis_client: redis.Redis = Depends(get_redis_client),
) -> SubscriptionReconciler:
    return SubscriptionReconciler(db, billing, redis_client)


def _origin(request: Request) -> str:
    """Redirect base: the caller's Origin header, else APP_BASE_URL."""
    return (request.headers.get("origin") or env.get_app_base_url()).rstrip("/")


@router.post("/create-checkout-session", response_model=RedirectResponse)
def create_checkout_session(
    body: CheckoutSessionRequest,
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
    reconciler: SubscriptionReconciler = Depends(get_reconciler),
) -> RedirectResponse:
    """Start a subscription or change the plan of an existing one.

    Returns the URL the client should navigate to: hosted checkout for new
    subscriptions, the settings page for in-place changes.
    """
    url = reconciler.change_plan(auth.user_id, auth.email, body.plan, _origin(request))
    return RedirectResponse(url=url)


@router.post("/cancel-subscription", response_model=CancelSubscriptionResponse)
def cancel_subscription(
    auth: AuthContext = Depends(get_auth_context),
    reconciler: SubscriptionReconciler = Depends(get_reconciler),
) -> CancelSubscriptionResponse:
    cancels_at = reconciler.cancel_at_period_end(auth.user_id)
    return CancelSubscriptionResponse(cancels_at=cancels_at)


@router.post("/reactivate-subscription", response_model=ReactivateSubscriptionResponse)
def reactivate_subscription(
    auth: AuthContext = Depends(get_auth_context),
    reconciler: SubscriptionReconciler = Depends(get_reconciler),
) -> ReactivateSubscriptionResponse:
    subscription = reconciler.reactivate(auth.user_id)
    return ReactivateSubscriptionResponse(
        subscription=ReactivatedSubscription(
            id=subscription.id,
            status=subscription.status,
            current_period_end=subscription.resolved_period_end(),
        )
    )


@router.post("/sync-subscription", response_model=SubscriptionResponse)
def sync_subscription(
    auth: AuthContext = Depends(get_auth_context),
    reconciler: SubscriptionReconciler = Depends(get_reconciler),
) -> SubscriptionResponse:
    """Pull the provider's subscription state into the local row."""
    user = reconciler.sync(auth.user_id, auth.email)
    return SubscriptionResponse(subscription=SubscriptionSnapshot.model_validate(user))
