"""Tests for subscription reconciliation (sync, cancel, reactivate, change plan).

The billing client is a MagicMock returning ``BillingSubscription`` values;
the per-user lock runs against a Redis double.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import Session

from herotime_api.billing.reconciler import SubscriptionReconciler
from herotime_api.billing.stripe_client import BillingSubscription
from herotime_api.db.repo_users import UserRepository
from herotime_api.errors import ConfigurationError, SubscriptionStateError, UserBusyError

from conftest import TEST_USER_EMAIL, TEST_USER_ID

ORIGIN = "https://herotime.app"
PERIOD_END = 1767225600  # 2026-01-01T00:00:00Z
CANCEL_AT = 1769904000  # 2026-02-01T00:00:00Z


@pytest.fixture(autouse=True)
def price_ids(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STRIPE_PRO_PLAN_PRICE_ID", "price_pro")
    monkeypatch.setenv("STRIPE_PREMIUM_PLAN_PRICE_ID", "price_premium")


@pytest.fixture
def reconciler(db_session: Session, billing_mock: MagicMock, redis_mock: MagicMock):
    return SubscriptionReconciler(db_session, billing_mock, redis_mock)


def _subscription(
    price_id: str = "price_pro",
    status: str = "active",
    cancel_at_period_end: bool = False,
    cancel_at=None,
) -> BillingSubscription:
    return BillingSubscription(
        id="sub_123",
        status=status,
        price_id=price_id,
        item_id="si_123",
        cancel_at_period_end=cancel_at_period_end,
        cancel_at=cancel_at,
        item_period_end=PERIOD_END,
    )


def _user(db_session: Session):
    db_session.expire_all()
    return UserRepository(db_session).get(TEST_USER_ID)


# ============================================================================
# sync
# ============================================================================


def test_sync_first_call_creates_free_row_without_provider_call(
    reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    user = reconciler.sync(TEST_USER_ID, TEST_USER_EMAIL)

    assert user.plan == "free"
    assert user.generations_limit == 2
    billing_mock.get_active_subscription.assert_not_called()


def test_sync_applies_provider_plan(
    db_session: Session, make_user, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    make_user(stripe_customer_id="cus_123")
    billing_mock.get_active_subscription.return_value = _subscription("price_premium")

    reconciler.sync(TEST_USER_ID, TEST_USER_EMAIL)

    user = _user(db_session)
    assert user.plan == "premium"
    assert user.generations_limit == 200
    assert user.subscription_status == "active"
    assert user.stripe_subscription_id == "sub_123"
    assert user.current_period_end.replace(tzinfo=timezone.utc) == datetime(
        2026, 1, 1, tzinfo=timezone.utc
    )


def test_sync_without_active_subscription_downgrades_to_free(
    db_session: Session, make_user, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    make_user(
        plan="pro",
        generations_limit=150,
        generations_used=40,
        stripe_customer_id="cus_123",
        stripe_subscription_id="sub_123",
        subscription_status="canceling",
        scheduled_plan="pro",
    )
    billing_mock.get_active_subscription.return_value = None

    reconciler.sync(TEST_USER_ID, TEST_USER_EMAIL)

    user = _user(db_session)
    assert user.plan == "free"
    assert user.generations_limit == 2
    assert user.generations_used == 40
    assert user.subscription_status == "canceled"
    assert user.stripe_subscription_id is None
    assert user.scheduled_plan is None


def test_sync_protects_plan_during_scheduled_downgrade(
    db_session: Session, make_user, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    make_user(
        plan="premium",
        generations_limit=200,
        scheduled_plan="pro",
        stripe_customer_id="cus_123",
        stripe_subscription_id="sub_123",
        subscription_status="active",
    )
    # Provider already carries the lower price
    billing_mock.get_active_subscription.return_value = _subscription("price_pro")

    reconciler.sync(TEST_USER_ID, TEST_USER_EMAIL)

    user = _user(db_session)
    assert user.plan == "premium"
    assert user.generations_limit == 200
    assert user.scheduled_plan == "pro"


def test_sync_protects_plan_while_canceling(
    db_session: Session, make_user, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    make_user(
        plan="premium",
        generations_limit=200,
        stripe_customer_id="cus_123",
        stripe_subscription_id="sub_123",
        subscription_status="active",
    )
    billing_mock.get_active_subscription.return_value = _subscription(
        "price_pro", cancel_at_period_end=True, cancel_at=CANCEL_AT
    )

    reconciler.sync(TEST_USER_ID, TEST_USER_EMAIL)

    user = _user(db_session)
    assert user.plan == "premium"
    assert user.subscription_status == "canceling"
    assert user.current_period_end.replace(tzinfo=timezone.utc) == datetime(
        2026, 2, 1, tzinfo=timezone.utc
    )


def test_sync_clears_scheduled_plan_equal_to_plan(
    db_session: Session, make_user, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    make_user(
        plan="pro",
        generations_limit=150,
        scheduled_plan="pro",
        stripe_customer_id="cus_123",
        stripe_subscription_id="sub_123",
    )
    billing_mock.get_active_subscription.return_value = _subscription("price_pro")

    reconciler.sync(TEST_USER_ID, TEST_USER_EMAIL)

    assert _user(db_session).scheduled_plan is None


def test_sync_busy_lock(
    make_user, reconciler: SubscriptionReconciler, redis_mock: MagicMock, billing_mock: MagicMock
) -> None:
    make_user(stripe_customer_id="cus_123")
    redis_mock.lock.return_value.acquire.return_value = False

    with pytest.raises(UserBusyError):
        reconciler.sync(TEST_USER_ID, TEST_USER_EMAIL)

    billing_mock.get_active_subscription.assert_not_called()


def test_lock_is_keyed_by_user_and_released(
    make_user, reconciler: SubscriptionReconciler, redis_mock: MagicMock
) -> None:
    make_user()

    reconciler.sync(TEST_USER_ID, TEST_USER_EMAIL)

    assert redis_mock.lock.call_args.args[0] == f"herotime:user-lock:{TEST_USER_ID}"
    redis_mock.lock.return_value.release.assert_called_once()


# ============================================================================
# cancel / reactivate
# ============================================================================


def test_cancel_requires_subscription(make_user, reconciler: SubscriptionReconciler) -> None:
    make_user(plan="free")

    with pytest.raises(SubscriptionStateError) as exc_info:
        reconciler.cancel_at_period_end(TEST_USER_ID)

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "No active subscription"


def test_cancel_sets_canceling(
    db_session: Session, make_user, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    make_user(
        plan="pro",
        generations_limit=150,
        stripe_customer_id="cus_123",
        stripe_subscription_id="sub_123",
        subscription_status="active",
    )
    billing_mock.set_cancel_at_period_end.return_value = _subscription(
        cancel_at_period_end=True, cancel_at=CANCEL_AT
    )

    cancels_at = reconciler.cancel_at_period_end(TEST_USER_ID)

    billing_mock.set_cancel_at_period_end.assert_called_once_with("sub_123", True)
    billing_mock.change_price.assert_not_called()
    assert cancels_at == datetime(2026, 2, 1, tzinfo=timezone.utc)
    user = _user(db_session)
    assert user.subscription_status == "canceling"
    assert user.plan == "pro"


def test_cancel_reverts_scheduled_downgrade_first(
    db_session: Session, make_user, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    make_user(
        plan="premium",
        generations_limit=200,
        scheduled_plan="pro",
        stripe_customer_id="cus_123",
        stripe_subscription_id="sub_123",
        subscription_status="active",
    )
    billing_mock.retrieve_subscription.return_value = _subscription("price_pro")
    billing_mock.set_cancel_at_period_end.return_value = _subscription(
        "price_premium", cancel_at_period_end=True, cancel_at=CANCEL_AT
    )

    reconciler.cancel_at_period_end(TEST_USER_ID)

    billing_mock.change_price.assert_called_once_with(
        "sub_123", "si_123", "price_premium", prorate=False
    )
    user = _user(db_session)
    assert user.scheduled_plan is None
    assert user.subscription_status == "canceling"
    assert user.plan == "premium"


def test_cancel_revert_needs_price_id(
    make_user,
    reconciler: SubscriptionReconciler,
    billing_mock: MagicMock,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("STRIPE_PREMIUM_PLAN_PRICE_ID")
    make_user(
        plan="premium",
        generations_limit=200,
        scheduled_plan="pro",
        stripe_subscription_id="sub_123",
    )

    with pytest.raises(ConfigurationError):
        reconciler.cancel_at_period_end(TEST_USER_ID)

    billing_mock.set_cancel_at_period_end.assert_not_called()


def test_reactivate_without_subscription_is_404(make_user, reconciler: SubscriptionReconciler) -> None:
    make_user()

    with pytest.raises(SubscriptionStateError) as exc_info:
        reconciler.reactivate(TEST_USER_ID)

    assert exc_info.value.status_code == 404


def test_reactivate_requires_canceling(make_user, reconciler: SubscriptionReconciler) -> None:
    make_user(plan="pro", stripe_subscription_id="sub_123", subscription_status="active")

    with pytest.raises(SubscriptionStateError) as exc_info:
        reconciler.reactivate(TEST_USER_ID)

    assert exc_info.value.status_code == 400


def test_reactivate_clears_cancellation(
    db_session: Session, make_user, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    make_user(plan="pro", stripe_subscription_id="sub_123", subscription_status="canceling")
    billing_mock.set_cancel_at_period_end.return_value = _subscription()

    subscription = reconciler.reactivate(TEST_USER_ID)

    billing_mock.set_cancel_at_period_end.assert_called_once_with("sub_123", False)
    assert subscription.id == "sub_123"
    assert _user(db_session).subscription_status == "active"


# ============================================================================
# change_plan
# ============================================================================


def test_change_plan_rejects_unknown_plan(reconciler: SubscriptionReconciler) -> None:
    with pytest.raises(SubscriptionStateError):
        reconciler.change_plan(TEST_USER_ID, TEST_USER_EMAIL, "free", ORIGIN)


def test_change_plan_missing_price_id(
    reconciler: SubscriptionReconciler, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("STRIPE_PRO_PLAN_PRICE_ID")

    with pytest.raises(ConfigurationError):
        reconciler.change_plan(TEST_USER_ID, TEST_USER_EMAIL, "pro", ORIGIN)


def test_change_plan_new_customer_goes_to_checkout(
    db_session: Session, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    billing_mock.create_customer.return_value = "cus_new"
    billing_mock.get_active_subscription.return_value = None
    billing_mock.create_checkout_session.return_value = "https://checkout.stripe.com/c/pay/cs_1"

    url = reconciler.change_plan(TEST_USER_ID, TEST_USER_EMAIL, "pro", ORIGIN)

    assert url == "https://checkout.stripe.com/c/pay/cs_1"
    billing_mock.create_customer.assert_called_once_with(TEST_USER_EMAIL, TEST_USER_ID)
    billing_mock.create_checkout_session.assert_called_once_with(
        "cus_new",
        "price_pro",
        TEST_USER_ID,
        success_url=f"{ORIGIN}/settings?session=success",
        cancel_url=f"{ORIGIN}/pricing?session=canceled",
    )
    user = _user(db_session)
    assert user.stripe_customer_id == "cus_new"
    assert user.plan == "free"


def test_change_plan_upgrade_prorates_and_syncs(
    db_session: Session, make_user, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    make_user(
        plan="pro",
        generations_limit=150,
        stripe_customer_id="cus_123",
        stripe_subscription_id="sub_123",
        subscription_status="active",
    )
    billing_mock.get_active_subscription.side_effect = [
        _subscription("price_pro"),
        _subscription("price_premium"),
    ]

    url = reconciler.change_plan(TEST_USER_ID, TEST_USER_EMAIL, "premium", ORIGIN)

    assert url == f"{ORIGIN}/settings?updated=true"
    billing_mock.change_price.assert_called_once_with(
        "sub_123", "si_123", "price_premium", prorate=True
    )
    user = _user(db_session)
    assert user.plan == "premium"
    assert user.generations_limit == 200
    assert user.scheduled_plan is None


def test_change_plan_downgrade_is_scheduled(
    db_session: Session, make_user, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    make_user(
        plan="premium",
        generations_limit=200,
        stripe_customer_id="cus_123",
        stripe_subscription_id="sub_123",
        subscription_status="active",
    )
    billing_mock.get_active_subscription.return_value = _subscription("price_premium")

    url = reconciler.change_plan(TEST_USER_ID, TEST_USER_EMAIL, "pro", ORIGIN)

    assert url == f"{ORIGIN}/settings?updated=true&downgraded=true"
    billing_mock.change_price.assert_called_once_with(
        "sub_123", "si_123", "price_pro", prorate=False
    )
    user = _user(db_session)
    assert user.plan == "premium"
    assert user.generations_limit == 200
    assert user.scheduled_plan == "pro"


def test_change_plan_same_plan_while_canceling_reactivates(
    db_session: Session, make_user, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    make_user(
        plan="pro",
        generations_limit=150,
        stripe_customer_id="cus_123",
        stripe_subscription_id="sub_123",
        subscription_status="canceling",
    )
    billing_mock.get_active_subscription.return_value = _subscription(
        cancel_at_period_end=True, cancel_at=CANCEL_AT
    )
    billing_mock.set_cancel_at_period_end.return_value = _subscription()

    url = reconciler.change_plan(TEST_USER_ID, TEST_USER_EMAIL, "pro", ORIGIN)

    assert url == f"{ORIGIN}/settings?updated=true&reactivated=true"
    billing_mock.change_price.assert_not_called()
    assert _user(db_session).subscription_status == "active"


def test_change_plan_same_plan_while_active_rejected(
    make_user, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    make_user(
        plan="pro",
        stripe_customer_id="cus_123",
        stripe_subscription_id="sub_123",
        subscription_status="active",
    )
    billing_mock.get_active_subscription.return_value = _subscription()

    with pytest.raises(SubscriptionStateError):
        reconciler.change_plan(TEST_USER_ID, TEST_USER_EMAIL, "pro", ORIGIN)

    billing_mock.change_price.assert_not_called()


def test_change_plan_scheduled_plan_rejected(
    make_user, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    make_user(
        plan="premium",
        scheduled_plan="pro",
        stripe_customer_id="cus_123",
        stripe_subscription_id="sub_123",
        subscription_status="active",
    )
    billing_mock.get_active_subscription.return_value = _subscription("price_pro")

    with pytest.raises(SubscriptionStateError):
        reconciler.change_plan(TEST_USER_ID, TEST_USER_EMAIL, "pro", ORIGIN)


def test_change_plan_while_canceling_uncancels_first(
    db_session: Session, make_user, reconciler: SubscriptionReconciler, billing_mock: MagicMock
) -> None:
    make_user(
        plan="premium",
        generations_limit=200,
        stripe_customer_id="cus_123",
        stripe_subscription_id="sub_123",
        subscription_status="canceling",
    )
    billing_mock.get_active_subscription.return_value = _subscription(
        "price_premium", cancel_at_period_end=True, cancel_at=CANCEL_AT
    )

    reconciler.change_plan(TEST_USER_ID, TEST_USER_EMAIL, "pro", ORIGIN)

    billing_mock.set_cancel_at_period_end.assert_called_once_with("sub_123", False)
    user = _user(db_session)
    assert user.subscription_status == "active"
    assert user.scheduled_plan == "pro"
