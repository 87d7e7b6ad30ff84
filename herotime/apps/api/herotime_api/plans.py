"""Subscription plan catalog.

Plans are ordered free < pro < premium. Each plan fixes a monthly generation
quota; the paid plans map to billing price ids configured in the environment.
"""

from dataclasses import dataclass, field
from typing import Optional

from herotime_api.config import env

FREE = "free"
PRO = "pro"
PREMIUM = "premium"

PLAN_ORDER: tuple[str, ...] = (FREE, PRO, PREMIUM)
PAID_PLANS: frozenset[str] = frozenset({PRO, PREMIUM})


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    price: float
    generations_limit: int
    features: tuple[str, ...] = field(default_factory=tuple)
    interval: str = "month"
    highlighted: bool = False

    @property
    def price_id(self) -> Optional[str]:
        """Billing price id (None for free or when not configured)."""
        return env.get_plan_price_id(self.id)


PLANS: dict[str, Plan] = {
    FREE: Plan(
        id=FREE,
        name="Free",
        price=0,
        generations_limit=2,
        features=(
            "2 generations per month",
            "Watermark on images",
            "1K quality",
            "Limited templates",
            "Community support",
            "Commercial usage rights",
        ),
    ),
    PRO: Plan(
        id=PRO,
        name="Pro",
        price=12.99,
        generations_limit=150,
        highlighted=True,
        features=(
            "150 generations per month",
            "No watermark",
            "1K, 2K quality",
            "All templates",
            "Priority support",
            "Commercial usage rights",
        ),
    ),
    PREMIUM: Plan(
        id=PREMIUM,
        name="Premium",
        price=34.99,
        generations_limit=200,
        features=(
            "200 generations per month",
            "No watermark",
            "1K, 2K, 4K quality",
            "Custom dimensions (1024-4096px)",
            "All templates",
            "Custom templates",
            "Priority support",
            "Commercial usage rights",
        ),
    ),
}


def get_plan(plan_id: Optional[str]) -> Plan:
    """Look up a plan; unknown or missing ids resolve to free."""
    return PLANS.get(plan_id or FREE, PLANS[FREE])


def generations_limit_for(plan_id: Optional[str]) -> int:
    return get_plan(plan_id).generations_limit


def plan_rank(plan_id: Optional[str]) -> int:
    """Ordinal of a plan (free=0, pro=1, premium=2); unknown ranks as free."""
    try:
        return PLAN_ORDER.index(plan_id or FREE)
    except ValueError:
        return 0


def is_upgrade(current: Optional[str], target: str) -> bool:
    return plan_rank(target) > plan_rank(current)


def is_downgrade(current: Optional[str], target: str) -> bool:
    return plan_rank(target) < plan_rank(current)


def plan_from_price_id(price_id: Optional[str]) -> Optional[str]:
    """Map a billing price id back to a paid plan (None when unrecognized)."""
    if not price_id:
        return None
    for plan_id in (PRO, PREMIUM):
        if env.get_plan_price_id(plan_id) == price_id:
            return plan_id
    return None


def can_select_plan(
    current: Optional[str],
    target: str,
    is_canceling: bool = False,
    scheduled: Optional[str] = None,
) -> bool:
    """Whether ``target`` is a valid plan-change request.

    The already-scheduled plan cannot be picked again, and the current plan
    can only be picked while it is canceling (which reactivates it).
    """
    if scheduled == target:
        return False
    if current != target:
        return True
    return is_canceling
