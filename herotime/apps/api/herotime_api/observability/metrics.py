"""Log-based metrics for generation and billing flows.

Usage:
    from herotime_api.observability.metrics import log_generation_succeeded

    log_generation_succeeded(user_id="u_123", generation_id="g_1", plan="pro", duration_ms=41200)

Every metric is a structured log line with an ``event`` field; dashboards
count and aggregate on it. Image payloads and provider tokens are never
logged.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)


# ============================================================================
# Generation Metrics
# ============================================================================


def log_generation_requested(user_id: str, plan: str, size: str, prop_count: int) -> None:
    logger.info(
        "generation.requested",
        extra={
            "event": "generation.requested",
            "user_id": user_id,
            "plan": plan,
            "size": size,
            "prop_count": prop_count,
        },
    )


def log_quota_exceeded(user_id: str) -> None:
    """Log a request rejected because the plan quota is used up (403)."""
    logger.warning(
        "generation.quota_exceeded",
        extra={"event": "generation.quota_exceeded", "user_id": user_id},
    )


def log_generation_succeeded(
    user_id: str,
    generation_id: str,
    plan: str,
    duration_ms: int,
    durable: bool = True,
) -> None:
    """Log a completed generation.

    Args:
        user_id: Owner
        generation_id: Generation row id
        plan: Plan the request was billed against
        duration_ms: Wall-clock time from quota reservation to completion
        durable: False when the result points at the provider's short-lived URL
    """
    logger.info(
        "generation.succeeded",
        extra={
            "event": "generation.succeeded",
            "user_id": user_id,
            "generation_id": generation_id,
            "plan": plan,
            "duration_ms": duration_ms,
            "durable": durable,
        },
    )


def log_generation_failed(
    user_id: str,
    generation_id: Optional[str],
    kind: str,
    duration_ms: int,
) -> None:
    logger.warning(
        "generation.failed",
        extra={
            "event": "generation.failed",
            "user_id": user_id,
            "generation_id": generation_id,
            "error_kind": kind,
            "duration_ms": duration_ms,
        },
    )


def log_side_effect_failed(
    user_id: str,
    generation_id: Optional[str],
    step: str,
    error: str,
) -> None:
    """Log a best-effort step that failed without failing the request.

    Steps: ``persist_result``, ``delete_source``, ``mark_failed``,
    ``release_quota``, ``delete_blob``.
    """
    logger.warning(
        "generation.side_effect_failed",
        extra={
            "event": "generation.side_effect_failed",
            "user_id": user_id,
            "generation_id": generation_id,
            "step": step,
            "error": error,
        },
    )


# ============================================================================
# Subscription Metrics
# ============================================================================


def log_subscription_change(
    user_id: str,
    action: str,
    from_plan: Optional[str],
    to_plan: Optional[str],
    status: Optional[str] = None,
) -> None:
    """Log a subscription mutation.

    Args:
        user_id: Owner
        action: checkout, upgrade, downgrade, cancel, reactivate, sync_downgrade
        from_plan: Plan before the change
        to_plan: Plan (or scheduled plan) after the change
        status: Resulting subscription status
    """
    logger.info(
        "subscription.changed",
        extra={
            "event": "subscription.changed",
            "user_id": user_id,
            "action": action,
            "from_plan": from_plan,
            "to_plan": to_plan,
            "subscription_status": status,
        },
    )
