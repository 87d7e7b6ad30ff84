"""Stale generation loop.

A generation stays ``starting``/``processing`` only while the API request
that owns it is alive. If that process dies mid-flight the row would stay in
flight forever, so this loop:

- Scans: status IN (starting, processing) AND updated_at < NOW - stale_after
- Fails: forward-only transition to ``failed`` ("Generation timed out")
- Refunds: gives back the quota unit the request had reserved

Losing the transition (the request finished after all) is normal and only
logged at debug level.
"""

import logging
import signal
import threading
import time
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from herotime_api.db.models import Generation
from herotime_api.db.repo_generations import GenerationRepository
from herotime_api.db.repo_users import UserRepository

logger = logging.getLogger(__name__)

STALE_ERROR = "Generation timed out"

_shutdown_event = threading.Event()


def _signal_handler(signum, frame):
    """Handle shutdown signals (SIGTERM, SIGINT) gracefully."""
    sig_name = signal.Signals(signum).name
    logger.info(f"Received {sig_name} signal, initiating graceful shutdown...")
    _shutdown_event.set()


def install_signal_handlers() -> None:
    signal.signal(signal.SIGTERM, _signal_handler)
    signal.signal(signal.SIGINT, _signal_handler)


def reap_generation(generation: Generation, db: Session) -> bool:
    """Fail one stale generation and refund its quota unit.

    Returns:
        True if this call performed the transition, False if it lost the race
    """
    repo = GenerationRepository(db)
    if not repo.mark_failed(generation.id, STALE_ERROR):
        logger.debug(
            f"Stale generation {generation.id} already finished",
            extra={"generation_id": generation.id, "outcome": "lost_race"},
        )
        return False

    UserRepository(db).release_generation(generation.user_id)
    logger.info(
        f"Failed stale generation {generation.id}",
        extra={
            "event": "reaper.generation_failed",
            "generation_id": generation.id,
            "user_id": generation.user_id,
            "outcome": "reaped",
        },
    )
    return True


def stale_generation_loop(
    db: Session,
    interval_seconds: int = 60,
    stale_after_seconds: int = 900,
    limit_per_scan: int = 100,
    stop_after_one_iteration: bool = False,
) -> None:
    """Periodically fail generations abandoned in flight.

    Args:
        db: Database session (owned by this loop's thread)
        interval_seconds: Sleep between scans
        stale_after_seconds: Age of last update after which a row is abandoned
        limit_per_scan: Max rows per iteration
        stop_after_one_iteration: Exit after one scan (tests)
    """
    logger.info(
        f"Stale generation loop started (interval={interval_seconds}s, "
        f"stale_after={stale_after_seconds}s, limit={limit_per_scan})"
    )

    iteration = 0
    total_reaped = 0

    while not _shutdown_event.is_set():
        iteration += 1
        iteration_start = time.time()

        try:
            db.expire_all()
            cutoff = datetime.now(timezone.utc) - timedelta(seconds=stale_after_seconds)
            stale = GenerationRepository(db).find_stale_in_flight(cutoff, limit=limit_per_scan)

            if stale:
                reaped = sum(1 for generation in stale if reap_generation(generation, db))
                total_reaped += reaped
                logger.info(
                    f"Reaper iteration {iteration}: {reaped} failed, "
                    f"{len(stale) - reaped} already finished",
                    extra={
                        "iteration": iteration,
                        "reaped": reaped,
                        "scanned": len(stale),
                        "duration_ms": int((time.time() - iteration_start) * 1000),
                        "total_reaped": total_reaped,
                    },
                )
        except Exception as e:
            db.rollback()
            logger.error(f"Reaper loop error in iteration {iteration}: {e}", exc_info=True)

        if stop_after_one_iteration:
            break

        _shutdown_event.wait(interval_seconds)

    logger.info(
        f"Stale generation loop stopped after {iteration} iterations",
        extra={"total_iterations": iteration, "total_reaped": total_reaped},
    )
