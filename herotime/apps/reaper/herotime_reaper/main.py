"""HeroTime Reaper main entry point.

Runs the stale generation loop: generations left ``starting``/``processing``
by a crashed API process are failed and their quota unit refunded.
"""

import logging
import os

from herotime_api.config import env
from herotime_api.db.engine import build_engine, build_sessionmaker
from herotime_api.utils import configure_json_logging
from herotime_reaper.loops.stale_generation_loop import (
    install_signal_handlers,
    stale_generation_loop,
)

logger = logging.getLogger(__name__)


def main() -> None:
    configure_json_logging(log_level=os.getenv("LOG_LEVEL", "INFO"))

    interval_sec = int(os.getenv("REAPER_INTERVAL_SEC", "60"))
    stale_after_sec = int(os.getenv("REAPER_STALE_AFTER_SEC", "900"))
    scan_limit = int(os.getenv("REAPER_SCAN_LIMIT", "100"))

    # Raises ConfigurationError in production when DATABASE_URL is unset
    engine = build_engine(env.get_database_url())
    session = build_sessionmaker(engine)()

    install_signal_handlers()
    logger.info("Starting HeroTime Reaper...")

    try:
        stale_generation_loop(
            db=session,
            interval_seconds=interval_sec,
            stale_after_seconds=stale_after_sec,
            limit_per_scan=scan_limit,
        )
    except KeyboardInterrupt:
        logger.info("Reaper stopped by user (KeyboardInterrupt)")
    finally:
        session.close()
        engine.dispose()
        logger.info("Reaper shutdown complete")


if __name__ == "__main__":
    main()
