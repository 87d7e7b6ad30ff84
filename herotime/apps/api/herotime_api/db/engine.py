"""Database engine builder.

- Default pool: NullPool (the hosted Postgres pooler does the pooling)
- HEROTIME_DB_POOL=nullpool|queuepool (default: nullpool)
- HEROTIME_DB_POOL_SIZE / HEROTIME_DB_MAX_OVERFLOW apply to queuepool only
"""

import logging
import os
import re
from typing import Any

from sqlalchemy import Engine, NullPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


def _mask_password(url: str) -> str:
    """Mask password in database URL for safe logging."""
    return re.sub(r"://([^:]+):([^@]+)@", r"://\1:***@", url)


def build_engine(database_url: str) -> Engine:
    """Build SQLAlchemy engine with the configured pool policy.

    Args:
        database_url: SQLAlchemy connection URL

    Returns:
        SQLAlchemy Engine instance

    Raises:
        ValueError: If HEROTIME_DB_POOL has an unknown value
    """
    connect_args: dict[str, Any] = {}
    if database_url.startswith("postgresql"):
        connect_args["application_name"] = os.getenv(
            "HEROTIME_DB_APPLICATION_NAME", "herotime-api"
        )

    pool_mode = os.getenv("HEROTIME_DB_POOL", "nullpool").lower()

    if pool_mode == "nullpool":
        engine = create_engine(
            database_url,
            poolclass=NullPool,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
    elif pool_mode == "queuepool":
        engine = create_engine(
            database_url,
            pool_pre_ping=True,
            pool_size=int(os.getenv("HEROTIME_DB_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("HEROTIME_DB_MAX_OVERFLOW", "10")),
            connect_args=connect_args,
        )
    else:
        raise ValueError(
            f"Invalid HEROTIME_DB_POOL value: {pool_mode}. "
            "Must be 'nullpool' or 'queuepool'."
        )

    logger.debug(
        "Database engine created: pool=%s, url=%s",
        engine.pool.__class__.__name__,
        _mask_password(database_url),
    )
    return engine


def build_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    """Build SQLAlchemy sessionmaker (no autoflush, explicit commits)."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
