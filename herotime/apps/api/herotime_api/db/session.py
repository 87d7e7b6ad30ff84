"""Database session management.

The engine is built on first use rather than at import, so importing the app
never requires a reachable (or even configured) database.
"""

from typing import Generator, Optional

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from herotime_api.config import env
from herotime_api.db.engine import build_engine, build_sessionmaker

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker[Session]] = None


def get_engine() -> Engine:
    """Get (building on first call) the process-wide engine."""
    global _engine
    if _engine is None:
        _engine = build_engine(env.get_database_url())
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    global _session_factory
    if _session_factory is None:
        _session_factory = build_sessionmaker(get_engine())
    return _session_factory


def dispose_engine() -> None:
    """Dispose the engine (application shutdown)."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def get_db() -> Generator[Session, None, None]:
    """
    Get database session.

    Yields:
        Session: SQLAlchemy session
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
