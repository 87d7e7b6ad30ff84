"""Health check endpoints."""

import logging

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import text

from herotime_api import __version__
from herotime_api.db.session import get_engine
from herotime_api.locks import get_redis

router = APIRouter()
logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    status: str
    version: str
    services: dict[str, str]


def check_database() -> str:
    """Returns "up" if a trivial query succeeds, else a short reason."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return "up"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return f"down: {str(e)[:50]}"


def check_redis() -> str:
    try:
        get_redis().ping()
        return "up"
    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return f"down: {str(e)[:50]}"


def _services() -> dict[str, str]:
    return {
        "api": "up",
        "database": check_database(),
        "redis": check_redis(),
    }


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness plus dependency status. Always 200 (use /readyz to gate traffic)."""
    return HealthResponse(status="healthy", version=__version__, services=_services())


@router.get("/readyz", response_model=HealthResponse)
async def readiness_check(response: Response) -> HealthResponse:
    """503 if any dependency is down."""
    services = _services()
    if any(svc_status.startswith("down") for svc_status in services.values()):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", version=__version__, services=services)
    return HealthResponse(status="ready", version=__version__, services=services)
