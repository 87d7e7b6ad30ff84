"""HeroTime API - FastAPI Application Entry Point."""

import logging
import os
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from herotime_api import __version__
from herotime_api.config.env import is_production_env
from herotime_api.context import generation_id_var, request_id_var, user_id_var
from herotime_api.db.session import dispose_engine
from herotime_api.errors import PROBLEM_BASE_URI, HeroTimeError
from herotime_api.providers import ProviderRegistry
from herotime_api.routers import billing, catalog, generate, generations, health, uploads
from herotime_api.schemas import ProblemDetail
from herotime_api.utils import configure_json_logging

logger = logging.getLogger(__name__)

# Structured JSON logging; set HEROTIME_JSON_LOGS=false for plain local output
if os.getenv("HEROTIME_JSON_LOGS", "true").lower() != "false":
    configure_json_logging(log_level=os.getenv("LOG_LEVEL", "INFO"))
    logger.info("Structured JSON logging enabled")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own provider clients and the DB engine for the process lifetime."""
    app.state.providers = ProviderRegistry()
    yield
    app.state.providers.close()
    dispose_engine()


app = FastAPI(
    title="HeroTime API",
    description="AI hero-image generation with plan-gated quotas and subscription billing.",
    version=__version__,
    lifespan=lifespan,
)

# Browsers reject wildcard origins with credentials; always an explicit list
cors_origins_env = os.getenv("CORS_ALLOWED_ORIGINS", "")
if cors_origins_env:
    allowed_origins = [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
else:
    allowed_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


# ============================================================================
# Request Completion Logging
# ============================================================================


@app.middleware("http")
async def http_completion_logging_middleware(request: Request, call_next):
    """Emit one "http.request.completed" log per request.

    Per-request contextvars are cleared at start and end so they never leak
    across requests served by the same task.
    """
    user_id_var.set("")
    generation_id_var.set("")

    start_time = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "http.request.completed",
            extra={
                "event": "http.request.completed",
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        user_id_var.set("")
        generation_id_var.set("")


# ============================================================================
# Request ID Middleware (MUST BE OUTERMOST)
# ============================================================================


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Accept or generate X-Request-ID and echo it on the response.

    Registered last so it is the outermost middleware and the contextvar is
    set before inner middlewares run.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request_id_var.set(request_id)

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ============================================================================
# RFC 9457 Exception Handlers
# ============================================================================


def _instance() -> str:
    request_id = request_id_var.get() or str(uuid.uuid4())
    return f"urn:herotime:trace:{request_id}"


def _problem_response(problem: ProblemDetail, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
        headers=headers,
    )


@app.exception_handler(HeroTimeError)
async def herotime_error_handler(request: Request, exc: HeroTimeError) -> JSONResponse:
    """Domain errors; ``diagnostic`` is only exposed outside production."""
    if exc.status_code >= 500:
        logger.error(
            f"{exc.code}: {exc.diagnostic or exc.detail}",
            extra={"event": "http.error", "code": exc.code, "path": request.url.path},
        )
    else:
        logger.info(
            f"{exc.code}: {exc.detail}",
            extra={"event": "http.rejected", "code": exc.code, "path": request.url.path},
        )

    problem = ProblemDetail(
        type=exc.error_type,
        title=exc.title,
        status=exc.status_code,
        detail=exc.detail,
        instance=_instance(),
        code=exc.code,
        diagnostic=None if is_production_env() else exc.diagnostic,
    )
    headers = {"Retry-After": "60"} if exc.status_code == 429 else None
    return _problem_response(problem, headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """HTTP exceptions; a pre-built problem dict in ``detail`` is passed through."""
    if isinstance(exc.detail, dict) and "type" in exc.detail:
        content = dict(exc.detail)
        content.setdefault("instance", _instance())
        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            media_type="application/problem+json",
            headers=getattr(exc, "headers", None),
        )

    title = _get_title_for_status(exc.status_code)
    problem = ProblemDetail(
        type=f"{PROBLEM_BASE_URI}/http-{exc.status_code}",
        title=title,
        status=exc.status_code,
        detail=exc.detail if exc.detail is not None else title,
        instance=_instance(),
    )
    return _problem_response(problem, getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed or missing fields are rejected with 400 before any side effect."""
    errors = exc.errors()
    first_error = errors[0] if errors else {}
    field = ".".join(str(loc) for loc in first_error.get("loc", []) if loc != "body")
    msg = first_error.get("msg", "Validation error")

    problem = ProblemDetail(
        type=f"{PROBLEM_BASE_URI}/validation-error",
        title="Bad Request",
        status=status.HTTP_400_BAD_REQUEST,
        detail=f"Invalid field '{field}': {msg}",
        instance=_instance(),
        code="VALIDATION_ERROR",
    )
    return _problem_response(problem)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    problem = ProblemDetail(
        type=f"{PROBLEM_BASE_URI}/internal-error",
        title="Internal Server Error",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred. Please try again later.",
        instance=_instance(),
        code="INTERNAL_ERROR",
        diagnostic=None if is_production_env() else f"{type(exc).__name__}: {exc}",
    )
    return _problem_response(problem)


def _get_title_for_status(status_code: int) -> str:
    titles = {
        400: "Bad Request",
        401: "Unauthorized",
        403: "Forbidden",
        404: "Not Found",
        405: "Method Not Allowed",
        409: "Conflict",
        429: "Too Many Requests",
        500: "Internal Server Error",
        503: "Service Unavailable",
    }
    return titles.get(status_code, f"HTTP {status_code}")


# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(generate.router)
app.include_router(uploads.router)
app.include_router(generations.router)
app.include_router(billing.router)
app.include_router(catalog.router)
