"""Session authentication for user-facing endpoints.

FLOW:
1. The web client signs in with the hosted auth provider and holds a JWT
2. Every API call carries ``Authorization: Bearer <jwt>``
3. The JWT is verified by the auth provider (signature + expiry)
4. Returns AuthContext(user_id, email)

Failures are 401 problem documents raised before any side effect.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from herotime_api.context import request_id_var, user_id_var
from herotime_api.errors import PROBLEM_BASE_URI
from herotime_api.schemas import ProblemDetail
from herotime_api.supabase_client import get_supabase_client

logger = logging.getLogger(__name__)

session_security = HTTPBearer(auto_error=False, description="Auth provider session JWT")


@dataclass(frozen=True)
class AuthContext:
    """Verified caller identity."""

    user_id: str
    email: str


def _unauthorized(detail: str) -> HTTPException:
    problem = ProblemDetail(
        type=f"{PROBLEM_BASE_URI}/unauthorized",
        title="Unauthorized",
        status=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        instance=f"urn:herotime:trace:{request_id_var.get()}",
        code="UNAUTHORIZED",
    )
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=problem.model_dump(exclude_none=True),
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_auth_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(session_security),
) -> AuthContext:
    """Resolve the caller from the session JWT.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    if not credentials:
        raise _unauthorized("Missing Authorization header. Please log in first.")

    supabase = get_supabase_client()
    try:
        user_response = supabase.auth.get_user(credentials.credentials)
    except Exception as e:
        # Expired/forged tokens surface as provider exceptions
        logger.warning(
            f"Session JWT rejected: {type(e).__name__}",
            extra={"event": "session.jwt.rejected", "path": request.url.path},
        )
        raise _unauthorized("Invalid or expired session token. Please log in again.") from e

    if not user_response or not user_response.user:
        raise _unauthorized("Invalid or expired session token. Please log in again.")

    user = user_response.user
    user_id_var.set(user.id)
    logger.debug(
        "Session JWT validated",
        extra={"event": "session.jwt.validated", "user_id": user.id},
    )
    return AuthContext(user_id=user.id, email=user.email or "")
