"""Domain exceptions rendered as RFC 9457 problem documents.

Every error raised on a request path derives from ``HeroTimeError``. The
exception handler in ``herotime_api.main`` turns it into an
``application/problem+json`` response; ``diagnostic`` is only included
outside production.
"""

from typing import Optional

PROBLEM_BASE_URI = "https://api.herotime.app/problems"


class HeroTimeError(Exception):
    """Base class for errors with a defined HTTP representation."""

    status_code: int = 500
    title: str = "Internal Server Error"
    code: str = "INTERNAL_ERROR"
    default_detail: str = "An unexpected error occurred. Please try again later."

    def __init__(
        self,
        detail: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        title: Optional[str] = None,
        code: Optional[str] = None,
        diagnostic: Optional[str] = None,
    ):
        self.detail = detail or self.default_detail
        if status_code is not None:
            self.status_code = status_code
        if title is not None:
            self.title = title
        if code is not None:
            self.code = code
        self.diagnostic = diagnostic
        super().__init__(self.detail)

    @property
    def error_type(self) -> str:
        """Problem type URI derived from the error code."""
        return f"{PROBLEM_BASE_URI}/{self.code.lower().replace('_', '-')}"


class ConfigurationError(HeroTimeError, RuntimeError):
    """Required configuration is missing or invalid (raised at first use)."""

    title = "Server Configuration Error"
    code = "CONFIGURATION_ERROR"
    default_detail = "Server configuration error."


class QuotaExceededError(HeroTimeError):
    """User has used every generation allowed by the current plan."""

    status_code = 403
    title = "Generation Limit Exceeded"
    code = "LIMIT_EXCEEDED"
    default_detail = (
        "You have reached your monthly generation limit. "
        "Please upgrade your plan to continue."
    )


class InvalidUploadError(HeroTimeError):
    status_code = 400
    title = "Invalid Upload"
    code = "INVALID_UPLOAD"
    default_detail = "Invalid file upload."


class GenerationNotFoundError(HeroTimeError):
    status_code = 404
    title = "Not Found"
    code = "GENERATION_NOT_FOUND"
    default_detail = "Generation not found"


class UserBusyError(HeroTimeError):
    """Another subscription change for the same user is in flight."""

    status_code = 409
    title = "Conflict"
    code = "USER_BUSY"
    default_detail = "Another subscription change is in progress. Please retry shortly."


class SubscriptionStateError(HeroTimeError):
    """Requested subscription change is not valid for the current state."""

    status_code = 400
    title = "Invalid Subscription State"
    code = "INVALID_SUBSCRIPTION_STATE"
    default_detail = "The requested subscription change is not allowed."


class BillingProviderError(HeroTimeError):
    """A billing provider call failed. Never retried."""

    title = "Billing Provider Error"
    code = "BILLING_PROVIDER_ERROR"
    default_detail = "Failed to update subscription. Please try again later."


# ============================================================================
# Inference provider failures
# ============================================================================

# kind -> (status, title, detail)
_INFERENCE_KINDS: dict[str, tuple[int, str, str]] = {
    "bad_request": (400, "Bad Request", "Invalid request parameters"),
    "unauthorized": (
        401,
        "Invalid API Token",
        "The image generation service rejected the configured API token.",
    ),
    "payment_required": (
        402,
        "Payment Required",
        "The image generation account needs to be topped up with credits.",
    ),
    "rate_limited": (429, "Too Many Requests", "Too many requests. Please try again later."),
    "timeout": (
        408,
        "Request Timeout",
        "Request timeout - image generation is taking longer than expected",
    ),
    "network": (
        503,
        "Service Unavailable",
        "Network error - the image generation service could not be reached",
    ),
    "generic": (500, "Generation Failed", "Failed to generate image"),
}

_STATUS_TO_KIND = {
    400: "bad_request",
    401: "unauthorized",
    402: "payment_required",
    429: "rate_limited",
}

INFERENCE_ERROR_KINDS = frozenset(_INFERENCE_KINDS)


class InferenceError(HeroTimeError):
    """Failure talking to (or reported by) the image generation provider."""

    def __init__(
        self,
        kind: str = "generic",
        detail: Optional[str] = None,
        *,
        diagnostic: Optional[str] = None,
    ):
        if kind not in _INFERENCE_KINDS:
            raise ValueError(f"Unknown inference error kind: {kind}")
        status_code, title, default_detail = _INFERENCE_KINDS[kind]
        self.kind = kind
        super().__init__(
            detail or default_detail,
            status_code=status_code,
            title=title,
            code=f"INFERENCE_{kind.upper()}",
            diagnostic=diagnostic,
        )

    @classmethod
    def from_exception(cls, exc: BaseException) -> "InferenceError":
        """Classify an arbitrary provider/transport exception.

        Precedence: explicit HTTP status on the exception, then message
        keywords ("timeout", "network", "insufficient"), then generic.
        """
        if isinstance(exc, InferenceError):
            return exc

        message = str(exc) or exc.__class__.__name__
        status = getattr(exc, "status", None) or getattr(exc, "status_code", None)
        kind = _STATUS_TO_KIND.get(status) if isinstance(status, int) else None

        if kind is None:
            lowered = message.lower()
            if "timeout" in lowered or "timed out" in lowered:
                kind = "timeout"
            elif "network" in lowered or "connection" in lowered:
                kind = "network"
            elif "insufficient" in lowered:
                kind = "payment_required"
            else:
                kind = "generic"

        detail = None
        if kind == "bad_request":
            detail = getattr(exc, "detail", None) or None
        return cls(kind, detail, diagnostic=message)
