"""Redaction of secrets and user data before anything reaches a log line.

Covers what HeroTime actually handles: Supabase session JWTs, Stripe keys,
Replicate tokens, uploaded photos sent as base64 data URIs and the email
address of the signed-in user.

Strings longer than MAX_STR_LOG are replaced by a length + sha256 stub so a
base64 photo never lands in the log pipeline; strings above MAX_STR_FOR_REGEX
only get a cheap prefix test.
"""

import hashlib
import re
import traceback
from typing import Any

REDACTED = "[REDACTED]"

MAX_STR_LOG = 2048
MAX_STR_FOR_REGEX = 512
MAX_DEPTH = 6

# Exact key names, compared lower-cased
_SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "password",
        "email",
        "phone",
        "card",
        "cvc",
        "file",
        "signature",
    }
)
# Any key ending in one of these (access_token, stripe_api_key, client_secret, ...)
_SENSITIVE_SUFFIXES = ("token", "api_key", "secret")

_SECRET_RE = re.compile(
    "|".join(
        [
            r"(?:Bearer|Basic) \S+",
            r"\b(?:api_key|access_token|client_secret)=\S+",
            r"\b(?:sk|rk|pk)_(?:live|test)_[A-Za-z0-9]+",
            r"\bwhsec_[A-Za-z0-9]+",
            r"\br8_[A-Za-z0-9]+",
            r"\beyJ[\w-]+\.[\w-]+\.[\w-]+",
            r"data:[\w/+.-]+;base64,\S+",
        ]
    )
)

_RISKY_PREFIXES = ("Bearer ", "Basic ", "data:")


def _is_sensitive_key(key: Any) -> bool:
    if not isinstance(key, str):
        return False
    lowered = key.lower()
    return lowered in _SENSITIVE_KEYS or lowered.endswith(_SENSITIVE_SUFFIXES)


def _digest_stub(s: str) -> str:
    digest = hashlib.sha256(s.encode("utf-8", errors="replace")).hexdigest()[:16]
    return f"[TRUNCATED len={len(s)} sha256={digest}]"


def sanitize_str(s: str) -> str:
    """Return ``s`` with secrets replaced by ``[REDACTED]``."""
    if not isinstance(s, str):
        return s  # type: ignore[return-value]
    if len(s) > MAX_STR_LOG:
        return _digest_stub(s)
    if len(s) > MAX_STR_FOR_REGEX:
        return REDACTED if s.startswith(_RISKY_PREFIXES) else s
    return _SECRET_RE.sub(REDACTED, s)


def sanitize_obj(obj: Any, depth: int = 0) -> Any:
    """Sanitize a log ``extra`` value, walking dicts and sequences."""
    if depth >= MAX_DEPTH:
        return "[DEPTH_LIMIT]"
    if isinstance(obj, str):
        return sanitize_str(obj)
    if isinstance(obj, dict):
        return {
            key: REDACTED if _is_sensitive_key(key) else sanitize_obj(value, depth + 1)
            for key, value in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return [sanitize_obj(item, depth + 1) for item in obj]
    return obj


def sanitize_exc(exc_info: tuple) -> str:
    """Render ``exc_info`` as a redacted traceback without frame locals."""
    _, value, _ = exc_info
    if value is None:
        return ""
    try:
        lines = traceback.TracebackException.from_exception(value, capture_locals=False).format()
        return sanitize_str("".join(lines))
    except Exception:
        return "[TRACEBACK_FORMAT_ERROR]"
