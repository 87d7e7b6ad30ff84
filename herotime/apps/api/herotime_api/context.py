"""Request context management for observability.

Context variables carry request-scoped identifiers across async boundaries so
every log line emitted while serving a request can be correlated.
"""

from contextvars import ContextVar

# Request ID - unique per HTTP request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Authenticated caller (auth provider user id)
user_id_var: ContextVar[str] = ContextVar("user_id", default="")

# Generation currently being orchestrated
generation_id_var: ContextVar[str] = ContextVar("generation_id", default="")
