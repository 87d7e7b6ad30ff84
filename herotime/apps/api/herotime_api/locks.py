"""Per-user serialization backed by Redis.

Subscription mutations for one user run one at a time: each takes
``herotime:user-lock:{user_id}`` before touching the billing provider. A lock
that cannot be acquired within the wait budget surfaces as 409 USER_BUSY.
"""

import logging
import os
from types import TracebackType
from typing import Optional
from urllib.parse import urlparse

import redis
from redis.exceptions import LockError

from herotime_api.config import env
from herotime_api.errors import UserBusyError

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "herotime:user-lock:"

_client: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    """Get the process-wide Redis client (built on first use).

    - REDIS_URL (e.g. redis://host:6379/0 or rediss://...), default localhost
    - REDIS_PASSWORD is applied only if the URL carries none
    """
    global _client
    if _client is None:
        redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        redis_password = os.getenv("REDIS_PASSWORD")

        kwargs = {
            "decode_responses": True,
            "socket_connect_timeout": 5,
            "socket_timeout": 5,
            "health_check_interval": 30,
        }
        if not urlparse(redis_url).password and redis_password:
            kwargs["password"] = redis_password

        _client = redis.from_url(redis_url, **kwargs)
    return _client


def close_redis() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None


class UserLock:
    """Context manager holding the per-user lock.

    Args:
        client: Redis client
        user_id: Lock owner
        timeout: Lock TTL in seconds (released automatically if we crash)
        wait: Seconds to wait for a busy lock before giving up
    """

    def __init__(
        self,
        client: redis.Redis,
        user_id: str,
        timeout: Optional[int] = None,
        wait: Optional[int] = None,
    ):
        self.user_id = user_id
        self.key = f"{LOCK_KEY_PREFIX}{user_id}"
        self._lock = client.lock(
            self.key,
            timeout=timeout if timeout is not None else env.get_user_lock_timeout_sec(),
            blocking_timeout=wait if wait is not None else env.get_user_lock_wait_sec(),
        )

    def __enter__(self) -> "UserLock":
        if not self._lock.acquire():
            logger.warning(
                "Per-user lock busy",
                extra={"event": "user_lock.busy", "lock_key": self.key},
            )
            raise UserBusyError()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        try:
            self._lock.release()
        except LockError:
            # TTL expired while we held it; the work already ran
            logger.warning(
                "Per-user lock expired before release",
                extra={"event": "user_lock.expired", "lock_key": self.key},
            )
