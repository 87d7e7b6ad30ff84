"""External provider clients, owned by the application lifecycle.

Clients are built lazily on first use (so a missing key is a 500 at first
use, not a startup crash) and closed at shutdown. Routes receive them via
the ``get_*`` dependencies, which tests override.
"""

import logging
from typing import Optional

import redis
from fastapi import Request

from herotime_api.billing.stripe_client import BillingClient
from herotime_api.generation.inference import InferenceClient
from herotime_api.locks import close_redis, get_redis
from herotime_api.storage.s3_client import StorageClient

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Holds one instance of each provider client for the process."""

    def __init__(self):
        self._storage: Optional[StorageClient] = None
        self._inference: Optional[InferenceClient] = None
        self._billing: Optional[BillingClient] = None

    @property
    def storage(self) -> StorageClient:
        if self._storage is None:
            self._storage = StorageClient()
        return self._storage

    @property
    def inference(self) -> InferenceClient:
        if self._inference is None:
            self._inference = InferenceClient()
        return self._inference

    @property
    def billing(self) -> BillingClient:
        if self._billing is None:
            self._billing = BillingClient()
        return self._billing

    @property
    def redis(self) -> redis.Redis:
        return get_redis()

    def close(self) -> None:
        close_redis()
        self._storage = None
        self._inference = None
        self._billing = None
        logger.info("Provider clients released")


def _registry(request: Request) -> ProviderRegistry:
    return request.app.state.providers


def get_storage(request: Request) -> StorageClient:
    return _registry(request).storage


def get_inference(request: Request) -> InferenceClient:
    return _registry(request).inference


def get_billing(request: Request) -> BillingClient:
    return _registry(request).billing


def get_redis_client(request: Request) -> redis.Redis:
    return _registry(request).redis
