"""Supabase client configuration for session verification.

The hosted auth provider issues the JWTs our callers present; the API only
uses the publishable (anon) key to ask the provider who a token belongs to.

KEY NAMING TRANSITION:
- New Supabase UI (2024+): SB_PUBLISHABLE_KEY
- Legacy: SUPABASE_ANON_KEY
- Falls back to the legacy name if the new one is not set
"""

import logging
import os
from functools import lru_cache

from supabase import Client, create_client

from herotime_api.errors import ConfigurationError

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_supabase_url() -> str:
    """Get Supabase project URL from environment.

    Raises:
        ConfigurationError: If SUPABASE_URL not set
    """
    url = os.getenv("SUPABASE_URL")
    if not url:
        raise ConfigurationError(diagnostic="SUPABASE_URL environment variable not set.")
    return url


@lru_cache(maxsize=1)
def get_supabase_api_key() -> str:
    """Get Supabase publishable (anon) key from environment.

    Priority:
    1. SB_PUBLISHABLE_KEY
    2. SUPABASE_ANON_KEY (legacy)

    Raises:
        ConfigurationError: If neither key is set
    """
    key = os.getenv("SB_PUBLISHABLE_KEY")
    if key:
        return key

    key = os.getenv("SUPABASE_ANON_KEY")
    if key:
        logger.info("Using legacy SUPABASE_ANON_KEY (consider migrating to SB_PUBLISHABLE_KEY)")
        return key

    raise ConfigurationError(
        diagnostic=(
            "Neither SB_PUBLISHABLE_KEY nor SUPABASE_ANON_KEY environment variable is set. "
            "Set SB_PUBLISHABLE_KEY (recommended) or SUPABASE_ANON_KEY (legacy)."
        )
    )


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    """Get Supabase client used to validate session JWTs.

    Raises:
        ConfigurationError: If environment variables not set
    """
    url = get_supabase_url()
    api_key = get_supabase_api_key()

    logger.info(
        "Initializing Supabase client",
        extra={"supabase_url": url, "key_type": "publishable"},
    )

    return create_client(url, api_key)
