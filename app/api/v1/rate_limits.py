"""
Rate limit endpoints.

Shows each provider's outbound budget and how much of the current window is
used.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.core.rate_limiter import RateLimiter, get_rate_limiter
from app.sources.registry import ProviderClients, get_provider_clients

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rate-limits", tags=["rate-limits"])


@router.get("")
def list_rate_limits(
    providers: ProviderClients = Depends(get_provider_clients),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Dict[str, Any]:
    """
    Outbound rate limits per provider.

    `requests_in_window` counts requests admitted in the current sliding
    window; `reset_in_ms` is the wait until the oldest one leaves it.
    """
    limits = []
    for client in providers.api_clients():
        config = client.config
        if not config.rate_limit_key:
            continue
        window_ms = config.rate_limit_window_ms
        limits.append({
            "source": config.source,
            "key": config.rate_limit_key,
            "max_requests": config.rate_limit_max,
            "window_ms": window_ms,
            "requests_in_window": limiter.get_request_count(config.rate_limit_key, window_ms),
            "reset_in_ms": limiter.get_time_until_reset(config.rate_limit_key, window_ms),
        })

    return {"limits": limits, "tracked_keys": limiter.get_stats()}
