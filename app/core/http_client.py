"""
Resilient HTTP client shared by every external provider.

A provider describes itself once with a ProviderConfig and gets a
ResilientClient that runs each request through the same pipeline:

    cache lookup -> rate-limit wait -> HTTP with retry -> cache write

Providers compose a ResilientClient rather than subclassing it, so each
provider module only holds endpoint paths and response mapping.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import httpx

from app.core.api_errors import APIError, FatalError, TransportError, classify_http_error
from app.core.cache import CacheService
from app.core.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

GLOBAL_DEFAULT_CACHE_TTL = 604800
DEFAULT_RATE_LIMIT_MAX = 10
DEFAULT_RATE_LIMIT_WINDOW_MS = 60000


@dataclass(frozen=True)
class ProviderConfig:
    """
    Static per-provider settings, fixed when the provider client is built.

    Attributes:
        source: Provider name used in logs and errors
        base_url: Prefix for relative request paths
        headers: Headers sent with every request
        timeout_ms: Per-request HTTP timeout
        rate_limit_key: Limiter key; None disables rate limiting
        rate_limit_max: Requests admitted per window
        rate_limit_window_ms: Window length
        cache_ttl: Default TTL (seconds) for cached responses
        retry_attempts: Total attempts including the first
        retry_delay_ms: Base delay; attempt n waits retry_delay_ms * n
        default_params: Query parameters merged into every request
    """

    source: str
    base_url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout_ms: int = 10000
    rate_limit_key: Optional[str] = None
    rate_limit_max: Optional[int] = None
    rate_limit_window_ms: Optional[int] = None
    cache_ttl: Optional[int] = None
    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    default_params: Mapping[str, Any] = field(default_factory=dict)


def generate_cache_key(prefix: str, params: Mapping[str, Any]) -> str:
    """
    Build a deterministic cache key from a prefix and request parameters.

    Parameters are sorted by name so insertion order never changes the key.
    """
    pairs = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return f"{prefix}:{pairs}"


class ResilientClient:
    """
    Cached, rate-limited, retrying HTTP client for one provider.

    Usage:
        client = ResilientClient(config, cache, rate_limiter)
        data = await client.get("/submissions/CIK0000320193.json",
                                cache_key="edgar:company:cik=0000320193")
    """

    def __init__(
        self,
        config: ProviderConfig,
        cache: Optional[CacheService] = None,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.cache = cache
        self.rate_limiter = rate_limiter
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the pooled HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=dict(self.config.headers),
                timeout=httpx.Timeout(self.config.timeout_ms / 1000),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug(f"{self.config.source} client closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _build_url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        if not path:
            return self.config.base_url
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _resolve_ttl(self, override: Optional[int]) -> int:
        if override is not None:
            return override
        if self.config.cache_ttl is not None:
            return self.config.cache_ttl
        if self.cache is not None:
            return self.cache.default_ttl
        return GLOBAL_DEFAULT_CACHE_TTL

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        cache_key: Optional[str] = None,
        cache_ttl: Optional[int] = None,
        skip_cache: bool = False,
        skip_rate_limit: bool = False,
    ) -> Any:
        """
        Run one request through cache, rate limiter and retry.

        Args:
            method: HTTP method
            path: Path relative to base_url, or an absolute URL
            params: Query parameters (merged over config.default_params)
            headers: Extra headers for this request only
            cache_key: Cache slot for the parsed response; None disables caching
            cache_ttl: TTL override for this response
            skip_cache: Bypass both cache read and cache write
            skip_rate_limit: Bypass the rate limiter

        Returns:
            Parsed JSON response

        Raises:
            RateLimitTimeout: If no rate-limit slot opened in time
            APIError: On non-retryable or exhausted failures
        """
        use_cache = bool(cache_key) and not skip_cache and self.cache is not None

        if use_cache:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"[{self.config.source}] cache hit {cache_key}")
                return cached

        if self.config.rate_limit_key and not skip_rate_limit and self.rate_limiter is not None:
            await self.rate_limiter.wait_for_slot(
                self.config.rate_limit_key,
                self.config.rate_limit_max or DEFAULT_RATE_LIMIT_MAX,
                self.config.rate_limit_window_ms or DEFAULT_RATE_LIMIT_WINDOW_MS,
            )

        data = await self._request_with_retry(method, path, params, headers)

        if use_cache:
            await self.cache.set(cache_key, data, self._resolve_ttl(cache_ttl))

        return data

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None, **options) -> Any:
        """GET shortcut for request()."""
        return await self.request("GET", path, params=params, **options)

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
    ) -> Any:
        attempt = 1
        while True:
            try:
                return await self._send(method, path, params, headers)
            except APIError as e:
                if attempt < self.config.retry_attempts and e.retryable:
                    delay_ms = self.config.retry_delay_ms * attempt
                    logger.warning(
                        f"[{self.config.source}] attempt {attempt}/{self.config.retry_attempts} "
                        f"failed: {e}. Retrying in {delay_ms}ms"
                    )
                    await asyncio.sleep(delay_ms / 1000)
                    attempt += 1
                    continue
                raise

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
    ) -> Any:
        url = self._build_url(path)
        query = {**self.config.default_params, **(params or {})}
        query = {k: v for k, v in query.items() if v is not None}
        client = await self._get_client()

        try:
            response = await client.request(method, url, params=query, headers=headers)
        except httpx.RequestError as e:
            raise TransportError(
                message=f"Request to {url} failed: {e.__class__.__name__}: {e}",
                source=self.config.source,
            ) from e

        if response.status_code >= 400:
            raise classify_http_error(
                response.status_code,
                response.text,
                self.config.source,
                retry_after=response.headers.get("Retry-After"),
            )

        try:
            return response.json()
        except ValueError as e:
            raise FatalError(
                message=f"Invalid JSON from {url}",
                source=self.config.source,
                status_code=response.status_code,
            ) from e
