"""
Unit tests for app/core/http_client.py

Requests go through httpx.MockTransport; retry sleeps are patched out.
"""
import httpx
import pytest
from unittest.mock import AsyncMock, patch

from app.core.api_errors import (
    FatalError,
    NotFoundError,
    RateLimitTimeout,
    RetryableError,
    TransportError,
    ValidationError,
)
from app.core.http_client import ProviderConfig, ResilientClient, generate_cache_key
from app.core.rate_limiter import RateLimiter


def _config(**overrides) -> ProviderConfig:
    values = dict(
        source="test-provider",
        base_url="https://api.example.com/v1",
        retry_attempts=3,
        retry_delay_ms=1000,
    )
    values.update(overrides)
    return ProviderConfig(**values)


class Recorder:
    """MockTransport handler that replays a list of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def no_sleep():
    with patch("app.core.http_client.asyncio.sleep") as sleep:
        yield sleep


# =============================================================================
# Cache keys
# =============================================================================


class TestGenerateCacheKey:

    def test_parameter_order_does_not_matter(self):
        a = generate_cache_key("yahoo:quote", {"symbol": "AAPL", "range": "1y"})
        b = generate_cache_key("yahoo:quote", {"range": "1y", "symbol": "AAPL"})
        assert a == b

    def test_format(self):
        key = generate_cache_key("opencorp:search", {"query": "Apple", "jurisdiction": ""})
        assert key == "opencorp:search:jurisdiction=&query=Apple"


# =============================================================================
# Retry
# =============================================================================


class TestRetry:

    @pytest.mark.asyncio
    async def test_recovers_after_two_server_errors(self, no_sleep):
        handler = Recorder(
            httpx.Response(503, text="unavailable"),
            httpx.Response(503, text="unavailable"),
            httpx.Response(200, json={"ok": True}),
        )
        client = ResilientClient(_config(), transport=httpx.MockTransport(handler))

        assert await client.get("/thing") == {"ok": True}
        assert len(handler.requests) == 3
        # linear backoff: 1s then 2s
        delays = [c.args[0] for c in no_sleep.await_args_list]
        assert delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, no_sleep):
        handler = Recorder(httpx.Response(400, text="bad symbol"))
        client = ResilientClient(_config(), transport=httpx.MockTransport(handler))

        with pytest.raises(ValidationError) as exc_info:
            await client.get("/thing")

        assert exc_info.value.status_code == 400
        assert exc_info.value.retryable is False
        assert len(handler.requests) == 1
        no_sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_found_is_fatal(self, no_sleep):
        handler = Recorder(httpx.Response(404, text="missing"))
        client = ResilientClient(_config(), transport=httpx.MockTransport(handler))

        with pytest.raises(NotFoundError):
            await client.get("/thing")
        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_all_attempts(self, no_sleep):
        handler = Recorder(*[httpx.Response(500, text="boom") for _ in range(3)])
        client = ResilientClient(_config(), transport=httpx.MockTransport(handler))

        with pytest.raises(RetryableError) as exc_info:
            await client.get("/thing")

        assert exc_info.value.status_code == 500
        assert len(handler.requests) == 3

    @pytest.mark.asyncio
    async def test_network_failure_is_retried(self, no_sleep):
        handler = Recorder(
            httpx.ConnectError("connection refused"),
            httpx.Response(200, json=[1, 2, 3]),
        )
        client = ResilientClient(_config(), transport=httpx.MockTransport(handler))

        assert await client.get("/thing") == [1, 2, 3]
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_network_failure_exhausted_raises_transport_error(self, no_sleep):
        handler = Recorder(*[httpx.ConnectTimeout("timed out") for _ in range(3)])
        client = ResilientClient(_config(), transport=httpx.MockTransport(handler))

        with pytest.raises(TransportError) as exc_info:
            await client.get("/thing")
        assert exc_info.value.retryable is True
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_invalid_json_is_fatal(self, no_sleep):
        handler = Recorder(httpx.Response(200, text="<html>not json</html>"))
        client = ResilientClient(_config(), transport=httpx.MockTransport(handler))

        with pytest.raises(FatalError):
            await client.get("/thing")


# =============================================================================
# URL and params
# =============================================================================


class TestRequestBuilding:

    @pytest.mark.asyncio
    async def test_relative_path_joined_to_base_url(self, no_sleep):
        handler = Recorder(httpx.Response(200, json={}))
        client = ResilientClient(_config(), transport=httpx.MockTransport(handler))
        await client.get("/companies/search", params={"q": "Apple"})

        url = handler.requests[0].url
        assert str(url).startswith("https://api.example.com/v1/companies/search")
        assert url.params["q"] == "Apple"

    @pytest.mark.asyncio
    async def test_absolute_url_used_as_is(self, no_sleep):
        handler = Recorder(httpx.Response(200, json={}))
        client = ResilientClient(_config(), transport=httpx.MockTransport(handler))
        await client.get("https://www.sec.gov/files/company_tickers.json")

        url = handler.requests[0].url
        assert url.host == "www.sec.gov"
        assert url.path == "/files/company_tickers.json"

    @pytest.mark.asyncio
    async def test_none_params_dropped_and_defaults_merged(self, no_sleep):
        handler = Recorder(httpx.Response(200, json={}))
        client = ResilientClient(
            _config(default_params={"api_token": "secret"}),
            transport=httpx.MockTransport(handler),
        )
        await client.get("/x", params={"q": "a", "jurisdiction_code": None})

        params = handler.requests[0].url.params
        assert params["api_token"] == "secret"
        assert "jurisdiction_code" not in params


# =============================================================================
# Cache and rate limiting
# =============================================================================


class TestCacheAndRateLimit:

    @pytest.mark.asyncio
    async def test_cache_hit_skips_network(self, fake_cache, no_sleep):
        fake_cache.store["k"] = {"cached": True}
        handler = Recorder()
        client = ResilientClient(_config(), fake_cache, transport=httpx.MockTransport(handler))

        assert await client.get("/x", cache_key="k") == {"cached": True}
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_response_written_to_cache_with_ttl(self, fake_cache, no_sleep):
        handler = Recorder(httpx.Response(200, json={"fresh": True}))
        client = ResilientClient(
            _config(cache_ttl=3600), fake_cache, transport=httpx.MockTransport(handler)
        )

        await client.get("/x", cache_key="k")
        assert fake_cache.store["k"] == {"fresh": True}
        assert fake_cache.ttls["k"] == 3600

    @pytest.mark.asyncio
    async def test_per_request_ttl_overrides_config(self, fake_cache, no_sleep):
        handler = Recorder(httpx.Response(200, json={}))
        client = ResilientClient(
            _config(cache_ttl=3600), fake_cache, transport=httpx.MockTransport(handler)
        )
        await client.get("/x", cache_key="k", cache_ttl=60)
        assert fake_cache.ttls["k"] == 60

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, fake_cache, no_sleep):
        handler = Recorder(httpx.Response(404, text="missing"))
        client = ResilientClient(_config(), fake_cache, transport=httpx.MockTransport(handler))

        with pytest.raises(NotFoundError):
            await client.get("/x", cache_key="k")
        assert "k" not in fake_cache.store

    @pytest.mark.asyncio
    async def test_skip_cache(self, fake_cache, no_sleep):
        fake_cache.store["k"] = {"stale": True}
        handler = Recorder(httpx.Response(200, json={"fresh": True}))
        client = ResilientClient(_config(), fake_cache, transport=httpx.MockTransport(handler))

        assert await client.get("/x", cache_key="k", skip_cache=True) == {"fresh": True}
        assert fake_cache.store["k"] == {"stale": True}

    @pytest.mark.asyncio
    async def test_rate_limit_slot_taken_once_per_request(self, no_sleep):
        limiter = RateLimiter()
        handler = Recorder(
            httpx.Response(503, text="x"),
            httpx.Response(200, json={}),
        )
        client = ResilientClient(
            _config(rate_limit_key="test-provider", rate_limit_max=5, rate_limit_window_ms=60000),
            rate_limiter=limiter,
            transport=httpx.MockTransport(handler),
        )
        await client.get("/x")

        # retries happen inside one admitted request
        assert limiter.get_request_count("test-provider", 60000) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_timeout_propagates(self):
        limiter = RateLimiter()
        limiter.check_limit("test-provider", 1, 60000)
        handler = Recorder()
        client = ResilientClient(
            _config(rate_limit_key="test-provider", rate_limit_max=1, rate_limit_window_ms=60000),
            rate_limiter=limiter,
            transport=httpx.MockTransport(handler),
        )

        timeout = AsyncMock(side_effect=RateLimitTimeout("test-provider", 30000))
        with patch.object(limiter, "wait_for_slot", timeout):
            with pytest.raises(RateLimitTimeout):
                await client.get("/x")
        assert handler.requests == []
