"""
Yahoo Finance client (unofficial JSON endpoints on query2.finance.yahoo.com).

Four concerns with different volatility, hence different cache TTLs:
quotes (market-data TTL), historical OHLCV (1h daily / 5min intraday),
profile (7 days) and financials (24h).
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.core.api_errors import is_not_found
from app.core.cache import CacheService
from app.core.http_client import ProviderConfig, ResilientClient, generate_cache_key
from app.core.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SOURCE_NAME = "yahoo-finance"
BASE_URL = "https://query2.finance.yahoo.com"
USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)"

PROFILE_TTL = 604800
FINANCIALS_TTL = 86400
DAILY_HISTORY_TTL = 3600
INTRADAY_HISTORY_TTL = 300
SEARCH_TTL = 3600

QUOTE_FIELDS = {
    "symbol": "symbol",
    "short_name": "shortName",
    "long_name": "longName",
    "regular_market_price": "regularMarketPrice",
    "regular_market_change": "regularMarketChange",
    "regular_market_change_percent": "regularMarketChangePercent",
    "regular_market_volume": "regularMarketVolume",
    "regular_market_day_high": "regularMarketDayHigh",
    "regular_market_day_low": "regularMarketDayLow",
    "regular_market_open": "regularMarketOpen",
    "regular_market_previous_close": "regularMarketPreviousClose",
    "market_cap": "marketCap",
    "fifty_two_week_high": "fiftyTwoWeekHigh",
    "fifty_two_week_low": "fiftyTwoWeekLow",
    "average_daily_volume_10_day": "averageDailyVolume10Day",
    "average_daily_volume_3_month": "averageDailyVolume3Month",
    "trailing_pe": "trailingPE",
    "forward_pe": "forwardPE",
    "dividend_rate": "dividendRate",
    "dividend_yield": "dividendYield",
    "beta": "beta",
    "currency": "currency",
    "exchange": "exchange",
    "quote_type": "quoteType",
    "market_state": "marketState",
}


def _raw(section: Dict[str, Any], name: str) -> Optional[Any]:
    """Yahoo wraps numbers as {"raw": 1.0, "fmt": "1.00"}."""
    value = section.get(name)
    if isinstance(value, dict):
        return value.get("raw")
    return value


class YahooFinanceClient:
    """Client for Yahoo Finance quotes, history, profiles and financials."""

    def __init__(
        self,
        cache: Optional[CacheService] = None,
        rate_limiter: Optional[RateLimiter] = None,
        transport=None,
    ):
        self.config = ProviderConfig(
            source=SOURCE_NAME,
            base_url=BASE_URL,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            rate_limit_key=SOURCE_NAME,
            rate_limit_max=60,
            rate_limit_window_ms=60000,
            cache_ttl=3600,
        )
        self.market_data_ttl = cache.market_data_ttl if cache is not None else 3600
        self.http = ResilientClient(self.config, cache, rate_limiter, transport=transport)

    async def close(self) -> None:
        await self.http.close()

    async def _get_or_none(self, path: str, **options) -> Optional[Any]:
        try:
            return await self.http.get(path, **options)
        except Exception as e:
            if is_not_found(e):
                logger.warning(f"Yahoo Finance returned 404 for {path}")
                return None
            raise

    async def get_quote(self, symbol: str) -> Optional[Dict[str, Any]]:
        """Latest quote for symbol, or None if Yahoo does not know it."""
        symbol = symbol.upper()
        data = await self._get_or_none(
            "/v7/finance/quote",
            params={"symbols": symbol},
            cache_key=generate_cache_key("yahoo:quote", {"symbol": symbol}),
            cache_ttl=self.market_data_ttl,
        )
        results = ((data or {}).get("quoteResponse") or {}).get("result") or []
        if not results:
            logger.warning(f"Quote not found for symbol: {symbol}")
            return None

        quote = results[0]
        return {name: quote.get(upstream) for name, upstream in QUOTE_FIELDS.items()}

    async def get_historical_data(
        self,
        symbol: str,
        period: str = "1y",
        interval: str = "1d",
    ) -> List[Dict[str, Any]]:
        """
        OHLCV bars for symbol.

        Args:
            symbol: Ticker
            period: Range (1d, 5d, 1mo, 3mo, 6mo, 1y, 2y, 5y, 10y, ytd, max)
            interval: Bar size (1m ... 1d, 1wk, 1mo)
        """
        symbol = symbol.upper()
        data = await self._get_or_none(
            f"/v8/finance/chart/{symbol}",
            params={"range": period, "interval": interval},
            cache_key=generate_cache_key(
                "yahoo:historical", {"symbol": symbol, "period": period, "interval": interval}
            ),
            cache_ttl=DAILY_HISTORY_TTL if interval == "1d" else INTRADAY_HISTORY_TTL,
        )
        results = ((data or {}).get("chart") or {}).get("result") or []
        if not results:
            logger.warning(f"Historical data not found for symbol: {symbol}")
            return []

        result = results[0]
        timestamps = result.get("timestamp") or []
        indicators = result.get("indicators") or {}
        quote = (indicators.get("quote") or [{}])[0]
        adj_close = ((indicators.get("adjclose") or [{}])[0]).get("adjclose") or []

        def value(series: List[Any], i: int) -> Any:
            return (series[i] if i < len(series) else None) or 0

        bars = []
        for i, ts in enumerate(timestamps):
            close = value(quote.get("close") or [], i)
            bars.append({
                "date": datetime.fromtimestamp(ts, tz=timezone.utc),
                "open": value(quote.get("open") or [], i),
                "high": value(quote.get("high") or [], i),
                "low": value(quote.get("low") or [], i),
                "close": close,
                "adj_close": value(adj_close, i) or close,
                "volume": value(quote.get("volume") or [], i),
            })
        return bars

    async def _quote_summary(self, symbol: str, modules: str, prefix: str, ttl: int):
        data = await self._get_or_none(
            f"/v10/finance/quoteSummary/{symbol}",
            params={"modules": modules},
            cache_key=generate_cache_key(prefix, {"symbol": symbol}),
            cache_ttl=ttl,
        )
        results = ((data or {}).get("quoteSummary") or {}).get("result") or []
        return results[0] if results else None

    async def get_company_profile(self, symbol: str) -> Optional[Dict[str, Any]]:
        symbol = symbol.upper()
        result = await self._quote_summary(
            symbol, "assetProfile,summaryProfile", "yahoo:profile", PROFILE_TTL
        )
        if result is None:
            logger.warning(f"Profile not found for symbol: {symbol}")
            return None

        profile = result.get("assetProfile") or result.get("summaryProfile") or {}
        return {
            "symbol": symbol,
            "name": profile.get("longName") or symbol,
            "description": profile.get("longBusinessSummary"),
            "sector": profile.get("sector"),
            "industry": profile.get("industry"),
            "website": profile.get("website"),
            "employees": profile.get("fullTimeEmployees"),
            "city": profile.get("city"),
            "state": profile.get("state"),
            "country": profile.get("country"),
            "phone": profile.get("phone"),
        }

    async def get_financials(self, symbol: str) -> Optional[Dict[str, Any]]:
        symbol = symbol.upper()
        result = await self._quote_summary(
            symbol,
            "financialData,defaultKeyStatistics,incomeStatementHistory",
            "yahoo:financials",
            FINANCIALS_TTL,
        )
        if result is None:
            logger.warning(f"Financials not found for symbol: {symbol}")
            return None

        financial = result.get("financialData") or {}
        key_stats = result.get("defaultKeyStatistics") or {}
        return {
            "symbol": symbol,
            "revenue": _raw(financial, "totalRevenue"),
            "revenue_growth": _raw(financial, "revenueGrowth"),
            "gross_profit": _raw(financial, "grossProfits"),
            "ebitda": _raw(financial, "ebitda"),
            "net_income": _raw(key_stats, "netIncomeToCommon"),
            "eps": _raw(key_stats, "trailingEps"),
            "total_assets": _raw(financial, "totalAssets"),
            "total_liabilities": _raw(financial, "totalLiabilities"),
            "total_debt": _raw(financial, "totalDebt"),
            "cash": _raw(financial, "totalCash"),
            "operating_cash_flow": _raw(financial, "operatingCashflow"),
            "free_cash_flow": _raw(financial, "freeCashflow"),
        }

    async def search(self, query: str) -> List[Dict[str, Any]]:
        """Symbol search; returns up to 10 matching instruments."""
        data = await self._get_or_none(
            "/v1/finance/search",
            params={"q": query, "quotesCount": 10, "newsCount": 0},
            cache_key=generate_cache_key("yahoo:search", {"query": query}),
            cache_ttl=SEARCH_TTL,
        )
        quotes = (data or {}).get("quotes") or []
        return [
            {
                "symbol": q.get("symbol"),
                "name": q.get("shortname") or q.get("longname") or q.get("symbol"),
                "type": q.get("quoteType") or "EQUITY",
                "exchange": q.get("exchange"),
            }
            for q in quotes
        ]
