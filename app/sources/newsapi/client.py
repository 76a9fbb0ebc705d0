"""
NewsAPI client (https://newsapi.org).

Free tier allows 100 requests per day. Without NEWS_API_KEY every method
logs a warning and returns an empty list instead of failing.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from app.core.cache import CacheService
from app.core.config import get_settings
from app.core.http_client import ProviderConfig, ResilientClient, generate_cache_key
from app.core.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SOURCE_NAME = "newsapi"
BASE_URL = "https://newsapi.org/v2"
HEADLINES_TTL = 3600
FUNDING_KEYWORDS = '(funding OR "raised" OR "investment" OR "series" OR "round")'
FUNDING_WINDOW_DAYS = 90


def _as_date_param(value: Optional[Union[date, datetime]]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime("%Y-%m-%d")


def _parse_article(article: Dict[str, Any]) -> Dict[str, Any]:
    source = article.get("source") or {}
    return {
        "source": source.get("name"),
        "source_id": source.get("id"),
        "author": article.get("author"),
        "title": article.get("title"),
        "description": article.get("description"),
        "url": article.get("url"),
        "url_to_image": article.get("urlToImage"),
        "published_at": article.get("publishedAt"),
        "content": article.get("content"),
    }


class NewsApiClient:
    """Client for NewsAPI /everything and /top-headlines."""

    def __init__(
        self,
        cache: Optional[CacheService] = None,
        rate_limiter: Optional[RateLimiter] = None,
        api_key: Optional[str] = None,
        transport=None,
    ):
        self.api_key = api_key or get_settings().news_api_key or ""
        self.config = ProviderConfig(
            source=SOURCE_NAME,
            base_url=BASE_URL,
            headers={"Accept": "application/json"},
            rate_limit_key=SOURCE_NAME,
            rate_limit_max=100,
            rate_limit_window_ms=86400000,
            cache_ttl=86400,
        )
        self.news_ttl = cache.news_ttl if cache is not None else 86400
        self.http = ResilientClient(self.config, cache, rate_limiter, transport=transport)

        if not self.api_key:
            logger.warning("NEWS_API_KEY not configured - NewsAPI lookups will return no results")

    async def close(self) -> None:
        await self.http.close()

    async def search_news(
        self,
        query: str,
        from_date: Optional[Union[date, datetime]] = None,
        to_date: Optional[Union[date, datetime]] = None,
        language: str = "en",
        sort_by: str = "publishedAt",
        page_size: int = 20,
    ) -> List[Dict[str, Any]]:
        """
        Search all articles matching query.

        Args:
            query: NewsAPI query (supports AND/OR and quoted phrases)
            from_date: Oldest publication date
            to_date: Newest publication date
            language: ISO language code
            sort_by: relevancy, popularity or publishedAt
            page_size: Maximum articles returned
        """
        if not self.api_key:
            logger.warning("NEWS_API_KEY not configured")
            return []

        params = {
            "q": query,
            "from": _as_date_param(from_date),
            "to": _as_date_param(to_date),
            "language": language,
            "sortBy": sort_by,
            "pageSize": page_size,
        }
        key_params = {k: v for k, v in params.items() if v is not None}

        data = await self.http.get(
            "/everything",
            params={**params, "apiKey": self.api_key},
            cache_key=generate_cache_key("news:search", key_params),
            cache_ttl=self.news_ttl,
        )
        return [_parse_article(a) for a in (data or {}).get("articles") or []]

    async def get_company_news(self, company_name: str, days_back: int = 30) -> List[Dict[str, Any]]:
        """Most recent articles mentioning the company."""
        today = date.today()
        return await self.search_news(
            company_name,
            from_date=today - timedelta(days=days_back),
            to_date=today,
            sort_by="publishedAt",
            page_size=10,
        )

    async def get_funding_news(self, company_name: str) -> List[Dict[str, Any]]:
        """Funding-related coverage over the last 90 days, by relevance."""
        query = f'"{company_name}" AND {FUNDING_KEYWORDS}'
        return await self.search_news(
            query,
            from_date=date.today() - timedelta(days=FUNDING_WINDOW_DAYS),
            sort_by="relevancy",
            page_size=10,
        )

    async def get_top_headlines(
        self, category: str = "business", country: str = "us"
    ) -> List[Dict[str, Any]]:
        if not self.api_key:
            logger.warning("NEWS_API_KEY not configured")
            return []

        data = await self.http.get(
            "/top-headlines",
            params={
                "apiKey": self.api_key,
                "category": category,
                "country": country,
                "pageSize": 20,
            },
            cache_key=generate_cache_key(
                "news:headlines", {"category": category, "country": country}
            ),
            cache_ttl=HEADLINES_TTL,
        )
        return [_parse_article(a) for a in (data or {}).get("articles") or []]
