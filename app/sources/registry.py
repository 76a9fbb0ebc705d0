"""
Provider client bundle.

Every provider client in a process shares one cache and one rate limiter,
so per-provider budgets hold no matter which code path issues the request.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from app.core.cache import CacheService
from app.core.rate_limiter import RateLimiter, get_rate_limiter
from app.sources.newsapi.client import NewsApiClient
from app.sources.opencorporates.client import OpenCorporatesClient
from app.sources.portfolio_scraper.scraper import PortfolioScraper
from app.sources.sec_edgar.client import EdgarClient
from app.sources.wikidata.client import WikidataClient
from app.sources.yahoo_finance.client import YahooFinanceClient

logger = logging.getLogger(__name__)


@dataclass
class ProviderClients:
    edgar: EdgarClient
    yahoo: YahooFinanceClient
    opencorporates: OpenCorporatesClient
    wikidata: WikidataClient
    news: NewsApiClient
    scraper: PortfolioScraper

    @classmethod
    def build(
        cls,
        cache: Optional[CacheService] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> "ProviderClients":
        cache = cache if cache is not None else CacheService()
        rate_limiter = rate_limiter if rate_limiter is not None else get_rate_limiter()
        return cls(
            edgar=EdgarClient(cache, rate_limiter),
            yahoo=YahooFinanceClient(cache, rate_limiter),
            opencorporates=OpenCorporatesClient(cache, rate_limiter),
            wikidata=WikidataClient(cache, rate_limiter),
            news=NewsApiClient(cache, rate_limiter),
            scraper=PortfolioScraper(),
        )

    def api_clients(self) -> Tuple[Any, ...]:
        """The HTTP API clients (everything but the scraper)."""
        return (self.edgar, self.yahoo, self.opencorporates, self.wikidata, self.news)

    async def close(self) -> None:
        for client in self.api_clients():
            await client.close()


_providers: Optional[ProviderClients] = None


def get_provider_clients() -> ProviderClients:
    """Get the process-wide provider bundle (FastAPI dependency too)."""
    global _providers
    if _providers is None:
        _providers = ProviderClients.build()
        logger.info("Provider clients initialized")
    return _providers


def reset_provider_clients() -> None:
    """Drop the process-wide provider bundle (for testing)."""
    global _providers
    _providers = None


async def close_provider_clients() -> None:
    """Close the process-wide bundle's HTTP connections, if it was built."""
    global _providers
    if _providers is not None:
        await _providers.close()
        _providers = None
