"""
Static-HTML portfolio scraper.

Fetches an investor's portfolio listing, selects company cards with the
recipe's CSS selectors and extracts name, website, description and logo.
Scraping never raises: every failure comes back as ScrapeResult(success=False).
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from app.sources.portfolio_scraper.configs import (
    ScraperConfig,
    create_generic_config,
    get_scraper_config,
    is_url,
)

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)"
FETCH_TIMEOUT = 10.0
NO_CONFIG_ERROR = "No scraper configuration found for investor"


@dataclass
class ScrapedCompany:
    name: str
    website: Optional[str] = None
    description: Optional[str] = None
    logo_url: Optional[str] = None
    investment_date: Optional[str] = None


@dataclass
class ScrapeResult:
    success: bool
    companies: List[ScrapedCompany] = field(default_factory=list)
    error: Optional[str] = None
    total_found: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def normalize_url(url: Optional[str], base_url: str) -> str:
    """
    Make a scraped href/src absolute.

    Absolute URLs pass through, '//host/x' gets https, '/x' and 'x' are
    resolved against the scheme and host of base_url.
    """
    if not url:
        return ""
    if url.startswith("http://") or url.startswith("https://"):
        return url
    if url.startswith("//"):
        return f"https:{url}"

    base = urlparse(base_url)
    if not base.scheme or not base.netloc:
        return url
    if url.startswith("/"):
        return f"{base.scheme}://{base.netloc}{url}"
    return f"{base.scheme}://{base.netloc}/{url}"


class PortfolioScraper:
    """Scrapes investor portfolio pages into ScrapedCompany records."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    def resolve_config(
        self,
        investor_name_or_url: str,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> Optional[ScraperConfig]:
        config = get_scraper_config(investor_name_or_url)
        if config is None and is_url(investor_name_or_url):
            config = create_generic_config(investor_name_or_url)
        if config is not None and overrides:
            config = config.merged(overrides)
        return config

    async def scrape_portfolio(
        self,
        investor_name_or_url: str,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> ScrapeResult:
        """
        Scrape the portfolio of an investor.

        Args:
            investor_name_or_url: Known firm name or a portfolio page URL
            overrides: Recipe fields to override (e.g. {"portfolio_url": ...})
        """
        try:
            config = self.resolve_config(investor_name_or_url, overrides)
        except (TypeError, ValueError) as e:
            return ScrapeResult(success=False, error=f"Invalid scraper overrides: {e}")

        if config is None:
            return ScrapeResult(success=False, error=NO_CONFIG_ERROR)

        logger.info(f"Scraping portfolio for: {config.name}")

        if config.javascript:
            logger.warning(
                f"{config.name} renders its portfolio client-side; "
                f"using static HTML, results may be incomplete"
            )

        try:
            return await self._scrape_static(config)
        except Exception as e:
            logger.error(f"Error scraping portfolio for {config.name}: {e}")
            return ScrapeResult(success=False, error=str(e))

    async def _scrape_static(self, config: ScraperConfig) -> ScrapeResult:
        companies: List[ScrapedCompany] = []
        max_pages = config.pagination.max_pages if config.pagination.type == "button" else 1
        page_url: Optional[str] = config.portfolio_url
        visited = set()

        async with httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=FETCH_TIMEOUT,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            for _ in range(max(1, max_pages)):
                if not page_url or page_url in visited:
                    break
                visited.add(page_url)

                logger.debug(f"Fetching static HTML from: {page_url}")
                response = await client.get(page_url)
                response.raise_for_status()

                soup = BeautifulSoup(response.text, "html.parser")
                companies.extend(self.extract_companies(soup, config))
                page_url = self._next_page_url(soup, config)

        logger.info(f"Found {len(companies)} companies for {config.name}")
        return ScrapeResult(success=True, companies=companies, total_found=len(companies))

    def _next_page_url(self, soup: BeautifulSoup, config: ScraperConfig) -> Optional[str]:
        if config.pagination.type != "button" or not config.selectors.next_page:
            return None
        link = soup.select_one(config.selectors.next_page)
        href = link.get("href") if link else None
        return normalize_url(href, config.base_url) if href else None

    def extract_companies(self, soup: BeautifulSoup, config: ScraperConfig) -> List[ScrapedCompany]:
        """Pull one ScrapedCompany out of every container element that has a name."""
        selectors = config.selectors
        companies = []

        for element in soup.select(selectors.company_container):
            if selectors.company_name:
                name_el = element.select_one(selectors.company_name)
                name = name_el.get_text(strip=True) if name_el else ""
            else:
                name = element.get_text(strip=True)
            if not name:
                continue

            company = ScrapedCompany(name=name)

            if selectors.company_website:
                link = element.select_one(selectors.company_website)
                href = link.get("href") if link else None
                if href:
                    company.website = normalize_url(href, config.base_url)

            if selectors.company_description:
                desc_el = element.select_one(selectors.company_description)
                description = desc_el.get_text(strip=True) if desc_el else ""
                if description:
                    company.description = description

            if selectors.company_logo:
                logo = element.select_one(selectors.company_logo)
                src = logo.get("src") if logo else None
                if src:
                    company.logo_url = normalize_url(src, config.base_url)

            if selectors.investment_date:
                date_el = element.select_one(selectors.investment_date)
                if date_el and date_el.get_text(strip=True):
                    company.investment_date = date_el.get_text(strip=True)

            companies.append(company)

        return companies
