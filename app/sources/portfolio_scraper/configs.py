"""
Declarative scraping recipes for investor portfolio pages.

A recipe names the listing URL and the CSS selectors for one company card and
its fields. Known firms have templates; any other URL gets a generic recipe
with broad fallback selectors.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional
from urllib.parse import urlparse


@dataclass
class ScraperSelectors:
    company_container: str
    company_name: Optional[str] = None
    company_website: Optional[str] = None
    company_description: Optional[str] = None
    company_logo: Optional[str] = None
    investment_date: Optional[str] = None
    next_page: Optional[str] = None


@dataclass
class PaginationConfig:
    type: str = "none"  # none, button, scroll
    max_pages: int = 1


@dataclass
class WaitForConfig:
    selector: Optional[str] = None
    timeout_ms: int = 5000


@dataclass
class ScraperConfig:
    """
    Recipe for scraping one investor's portfolio page.

    javascript=True marks sites that render their listing client-side. Those
    are still fetched as static HTML, so results for them may be incomplete.
    """

    name: str
    base_url: str
    portfolio_url: str
    selectors: ScraperSelectors
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    wait_for: Optional[WaitForConfig] = None
    javascript: bool = False

    def merged(self, overrides: Optional[Dict[str, Any]]) -> "ScraperConfig":
        """Return a copy with top-level fields (and selector fields) overridden."""
        if not overrides:
            return self
        overrides = dict(overrides)
        selectors = self.selectors
        if "selectors" in overrides:
            sel = overrides.pop("selectors")
            selectors = sel if isinstance(sel, ScraperSelectors) else replace(selectors, **sel)
        if isinstance(overrides.get("pagination"), dict):
            overrides["pagination"] = PaginationConfig(**overrides["pagination"])
        if isinstance(overrides.get("wait_for"), dict):
            overrides["wait_for"] = WaitForConfig(**overrides["wait_for"])
        return replace(self, selectors=selectors, **overrides)


SCRAPER_TEMPLATES: Dict[str, ScraperConfig] = {
    "sequoia-capital": ScraperConfig(
        name="Sequoia Capital",
        base_url="https://www.sequoiacap.com",
        portfolio_url="https://www.sequoiacap.com/companies/",
        javascript=True,
        selectors=ScraperSelectors(
            company_container='[data-testid="company-card"]',
            company_name="h3",
            company_website="a[href]",
            company_description="p",
        ),
        wait_for=WaitForConfig(selector='[data-testid="company-card"]'),
        pagination=PaginationConfig(type="scroll", max_pages=10),
    ),
    "andreessen-horowitz": ScraperConfig(
        name="Andreessen Horowitz (a16z)",
        base_url="https://a16z.com",
        portfolio_url="https://a16z.com/portfolio/",
        javascript=True,
        selectors=ScraperSelectors(
            company_container=".portfolio-company",
            company_name=".company-name",
            company_website="a[href]",
            company_description=".company-description",
        ),
        wait_for=WaitForConfig(selector=".portfolio-company"),
        pagination=PaginationConfig(type="scroll", max_pages=10),
    ),
    "benchmark": ScraperConfig(
        name="Benchmark",
        base_url="https://www.benchmark.com",
        portfolio_url="https://www.benchmark.com/companies",
        javascript=False,
        selectors=ScraperSelectors(
            company_container=".company-item",
            company_name="h3",
            company_website="a[href]",
        ),
    ),
    "accel": ScraperConfig(
        name="Accel",
        base_url="https://www.accel.com",
        portfolio_url="https://www.accel.com/companies",
        javascript=True,
        selectors=ScraperSelectors(
            company_container="[data-company]",
            company_name=".company-name",
            company_website="a[href]",
            company_description=".company-tagline",
        ),
        wait_for=WaitForConfig(selector="[data-company]"),
        pagination=PaginationConfig(type="button", max_pages=20),
    ),
    "greylock": ScraperConfig(
        name="Greylock Partners",
        base_url="https://greylock.com",
        portfolio_url="https://greylock.com/portfolio/",
        javascript=True,
        selectors=ScraperSelectors(
            company_container=".portfolio-item",
            company_name="h3",
            company_website="a[href]",
        ),
        wait_for=WaitForConfig(selector=".portfolio-item"),
        pagination=PaginationConfig(type="scroll", max_pages=10),
    ),
}


def get_scraper_config(investor_name_or_url: str) -> Optional[ScraperConfig]:
    """
    Find a template for an investor name or URL.

    'Sequoia Capital' and 'https://www.sequoiacap.com/...' both resolve to
    the sequoia-capital template.
    """
    normalized = re.sub(r"[^a-z0-9]", "-", investor_name_or_url.lower())
    for key, config in SCRAPER_TEMPLATES.items():
        if key in normalized or config.base_url in investor_name_or_url:
            return config
    return None


def is_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme and parsed.netloc)


def create_generic_config(url: str) -> ScraperConfig:
    """Best-effort recipe for an unknown portfolio page."""
    parsed = urlparse(url)
    return ScraperConfig(
        name=parsed.hostname.replace("www.", "", 1) if parsed.hostname else url,
        base_url=f"{parsed.scheme}://{parsed.netloc}",
        portfolio_url=url,
        javascript=False,
        selectors=ScraperSelectors(
            company_container=".company, [data-company], .portfolio-item",
            company_name="h1, h2, h3, h4, .name, .title",
            company_website="a[href]",
            company_description="p, .description, .tagline",
        ),
    )
