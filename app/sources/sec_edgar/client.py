"""
SEC EDGAR client.

Uses the public submissions API on data.sec.gov. Companies are keyed by a
zero-padded 10-digit CIK; ticker lookups go through the full ticker table
(cached for 24 hours) because EDGAR has no single-ticker endpoint.

SEC requires a descriptive User-Agent and allows 10 requests/second.
"""

import logging
from typing import Any, Dict, List, Optional

from app.core.api_errors import is_not_found
from app.core.cache import CacheService
from app.core.config import get_settings
from app.core.http_client import ProviderConfig, ResilientClient, generate_cache_key
from app.core.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SOURCE_NAME = "sec-edgar"
BASE_URL = "https://data.sec.gov"
TICKER_TABLE_URL = "https://www.sec.gov/files/company_tickers.json"
TICKER_TABLE_CACHE_KEY = "edgar:company-tickers"
TICKER_TABLE_TTL = 86400
ARCHIVE_URL = "https://www.sec.gov/Archives/edgar/data"


def pad_cik(cik: str) -> str:
    """Normalize a CIK to the 10-digit zero-padded form EDGAR uses."""
    return str(cik).strip().lstrip("0").zfill(10)


class EdgarClient:
    """Client for SEC EDGAR company submissions and filings."""

    def __init__(
        self,
        cache: Optional[CacheService] = None,
        rate_limiter: Optional[RateLimiter] = None,
        user_agent: Optional[str] = None,
        transport=None,
    ):
        settings = get_settings()
        self.config = ProviderConfig(
            source=SOURCE_NAME,
            base_url=BASE_URL,
            headers={
                "User-Agent": user_agent or settings.sec_edgar_user_agent,
                "Accept": "application/json",
            },
            rate_limit_key=SOURCE_NAME,
            rate_limit_max=10,
            rate_limit_window_ms=1000,
            cache_ttl=604800,
        )
        self.http = ResilientClient(self.config, cache, rate_limiter, transport=transport)

    async def close(self) -> None:
        await self.http.close()

    async def get_company_by_cik(self, cik: str) -> Optional[Dict[str, Any]]:
        """
        Fetch the EDGAR submissions document for a company.

        Returns:
            The submissions JSON (name, tickers, sic, addresses, filings...)
            or None if EDGAR has no such CIK
        """
        padded = pad_cik(cik)
        try:
            return await self.http.get(
                f"/submissions/CIK{padded}.json",
                cache_key=generate_cache_key("edgar:company", {"cik": padded}),
            )
        except Exception as e:
            if is_not_found(e):
                logger.warning(f"EDGAR company not found: {cik}")
                return None
            logger.error(f"Error fetching EDGAR company {cik}: {e}")
            raise

    async def _get_ticker_table(self) -> Dict[str, Dict[str, Any]]:
        table = await self.http.get(
            TICKER_TABLE_URL,
            cache_key=TICKER_TABLE_CACHE_KEY,
            cache_ttl=TICKER_TABLE_TTL,
        )
        return table or {}

    async def get_company_by_ticker(self, ticker: str) -> Optional[Dict[str, Any]]:
        """Resolve a ticker to its CIK, then fetch the company submissions."""
        ticker_upper = ticker.upper()
        table = await self._get_ticker_table()

        entry = next(
            (
                item for item in table.values()
                if str(item.get("ticker", "")).upper() == ticker_upper
            ),
            None,
        )
        if entry is None:
            logger.warning(f"Ticker not found in EDGAR: {ticker}")
            return None

        return await self.get_company_by_cik(str(entry["cik_str"]))

    async def get_recent_filings(
        self,
        cik: str,
        form_type: Optional[str] = None,
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        """
        List a company's most recent filings, newest first.

        Args:
            cik: Company CIK (padded or not)
            form_type: Keep only this form (e.g. '10-K')
            limit: Maximum filings returned
        """
        company = await self.get_company_by_cik(cik)
        recent = ((company or {}).get("filings") or {}).get("recent")
        if not recent:
            return []

        accession_numbers = recent.get("accessionNumber", [])
        cik_path = str(cik).lstrip("0")

        def column(name: str, i: int, default=None):
            values = recent.get(name) or []
            return values[i] if i < len(values) else default

        filings = []
        for i, accession in enumerate(accession_numbers):
            if len(filings) >= limit:
                break
            form = column("form", i)
            if form_type and form != form_type:
                continue

            primary_doc = column("primaryDocument", i, "")
            filings.append({
                "accession_number": accession,
                "filing_date": column("filingDate", i),
                "report_date": column("reportDate", i),
                "form": form,
                "file_number": column("fileNumber", i),
                "film_number": column("filmNumber", i),
                "items": column("items", i),
                "size": column("size", i),
                "is_xbrl": column("isXBRL", i) == 1,
                "is_inline_xbrl": column("isInlineXBRL", i) == 1,
                "primary_document": primary_doc,
                "primary_doc_description": column("primaryDocDescription", i),
                "document_url": (
                    f"{ARCHIVE_URL}/{cik_path}/{accession.replace('-', '')}/{primary_doc}"
                ),
            })

        return filings

    async def get_annual_reports(self, cik: str, limit: int = 5) -> List[Dict[str, Any]]:
        return await self.get_recent_filings(cik, "10-K", limit)

    async def get_quarterly_reports(self, cik: str, limit: int = 8) -> List[Dict[str, Any]]:
        return await self.get_recent_filings(cik, "10-Q", limit)

    async def get_insider_trading(self, cik: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Form 4 filings (insider transactions)."""
        return await self.get_recent_filings(cik, "4", limit)

    async def search_companies(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Case-insensitive title search over the EDGAR ticker table."""
        needle = query.lower()
        table = await self._get_ticker_table()

        matches = []
        for item in table.values():
            if needle in str(item.get("title", "")).lower():
                matches.append({
                    "cik": str(item["cik_str"]).zfill(10),
                    "title": item.get("title"),
                    "ticker": item.get("ticker"),
                })
                if len(matches) >= limit:
                    break
        return matches
