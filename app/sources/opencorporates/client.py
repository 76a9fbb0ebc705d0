"""
OpenCorporates API client.

Provides access to global company registry data from 140+ jurisdictions.
The rate budget depends on whether an API token is configured: 60 requests
per minute with a token, 5 without. It is fixed when the client is built.
"""

import logging
from typing import Any, Dict, List, Optional

from app.core.api_errors import is_not_found
from app.core.cache import CacheService
from app.core.config import get_settings
from app.core.http_client import ProviderConfig, ResilientClient, generate_cache_key
from app.core.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SOURCE_NAME = "opencorporates"
BASE_URL = "https://api.opencorporates.com/v0.4"
CACHE_TTL = 2592000  # registry data rarely changes


class OpenCorporatesClient:
    """Client for OpenCorporates API."""

    def __init__(
        self,
        cache: Optional[CacheService] = None,
        rate_limiter: Optional[RateLimiter] = None,
        api_token: Optional[str] = None,
        transport=None,
    ):
        self.api_token = api_token or get_settings().opencorporates_api_key
        self.config = ProviderConfig(
            source=SOURCE_NAME,
            base_url=BASE_URL,
            headers={"Accept": "application/json"},
            rate_limit_key=SOURCE_NAME,
            rate_limit_max=60 if self.api_token else 5,
            rate_limit_window_ms=60000,
            cache_ttl=CACHE_TTL,
            default_params={"api_token": self.api_token} if self.api_token else {},
        )
        self.http = ResilientClient(self.config, cache, rate_limiter, transport=transport)

    async def close(self) -> None:
        await self.http.close()

    def _parse_company(self, company: Dict[str, Any]) -> Dict[str, Any]:
        """Parse company data from API response."""
        return {
            "name": company.get("name"),
            "company_number": company.get("company_number"),
            "jurisdiction_code": company.get("jurisdiction_code"),
            "incorporation_date": company.get("incorporation_date"),
            "dissolution_date": company.get("dissolution_date"),
            "company_type": company.get("company_type"),
            "registry_url": company.get("registry_url"),
            "branch": company.get("branch"),
            "current_status": company.get("current_status"),
            "registered_address": self._parse_address(company.get("registered_address")),
        }

    def _parse_address(self, address: Any) -> Optional[Dict[str, Any]]:
        if not address:
            return None
        if isinstance(address, str):
            return {"street_address": address}
        return {
            "street_address": address.get("street_address"),
            "locality": address.get("locality"),
            "region": address.get("region"),
            "postal_code": address.get("postal_code"),
            "country": address.get("country"),
        }

    def _parse_officer(self, officer_data: Dict[str, Any]) -> Dict[str, Any]:
        officer = officer_data.get("officer", officer_data)
        return {
            "name": officer.get("name"),
            "position": officer.get("position"),
            "start_date": officer.get("start_date"),
            "end_date": officer.get("end_date"),
        }

    async def search_companies(
        self,
        query: str,
        jurisdiction: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Search companies by name.

        Args:
            query: Company name search query
            jurisdiction: Filter by jurisdiction code (e.g., 'us_de', 'gb')

        Returns:
            Up to 10 normalized company records
        """
        try:
            data = await self.http.get(
                "/companies/search",
                params={"q": query, "jurisdiction_code": jurisdiction, "per_page": 10},
                cache_key=generate_cache_key(
                    "opencorp:search", {"query": query, "jurisdiction": jurisdiction or ""}
                ),
            )
        except Exception as e:
            if is_not_found(e):
                return []
            raise

        companies = ((data or {}).get("results") or {}).get("companies") or []
        return [self._parse_company(item.get("company") or {}) for item in companies]

    async def get_company(
        self, jurisdiction: str, company_number: str
    ) -> Optional[Dict[str, Any]]:
        """Fetch one company by jurisdiction and registry number."""
        try:
            data = await self.http.get(
                f"/companies/{jurisdiction}/{company_number}",
                cache_key=generate_cache_key(
                    "opencorp:company",
                    {"jurisdiction": jurisdiction, "company_number": company_number},
                ),
            )
        except Exception as e:
            if is_not_found(e):
                logger.warning(f"Company not found: {jurisdiction}/{company_number}")
                return None
            raise

        company = ((data or {}).get("results") or {}).get("company")
        return self._parse_company(company) if company else None

    async def get_officers(
        self, jurisdiction: str, company_number: str
    ) -> List[Dict[str, Any]]:
        """Directors and officers registered for a company."""
        try:
            data = await self.http.get(
                f"/companies/{jurisdiction}/{company_number}/officers",
                cache_key=generate_cache_key(
                    "opencorp:officers",
                    {"jurisdiction": jurisdiction, "company_number": company_number},
                ),
            )
        except Exception as e:
            if is_not_found(e):
                return []
            raise

        officers = ((data or {}).get("results") or {}).get("officers") or []
        return [self._parse_officer(o) for o in officers]
