"""
Wikidata client.

Company lookup is two-step: wbsearchentities by name, then wbgetentities for
the chosen item. Facts are read from the generic claims structure by fixed
property IDs.
"""

import logging
from typing import Any, Dict, List, Optional

from app.core.api_errors import is_not_found
from app.core.cache import CacheService
from app.core.http_client import ProviderConfig, ResilientClient, generate_cache_key
from app.core.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SOURCE_NAME = "wikidata"
BASE_URL = "https://www.wikidata.org/w/api.php"
USER_AGENT = "InvestorResearch/1.0 (contact@example.com)"

# Property IDs
PROP_WEBSITE = "P856"
PROP_INCEPTION = "P571"
PROP_HEADQUARTERS = "P159"
PROP_INDUSTRY = "P452"
PROP_CEO = "P169"
PROP_EMPLOYEES = "P1128"
PROP_REVENUE = "P2139"

COMPANY_DESCRIPTION_HINTS = ("company", "corporation", "business")


def get_claim_value(claims: Dict[str, Any], prop: str) -> Optional[Any]:
    """
    Read the first value of a claim, according to its datavalue type.

    string -> the string, time -> the ISO-ish time string ("+1976-04-01T..."),
    wikibase-entityid -> the referenced item ID, quantity -> float amount.
    Anything else (or a malformed claim) -> None.
    """
    statements = claims.get(prop) or []
    if not statements:
        return None

    datavalue = (statements[0].get("mainsnak") or {}).get("datavalue") or {}
    value = datavalue.get("value")
    kind = datavalue.get("type")

    if kind == "string":
        return value
    if kind == "time" and isinstance(value, dict):
        return value.get("time")
    if kind == "wikibase-entityid" and isinstance(value, dict):
        return value.get("id")
    if kind == "quantity" and isinstance(value, dict):
        try:
            return float(value.get("amount"))
        except (TypeError, ValueError):
            return None
    return None


def founded_year_from(time_value: Optional[str]) -> Optional[int]:
    """'+1976-04-01T00:00:00Z' -> 1976."""
    if not time_value or len(time_value) < 5:
        return None
    try:
        return int(time_value[1:5])
    except ValueError:
        return None


class WikidataClient:
    """Client for the Wikidata MediaWiki API."""

    def __init__(
        self,
        cache: Optional[CacheService] = None,
        rate_limiter: Optional[RateLimiter] = None,
        transport=None,
    ):
        self.config = ProviderConfig(
            source=SOURCE_NAME,
            base_url=BASE_URL,
            headers={"User-Agent": USER_AGENT},
            rate_limit_key=SOURCE_NAME,
            rate_limit_max=50,
            rate_limit_window_ms=60000,
            cache_ttl=2592000,
        )
        self.http = ResilientClient(self.config, cache, rate_limiter, transport=transport)

    async def close(self) -> None:
        await self.http.close()

    async def search_entities(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Search items by label; returns id/label/description/aliases."""
        try:
            data = await self.http.get(
                "",
                params={
                    "action": "wbsearchentities",
                    "format": "json",
                    "search": query,
                    "language": "en",
                    "limit": limit,
                    "type": "item",
                },
                cache_key=generate_cache_key("wikidata:search", {"query": query, "limit": limit}),
            )
        except Exception as e:
            if is_not_found(e):
                return []
            raise

        return [
            {
                "id": item.get("id"),
                "label": item.get("label"),
                "description": item.get("description"),
                "aliases": item.get("aliases") or [],
            }
            for item in (data or {}).get("search") or []
        ]

    async def get_entity(self, entity_id: str) -> Optional[Dict[str, Any]]:
        """Fetch labels, descriptions and claims for one item."""
        try:
            data = await self.http.get(
                "",
                params={
                    "action": "wbgetentities",
                    "format": "json",
                    "ids": entity_id,
                    "languages": "en",
                    "props": "labels|descriptions|claims",
                },
                cache_key=generate_cache_key("wikidata:entity", {"entity_id": entity_id}),
            )
        except Exception as e:
            if is_not_found(e):
                return None
            raise

        entity = ((data or {}).get("entities") or {}).get(entity_id)
        if not entity or "missing" in entity:
            return None
        return self.extract_company_data(entity_id, entity)

    def extract_company_data(self, entity_id: str, entity: Dict[str, Any]) -> Dict[str, Any]:
        claims = entity.get("claims") or {}
        founded_date = get_claim_value(claims, PROP_INCEPTION)
        return {
            "id": entity_id,
            "label": ((entity.get("labels") or {}).get("en") or {}).get("value") or entity_id,
            "description": ((entity.get("descriptions") or {}).get("en") or {}).get("value"),
            "website": get_claim_value(claims, PROP_WEBSITE),
            "founded_date": founded_date,
            "founded_year": founded_year_from(founded_date),
            "headquarters": get_claim_value(claims, PROP_HEADQUARTERS),
            "industry": get_claim_value(claims, PROP_INDUSTRY),
            "ceo": get_claim_value(claims, PROP_CEO),
            "employees": get_claim_value(claims, PROP_EMPLOYEES),
            "revenue": get_claim_value(claims, PROP_REVENUE),
        }

    async def get_company_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        """
        Find the first search hit described as a company and load it.

        Returns None when no hit mentions company/corporation/business.
        """
        results = await self.search_entities(name)
        match = next(
            (
                r for r in results
                if any(hint in (r.get("description") or "").lower()
                       for hint in COMPANY_DESCRIPTION_HINTS)
            ),
            None,
        )
        if match is None:
            logger.warning(f"No Wikidata company found for: {name}")
            return None
        return await self.get_entity(match["id"])
