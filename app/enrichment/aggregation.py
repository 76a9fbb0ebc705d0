"""
Company aggregation engine.

Fans out to every provider concurrently, waits for all of them to settle and
then merges their answers in a fixed priority order:

    database -> SEC EDGAR -> Yahoo Finance (quote, profile, financials)
             -> OpenCorporates -> Wikidata -> NewsAPI

A field set by an earlier source is never overwritten by a later one, so the
merged result does not depend on which provider answered first. A failing
provider is logged and skipped.
"""
import asyncio
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.api_errors import EntityNotFoundError
from app.core.models import Company, Investor
from app.sources.registry import ProviderClients

logger = logging.getLogger(__name__)

SOURCE_DATABASE = "database"
SOURCE_EDGAR = "SEC EDGAR"
SOURCE_YAHOO = "Yahoo Finance"
SOURCE_OPENCORPORATES = "OpenCorporates"
SOURCE_WIKIDATA = "Wikidata"
SOURCE_NEWS = "NewsAPI"

NEWS_DAYS_BACK = 30
MAX_NEWS_ITEMS = 10
DEFAULT_MAX_AGE_DAYS = 30
BATCH_DELAY_SECONDS = 1.0

_PROVIDER_LABELS = (
    "edgar", "yahoo_quote", "yahoo_profile", "yahoo_financials",
    "opencorporates", "wikidata", "news",
)


@dataclass
class EnrichedEntity:
    """Merged view of a company across the record store and all providers."""

    basic: Dict[str, Any]
    financial: Optional[Dict[str, Any]] = None
    legal: Optional[Dict[str, Any]] = None
    news: Optional[List[Dict[str, Any]]] = None
    raw_data: Dict[str, Any] = field(default_factory=dict)
    sources: List[str] = field(default_factory=list)
    last_updated: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_updated"] = self.last_updated.isoformat()
        return data


def _fill(target: Dict[str, Any], key: str, value: Any) -> None:
    """Set target[key] only when it is still empty and value is not."""
    if not target.get(key) and value:
        target[key] = value


def _locality_region(address: Optional[Dict[str, Any]]) -> Optional[str]:
    if not address:
        return None
    locality = address.get("locality")
    region = address.get("region")
    if locality and region:
        return f"{locality}, {region}"
    return locality or region


async def _none() -> None:
    return None


class AggregationEngine:
    """
    Enriches companies (and investors) from the external providers.

    Providers are injected as a ProviderClients bundle so they share one
    cache and one rate limiter with the rest of the process.
    """

    def __init__(self, db: Session, providers: ProviderClients):
        self.db = db
        self.providers = providers

    def _get_company(self, company_id: int) -> Company:
        company = self.db.query(Company).filter(Company.id == company_id).first()
        if company is None:
            raise EntityNotFoundError("Company", company_id)
        return company

    async def enrich_company(self, company_id: int, ticker: Optional[str] = None) -> EnrichedEntity:
        """
        Build the merged view of one company.

        Args:
            company_id: Company to enrich
            ticker: Ticker to use instead of the stored one
        """
        logger.info(f"Enriching company: {company_id}")
        company = self._get_company(company_id)

        enriched = EnrichedEntity(
            basic={
                "name": company.name,
                "description": company.description,
                "website": company.website,
                "industry": company.industry,
                "sector": company.sector,
                "headquarters": company.headquarters,
                "founded_year": company.founded_year,
            },
            sources=[SOURCE_DATABASE],
        )

        symbol = ticker or company.ticker
        p = self.providers
        results = await asyncio.gather(
            p.edgar.get_company_by_ticker(symbol) if symbol else _none(),
            p.yahoo.get_quote(symbol) if symbol else _none(),
            p.yahoo.get_company_profile(symbol) if symbol else _none(),
            p.yahoo.get_financials(symbol) if symbol else _none(),
            p.opencorporates.search_companies(company.name),
            p.wikidata.get_company_by_name(company.name),
            p.news.get_company_news(company.name, NEWS_DAYS_BACK),
            return_exceptions=True,
        )

        settled = {}
        for label, result in zip(_PROVIDER_LABELS, results):
            if isinstance(result, Exception):
                logger.warning(f"Provider {label} failed for company {company_id}: {result}")
                settled[label] = None
            else:
                settled[label] = result

        self._merge_edgar(enriched, settled["edgar"])
        self._merge_yahoo(
            enriched,
            settled["yahoo_quote"],
            settled["yahoo_profile"],
            settled["yahoo_financials"],
        )
        await self._merge_opencorporates(enriched, settled["opencorporates"])
        self._merge_wikidata(enriched, settled["wikidata"])
        self._merge_news(enriched, settled["news"])

        logger.info(f"Enrichment complete. Sources: {', '.join(enriched.sources)}")
        return enriched

    def _merge_edgar(self, enriched: EnrichedEntity, edgar: Optional[Dict[str, Any]]) -> None:
        if not edgar:
            return
        enriched.raw_data["sec_edgar"] = edgar
        enriched.sources.append(SOURCE_EDGAR)
        _fill(enriched.basic, "description", edgar.get("description"))

    def _merge_yahoo(
        self,
        enriched: EnrichedEntity,
        quote: Optional[Dict[str, Any]],
        profile: Optional[Dict[str, Any]],
        financials: Optional[Dict[str, Any]],
    ) -> None:
        yahoo_raw: Dict[str, Any] = {}

        if quote:
            yahoo_raw["quote"] = quote
            enriched.sources.append(SOURCE_YAHOO)
            enriched.financial = {
                "ticker": quote.get("symbol"),
                "exchange": quote.get("exchange"),
                "market_cap": quote.get("market_cap"),
                "price": quote.get("regular_market_price"),
                "price_change": quote.get("regular_market_change_percent"),
            }

        if profile:
            yahoo_raw["profile"] = profile
            for key in ("description", "sector", "industry", "website"):
                _fill(enriched.basic, key, profile.get(key))

        if financials:
            yahoo_raw["financials"] = financials
            # revenue only rides along with a quote
            if enriched.financial is not None:
                enriched.financial["revenue"] = financials.get("revenue")

        if yahoo_raw:
            enriched.raw_data["yahoo_finance"] = yahoo_raw

    async def _merge_opencorporates(
        self, enriched: EnrichedEntity, matches: Optional[List[Dict[str, Any]]]
    ) -> None:
        if not matches:
            return
        first = matches[0]
        enriched.raw_data["opencorporates"] = first
        enriched.sources.append(SOURCE_OPENCORPORATES)

        address = first.get("registered_address")
        enriched.legal = {
            "jurisdiction": first.get("jurisdiction_code"),
            "company_number": first.get("company_number"),
            "registered_address": _locality_region(address),
            "officers": await self._fetch_officers(first),
        }

        if address and address.get("locality") and address.get("region"):
            _fill(enriched.basic, "headquarters", _locality_region(address))

    async def _fetch_officers(self, match: Dict[str, Any]) -> List[Dict[str, Any]]:
        jurisdiction = match.get("jurisdiction_code")
        number = match.get("company_number")
        if not jurisdiction or not number:
            return []
        try:
            officers = await self.providers.opencorporates.get_officers(jurisdiction, number)
        except Exception as e:
            logger.warning(f"OpenCorporates officers lookup failed for {jurisdiction}/{number}: {e}")
            return []
        return [{"name": o.get("name"), "position": o.get("position")} for o in officers or []]

    def _merge_wikidata(self, enriched: EnrichedEntity, entity: Optional[Dict[str, Any]]) -> None:
        if not entity:
            return
        enriched.raw_data["wikidata"] = entity
        enriched.sources.append(SOURCE_WIKIDATA)
        _fill(enriched.basic, "description", entity.get("description"))
        _fill(enriched.basic, "website", entity.get("website"))
        _fill(enriched.basic, "founded_year", entity.get("founded_year"))

    def _merge_news(self, enriched: EnrichedEntity, articles: Optional[List[Dict[str, Any]]]) -> None:
        if not articles:
            return
        enriched.raw_data["news"] = articles
        enriched.sources.append(SOURCE_NEWS)
        enriched.news = [
            {
                "title": a.get("title"),
                "source": a.get("source"),
                "published_at": a.get("published_at"),
                "url": a.get("url"),
            }
            for a in articles[:MAX_NEWS_ITEMS]
        ]

    def save_enriched_data(self, company_id: int, enriched: EnrichedEntity) -> Company:
        """Write merged fields, the raw audit blob and last_fetched back to the company."""
        company = self._get_company(company_id)

        for key in ("description", "website", "industry", "sector", "headquarters", "founded_year"):
            value = enriched.basic.get(key)
            if value:
                setattr(company, key, value)

        if enriched.financial:
            for key in ("ticker", "exchange", "market_cap", "revenue"):
                value = enriched.financial.get(key)
                if value:
                    setattr(company, key, value)

        company.raw_data = enriched.raw_data
        company.last_fetched = enriched.last_updated
        self.db.commit()
        self.db.refresh(company)

        logger.info(f"Saved enriched data for company: {company_id}")
        return company

    async def enrich_and_save(self, company_id: int, ticker: Optional[str] = None) -> EnrichedEntity:
        enriched = await self.enrich_company(company_id, ticker)
        self.save_enriched_data(company_id, enriched)
        return enriched

    def is_company_data_stale(self, company_id: int, max_age_days: int = DEFAULT_MAX_AGE_DAYS) -> bool:
        """True when the company was never fetched or was fetched more than max_age_days ago."""
        company = self.db.query(Company).filter(Company.id == company_id).first()
        if company is None or company.last_fetched is None:
            return True
        age = datetime.utcnow() - company.last_fetched
        return age > timedelta(days=max_age_days)

    def get_stale_companies(self, max_age_days: int = DEFAULT_MAX_AGE_DAYS, limit: int = 100) -> List[int]:
        cutoff = datetime.utcnow() - timedelta(days=max_age_days)
        rows = (
            self.db.query(Company.id)
            .filter(or_(Company.last_fetched.is_(None), Company.last_fetched < cutoff))
            .order_by(Company.id)
            .limit(limit)
            .all()
        )
        return [row[0] for row in rows]

    async def batch_enrich_companies(
        self, company_ids: List[int], delay_seconds: float = BATCH_DELAY_SECONDS
    ) -> Dict[str, Any]:
        """
        Enrich companies one at a time with a pause between them.

        Individual failures are collected; the batch always runs to the end.
        """
        logger.info(f"Batch enriching {len(company_ids)} companies")
        success = 0
        failed = 0
        errors = []

        for company_id in company_ids:
            try:
                await self.enrich_and_save(company_id)
                success += 1
                await asyncio.sleep(delay_seconds)
            except Exception as e:
                self.db.rollback()
                failed += 1
                errors.append({"company_id": company_id, "error": str(e)})
                logger.error(f"Failed to enrich company {company_id}: {e}")

        logger.info(f"Batch enrichment complete: {success} success, {failed} failed")
        return {"success": success, "failed": failed, "errors": errors}

    async def enrich_investor(self, investor_id: int) -> Dict[str, Any]:
        """
        Fill an investor's description, website and founded year from Wikidata.

        Returns the fields that changed (empty when nothing was found).
        """
        investor = self.db.query(Investor).filter(Investor.id == investor_id).first()
        if investor is None:
            raise EntityNotFoundError("Investor", investor_id)

        entity = await self.providers.wikidata.get_company_by_name(investor.name)
        if not entity:
            logger.info(f"No Wikidata match for investor {investor.name}")
            return {}

        updated = {}
        for attr, key in (("description", "description"), ("website", "website"), ("founded_year", "founded_year")):
            value = entity.get(key)
            if value and not getattr(investor, attr):
                setattr(investor, attr, value)
                updated[attr] = value

        investor.raw_data = {**(investor.raw_data or {}), "wikidata": entity}
        investor.last_fetched = datetime.utcnow()
        self.db.commit()

        logger.info(f"Enriched investor {investor_id} from Wikidata: {sorted(updated)}")
        return updated
