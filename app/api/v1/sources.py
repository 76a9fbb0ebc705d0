"""
Provider probe endpoints.

Each probe makes one live call through the provider client (cache, rate
limit and retry included) and reports a short summary, so operators can
check an integration without touching the record store.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.core.api_errors import APIError, RateLimitTimeout
from app.sources.registry import ProviderClients, get_provider_clients

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sources", tags=["sources"])

PREVIEW_SIZE = 3
SCRAPE_PREVIEW_SIZE = 5

PROBE_ERRORS = (APIError, RateLimitTimeout)


class ScrapeProbeRequest(BaseModel):
    url: str = Field(..., description="Portfolio page URL or a known investor name")
    investor_name: Optional[str] = None


def _failed(integration: str, error: Exception, **context) -> Dict[str, Any]:
    logger.warning(f"{integration} probe failed: {error}")
    return {"integration": integration, **context, "success": False, "error": str(error)}


@router.get("/sec-edgar")
async def probe_sec_edgar(
    ticker: str = Query(..., examples=["AAPL"]),
    providers: ProviderClients = Depends(get_provider_clients),
) -> Dict[str, Any]:
    try:
        company = await providers.edgar.get_company_by_ticker(ticker)
        filings = (
            await providers.edgar.get_recent_filings(str(company["cik"]), limit=5)
            if company else []
        )
    except PROBE_ERRORS as e:
        return _failed("SEC EDGAR", e, ticker=ticker)

    return {
        "integration": "SEC EDGAR",
        "ticker": ticker,
        "company": {
            "cik": company.get("cik"),
            "name": company.get("name"),
            "tickers": company.get("tickers"),
        } if company else None,
        "recent_filings": len(filings),
        "success": company is not None,
    }


@router.get("/yahoo-finance")
async def probe_yahoo_finance(
    ticker: str = Query(..., examples=["AAPL"]),
    providers: ProviderClients = Depends(get_provider_clients),
) -> Dict[str, Any]:
    try:
        quote = await providers.yahoo.get_quote(ticker)
        profile = await providers.yahoo.get_company_profile(ticker)
    except PROBE_ERRORS as e:
        return _failed("Yahoo Finance", e, ticker=ticker)

    return {
        "integration": "Yahoo Finance",
        "ticker": ticker,
        "quote": {
            "price": quote.get("regular_market_price"),
            "market_cap": quote.get("market_cap"),
            "change_percent": quote.get("regular_market_change_percent"),
        } if quote else None,
        "profile": {
            "name": profile.get("name"),
            "sector": profile.get("sector"),
            "industry": profile.get("industry"),
        } if profile else None,
        "success": quote is not None,
    }


@router.get("/opencorporates")
async def probe_opencorporates(
    name: str = Query(..., examples=["Apple Inc"]),
    providers: ProviderClients = Depends(get_provider_clients),
) -> Dict[str, Any]:
    try:
        companies = await providers.opencorporates.search_companies(name)
    except PROBE_ERRORS as e:
        return _failed("OpenCorporates", e, query=name)

    return {
        "integration": "OpenCorporates",
        "query": name,
        "results_found": len(companies),
        "companies": [
            {
                "name": c.get("name"),
                "jurisdiction": c.get("jurisdiction_code"),
                "number": c.get("company_number"),
                "status": c.get("current_status"),
            }
            for c in companies[:PREVIEW_SIZE]
        ],
        "success": len(companies) > 0,
    }


@router.get("/wikidata")
async def probe_wikidata(
    name: str = Query(..., examples=["Apple Inc"]),
    providers: ProviderClients = Depends(get_provider_clients),
) -> Dict[str, Any]:
    try:
        entity = await providers.wikidata.get_company_by_name(name)
    except PROBE_ERRORS as e:
        return _failed("Wikidata", e, query=name)

    return {
        "integration": "Wikidata",
        "query": name,
        "entity": {
            "id": entity.get("id"),
            "label": entity.get("label"),
            "description": entity.get("description"),
            "founded": entity.get("founded_date"),
            "industry": entity.get("industry"),
        } if entity else None,
        "success": entity is not None,
    }


@router.get("/newsapi")
async def probe_newsapi(
    company: str = Query(..., examples=["Apple"]),
    providers: ProviderClients = Depends(get_provider_clients),
) -> Dict[str, Any]:
    try:
        articles = await providers.news.get_company_news(company, 7)
    except PROBE_ERRORS as e:
        return _failed("NewsAPI", e, company=company)

    return {
        "integration": "NewsAPI",
        "company": company,
        "articles_found": len(articles),
        "articles": [
            {"title": a.get("title"), "source": a.get("source"), "published_at": a.get("published_at")}
            for a in articles[:PREVIEW_SIZE]
        ],
        "success": len(articles) > 0,
    }


@router.post("/scraper")
async def probe_scraper(
    payload: ScrapeProbeRequest,
    providers: ProviderClients = Depends(get_provider_clients),
) -> Dict[str, Any]:
    """Scrape a portfolio page and preview the first few companies."""
    target = payload.url
    if payload.investor_name and providers.scraper.resolve_config(payload.investor_name):
        target = payload.investor_name
    result = await providers.scraper.scrape_portfolio(target)
    preview = result.to_dict()
    preview["companies"] = preview["companies"][:SCRAPE_PREVIEW_SIZE]
    return {"integration": "Portfolio Scraper", "url": payload.url, **preview}
