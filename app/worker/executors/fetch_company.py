"""Company data fetch executor for the data-fetch queue."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.api_errors import EntityNotFoundError
from app.core.job_queue_service import update_progress
from app.core.models import Company, CompanyType
from app.core.models_queue import JobQueue
from app.sources.registry import ProviderClients, get_provider_clients

logger = logging.getLogger(__name__)


def _registered_headquarters(match: Dict[str, Any]) -> Optional[str]:
    address = match.get("registered_address") or {}
    parts = [p for p in (address.get("locality"), address.get("region")) if p]
    return ", ".join(parts) or None


async def execute(job: JobQueue, db: Session, providers: Optional[ProviderClients] = None) -> Dict[str, Any]:
    """
    Refresh one company directly from the providers.

    Progress milestones: 25 Yahoo Finance, 50 SEC EDGAR (public companies
    only), 75 OpenCorporates and Wikidata, 100 saved.
    """
    providers = providers or get_provider_clients()
    payload = job.payload or {}
    company_id = payload["company_id"]

    logger.info(f"Processing company data fetch for: {company_id}")

    company = db.query(Company).filter(Company.id == company_id).first()
    if company is None:
        raise EntityNotFoundError("Company", company_id)

    ticker = payload.get("ticker") or company.ticker
    updates: Dict[str, Any] = {}
    raw_data: Dict[str, Any] = {}

    if ticker:
        update_progress(db, job, 25, "Fetching Yahoo Finance data")
        quote = await providers.yahoo.get_quote(ticker)
        if quote:
            if quote.get("market_cap"):
                updates["market_cap"] = quote["market_cap"]
            raw_data["yahoo_finance"] = quote
            logger.debug(f"Fetched Yahoo Finance data for {ticker}")

        profile = await providers.yahoo.get_company_profile(ticker)
        if profile and profile.get("description") and not company.description:
            updates["description"] = profile["description"]

    if company.type == CompanyType.PUBLIC and ticker:
        update_progress(db, job, 50, "Fetching SEC EDGAR data")
        edgar = await providers.edgar.get_company_by_ticker(ticker)
        if edgar:
            raw_data["sec_edgar"] = edgar
            logger.debug(f"Fetched SEC EDGAR data for {ticker}")

    update_progress(db, job, 75, "Fetching registry and Wikidata data")
    matches = await providers.opencorporates.search_companies(company.name)
    if matches:
        raw_data["opencorporates"] = matches[0]
        headquarters = _registered_headquarters(matches[0])
        if headquarters and not company.headquarters:
            updates["headquarters"] = headquarters

    entity = await providers.wikidata.get_company_by_name(company.name)
    if entity:
        raw_data["wikidata"] = entity
        if entity.get("description") and not company.description and "description" not in updates:
            updates["description"] = entity["description"]

    for key, value in updates.items():
        setattr(company, key, value)
    company.raw_data = raw_data
    company.last_fetched = datetime.utcnow()
    db.commit()

    update_progress(db, job, 100, "Company data saved")
    logger.info(f"Successfully enriched company: {company_id}")

    return {"success": True, "company_id": company_id, "enriched": len(updates)}
