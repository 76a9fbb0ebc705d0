"""Portfolio scraping executor for the scraping queue."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.job_queue_service import update_progress
from app.core.models import (
    Company,
    CompanyType,
    DataSource,
    InvestmentStatus,
    PortfolioCompany,
    ScrapingJob,
    ScrapingJobStatus,
)
from app.core.models_queue import JobQueue
from app.core.slugs import slugify
from app.sources.portfolio_scraper.scraper import ScrapedCompany
from app.sources.registry import ProviderClients, get_provider_clients

logger = logging.getLogger(__name__)


class ScrapeFailedError(Exception):
    """The scraper reported failure; the queue's retry policy decides what happens next."""


def _find_or_create_company(db: Session, scraped: ScrapedCompany) -> Company:
    condition = Company.name == scraped.name
    if scraped.website:
        condition = or_(condition, Company.website == scraped.website)
    company = db.query(Company).filter(condition).first()
    if company is not None:
        return company

    company = Company(
        name=scraped.name,
        slug=slugify(scraped.name),
        type=CompanyType.PRIVATE,
        website=scraped.website,
        description=scraped.description,
        logo_url=scraped.logo_url,
        data_source=DataSource.WEB_SCRAPING,
    )
    db.add(company)
    db.flush()
    return company


def _upsert_portfolio_link(db: Session, investor_id: int, company_id: int) -> None:
    link = (
        db.query(PortfolioCompany)
        .filter(
            PortfolioCompany.investor_id == investor_id,
            PortfolioCompany.company_id == company_id,
        )
        .first()
    )
    if link is None:
        db.add(PortfolioCompany(
            investor_id=investor_id,
            company_id=company_id,
            status=InvestmentStatus.ACTIVE,
        ))
    else:
        link.status = InvestmentStatus.ACTIVE


def _mark_scrape_failed(db: Session, scraping_job: ScrapingJob, error: str) -> None:
    db.rollback()
    scraping_job.status = ScrapingJobStatus.FAILED
    scraping_job.error = error
    scraping_job.completed_at = datetime.utcnow()
    db.commit()


async def execute(job: JobQueue, db: Session, providers: Optional[ProviderClients] = None) -> Dict[str, Any]:
    """
    Scrape an investor's portfolio page and record every company found.

    A company that cannot be stored is logged and skipped; a failed scrape
    fails the job.
    """
    providers = providers or get_provider_clients()
    payload = job.payload or {}
    investor_id = payload["investor_id"]
    url = payload["url"]
    investor_name = payload.get("investor_name")

    logger.info(f"Processing portfolio scraping for: {investor_name or investor_id}")

    scraping_job = ScrapingJob(
        url=url,
        investor_id=investor_id,
        status=ScrapingJobStatus.RUNNING,
        started_at=datetime.utcnow(),
    )
    db.add(scraping_job)
    db.commit()

    # a known firm template beats the generic recipe for its URL
    target = url
    if investor_name and providers.scraper.resolve_config(investor_name) is not None:
        target = investor_name

    try:
        update_progress(db, job, 10, "Scraping portfolio page")
        result = await providers.scraper.scrape_portfolio(target)
        update_progress(db, job, 80, "Saving portfolio companies")
        if not result.success:
            raise ScrapeFailedError(result.error or "Scraping failed")
    except BaseException as e:
        # includes cancellation by the worker's per-attempt timeout
        _mark_scrape_failed(db, scraping_job, str(e) or e.__class__.__name__)
        raise

    logger.info(f"Successfully scraped {len(result.companies)} companies")
    scraping_job.status = ScrapingJobStatus.COMPLETED
    scraping_job.result = result.to_dict()
    scraping_job.completed_at = datetime.utcnow()
    db.commit()

    saved = 0
    for scraped in result.companies:
        try:
            company = _find_or_create_company(db, scraped)
            _upsert_portfolio_link(db, investor_id, company.id)
            db.commit()
            saved += 1
        except Exception as e:
            db.rollback()
            logger.warning(f"Error creating company {scraped.name}: {e}")

    update_progress(db, job, 100, f"Saved {saved} portfolio companies")

    return {
        "success": True,
        "companies_found": len(result.companies),
        "companies_saved": saved,
        "investor_id": investor_id,
    }
