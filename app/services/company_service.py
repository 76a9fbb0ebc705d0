"""
Company records: CRUD, funding history, investors and enrichment.

Creating a company with a ticker queues a fetch-company job so the record
is filled in from the providers in the background.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core import job_queue_service
from app.core.api_errors import ConflictError, EntityNotFoundError
from app.core.models import (
    Company,
    CompanyStage,
    CompanyType,
    DataSource,
    FundingRound,
    Investment,
    Investor,
    MarketData,
    PortfolioCompany,
)
from app.core.slugs import slugify
from app.enrichment.aggregation import AggregationEngine
from app.services.investment_service import InvestmentService
from app.sources.registry import ProviderClients

logger = logging.getLogger(__name__)


class CompanyService:
    def __init__(self, db: Session):
        self.db = db

    def _slug_taken(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(Company.id).filter(Company.slug == slug)
        if exclude_id is not None:
            query = query.filter(Company.id != exclude_id)
        return query.first() is not None

    def create(
        self,
        data: Dict[str, Any],
        data_source: DataSource = DataSource.MANUAL,
        auto_enrich: bool = True,
    ) -> Company:
        """
        Create a company; its slug is derived from the name and must be unique.

        When the company has a ticker and auto_enrich is set, a fetch-company
        job is queued for it.
        """
        name = data["name"]
        logger.info(f"Creating company: {name}")

        slug = slugify(name)
        if self._slug_taken(slug):
            raise ConflictError(f'Company with name "{name}" already exists')

        company = Company(**{**data, "slug": slug, "data_source": data_source})
        self.db.add(company)
        self.db.commit()
        self.db.refresh(company)
        logger.info(f"Created company: {company.id}")

        if company.ticker and auto_enrich:
            logger.info(f"Auto-enriching company with ticker: {company.ticker}")
            try:
                job_queue_service.enqueue_company_data_fetch(self.db, company.id, company.ticker)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Auto-enrichment could not be queued for {company.id}: {e}")

        return company

    def find_all(
        self,
        skip: int = 0,
        take: int = 50,
        search: Optional[str] = None,
        type: Optional[CompanyType] = None,
        stage: Optional[CompanyStage] = None,
        industry: Optional[str] = None,
    ) -> Tuple[List[Company], int]:
        query = self.db.query(Company)
        if type:
            query = query.filter(Company.type == type)
        if stage:
            query = query.filter(Company.stage == stage)
        if industry:
            query = query.filter(Company.industry.ilike(f"%{industry}%"))
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Company.name.ilike(pattern),
                Company.description.ilike(pattern),
                Company.ticker.ilike(pattern),
            ))

        total = query.count()
        companies = query.order_by(Company.name.asc()).offset(skip).limit(take).all()
        return companies, total

    def find_one(self, company_id: int) -> Company:
        company = self.db.query(Company).filter(Company.id == company_id).first()
        if company is None:
            raise EntityNotFoundError("Company", company_id)
        return company

    def find_by_slug(self, slug: str) -> Company:
        company = self.db.query(Company).filter(Company.slug == slug).first()
        if company is None:
            raise EntityNotFoundError("Company", slug)
        return company

    def find_by_ticker(self, ticker: str) -> Optional[Company]:
        """Case-insensitive ticker lookup; None when no company has it."""
        return (
            self.db.query(Company)
            .filter(func.upper(Company.ticker) == ticker.upper())
            .first()
        )

    def update(self, company_id: int, data: Dict[str, Any]) -> Company:
        """Apply a partial update; renaming re-derives the slug."""
        logger.info(f"Updating company: {company_id}")
        company = self.find_one(company_id)

        if data.get("name"):
            slug = slugify(data["name"])
            if self._slug_taken(slug, exclude_id=company_id):
                raise ConflictError(f'Company with name "{data["name"]}" already exists')
            company.slug = slug

        for key, value in data.items():
            setattr(company, key, value)

        self.db.commit()
        self.db.refresh(company)
        logger.info(f"Updated company: {company_id}")
        return company

    def remove(self, company_id: int) -> None:
        logger.info(f"Deleting company: {company_id}")
        company = self.find_one(company_id)

        # dependents carry no ORM cascade
        for model in (Investment, PortfolioCompany, FundingRound, MarketData):
            self.db.query(model).filter(model.company_id == company_id).delete(synchronize_session=False)
        self.db.delete(company)
        self.db.commit()
        logger.info(f"Deleted company: {company_id}")

    async def enrich(self, company_id: int, providers: ProviderClients) -> Company:
        """Enrich from every provider now and save the merged result."""
        logger.info(f"Enriching company: {company_id}")
        company = self.find_one(company_id)
        await AggregationEngine(self.db, providers).enrich_and_save(company_id, company.ticker)
        return self.find_one(company_id)

    def add_funding_round(self, company_id: int, data: Dict[str, Any]) -> FundingRound:
        self.find_one(company_id)
        lead_id = data.get("lead_investor_id")
        if lead_id is not None and self.db.query(Investor.id).filter(Investor.id == lead_id).first() is None:
            raise EntityNotFoundError("Investor", lead_id)

        funding_round = FundingRound(company_id=company_id, **data)
        self.db.add(funding_round)
        self.db.commit()
        self.db.refresh(funding_round)
        logger.info(f"Recorded {funding_round.stage.value} round for company {company_id}")
        return funding_round

    def get_funding_history(self, company_id: int) -> Dict[str, Any]:
        """
        Funding rounds newest first, with total raised and the valuation of
        the most recent round.
        """
        company = self.find_one(company_id)
        rounds = (
            self.db.query(FundingRound)
            .filter(FundingRound.company_id == company_id)
            .order_by(FundingRound.announced_at.desc().nulls_last(), FundingRound.id.desc())
            .all()
        )
        return {
            "company": company,
            "funding_rounds": rounds,
            "total_raised": float(sum(r.amount or 0 for r in rounds)),
            "latest_valuation": rounds[0].valuation if rounds else None,
        }

    def get_investors(self, company_id: int) -> Dict[str, Any]:
        """Investments in the company (with their investor), newest first."""
        company = self.find_one(company_id)
        investments = (
            self.db.query(Investment)
            .filter(Investment.company_id == company_id)
            .order_by(Investment.invested_at.desc().nulls_last(), Investment.id.desc())
            .all()
        )
        described = InvestmentService(self.db).describe_many(investments)
        return {"company": company, "investors": described, "total_investors": len(described)}

    def is_stale(self, company_id: int, max_age_days: int = 30) -> bool:
        self.find_one(company_id)
        return AggregationEngine(self.db, providers=None).is_company_data_stale(company_id, max_age_days)
