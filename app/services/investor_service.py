"""
Investor records: CRUD, portfolio view and Wikidata enrichment.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.api_errors import ConflictError, EntityNotFoundError
from app.core.models import (
    Company,
    DataSource,
    Investment,
    InvestmentStatus,
    FundingRound,
    Investor,
    InvestorConnection,
    InvestorType,
    PortfolioCompany,
    ScrapingJob,
)
from app.core.slugs import slugify
from app.enrichment.aggregation import AggregationEngine
from app.sources.registry import ProviderClients

logger = logging.getLogger(__name__)

EXIT_STATUSES = (InvestmentStatus.EXITED, InvestmentStatus.IPO)


class InvestorService:
    def __init__(self, db: Session):
        self.db = db

    def _slug_taken(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(Investor.id).filter(Investor.slug == slug)
        if exclude_id is not None:
            query = query.filter(Investor.id != exclude_id)
        return query.first() is not None

    def create(self, data: Dict[str, Any], data_source: DataSource = DataSource.MANUAL) -> Investor:
        """Create an investor; its slug is derived from the name and must be unique."""
        name = data["name"]
        logger.info(f"Creating investor: {name}")

        slug = slugify(name)
        if self._slug_taken(slug):
            raise ConflictError(f'Investor with name "{name}" already exists')

        investor = Investor(**{**data, "slug": slug, "data_source": data_source})
        self.db.add(investor)
        self.db.commit()
        self.db.refresh(investor)

        logger.info(f"Created investor: {investor.id}")
        return investor

    def find_all(
        self,
        skip: int = 0,
        take: int = 50,
        search: Optional[str] = None,
        type: Optional[InvestorType] = None,
        country: Optional[str] = None,
    ) -> Tuple[List[Investor], int]:
        query = self.db.query(Investor)
        if type:
            query = query.filter(Investor.type == type)
        if country:
            query = query.filter(Investor.country == country)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Investor.name.ilike(pattern), Investor.description.ilike(pattern)))

        total = query.count()
        investors = query.order_by(Investor.name.asc()).offset(skip).limit(take).all()
        return investors, total

    def find_one(self, investor_id: int) -> Investor:
        investor = self.db.query(Investor).filter(Investor.id == investor_id).first()
        if investor is None:
            raise EntityNotFoundError("Investor", investor_id)
        return investor

    def find_by_slug(self, slug: str) -> Investor:
        investor = self.db.query(Investor).filter(Investor.slug == slug).first()
        if investor is None:
            raise EntityNotFoundError("Investor", slug)
        return investor

    def update(self, investor_id: int, data: Dict[str, Any]) -> Investor:
        """Apply a partial update; renaming re-derives the slug."""
        logger.info(f"Updating investor: {investor_id}")
        investor = self.find_one(investor_id)

        if data.get("name"):
            slug = slugify(data["name"])
            if self._slug_taken(slug, exclude_id=investor_id):
                raise ConflictError(f'Investor with name "{data["name"]}" already exists')
            investor.slug = slug

        for key, value in data.items():
            setattr(investor, key, value)

        self.db.commit()
        self.db.refresh(investor)
        logger.info(f"Updated investor: {investor_id}")
        return investor

    def remove(self, investor_id: int) -> None:
        logger.info(f"Deleting investor: {investor_id}")
        investor = self.find_one(investor_id)

        # dependents carry no ORM cascade
        self.db.query(Investment).filter(Investment.investor_id == investor_id).delete(synchronize_session=False)
        self.db.query(PortfolioCompany).filter(PortfolioCompany.investor_id == investor_id).delete(synchronize_session=False)
        self.db.query(InvestorConnection).filter(
            or_(
                InvestorConnection.investor_id == investor_id,
                InvestorConnection.related_investor_id == investor_id,
            )
        ).delete(synchronize_session=False)
        self.db.query(FundingRound).filter(FundingRound.lead_investor_id == investor_id).update(
            {FundingRound.lead_investor_id: None}, synchronize_session=False
        )
        self.db.query(ScrapingJob).filter(ScrapingJob.investor_id == investor_id).update(
            {ScrapingJob.investor_id: None}, synchronize_session=False
        )
        self.db.delete(investor)
        self.db.commit()
        logger.info(f"Deleted investor: {investor_id}")

    def get_portfolio(self, investor_id: int) -> Dict[str, Any]:
        """
        Portfolio companies of an investor with summary stats.

        Exits count portfolio links with status EXITED or IPO; total invested
        sums the amounts of all the investor's investments.
        """
        investor = self.find_one(investor_id)

        rows = (
            self.db.query(PortfolioCompany, Company)
            .join(Company, Company.id == PortfolioCompany.company_id)
            .filter(PortfolioCompany.investor_id == investor_id)
            .order_by(Company.name.asc())
            .all()
        )
        total_invested = (
            self.db.query(func.coalesce(func.sum(Investment.amount), 0.0))
            .filter(Investment.investor_id == investor_id)
            .scalar()
        )

        portfolio = [
            {"company": company, "status": link.status, "first_invested_at": link.first_invested_at}
            for link, company in rows
        ]
        stats = {
            "total_companies": len(rows),
            "active_investments": sum(1 for link, _ in rows if link.status == InvestmentStatus.ACTIVE),
            "exits": sum(1 for link, _ in rows if link.status in EXIT_STATUSES),
            "total_invested": float(total_invested or 0),
        }
        return {"investor": investor, "portfolio": portfolio, "stats": stats}

    async def enrich_from_wikidata(self, investor_id: int, providers: ProviderClients) -> Investor:
        """Fill empty description/website/founded year from Wikidata."""
        logger.info(f"Enriching investor from Wikidata: {investor_id}")
        self.find_one(investor_id)
        await AggregationEngine(self.db, providers).enrich_investor(investor_id)
        return self.find_one(investor_id)
