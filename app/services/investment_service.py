"""
Investment records.

Every investment keeps a PortfolioCompany link for its investor/company
pair: creating one upserts the link, deleting the last one for the pair
removes it.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.api_errors import EntityNotFoundError
from app.core.models import (
    Company,
    DataSource,
    Investment,
    InvestmentStage,
    InvestmentStatus,
    Investor,
    PortfolioCompany,
)

logger = logging.getLogger(__name__)

INVESTMENT_COLUMNS = (
    "id", "investor_id", "company_id", "funding_round_id", "stage", "status",
    "amount", "ownership", "invested_at", "exited_at", "lead_investor", "notes",
    "data_source", "created_at",
)


class InvestmentService:
    def __init__(self, db: Session):
        self.db = db

    def _upsert_portfolio_link(self, investment: Investment) -> None:
        link = (
            self.db.query(PortfolioCompany)
            .filter(
                PortfolioCompany.investor_id == investment.investor_id,
                PortfolioCompany.company_id == investment.company_id,
            )
            .first()
        )
        if link is None:
            self.db.add(PortfolioCompany(
                investor_id=investment.investor_id,
                company_id=investment.company_id,
                status=investment.status,
                first_invested_at=investment.invested_at,
            ))
            return

        link.status = investment.status
        if investment.invested_at and (
            link.first_invested_at is None or investment.invested_at < link.first_invested_at
        ):
            link.first_invested_at = investment.invested_at

    def create(self, data: Dict[str, Any], data_source: DataSource = DataSource.MANUAL) -> Investment:
        """
        Record an investment after checking both sides exist.

        The investor/company portfolio link is created or its status updated
        to the investment's status (ACTIVE when none is given).
        """
        investor_id = data["investor_id"]
        company_id = data["company_id"]
        logger.info(f"Creating investment: {investor_id} -> {company_id}")

        if self.db.query(Investor.id).filter(Investor.id == investor_id).first() is None:
            raise EntityNotFoundError("Investor", investor_id)
        if self.db.query(Company.id).filter(Company.id == company_id).first() is None:
            raise EntityNotFoundError("Company", company_id)

        fields = {k: v for k, v in data.items() if v is not None}
        fields.setdefault("status", InvestmentStatus.ACTIVE)
        investment = Investment(**fields, data_source=data_source)
        self.db.add(investment)
        self.db.flush()
        self._upsert_portfolio_link(investment)
        self.db.commit()
        self.db.refresh(investment)

        logger.info(f"Created investment: {investment.id}")
        return investment

    def find_all(
        self,
        skip: int = 0,
        take: int = 50,
        investor_id: Optional[int] = None,
        company_id: Optional[int] = None,
        stage: Optional[InvestmentStage] = None,
        status: Optional[InvestmentStatus] = None,
    ) -> Tuple[List[Investment], int]:
        query = self.db.query(Investment)
        if investor_id is not None:
            query = query.filter(Investment.investor_id == investor_id)
        if company_id is not None:
            query = query.filter(Investment.company_id == company_id)
        if stage:
            query = query.filter(Investment.stage == stage)
        if status:
            query = query.filter(Investment.status == status)

        total = query.count()
        investments = (
            query.order_by(Investment.invested_at.desc().nulls_last(), Investment.id.desc())
            .offset(skip)
            .limit(take)
            .all()
        )
        return investments, total

    def find_one(self, investment_id: int) -> Investment:
        investment = self.db.query(Investment).filter(Investment.id == investment_id).first()
        if investment is None:
            raise EntityNotFoundError("Investment", investment_id)
        return investment

    def update(self, investment_id: int, data: Dict[str, Any]) -> Investment:
        logger.info(f"Updating investment: {investment_id}")
        investment = self.find_one(investment_id)
        for key, value in data.items():
            setattr(investment, key, value)
        self.db.commit()
        self.db.refresh(investment)
        logger.info(f"Updated investment: {investment_id}")
        return investment

    def remove(self, investment_id: int) -> None:
        """Delete an investment; drop the portfolio link if it was the pair's last one."""
        logger.info(f"Deleting investment: {investment_id}")
        investment = self.find_one(investment_id)
        investor_id, company_id = investment.investor_id, investment.company_id

        self.db.delete(investment)
        self.db.flush()

        remaining = (
            self.db.query(func.count(Investment.id))
            .filter(Investment.investor_id == investor_id, Investment.company_id == company_id)
            .scalar()
        )
        if remaining == 0:
            self.db.query(PortfolioCompany).filter(
                PortfolioCompany.investor_id == investor_id,
                PortfolioCompany.company_id == company_id,
            ).delete(synchronize_session=False)

        self.db.commit()
        logger.info(f"Deleted investment: {investment_id}")

    def get_statistics(self) -> Dict[str, Any]:
        total, amount = self.db.query(
            func.count(Investment.id), func.coalesce(func.sum(Investment.amount), 0.0)
        ).one()

        by_stage = {
            stage.value: count
            for stage, count in self.db.query(Investment.stage, func.count(Investment.id))
            .group_by(Investment.stage)
            .all()
        }
        by_status = {
            status.value: count
            for status, count in self.db.query(Investment.status, func.count(Investment.id))
            .group_by(Investment.status)
            .all()
        }
        return {
            "total_investments": total,
            "total_amount": float(amount or 0),
            "by_stage": by_stage,
            "by_status": by_status,
        }

    def describe_many(self, investments: List[Investment]) -> List[Dict[str, Any]]:
        """Investments as dicts with their investor and company attached."""
        if not investments:
            return []
        investor_ids = {i.investor_id for i in investments}
        company_ids = {i.company_id for i in investments}
        investors = {
            i.id: i for i in self.db.query(Investor).filter(Investor.id.in_(investor_ids)).all()
        }
        companies = {
            c.id: c for c in self.db.query(Company).filter(Company.id.in_(company_ids)).all()
        }
        return [
            {
                **{col: getattr(inv, col) for col in INVESTMENT_COLUMNS},
                "investor": investors.get(inv.investor_id),
                "company": companies.get(inv.company_id),
            }
            for inv in investments
        ]

    def describe(self, investment: Investment) -> Dict[str, Any]:
        return self.describe_many([investment])[0]
