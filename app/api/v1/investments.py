"""
Investment API endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.models import InvestmentStage, InvestmentStatus
from app.core.schemas import (
    InvestmentCreate,
    InvestmentListResponse,
    InvestmentResponse,
    InvestmentStatistics,
    InvestmentUpdate,
)
from app.services.investment_service import InvestmentService

router = APIRouter(prefix="/investments", tags=["investments"])


@router.post("", response_model=InvestmentResponse, status_code=status.HTTP_201_CREATED)
def create_investment(payload: InvestmentCreate, db: Session = Depends(get_db)):
    """
    Record an investment.

    404 when the investor or company does not exist. The pair's portfolio
    link is created or its status updated.
    """
    service = InvestmentService(db)
    investment = service.create(payload.model_dump(exclude_unset=True))
    return service.describe(investment)


@router.get("", response_model=InvestmentListResponse)
def list_investments(
    investor_id: Optional[int] = Query(None),
    company_id: Optional[int] = Query(None),
    stage: Optional[InvestmentStage] = Query(None),
    status: Optional[InvestmentStatus] = Query(None),
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    service = InvestmentService(db)
    investments, total = service.find_all(
        skip=skip,
        take=take,
        investor_id=investor_id,
        company_id=company_id,
        stage=stage,
        status=status,
    )
    return {"investments": service.describe_many(investments), "total": total}


@router.get("/statistics", response_model=InvestmentStatistics)
def get_investment_statistics(db: Session = Depends(get_db)):
    return InvestmentService(db).get_statistics()


@router.get("/{investment_id}", response_model=InvestmentResponse)
def get_investment(investment_id: int, db: Session = Depends(get_db)):
    service = InvestmentService(db)
    return service.describe(service.find_one(investment_id))


@router.put("/{investment_id}", response_model=InvestmentResponse)
def update_investment(investment_id: int, payload: InvestmentUpdate, db: Session = Depends(get_db)):
    service = InvestmentService(db)
    investment = service.update(investment_id, payload.model_dump(exclude_unset=True))
    return service.describe(investment)


@router.delete("/{investment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_investment(investment_id: int, db: Session = Depends(get_db)):
    InvestmentService(db).remove(investment_id)
