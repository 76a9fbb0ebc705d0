"""
Company API endpoints.

CRUD over company records, provider enrichment (inline or queued), funding
history and the company's investors.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core import job_queue_service
from app.core.database import get_db
from app.core.models import CompanyStage, CompanyType
from app.core.schemas import (
    CompanyCreate,
    CompanyInvestorsResponse,
    CompanyListResponse,
    CompanyResponse,
    CompanyUpdate,
    FundingHistoryResponse,
    FundingRoundCreate,
    FundingRoundResponse,
    QueuedJobResponse,
)
from app.services.company_service import CompanyService
from app.sources.registry import ProviderClients, get_provider_clients

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/companies", tags=["companies"])


# =============================================================================
# CRUD
# =============================================================================


@router.post("", response_model=CompanyResponse, status_code=status.HTTP_201_CREATED)
def create_company(payload: CompanyCreate, db: Session = Depends(get_db)):
    """
    Create a company.

    When a ticker is given, a fetch-company job is queued to fill in the
    record from the providers.
    """
    return CompanyService(db).create(payload.model_dump(exclude_unset=True))


@router.get("", response_model=CompanyListResponse)
def list_companies(
    type: Optional[CompanyType] = Query(None),
    stage: Optional[CompanyStage] = Query(None),
    industry: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Match name, description or ticker"),
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    companies, total = CompanyService(db).find_all(
        skip=skip, take=take, search=search, type=type, stage=stage, industry=industry
    )
    return {"companies": companies, "total": total}


@router.get("/slug/{slug}", response_model=CompanyResponse)
def get_company_by_slug(slug: str, db: Session = Depends(get_db)):
    return CompanyService(db).find_by_slug(slug)


@router.get("/ticker/{ticker}", response_model=CompanyResponse)
def get_company_by_ticker(ticker: str, db: Session = Depends(get_db)):
    company = CompanyService(db).find_by_ticker(ticker)
    if company is None:
        raise HTTPException(status_code=404, detail=f"Company with ticker {ticker.upper()} not found")
    return company


@router.get("/{company_id}", response_model=CompanyResponse)
def get_company(company_id: int, db: Session = Depends(get_db)):
    return CompanyService(db).find_one(company_id)


@router.put("/{company_id}", response_model=CompanyResponse)
def update_company(company_id: int, payload: CompanyUpdate, db: Session = Depends(get_db)):
    return CompanyService(db).update(company_id, payload.model_dump(exclude_unset=True))


@router.delete("/{company_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_company(company_id: int, db: Session = Depends(get_db)):
    CompanyService(db).remove(company_id)


# =============================================================================
# Enrichment
# =============================================================================


@router.post("/{company_id}/enrich", response_model=CompanyResponse)
async def enrich_company(
    company_id: int,
    db: Session = Depends(get_db),
    providers: ProviderClients = Depends(get_provider_clients),
):
    """Query every provider now and merge the results into the record."""
    return await CompanyService(db).enrich(company_id, providers)


@router.post(
    "/{company_id}/fetch",
    response_model=QueuedJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def queue_company_fetch(company_id: int, db: Session = Depends(get_db)):
    """Queue a background fetch-company job instead of enriching inline."""
    company = CompanyService(db).find_one(company_id)
    job = job_queue_service.enqueue_company_data_fetch(db, company.id, company.ticker)
    return job_queue_service.queued_job_summary(job)


@router.get("/{company_id}/stale")
def is_company_stale(
    company_id: int,
    max_age_days: int = Query(30, ge=1),
    db: Session = Depends(get_db),
):
    return {
        "company_id": company_id,
        "is_stale": CompanyService(db).is_stale(company_id, max_age_days),
    }


# =============================================================================
# Funding and investors
# =============================================================================


@router.get("/{company_id}/funding", response_model=FundingHistoryResponse)
def get_funding_history(company_id: int, db: Session = Depends(get_db)):
    return CompanyService(db).get_funding_history(company_id)


@router.post(
    "/{company_id}/funding",
    response_model=FundingRoundResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_funding_round(company_id: int, payload: FundingRoundCreate, db: Session = Depends(get_db)):
    return CompanyService(db).add_funding_round(company_id, payload.model_dump(exclude_unset=True))


@router.get("/{company_id}/investors", response_model=CompanyInvestorsResponse)
def get_company_investors(company_id: int, db: Session = Depends(get_db)):
    return CompanyService(db).get_investors(company_id)
