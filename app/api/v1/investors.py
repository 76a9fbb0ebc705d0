"""
Investor API endpoints.

CRUD over investor records plus the portfolio view, Wikidata enrichment and
queued portfolio scraping.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core import job_queue_service
from app.core.database import get_db
from app.core.models import InvestorType
from app.core.schemas import (
    InvestorCreate,
    InvestorListResponse,
    InvestorResponse,
    InvestorUpdate,
    PortfolioResponse,
    QueuedJobResponse,
    ScrapeRequest,
)
from app.services.investor_service import InvestorService
from app.sources.registry import ProviderClients, get_provider_clients

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/investors", tags=["investors"])


# =============================================================================
# CRUD
# =============================================================================


@router.post("", response_model=InvestorResponse, status_code=status.HTTP_201_CREATED)
def create_investor(payload: InvestorCreate, db: Session = Depends(get_db)):
    """Create an investor. Returns 409 when the name's slug is taken."""
    return InvestorService(db).create(payload.model_dump(exclude_unset=True))


@router.get("", response_model=InvestorListResponse)
def list_investors(
    type: Optional[InvestorType] = Query(None, description="Filter by investor type"),
    country: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Match name or description"),
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    investors, total = InvestorService(db).find_all(
        skip=skip, take=take, search=search, type=type, country=country
    )
    return {"investors": investors, "total": total}


@router.get("/slug/{slug}", response_model=InvestorResponse)
def get_investor_by_slug(slug: str, db: Session = Depends(get_db)):
    return InvestorService(db).find_by_slug(slug)


@router.get("/{investor_id}", response_model=InvestorResponse)
def get_investor(investor_id: int, db: Session = Depends(get_db)):
    return InvestorService(db).find_one(investor_id)


@router.put("/{investor_id}", response_model=InvestorResponse)
def update_investor(investor_id: int, payload: InvestorUpdate, db: Session = Depends(get_db)):
    return InvestorService(db).update(investor_id, payload.model_dump(exclude_unset=True))


@router.delete("/{investor_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_investor(investor_id: int, db: Session = Depends(get_db)):
    InvestorService(db).remove(investor_id)


# =============================================================================
# Portfolio, enrichment and scraping
# =============================================================================


@router.get("/{investor_id}/portfolio", response_model=PortfolioResponse)
def get_investor_portfolio(investor_id: int, db: Session = Depends(get_db)):
    """Portfolio companies with totals, active count and exits."""
    return InvestorService(db).get_portfolio(investor_id)


@router.post("/{investor_id}/enrich", response_model=InvestorResponse)
async def enrich_investor(
    investor_id: int,
    db: Session = Depends(get_db),
    providers: ProviderClients = Depends(get_provider_clients),
):
    """Fill empty description, website and founded year from Wikidata."""
    return await InvestorService(db).enrich_from_wikidata(investor_id, providers)


@router.post(
    "/{investor_id}/scrape",
    response_model=QueuedJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def scrape_investor_portfolio(
    investor_id: int,
    payload: Optional[ScrapeRequest] = None,
    db: Session = Depends(get_db),
):
    """
    Queue a portfolio scrape for the investor.

    The URL defaults to the investor's website; 400 when neither is known.
    """
    investor = InvestorService(db).find_one(investor_id)
    url = (payload.url if payload else None) or investor.website
    if not url:
        raise HTTPException(
            status_code=400, detail="No portfolio URL given and investor has no website"
        )

    job = job_queue_service.enqueue_portfolio_scraping(db, investor.id, url, investor.name)
    return job_queue_service.queued_job_summary(job)
