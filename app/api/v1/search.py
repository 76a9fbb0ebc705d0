"""
Search API endpoints.

Case-insensitive substring search over investors and companies.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.schemas import CompanySummary, InvestorSummary
from app.search.engine import SearchEngine

router = APIRouter(prefix="/search", tags=["search"])


@router.get("")
def search(
    q: str = Query("", description="Search text (at least 2 characters)"),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """
    Search investors and companies together.

    Names starting with the query rank first, then alphabetical.
    """
    results = SearchEngine(db).search_all(q, limit=limit)
    return {
        "query": q,
        "results": [r.to_dict() for r in results],
        "total": len(results),
    }


@router.get("/investors", response_model=List[InvestorSummary])
def search_investors(
    q: str = Query(""),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return SearchEngine(db).search_investors(q, limit=limit)


@router.get("/companies", response_model=List[CompanySummary])
def search_companies(
    q: str = Query(""),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return SearchEngine(db).search_companies(q, limit=limit)
