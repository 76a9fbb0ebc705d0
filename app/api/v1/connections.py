"""
Investor connection API endpoints.

Co-investment edges are recomputed on demand by POST /connections/discover;
the read endpoints only look at stored edges and portfolio links.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.network.connections import ConnectionsEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connections", tags=["connections"])


@router.post("/discover")
def discover_connections(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Rebuild investor connections from shared portfolio companies."""
    count = ConnectionsEngine(db).discover_investor_connections()
    return {"message": "Connection discovery complete", "connections_created": count}


@router.get("/investors/{investor_id}/network")
def get_investor_network(
    investor_id: int,
    min_strength: int = Query(1, ge=1, description="Minimum shared companies"),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    return ConnectionsEngine(db).get_investor_network(investor_id, min_strength)


@router.get("/companies/{company_id}/network")
def get_company_network(company_id: int, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    """Companies sharing investors with this one, most shared first."""
    return ConnectionsEngine(db).get_company_network(company_id)


@router.get("/companies/{company_id}/potential-investors")
def find_potential_investors(
    company_id: int,
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    """Investors connected to the company's investors but not yet invested in it."""
    return ConnectionsEngine(db).find_potential_co_investors(company_id, limit)


@router.get("/statistics")
def get_network_statistics(db: Session = Depends(get_db)) -> Dict[str, Any]:
    return ConnectionsEngine(db).get_network_stats()
