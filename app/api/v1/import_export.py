"""
Import/export API endpoints.

Imports take a JSON array of row objects (snake_case keys, as produced by the
exports). Exports return JSON by default or CSV with ?format=csv.
"""

import logging
from typing import Any, Dict, List, Literal

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.schemas import ImportResult
from app.import_data.import_export import ImportExportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/import-export", tags=["import-export"])

ExportFormat = Literal["json", "csv"]


def _export(rows: List[Dict[str, Any]], format: str, filename: str):
    if format == "csv":
        return Response(
            content=ImportExportService.to_csv(rows),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}.csv"'},
        )
    return rows


# =============================================================================
# Import
# =============================================================================


@router.post("/import/investors", response_model=ImportResult)
def import_investors(
    rows: List[Dict[str, Any]] = Body(..., description="Investor rows"),
    db: Session = Depends(get_db),
):
    return ImportExportService(db).import_investors(rows)


@router.post("/import/companies", response_model=ImportResult)
def import_companies(
    rows: List[Dict[str, Any]] = Body(..., description="Company rows"),
    db: Session = Depends(get_db),
):
    return ImportExportService(db).import_companies(rows)


@router.post("/import/investments", response_model=ImportResult)
def import_investments(
    rows: List[Dict[str, Any]] = Body(
        ..., description="Investment rows; investor_name/company_name may replace the IDs"
    ),
    db: Session = Depends(get_db),
):
    return ImportExportService(db).import_investments(rows)


# =============================================================================
# Export
# =============================================================================


@router.get("/export/all")
def export_all(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Every investor, company and investment in one JSON document."""
    return ImportExportService(db).export_all()


@router.get("/export/investors")
def export_investors(
    format: ExportFormat = Query("json"),
    db: Session = Depends(get_db),
):
    return _export(ImportExportService(db).export_investors(), format, "investors")


@router.get("/export/companies")
def export_companies(
    format: ExportFormat = Query("json"),
    db: Session = Depends(get_db),
):
    return _export(ImportExportService(db).export_companies(), format, "companies")


@router.get("/export/investments")
def export_investments(
    format: ExportFormat = Query("json"),
    db: Session = Depends(get_db),
):
    return _export(ImportExportService(db).export_investments(), format, "investments")
