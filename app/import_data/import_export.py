"""
Bulk import and export of investors, companies and investments.

Imports go row by row through the CRUD services, so slugs, conflicts and
portfolio links behave exactly as for single creates. A bad row is recorded
in the result and the import carries on.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import Session

from app.core.api_errors import DomainError
from app.core.models import Company, DataSource, Investment, Investor
from app.core.schemas import CompanyCreate, InvestmentCreate, InvestorCreate
from app.import_data.csv_format import csv_stringify
from app.services.company_service import CompanyService
from app.services.investment_service import InvestmentService
from app.services.investor_service import InvestorService

logger = logging.getLogger(__name__)

# Provider audit blobs stay out of exports
EXCLUDED_EXPORT_COLUMNS = {"raw_data"}


def _columns(obj) -> Dict[str, Any]:
    return {
        column.name: getattr(obj, column.name)
        for column in obj.__table__.columns
        if column.name not in EXCLUDED_EXPORT_COLUMNS
    }


def _jsonable(row: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for key, value in row.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        out[key] = value
    return out


def _clean_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Drop empty cells so CSV blanks don't fail validation."""
    return {
        key: value
        for key, value in row.items()
        if value is not None and not (isinstance(value, str) and not value.strip())
    }


def _error_message(error: Exception) -> str:
    if isinstance(error, DomainError):
        return error.message
    if isinstance(error, SchemaValidationError):
        return "; ".join(
            f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in error.errors()
        )
    return str(error)


class ImportExportService:
    def __init__(self, db: Session):
        self.db = db
        self.investors = InvestorService(db)
        self.companies = CompanyService(db)
        self.investments = InvestmentService(db)

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def _import_rows(
        self,
        label: str,
        rows: List[Dict[str, Any]],
        create_row: Callable[[Dict[str, Any]], Any],
    ) -> Dict[str, Any]:
        logger.info(f"Importing {len(rows)} {label}")
        success = 0
        errors = []

        for index, row in enumerate(rows, start=1):
            try:
                create_row(_clean_row(row or {}))
                success += 1
            except (DomainError, SchemaValidationError, ValueError, KeyError) as e:
                self.db.rollback()
                message = _error_message(e)
                errors.append({"row": index, "error": message, "data": row})
                logger.error(f"Failed to import {label} row {index}: {message}")

        logger.info(f"Import complete: {success} success, {len(errors)} failed")
        return {"success": success, "failed": len(errors), "errors": errors}

    @staticmethod
    def _validated(schema: type, row: Dict[str, Any]) -> Dict[str, Any]:
        model: BaseModel = schema.model_validate(row)
        return model.model_dump(exclude_unset=True)

    def import_investors(self, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._import_rows(
            "investors",
            rows,
            lambda row: self.investors.create(
                self._validated(InvestorCreate, row), data_source=DataSource.IMPORT
            ),
        )

    def import_companies(self, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._import_rows(
            "companies",
            rows,
            lambda row: self.companies.create(
                self._validated(CompanyCreate, row), data_source=DataSource.IMPORT
            ),
        )

    def _resolve_id(self, model, row: Dict[str, Any], id_key: str, name_key: str) -> Optional[int]:
        """Use the row's ID when given, else the first record whose name contains the row's name."""
        if row.get(id_key):
            return int(row[id_key])
        name = row.get(name_key)
        if not name:
            return None
        match = (
            self.db.query(model.id)
            .filter(model.name.ilike(f"%{name.strip()}%"))
            .order_by(model.name.asc())
            .first()
        )
        return match[0] if match else None

    def _create_investment(self, row: Dict[str, Any]) -> Investment:
        investor_id = self._resolve_id(Investor, row, "investor_id", "investor_name")
        company_id = self._resolve_id(Company, row, "company_id", "company_name")
        if not investor_id or not company_id:
            raise ValueError("Investor or company not found")

        fields = {k: v for k, v in row.items() if k not in ("investor_name", "company_name")}
        fields.update(investor_id=investor_id, company_id=company_id)
        return self.investments.create(
            self._validated(InvestmentCreate, fields), data_source=DataSource.IMPORT
        )

    def import_investments(self, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._import_rows("investments", rows, self._create_investment)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_investors(self) -> List[Dict[str, Any]]:
        return [
            _jsonable(_columns(i))
            for i in self.db.query(Investor).order_by(Investor.name.asc()).all()
        ]

    def export_companies(self) -> List[Dict[str, Any]]:
        return [
            _jsonable(_columns(c))
            for c in self.db.query(Company).order_by(Company.name.asc()).all()
        ]

    def export_investments(self) -> List[Dict[str, Any]]:
        """Investments newest first, with investor and company names and slugs."""
        rows = (
            self.db.query(Investment, Investor.name, Investor.slug, Company.name, Company.slug)
            .join(Investor, Investor.id == Investment.investor_id)
            .join(Company, Company.id == Investment.company_id)
            .order_by(Investment.invested_at.desc().nulls_last(), Investment.id.desc())
            .all()
        )
        return [
            _jsonable({
                **_columns(investment),
                "investor_name": investor_name,
                "investor_slug": investor_slug,
                "company_name": company_name,
                "company_slug": company_slug,
            })
            for investment, investor_name, investor_slug, company_name, company_slug in rows
        ]

    def export_all(self) -> Dict[str, Any]:
        logger.info("Exporting all data")
        return {
            "investors": self.export_investors(),
            "companies": self.export_companies(),
            "investments": self.export_investments(),
            "exported_at": datetime.utcnow().isoformat(),
        }

    @staticmethod
    def to_csv(rows: List[Dict[str, Any]]) -> str:
        return csv_stringify(rows)
