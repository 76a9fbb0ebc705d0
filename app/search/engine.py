"""
Search across investors and companies.

Case-insensitive substring matching on names and descriptions (companies
also on ticker and industry). Names that start with the query rank first,
then results are alphabetical.
"""

import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.models import Company, Investor

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
DEFAULT_LIMIT = 20


class SearchResultType(str, Enum):
    """Types of searchable entities."""
    INVESTOR = "investor"
    COMPANY = "company"


@dataclass
class SearchResult:
    """A single search result."""
    type: str
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _rank_key(name: str, term: str):
    return (not name.lower().startswith(term), name.lower())


class SearchEngine:
    """Unified search over the record store."""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _normalize(query: Optional[str]) -> Optional[str]:
        if not query or len(query.strip()) < MIN_QUERY_LENGTH:
            return None
        return query.strip()

    def _investor_query(self, term: str):
        pattern = f"%{term}%"
        return self.db.query(Investor).filter(
            or_(Investor.name.ilike(pattern), Investor.description.ilike(pattern))
        )

    def _company_query(self, term: str):
        pattern = f"%{term}%"
        return self.db.query(Company).filter(
            or_(
                Company.name.ilike(pattern),
                Company.description.ilike(pattern),
                Company.ticker.ilike(pattern),
                Company.industry.ilike(pattern),
            )
        )

    def search_all(self, query: Optional[str], limit: int = DEFAULT_LIMIT) -> List[SearchResult]:
        """
        Search investors and companies together.

        Queries shorter than two characters return nothing.
        """
        term = self._normalize(query)
        if term is None:
            return []
        logger.info(f"Searching for: {term}")

        investors = self._investor_query(term).order_by(Investor.name.asc()).limit(limit).all()
        companies = self._company_query(term).order_by(Company.name.asc()).limit(limit).all()

        results = [
            SearchResult(
                type=SearchResultType.INVESTOR.value,
                id=i.id,
                name=i.name,
                slug=i.slug,
                description=i.description,
                metadata={"type": _enum_value(i.type), "city": i.city, "country": i.country},
            )
            for i in investors
        ] + [
            SearchResult(
                type=SearchResultType.COMPANY.value,
                id=c.id,
                name=c.name,
                slug=c.slug,
                description=c.description,
                metadata={
                    "type": _enum_value(c.type),
                    "stage": _enum_value(c.stage),
                    "industry": c.industry,
                    "ticker": c.ticker,
                },
            )
            for c in companies
        ]

        lowered = term.lower()
        results.sort(key=lambda r: _rank_key(r.name, lowered))
        return results[:limit]

    def search_investors(self, query: Optional[str], limit: int = DEFAULT_LIMIT) -> List[Investor]:
        term = self._normalize(query)
        if term is None:
            return []
        return self._investor_query(term).order_by(Investor.name.asc()).limit(limit).all()

    def search_companies(self, query: Optional[str], limit: int = DEFAULT_LIMIT) -> List[Company]:
        term = self._normalize(query)
        if term is None:
            return []
        return self._company_query(term).order_by(Company.name.asc()).limit(limit).all()
