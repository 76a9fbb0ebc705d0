"""
Investor co-investment connections.

Two investors are connected when their portfolios share at least one
company; the connection strength is the number of shared companies. Edges
are stored in both directions with the same strength and recomputed in full
on every discovery run.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Set

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.models import Company, Investor, InvestorConnection, PortfolioCompany

logger = logging.getLogger(__name__)

TOP_CONNECTIONS = 5


def _investor_summary(investor: Investor) -> Dict[str, Any]:
    return {
        "id": investor.id,
        "name": investor.name,
        "slug": investor.slug,
        "type": investor.type.value if investor.type else None,
        "logo_url": investor.logo_url,
    }


def _company_summary(company: Company) -> Dict[str, Any]:
    return {
        "id": company.id,
        "name": company.name,
        "slug": company.slug,
        "type": company.type.value if company.type else None,
        "industry": company.industry,
    }


class ConnectionsEngine:
    """
    Derives and queries investor connections from portfolio membership.

    Discovery compares every pair of investors, which is fine for a few
    hundred investors.
    """

    def __init__(self, db: Session):
        self.db = db

    def _portfolio_sets(self) -> Dict[int, Set[int]]:
        portfolios: Dict[int, Set[int]] = {
            investor_id: set() for (investor_id,) in self.db.query(Investor.id).all()
        }
        for investor_id, company_id in self.db.query(
            PortfolioCompany.investor_id, PortfolioCompany.company_id
        ).all():
            portfolios.setdefault(investor_id, set()).add(company_id)
        return portfolios

    def discover_investor_connections(self) -> int:
        """
        Recompute every investor connection from current portfolios.

        Upserts both directed edges for each pair with shared companies and
        removes edges whose pair no longer shares anything.

        Returns:
            Number of directed edges created or updated
        """
        logger.info("Discovering investor connections...")
        portfolios = self._portfolio_sets()
        investor_ids = sorted(portfolios)

        wanted: Dict[tuple, List[int]] = {}
        for i, first in enumerate(investor_ids):
            for second in investor_ids[i + 1:]:
                shared = sorted(portfolios[first] & portfolios[second])
                if shared:
                    wanted[(first, second)] = shared
                    wanted[(second, first)] = shared

        existing = {
            (edge.investor_id, edge.related_investor_id): edge
            for edge in self.db.query(InvestorConnection).all()
        }

        for pair, shared in wanted.items():
            edge = existing.pop(pair, None)
            if edge is None:
                self.db.add(InvestorConnection(
                    investor_id=pair[0],
                    related_investor_id=pair[1],
                    strength=len(shared),
                    shared_companies=shared,
                ))
            else:
                edge.strength = len(shared)
                edge.shared_companies = shared

        for stale in existing.values():
            self.db.delete(stale)

        self.db.commit()

        if existing:
            logger.info(f"Removed {len(existing)} stale investor connections")
        logger.info(f"Created/updated {len(wanted)} investor connections")
        return len(wanted)

    def get_investor_network(self, investor_id: int, min_strength: int = 1) -> List[Dict[str, Any]]:
        """Connections of one investor at or above min_strength, strongest first."""
        edges = (
            self.db.query(InvestorConnection)
            .filter(
                InvestorConnection.investor_id == investor_id,
                InvestorConnection.strength >= min_strength,
            )
            .order_by(InvestorConnection.strength.desc(), InvestorConnection.related_investor_id)
            .all()
        )
        if not edges:
            return []

        investor_ids = {investor_id} | {e.related_investor_id for e in edges}
        investors = {
            i.id: i for i in self.db.query(Investor).filter(Investor.id.in_(investor_ids)).all()
        }
        company_ids = {cid for e in edges for cid in (e.shared_companies or [])}
        companies = {
            c.id: c for c in self.db.query(Company).filter(Company.id.in_(company_ids)).all()
        } if company_ids else {}

        results = []
        for edge in edges:
            related = investors.get(edge.related_investor_id)
            if related is None:
                continue
            results.append({
                "investor": _investor_summary(investors[investor_id]) if investor_id in investors else None,
                "related_investor": _investor_summary(related),
                "shared_companies": [
                    _company_summary(companies[cid])
                    for cid in (edge.shared_companies or [])
                    if cid in companies
                ],
                "strength": edge.strength,
            })
        return results

    def get_company_network(self, company_id: int) -> List[Dict[str, Any]]:
        """
        Companies sharing at least one investor with company_id, ranked by
        the number of shared investors.
        """
        investor_ids = [
            row[0]
            for row in self.db.query(PortfolioCompany.investor_id)
            .filter(PortfolioCompany.company_id == company_id)
            .all()
        ]
        if not investor_ids:
            return []

        links = (
            self.db.query(PortfolioCompany)
            .filter(
                PortfolioCompany.investor_id.in_(investor_ids),
                PortfolioCompany.company_id != company_id,
            )
            .all()
        )

        shared_by_company: Dict[int, List[int]] = defaultdict(list)
        for link in links:
            shared_by_company[link.company_id].append(link.investor_id)

        company_ids = set(shared_by_company) | {company_id}
        companies = {
            c.id: c for c in self.db.query(Company).filter(Company.id.in_(company_ids)).all()
        }
        investors = {
            i.id: i for i in self.db.query(Investor).filter(Investor.id.in_(investor_ids)).all()
        }
        source = companies.get(company_id)

        results = [
            {
                "company": _company_summary(source) if source else None,
                "related_company": _company_summary(companies[related_id]),
                "shared_investors": [_investor_summary(investors[i]) for i in sorted(shared)],
                "connection_type": "SHARED_INVESTORS",
            }
            for related_id, shared in shared_by_company.items()
            if related_id in companies
        ]
        results.sort(key=lambda r: (-len(r["shared_investors"]), r["related_company"]["name"]))
        return results

    def find_potential_co_investors(self, company_id: int, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Investors connected to the company's current investors but not yet in
        its portfolio, ranked by summed connection strength.
        """
        current = {
            row[0]
            for row in self.db.query(PortfolioCompany.investor_id)
            .filter(PortfolioCompany.company_id == company_id)
            .all()
        }
        if not current:
            return []

        edges = (
            self.db.query(InvestorConnection)
            .filter(InvestorConnection.investor_id.in_(current))
            .all()
        )

        totals: Dict[int, int] = defaultdict(int)
        for edge in edges:
            if edge.related_investor_id in current:
                continue
            totals[edge.related_investor_id] += edge.strength

        if not totals:
            return []

        investors = {
            i.id: i for i in self.db.query(Investor).filter(Investor.id.in_(list(totals))).all()
        }
        ranked = sorted(
            ((iid, strength) for iid, strength in totals.items() if iid in investors),
            key=lambda item: (-item[1], item[0]),
        )
        return [
            {"investor": _investor_summary(investors[iid]), "total_strength": strength}
            for iid, strength in ranked[:limit]
        ]

    def get_network_stats(self) -> Dict[str, Any]:
        """Total edges, average edges per investor and the strongest few."""
        total = self.db.query(func.count(InvestorConnection.id)).scalar() or 0
        investor_count = self.db.query(func.count(Investor.id)).scalar() or 0

        strongest = (
            self.db.query(InvestorConnection)
            .order_by(InvestorConnection.strength.desc(), InvestorConnection.id)
            .limit(TOP_CONNECTIONS)
            .all()
        )
        names = dict(
            self.db.query(Investor.id, Investor.name)
            .filter(Investor.id.in_(
                {e.investor_id for e in strongest} | {e.related_investor_id for e in strongest}
            ))
            .all()
        ) if strongest else {}

        return {
            "total_investor_connections": total,
            "avg_connections_per_investor": total / investor_count if investor_count else 0,
            "strongest_connections": [
                {
                    "investor1": names.get(e.investor_id),
                    "investor2": names.get(e.related_investor_id),
                    "strength": e.strength,
                }
                for e in strongest
            ],
        }
