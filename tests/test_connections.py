"""
Unit tests for app/network/connections.py
"""
import pytest

from app.core.models import InvestorConnection, PortfolioCompany
from app.network import ConnectionsEngine
from tests.conftest import make_company, make_investor


def link(db, investor, company):
    db.add(PortfolioCompany(investor_id=investor.id, company_id=company.id))
    db.commit()


@pytest.fixture
def network(test_db):
    """
    Sequoia and a16z share Airbnb and Stripe, a16z and Benchmark share
    Stripe, Accel has only Notion.
    """
    sequoia = make_investor(test_db, "Sequoia Capital")
    a16z = make_investor(test_db, "Andreessen Horowitz")
    benchmark = make_investor(test_db, "Benchmark")
    accel = make_investor(test_db, "Accel")

    airbnb = make_company(test_db, "Airbnb")
    stripe = make_company(test_db, "Stripe")
    notion = make_company(test_db, "Notion")

    for investor, company in [
        (sequoia, airbnb), (sequoia, stripe),
        (a16z, airbnb), (a16z, stripe),
        (benchmark, stripe),
        (accel, notion),
    ]:
        link(test_db, investor, company)

    return {
        "sequoia": sequoia, "a16z": a16z, "benchmark": benchmark, "accel": accel,
        "airbnb": airbnb, "stripe": stripe, "notion": notion,
    }


def edges(db):
    return {
        (e.investor_id, e.related_investor_id): (e.strength, sorted(e.shared_companies))
        for e in db.query(InvestorConnection).all()
    }


# =============================================================================
# Discovery
# =============================================================================


class TestDiscovery:

    def test_edges_are_symmetric_with_shared_count(self, test_db, network):
        n = network
        created = ConnectionsEngine(test_db).discover_investor_connections()

        assert created == 6
        found = edges(test_db)
        pair = sorted([n["airbnb"].id, n["stripe"].id])
        assert found[(n["sequoia"].id, n["a16z"].id)] == (2, pair)
        assert found[(n["a16z"].id, n["sequoia"].id)] == (2, pair)
        assert found[(n["benchmark"].id, n["sequoia"].id)] == (1, [n["stripe"].id])
        assert all(n["accel"].id not in key for key in found)

    def test_rerun_is_idempotent(self, test_db, network):
        engine = ConnectionsEngine(test_db)
        engine.discover_investor_connections()
        before = edges(test_db)

        assert engine.discover_investor_connections() == 6
        assert edges(test_db) == before
        assert test_db.query(InvestorConnection).count() == 6

    def test_strength_follows_portfolio_changes(self, test_db, network):
        n = network
        engine = ConnectionsEngine(test_db)
        engine.discover_investor_connections()

        link(test_db, n["accel"], n["stripe"])
        test_db.query(PortfolioCompany).filter(
            PortfolioCompany.investor_id == n["a16z"].id,
            PortfolioCompany.company_id == n["airbnb"].id,
        ).delete()
        test_db.commit()
        engine.discover_investor_connections()

        found = edges(test_db)
        assert found[(n["sequoia"].id, n["a16z"].id)][0] == 1
        assert found[(n["accel"].id, n["benchmark"].id)] == (1, [n["stripe"].id])

    def test_pairs_without_shared_companies_are_removed(self, test_db, network):
        n = network
        engine = ConnectionsEngine(test_db)
        engine.discover_investor_connections()

        test_db.query(PortfolioCompany).filter(
            PortfolioCompany.investor_id == n["benchmark"].id
        ).delete()
        test_db.commit()

        assert engine.discover_investor_connections() == 2
        assert all(n["benchmark"].id not in key for key in edges(test_db))

    def test_empty_store(self, test_db):
        assert ConnectionsEngine(test_db).discover_investor_connections() == 0


# =============================================================================
# Queries
# =============================================================================


class TestQueries:

    def test_investor_network_strongest_first(self, test_db, network):
        n = network
        engine = ConnectionsEngine(test_db)
        engine.discover_investor_connections()

        result = engine.get_investor_network(n["sequoia"].id)

        assert [r["related_investor"]["name"] for r in result] == ["Andreessen Horowitz", "Benchmark"]
        assert result[0]["strength"] == 2
        assert {c["name"] for c in result[0]["shared_companies"]} == {"Airbnb", "Stripe"}
        assert result[0]["investor"]["name"] == "Sequoia Capital"

    def test_investor_network_min_strength(self, test_db, network):
        n = network
        engine = ConnectionsEngine(test_db)
        engine.discover_investor_connections()

        result = engine.get_investor_network(n["sequoia"].id, min_strength=2)
        assert [r["related_investor"]["name"] for r in result] == ["Andreessen Horowitz"]
        assert engine.get_investor_network(n["accel"].id) == []

    def test_company_network(self, test_db, network):
        n = network
        result = ConnectionsEngine(test_db).get_company_network(n["airbnb"].id)

        assert len(result) == 1
        assert result[0]["related_company"]["name"] == "Stripe"
        assert [i["name"] for i in result[0]["shared_investors"]] == [
            "Sequoia Capital", "Andreessen Horowitz",
        ]
        assert result[0]["connection_type"] == "SHARED_INVESTORS"

    def test_company_network_without_investors(self, test_db, network):
        lonely = make_company(test_db, "Lonely Co")
        assert ConnectionsEngine(test_db).get_company_network(lonely.id) == []

    def test_potential_co_investors(self, test_db, network):
        n = network
        engine = ConnectionsEngine(test_db)
        engine.discover_investor_connections()

        # Airbnb's investors are Sequoia and a16z; Benchmark is connected to both
        result = engine.find_potential_co_investors(n["airbnb"].id)

        assert result == [{
            "investor": {
                "id": n["benchmark"].id,
                "name": "Benchmark",
                "slug": "benchmark",
                "type": "VC_FIRM",
                "logo_url": None,
            },
            "total_strength": 2,
        }]

    def test_potential_co_investors_excludes_current(self, test_db, network):
        n = network
        engine = ConnectionsEngine(test_db)
        engine.discover_investor_connections()

        result = engine.find_potential_co_investors(n["stripe"].id)
        assert result == []

    def test_potential_co_investors_limit_counts_only_known_investors(self, test_db, network):
        n = network
        engine = ConnectionsEngine(test_db)
        engine.discover_investor_connections()
        # a stronger edge whose investor row no longer exists
        test_db.add(InvestorConnection(
            investor_id=n["sequoia"].id, related_investor_id=9999, strength=5, shared_companies=[],
        ))
        test_db.commit()

        result = engine.find_potential_co_investors(n["airbnb"].id, limit=1)

        assert [r["investor"]["name"] for r in result] == ["Benchmark"]

    def test_network_stats(self, test_db, network):
        engine = ConnectionsEngine(test_db)
        empty = engine.get_network_stats()
        assert empty["total_investor_connections"] == 0
        assert empty["strongest_connections"] == []

        engine.discover_investor_connections()
        stats = engine.get_network_stats()

        assert stats["total_investor_connections"] == 6
        assert stats["avg_connections_per_investor"] == 6 / 4
        assert len(stats["strongest_connections"]) == 5
        assert stats["strongest_connections"][0]["strength"] == 2
        assert {
            stats["strongest_connections"][0]["investor1"],
            stats["strongest_connections"][0]["investor2"],
        } == {"Sequoia Capital", "Andreessen Horowitz"}
