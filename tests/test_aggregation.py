"""
Unit tests for app/enrichment/aggregation.py

Providers are AsyncMocks from conftest.make_providers(); the record store is
in-memory SQLite.
"""
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from app.core.api_errors import EntityNotFoundError, TransportError
from app.enrichment.aggregation import AggregationEngine, EnrichedEntity
from tests.conftest import make_company


def _engine(db, providers):
    return AggregationEngine(db, providers)


# =============================================================================
# enrich_company
# =============================================================================


class TestEnrichCompany:

    @pytest.mark.asyncio
    async def test_database_only_when_providers_find_nothing(self, test_db, mock_providers, sample_company):
        enriched = await _engine(test_db, mock_providers).enrich_company(sample_company.id)

        assert enriched.sources == ["database"]
        assert enriched.basic["name"] == "Airbnb"
        assert enriched.basic["industry"] == "Travel"
        assert enriched.financial is None
        assert enriched.legal is None
        assert enriched.news is None

    @pytest.mark.asyncio
    async def test_earlier_source_wins(self, test_db, mock_providers):
        company = make_company(test_db, "Acme", ticker="ACME")
        mock_providers.edgar.get_company_by_ticker.return_value = {"name": "Acme", "description": "A"}
        mock_providers.wikidata.get_company_by_name.return_value = {
            "description": "B", "website": "https://acme.example", "founded_year": 1999,
        }

        enriched = await _engine(test_db, mock_providers).enrich_company(company.id)

        assert enriched.basic["description"] == "A"
        # Wikidata still fills what nobody else set
        assert enriched.basic["website"] == "https://acme.example"
        assert enriched.basic["founded_year"] == 1999
        assert enriched.sources == ["database", "SEC EDGAR", "Wikidata"]

    @pytest.mark.asyncio
    async def test_database_values_are_never_overwritten(self, test_db, mock_providers, sample_company):
        mock_providers.yahoo.get_company_profile.return_value = {
            "industry": "Internet Content", "sector": "Communication Services",
        }
        enriched = await _engine(test_db, mock_providers).enrich_company(sample_company.id)

        assert enriched.basic["industry"] == "Travel"
        assert enriched.basic["sector"] == "Communication Services"

    @pytest.mark.asyncio
    async def test_failing_provider_is_skipped(self, test_db, mock_providers, sample_company):
        mock_providers.yahoo.get_quote.side_effect = TransportError("connection reset", source="yahoo-finance")
        mock_providers.wikidata.get_company_by_name.return_value = {"description": "Lodging marketplace"}

        enriched = await _engine(test_db, mock_providers).enrich_company(sample_company.id)

        assert enriched.sources[0] == "database"
        assert "Wikidata" in enriched.sources
        assert "Yahoo Finance" not in enriched.sources
        assert enriched.basic["description"] == "Lodging marketplace"

    @pytest.mark.asyncio
    async def test_no_ticker_skips_market_providers(self, test_db, mock_providers):
        company = make_company(test_db, "Stripe")
        await _engine(test_db, mock_providers).enrich_company(company.id)

        mock_providers.edgar.get_company_by_ticker.assert_not_called()
        mock_providers.yahoo.get_quote.assert_not_called()
        mock_providers.opencorporates.search_companies.assert_awaited_once_with("Stripe")
        mock_providers.news.get_company_news.assert_awaited_once_with("Stripe", 30)

    @pytest.mark.asyncio
    async def test_ticker_argument_overrides_stored(self, test_db, mock_providers, sample_company):
        await _engine(test_db, mock_providers).enrich_company(sample_company.id, ticker="ABNB.X")
        mock_providers.yahoo.get_quote.assert_awaited_once_with("ABNB.X")

    @pytest.mark.asyncio
    async def test_yahoo_financial_block(self, test_db, mock_providers, sample_company):
        mock_providers.yahoo.get_quote.return_value = {
            "symbol": "ABNB",
            "exchange": "NMS",
            "market_cap": 84e9,
            "regular_market_price": 131.5,
            "regular_market_change_percent": -1.2,
        }
        mock_providers.yahoo.get_financials.return_value = {"revenue": 9.9e9}

        enriched = await _engine(test_db, mock_providers).enrich_company(sample_company.id)

        assert enriched.financial == {
            "ticker": "ABNB",
            "exchange": "NMS",
            "market_cap": 84e9,
            "price": 131.5,
            "price_change": -1.2,
            "revenue": 9.9e9,
        }
        assert set(enriched.raw_data["yahoo_finance"]) == {"quote", "financials"}

    @pytest.mark.asyncio
    async def test_financials_without_quote_give_no_financial_block(self, test_db, mock_providers, sample_company):
        mock_providers.yahoo.get_financials.return_value = {"revenue": 1.0}
        enriched = await _engine(test_db, mock_providers).enrich_company(sample_company.id)

        assert enriched.financial is None
        assert "Yahoo Finance" not in enriched.sources

    @pytest.mark.asyncio
    async def test_opencorporates_legal_block(self, test_db, mock_providers, sample_company):
        mock_providers.opencorporates.search_companies.return_value = [{
            "name": "AIRBNB, INC.",
            "jurisdiction_code": "us_de",
            "company_number": "4596599",
            "registered_address": {"locality": "San Francisco", "region": "CA"},
        }]
        mock_providers.opencorporates.get_officers.return_value = [
            {"name": "BRIAN CHESKY", "position": "ceo", "start_date": None},
        ]

        enriched = await _engine(test_db, mock_providers).enrich_company(sample_company.id)

        assert enriched.legal == {
            "jurisdiction": "us_de",
            "company_number": "4596599",
            "registered_address": "San Francisco, CA",
            "officers": [{"name": "BRIAN CHESKY", "position": "ceo"}],
        }
        assert enriched.basic["headquarters"] == "San Francisco, CA"

    @pytest.mark.asyncio
    async def test_officer_failure_leaves_empty_list(self, test_db, mock_providers, sample_company):
        mock_providers.opencorporates.search_companies.return_value = [
            {"jurisdiction_code": "us_de", "company_number": "1"},
        ]
        mock_providers.opencorporates.get_officers.side_effect = TransportError("down")

        enriched = await _engine(test_db, mock_providers).enrich_company(sample_company.id)
        assert enriched.legal["officers"] == []

    @pytest.mark.asyncio
    async def test_news_capped_and_trimmed(self, test_db, mock_providers, sample_company):
        mock_providers.news.get_company_news.return_value = [
            {"title": f"story {i}", "source": "Reuters", "published_at": "2024-01-01", "url": f"u{i}",
             "content": "long text"}
            for i in range(12)
        ]
        enriched = await _engine(test_db, mock_providers).enrich_company(sample_company.id)

        assert len(enriched.news) == 10
        assert set(enriched.news[0]) == {"title", "source", "published_at", "url"}
        assert len(enriched.raw_data["news"]) == 12

    @pytest.mark.asyncio
    async def test_unknown_company(self, test_db, mock_providers):
        with pytest.raises(EntityNotFoundError):
            await _engine(test_db, mock_providers).enrich_company(999)

    def test_to_dict(self):
        entity = EnrichedEntity(basic={"name": "x"}, sources=["database"])
        data = entity.to_dict()
        assert data["basic"] == {"name": "x"}
        assert isinstance(data["last_updated"], str)


# =============================================================================
# Persistence and staleness
# =============================================================================


class TestSaveAndStaleness:

    @pytest.mark.asyncio
    async def test_enrich_and_save_writes_fields(self, test_db, mock_providers, sample_company):
        mock_providers.yahoo.get_quote.return_value = {
            "symbol": "ABNB", "exchange": "NMS", "market_cap": 84e9,
        }
        mock_providers.wikidata.get_company_by_name.return_value = {
            "description": "Lodging marketplace", "founded_year": 2008,
        }

        await _engine(test_db, mock_providers).enrich_and_save(sample_company.id)
        test_db.refresh(sample_company)

        assert sample_company.description == "Lodging marketplace"
        assert sample_company.founded_year == 2008
        assert sample_company.exchange == "NMS"
        assert sample_company.market_cap == 84e9
        assert set(sample_company.raw_data) == {"yahoo_finance", "wikidata"}
        assert sample_company.last_fetched is not None

    def test_never_fetched_is_stale(self, test_db, mock_providers, sample_company):
        assert _engine(test_db, mock_providers).is_company_data_stale(sample_company.id) is True

    def test_recent_fetch_is_fresh(self, test_db, mock_providers, sample_company):
        sample_company.last_fetched = datetime.utcnow() - timedelta(days=1)
        test_db.commit()
        engine = _engine(test_db, mock_providers)

        assert engine.is_company_data_stale(sample_company.id) is False
        assert engine.is_company_data_stale(sample_company.id, max_age_days=0) is True

    def test_missing_company_is_stale(self, test_db, mock_providers):
        assert _engine(test_db, mock_providers).is_company_data_stale(12345) is True

    def test_get_stale_companies(self, test_db, mock_providers):
        fresh = make_company(test_db, "Fresh", last_fetched=datetime.utcnow())
        old = make_company(test_db, "Old", last_fetched=datetime.utcnow() - timedelta(days=90))
        never = make_company(test_db, "Never")

        stale = _engine(test_db, mock_providers).get_stale_companies()
        assert stale == [old.id, never.id]
        assert fresh.id not in stale

    @pytest.mark.asyncio
    async def test_batch_collects_failures(self, test_db, mock_providers, sample_company):
        with patch("app.enrichment.aggregation.asyncio.sleep") as sleep:
            result = await _engine(test_db, mock_providers).batch_enrich_companies(
                [sample_company.id, 4242]
            )

        assert result["success"] == 1
        assert result["failed"] == 1
        assert result["errors"][0]["company_id"] == 4242
        assert "not found" in result["errors"][0]["error"]
        sleep.assert_awaited_once_with(1.0)


# =============================================================================
# Investors
# =============================================================================


class TestEnrichInvestor:

    @pytest.mark.asyncio
    async def test_fills_only_empty_fields(self, test_db, mock_providers, sample_investor):
        sample_investor.description = None
        test_db.commit()
        mock_providers.wikidata.get_company_by_name.return_value = {
            "id": "Q1143440",
            "description": "American venture capital firm",
            "website": "https://sequoiacap.com",
            "founded_year": 1972,
        }

        updated = await _engine(test_db, mock_providers).enrich_investor(sample_investor.id)
        test_db.refresh(sample_investor)

        assert updated == {"description": "American venture capital firm"}
        assert sample_investor.website == "https://www.sequoiacap.com"
        assert sample_investor.raw_data["wikidata"]["id"] == "Q1143440"
        assert sample_investor.last_fetched is not None

    @pytest.mark.asyncio
    async def test_no_match(self, test_db, mock_providers, sample_investor):
        assert await _engine(test_db, mock_providers).enrich_investor(sample_investor.id) == {}

    @pytest.mark.asyncio
    async def test_unknown_investor(self, test_db, mock_providers):
        with pytest.raises(EntityNotFoundError):
            await _engine(test_db, mock_providers).enrich_investor(77)
