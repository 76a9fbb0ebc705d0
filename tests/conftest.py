"""
Pytest configuration and shared fixtures.
"""
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core import models_queue  # noqa: F401  (registers job_queue)
from app.core.config import reset_settings
from app.core.models import (
    Base,
    Company,
    CompanyType,
    DataSource,
    Investor,
    InvestorType,
)
from app.core.rate_limiter import reset_rate_limiter
from app.core.slugs import slugify
from app.sources.portfolio_scraper.scraper import ScrapeResult
from app.sources.registry import reset_provider_clients


@pytest.fixture(scope="function")
def clean_env(monkeypatch):
    """
    Clean environment for testing.

    Removes all app-related env vars to ensure clean state.
    """
    env_vars = [
        "DATABASE_URL",
        "LOG_LEVEL",
        "REDIS_HOST",
        "REDIS_PORT",
        "RATE_LIMIT_TTL",
        "RATE_LIMIT_MAX",
        "DEFAULT_CACHE_TTL_SECONDS",
        "MARKET_DATA_TTL_SECONDS",
        "NEWS_TTL_SECONDS",
        "NEWS_API_KEY",
        "OPENCORPORATES_API_KEY",
        "SEC_EDGAR_USER_AGENT",
        "WORKER_POLL_INTERVAL",
        "CORS_ORIGINS",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)

    reset_settings()
    reset_rate_limiter()
    reset_provider_clients()

    yield

    reset_settings()
    reset_rate_limiter()
    reset_provider_clients()


@pytest.fixture(scope="function")
def test_db():
    """
    Create an in-memory SQLite database for testing.

    Fresh database for each test. StaticPool keeps a single connection so
    API handlers running in the threadpool see the same data.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


# =============================================================================
# Cache and providers
# =============================================================================


class FakeCache:
    """In-process stand-in for CacheService with the same async surface."""

    def __init__(self):
        self.store: Dict[str, Any] = {}
        self.ttls: Dict[str, Optional[int]] = {}
        self.default_ttl = 604800
        self.market_data_ttl = 3600
        self.news_ttl = 86400

    async def get(self, key: str) -> Optional[Any]:
        return self.store.get(key)

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        self.store[key] = value
        self.ttls[key] = ttl_seconds

    async def delete(self, key: str) -> None:
        self.store.pop(key, None)
        self.ttls.pop(key, None)


@pytest.fixture
def fake_cache():
    return FakeCache()


def make_providers() -> MagicMock:
    """
    Provider bundle whose calls all return "nothing found".

    Tests set return_value/side_effect on the methods they care about.
    """
    providers = MagicMock()
    providers.edgar.get_company_by_ticker = AsyncMock(return_value=None)
    providers.edgar.get_recent_filings = AsyncMock(return_value=[])
    providers.yahoo.get_quote = AsyncMock(return_value=None)
    providers.yahoo.get_company_profile = AsyncMock(return_value=None)
    providers.yahoo.get_financials = AsyncMock(return_value=None)
    providers.opencorporates.search_companies = AsyncMock(return_value=[])
    providers.opencorporates.get_officers = AsyncMock(return_value=[])
    providers.wikidata.get_company_by_name = AsyncMock(return_value=None)
    providers.news.get_company_news = AsyncMock(return_value=[])
    providers.scraper.scrape_portfolio = AsyncMock(return_value=ScrapeResult(success=True))
    providers.scraper.resolve_config = MagicMock(return_value=None)
    providers.api_clients = MagicMock(return_value=())
    providers.close = AsyncMock()
    return providers


@pytest.fixture
def mock_providers():
    return make_providers()


# =============================================================================
# Records
# =============================================================================


def make_investor(db, name: str, **fields) -> Investor:
    fields.setdefault("type", InvestorType.VC_FIRM)
    investor = Investor(name=name, slug=slugify(name), data_source=DataSource.MANUAL, **fields)
    db.add(investor)
    db.commit()
    db.refresh(investor)
    return investor


def make_company(db, name: str, **fields) -> Company:
    fields.setdefault("type", CompanyType.PRIVATE)
    company = Company(name=name, slug=slugify(name), data_source=DataSource.MANUAL, **fields)
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


@pytest.fixture
def sample_investor(test_db):
    """Sequoia Capital, a VC firm."""
    return make_investor(
        test_db,
        "Sequoia Capital",
        description="Venture capital firm focused on technology",
        website="https://www.sequoiacap.com",
        city="Menlo Park",
        country="USA",
        founded_year=1972,
    )


@pytest.fixture
def sample_company(test_db):
    """Airbnb, a public company with a ticker."""
    return make_company(
        test_db,
        "Airbnb",
        type=CompanyType.PUBLIC,
        ticker="ABNB",
        industry="Travel",
        website="https://www.airbnb.com",
    )


# =============================================================================
# HTTP surface
# =============================================================================


@pytest.fixture
def client(clean_env, test_db, mock_providers):
    """TestClient bound to the in-memory database and mocked providers."""
    from fastapi.testclient import TestClient

    from app.core.database import get_db
    from app.main import app
    from app.sources.registry import get_provider_clients

    def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_provider_clients] = lambda: mock_providers

    yield TestClient(app)

    app.dependency_overrides.clear()
