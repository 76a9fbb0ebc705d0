"""
SQLAlchemy models for the investor research record store.

Investors and companies are linked two ways: Investment rows record
individual deals (stage, amount, date), PortfolioCompany rows record the
current investor/company relationship (one per pair). InvestorConnection
edges are derived from PortfolioCompany by the connections engine.
"""
import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _enum_column(enum_cls, length: int = 30, **kwargs) -> Column:
    return Column(
        Enum(enum_cls, native_enum=False, length=length,
             values_callable=lambda e: [m.value for m in e]),
        **kwargs,
    )


class InvestorType(str, enum.Enum):
    VC_FIRM = "VC_FIRM"
    ANGEL = "ANGEL"
    PE_FIRM = "PE_FIRM"
    CORPORATE_VC = "CORPORATE_VC"
    ACCELERATOR = "ACCELERATOR"
    FAMILY_OFFICE = "FAMILY_OFFICE"
    HEDGE_FUND = "HEDGE_FUND"
    INDIVIDUAL = "INDIVIDUAL"
    OTHER = "OTHER"


class CompanyType(str, enum.Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"
    ACQUIRED = "ACQUIRED"
    DEFUNCT = "DEFUNCT"


class CompanyStage(str, enum.Enum):
    PRE_SEED = "PRE_SEED"
    SEED = "SEED"
    SERIES_A = "SERIES_A"
    SERIES_B = "SERIES_B"
    SERIES_C = "SERIES_C"
    SERIES_D_PLUS = "SERIES_D_PLUS"
    GROWTH = "GROWTH"
    PUBLIC = "PUBLIC"


class InvestmentStage(str, enum.Enum):
    PRE_SEED = "PRE_SEED"
    SEED = "SEED"
    SERIES_A = "SERIES_A"
    SERIES_B = "SERIES_B"
    SERIES_C = "SERIES_C"
    SERIES_D_PLUS = "SERIES_D_PLUS"
    GROWTH = "GROWTH"
    IPO = "IPO"
    SECONDARY = "SECONDARY"
    DEBT = "DEBT"
    GRANT = "GRANT"
    OTHER = "OTHER"


class InvestmentStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EXITED = "EXITED"
    ACQUIRED = "ACQUIRED"
    IPO = "IPO"
    DEFUNCT = "DEFUNCT"
    UNKNOWN = "UNKNOWN"


class DataSource(str, enum.Enum):
    MANUAL = "MANUAL"
    SEC_EDGAR = "SEC_EDGAR"
    YAHOO_FINANCE = "YAHOO_FINANCE"
    OPENCORPORATES = "OPENCORPORATES"
    WIKIDATA = "WIKIDATA"
    NEWSAPI = "NEWSAPI"
    WEB_SCRAPING = "WEB_SCRAPING"
    API = "API"
    IMPORT = "IMPORT"


class ScrapingJobStatus(str, enum.Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Investor(Base):
    """A VC firm, angel, fund or other investing entity."""
    __tablename__ = "investors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    type = _enum_column(InvestorType, nullable=False, default=InvestorType.VC_FIRM)
    description = Column(Text, nullable=True)
    website = Column(String(500), nullable=True)
    logo_url = Column(String(500), nullable=True)

    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)

    founded_year = Column(Integer, nullable=True)
    aum = Column(Float, nullable=True)  # assets under management, USD
    team_size = Column(Integer, nullable=True)

    linkedin_url = Column(String(500), nullable=True)
    twitter_url = Column(String(500), nullable=True)

    data_source = _enum_column(DataSource, nullable=False, default=DataSource.MANUAL)
    raw_data = Column(JSON, nullable=True)
    last_fetched = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Investor(id={self.id}, name={self.name}, type={self.type})>"


class Company(Base):
    """A public or private company tracked by the platform."""
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    type = _enum_column(CompanyType, nullable=False, default=CompanyType.PRIVATE)
    stage = _enum_column(CompanyStage, nullable=True)
    description = Column(Text, nullable=True)
    website = Column(String(500), nullable=True)
    logo_url = Column(String(500), nullable=True)

    headquarters = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)

    industry = Column(String(255), nullable=True, index=True)
    sector = Column(String(255), nullable=True)
    founded_year = Column(Integer, nullable=True)
    employee_count = Column(Integer, nullable=True)

    ticker = Column(String(20), nullable=True, index=True)
    exchange = Column(String(50), nullable=True)
    market_cap = Column(Float, nullable=True)
    revenue = Column(Float, nullable=True)

    linkedin_url = Column(String(500), nullable=True)
    twitter_url = Column(String(500), nullable=True)

    data_source = _enum_column(DataSource, nullable=False, default=DataSource.MANUAL)
    raw_data = Column(JSON, nullable=True)  # per-provider audit blob from enrichment
    last_fetched = Column(DateTime, nullable=True)  # staleness signal

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Company(id={self.id}, name={self.name}, ticker={self.ticker})>"


class FundingRound(Base):
    """A priced or announced financing round for a company."""
    __tablename__ = "funding_rounds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    stage = _enum_column(InvestmentStage, nullable=False)
    amount = Column(Float, nullable=True)
    valuation = Column(Float, nullable=True)
    announced_at = Column(DateTime, nullable=True)
    lead_investor_id = Column(Integer, ForeignKey("investors.id", ondelete="SET NULL"), nullable=True)
    source_url = Column(String(500), nullable=True)
    data_source = _enum_column(DataSource, nullable=False, default=DataSource.MANUAL)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<FundingRound(id={self.id}, company_id={self.company_id}, stage={self.stage})>"


class Investment(Base):
    """One investor's participation in one company deal."""
    __tablename__ = "investments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    investor_id = Column(Integer, ForeignKey("investors.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    funding_round_id = Column(Integer, ForeignKey("funding_rounds.id", ondelete="SET NULL"), nullable=True)

    stage = _enum_column(InvestmentStage, nullable=False)
    status = _enum_column(InvestmentStatus, nullable=False, default=InvestmentStatus.ACTIVE)
    amount = Column(Float, nullable=True)
    ownership = Column(Float, nullable=True)  # percent
    invested_at = Column(DateTime, nullable=True)
    exited_at = Column(DateTime, nullable=True)
    lead_investor = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    data_source = _enum_column(DataSource, nullable=False, default=DataSource.MANUAL)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return (
            f"<Investment(id={self.id}, investor_id={self.investor_id}, "
            f"company_id={self.company_id}, stage={self.stage})>"
        )


class PortfolioCompany(Base):
    """Current relationship between an investor and a portfolio company."""
    __tablename__ = "portfolio_companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    investor_id = Column(Integer, ForeignKey("investors.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    status = _enum_column(InvestmentStatus, nullable=False, default=InvestmentStatus.ACTIVE)
    first_invested_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("investor_id", "company_id", name="uq_portfolio_investor_company"),
    )

    def __repr__(self) -> str:
        return (
            f"<PortfolioCompany(investor_id={self.investor_id}, "
            f"company_id={self.company_id}, status={self.status})>"
        )


class InvestorConnection(Base):
    """
    Directed co-investment edge investor -> related_investor.

    Always stored in both directions with the same strength.
    """
    __tablename__ = "investor_connections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    investor_id = Column(Integer, ForeignKey("investors.id", ondelete="CASCADE"), nullable=False, index=True)
    related_investor_id = Column(Integer, ForeignKey("investors.id", ondelete="CASCADE"), nullable=False, index=True)
    strength = Column(Integer, nullable=False, default=0)  # number of shared companies
    shared_companies = Column(JSON, nullable=False, default=list)  # shared company IDs

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("investor_id", "related_investor_id", name="uq_investor_connection_pair"),
        Index("ix_investor_connections_strength", "investor_id", "strength"),
    )

    def __repr__(self) -> str:
        return (
            f"<InvestorConnection({self.investor_id}->{self.related_investor_id}, "
            f"strength={self.strength})>"
        )


class MarketData(Base):
    """Daily price snapshot for a public company."""
    __tablename__ = "market_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(DateTime, nullable=False)
    open = Column(Float, nullable=True)
    high = Column(Float, nullable=True)
    low = Column(Float, nullable=True)
    close = Column(Float, nullable=True)
    volume = Column(Float, nullable=True)
    market_cap = Column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "date", name="uq_market_data_company_date"),
    )


class ScrapingJob(Base):
    """Audit record for one portfolio scraping attempt."""
    __tablename__ = "scraping_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(String(1000), nullable=False)
    investor_id = Column(Integer, ForeignKey("investors.id", ondelete="SET NULL"), nullable=True, index=True)
    status = _enum_column(ScrapingJobStatus, length=20, nullable=False, default=ScrapingJobStatus.PENDING)
    result = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<ScrapingJob(id={self.id}, url={self.url}, status={self.status})>"
