"""
Pydantic schemas for API requests and responses.
"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, Field, StringConstraints, field_validator

from app.core.models import (
    CompanyStage,
    CompanyType,
    DataSource,
    InvestmentStage,
    InvestmentStatus,
    InvestorType,
)


NameStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]


# =============================================================================
# Investors
# =============================================================================


class InvestorFields(BaseModel):
    description: Optional[str] = None
    website: Optional[str] = Field(None, examples=["https://www.sequoiacap.com"])
    logo_url: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    founded_year: Optional[int] = Field(None, ge=1800, examples=[1972])
    aum: Optional[float] = Field(None, ge=0, description="Assets under management, USD")
    team_size: Optional[int] = Field(None, ge=1)
    linkedin_url: Optional[str] = None
    twitter_url: Optional[str] = None


class InvestorCreate(InvestorFields):
    """Request schema for creating an investor."""
    name: NameStr = Field(..., examples=["Sequoia Capital"])
    type: InvestorType = Field(..., examples=["VC_FIRM"])


class InvestorUpdate(InvestorFields):
    """Partial update; only fields that are sent are changed."""
    name: Optional[NameStr] = None
    type: Optional[InvestorType] = None


class InvestorResponse(InvestorFields):
    id: int
    name: str
    slug: str
    type: InvestorType
    data_source: DataSource
    last_fetched: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class InvestorSummary(BaseModel):
    id: int
    name: str
    slug: str
    type: InvestorType

    model_config = {"from_attributes": True}


class InvestorListResponse(BaseModel):
    investors: List[InvestorResponse]
    total: int


# =============================================================================
# Companies
# =============================================================================


class CompanyFields(BaseModel):
    stage: Optional[CompanyStage] = None
    description: Optional[str] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None
    headquarters: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    industry: Optional[str] = None
    sector: Optional[str] = None
    founded_year: Optional[int] = Field(None, ge=1600)
    employee_count: Optional[int] = Field(None, ge=0)
    ticker: Optional[str] = Field(None, max_length=20, examples=["ABNB"])
    exchange: Optional[str] = None
    market_cap: Optional[float] = None
    revenue: Optional[float] = None
    linkedin_url: Optional[str] = None
    twitter_url: Optional[str] = None

    @field_validator("ticker")
    @classmethod
    def normalize_ticker(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().upper()
        return v or None


class CompanyCreate(CompanyFields):
    """Request schema for creating a company."""
    name: NameStr = Field(..., examples=["Airbnb"])
    type: CompanyType = Field(..., examples=["PUBLIC"])


class CompanyUpdate(CompanyFields):
    name: Optional[NameStr] = None
    type: Optional[CompanyType] = None


class CompanyResponse(CompanyFields):
    id: int
    name: str
    slug: str
    type: CompanyType
    data_source: DataSource
    last_fetched: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CompanySummary(BaseModel):
    id: int
    name: str
    slug: str
    type: CompanyType
    industry: Optional[str] = None
    ticker: Optional[str] = None

    model_config = {"from_attributes": True}


class CompanyListResponse(BaseModel):
    companies: List[CompanyResponse]
    total: int


# =============================================================================
# Investments, portfolio and funding
# =============================================================================


class InvestmentFields(BaseModel):
    amount: Optional[float] = Field(None, ge=0)
    ownership: Optional[float] = Field(None, ge=0, le=100, description="Percent owned")
    invested_at: Optional[datetime] = None
    exited_at: Optional[datetime] = None
    notes: Optional[str] = None
    funding_round_id: Optional[int] = None


class InvestmentCreate(InvestmentFields):
    investor_id: int
    company_id: int
    stage: InvestmentStage
    status: Optional[InvestmentStatus] = None
    lead_investor: bool = False


class InvestmentUpdate(InvestmentFields):
    stage: Optional[InvestmentStage] = None
    status: Optional[InvestmentStatus] = None
    lead_investor: Optional[bool] = None


class InvestmentResponse(InvestmentFields):
    id: int
    investor_id: int
    company_id: int
    stage: InvestmentStage
    status: InvestmentStatus
    lead_investor: bool
    data_source: DataSource
    created_at: datetime
    investor: Optional[InvestorSummary] = None
    company: Optional[CompanySummary] = None

    model_config = {"from_attributes": True}


class InvestmentListResponse(BaseModel):
    investments: List[InvestmentResponse]
    total: int


class InvestmentStatistics(BaseModel):
    total_investments: int
    total_amount: float
    by_stage: Dict[str, int]
    by_status: Dict[str, int]


class PortfolioEntry(BaseModel):
    company: CompanySummary
    status: InvestmentStatus
    first_invested_at: Optional[datetime] = None


class PortfolioStats(BaseModel):
    total_companies: int
    active_investments: int
    exits: int
    total_invested: float


class PortfolioResponse(BaseModel):
    investor: InvestorResponse
    portfolio: List[PortfolioEntry]
    stats: PortfolioStats


class FundingRoundCreate(BaseModel):
    stage: InvestmentStage
    amount: Optional[float] = Field(None, ge=0)
    valuation: Optional[float] = Field(None, ge=0)
    announced_at: Optional[datetime] = None
    lead_investor_id: Optional[int] = None
    source_url: Optional[str] = None


class FundingRoundResponse(FundingRoundCreate):
    id: int
    company_id: int
    data_source: DataSource
    created_at: datetime

    model_config = {"from_attributes": True}


class FundingHistoryResponse(BaseModel):
    company: CompanyResponse
    funding_rounds: List[FundingRoundResponse]
    total_raised: float
    latest_valuation: Optional[float] = None


class CompanyInvestorsResponse(BaseModel):
    company: CompanyResponse
    investors: List[InvestmentResponse]
    total_investors: int


# =============================================================================
# Jobs and import results
# =============================================================================


class QueuedJobResponse(BaseModel):
    job_id: int
    queue: str
    status: str


class ScrapeRequest(BaseModel):
    url: Optional[str] = Field(None, description="Portfolio page; defaults to the investor's website")


class ImportErrorItem(BaseModel):
    row: int
    error: str
    data: Dict[str, Any]


class ImportResult(BaseModel):
    success: int
    failed: int
    errors: List[ImportErrorItem]
