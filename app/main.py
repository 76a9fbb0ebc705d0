"""
Main FastAPI application.

Record store CRUD, provider enrichment, search, connections, import/export
and background job status for the investor research platform.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.api.v1 import (
    companies,
    connections,
    import_export,
    investments,
    investors,
    queue,
    rate_limits,
    search,
    sources,
)
from app.core.api_errors import DomainError
from app.core.config import get_settings
from app.core.database import create_tables, get_engine
from app.core.rate_limiter import get_rate_limiter
from app.sources.registry import close_provider_clients

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Investor Research Platform"
SERVICE_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Runs on startup and shutdown.
    """
    # Startup
    settings = get_settings()
    logger.info(f"Starting {SERVICE_NAME}")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(
        f"Inbound rate limit: {settings.rate_limit_max} requests / {settings.rate_limit_ttl}s"
    )

    try:
        create_tables()
        logger.info("Database tables ready")
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down")
    await close_provider_clients()


app = FastAPI(
    title=SERVICE_NAME,
    description="Investor and company research: records, enrichment, connections and portfolio scraping",
    version=SERVICE_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def throttle_inbound(request: Request, call_next):
    """Sliding-window limit per client address (RATE_LIMIT_MAX per RATE_LIMIT_TTL)."""
    settings = get_settings()
    client = request.client.host if request.client else "unknown"
    allowed = get_rate_limiter().check_limit(
        f"inbound:{client}", settings.rate_limit_max, settings.rate_limit_ttl * 1000
    )
    if not allowed:
        logger.warning(f"Throttled inbound request from {client}: {request.url.path}")
        return JSONResponse(status_code=429, content={"detail": "Too many requests"})
    return await call_next(request)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Include routers
app.include_router(investors.router, prefix="/api/v1")
app.include_router(companies.router, prefix="/api/v1")
app.include_router(investments.router, prefix="/api/v1")
app.include_router(search.router, prefix="/api/v1")
app.include_router(connections.router, prefix="/api/v1")
app.include_router(import_export.router, prefix="/api/v1")
app.include_router(queue.router, prefix="/api/v1")
app.include_router(rate_limits.router, prefix="/api/v1")
app.include_router(sources.router, prefix="/api/v1")


@app.get("/")
def root():
    """Root endpoint with service info."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "sources": ["sec-edgar", "yahoo-finance", "opencorporates", "wikidata", "newsapi", "scraper"],
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """
    Health check endpoint.

    Returns status of the service and database connectivity.
    """
    health_status = {
        "status": "healthy",
        "service": "running",
        "database": "unknown"
    }

    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        health_status["status"] = "degraded"
        health_status["database"] = f"error: {str(e)}"
        logger.warning(f"Database health check failed: {e}")

    return health_status
