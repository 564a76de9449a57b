"""
FastAPI application entry point for CatalogWatch.

Run with:
    uvicorn catalogwatch.main:app
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from catalogwatch import __version__
from catalogwatch.api.routes import billing, cron, health, monitoring, rules, schedule, webhooks_shopify
from catalogwatch.config.plan_limits import get_plan_limits
from catalogwatch.config.settings import BillingConfig, get_cron_secret, get_environment, is_production
from catalogwatch.database.session import dispose_engine

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting CatalogWatch API", extra={"environment": get_environment()})

    if is_production() and not os.getenv("DATABASE_URL"):
        logger.error("DATABASE_URL is not set. Database-backed endpoints will return 503.")

    if is_production() and not get_cron_secret():
        logger.error("CRON_SECRET is not set. The cron endpoint will refuse all calls.")

    billing_config = BillingConfig.from_env()
    if billing_config.effective_dev_plan:
        logger.warning("Billing developer override active", extra={"plan": billing_config.effective_dev_plan})

    plan_limits = get_plan_limits()
    logger.info("Plan limits loaded", extra={"plans": sorted(plan_limits.plans)})

    yield

    logger.info("Shutting down CatalogWatch API")
    dispose_engine()


app = FastAPI(
    title="CatalogWatch API",
    description="Catalog compliance monitoring, scheduled audits and plan gating for Shopify stores",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(health.router)

# Bearer-secret protected
app.include_router(cron.router)

# HMAC verified, no shop header
app.include_router(webhooks_shopify.router)

# Shop-scoped via X-Shopify-Shop-Domain
app.include_router(monitoring.router)
app.include_router(rules.router)
app.include_router(schedule.router)
app.include_router(billing.router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    logger.error(
        "Unhandled exception",
        extra={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path,
        },
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )
