"""
PRREVIEW FastAPI Application
============================

HTTP surface for review mutations. Reports are a Python API only
(src.reviews.reports).

Endpoints:
    GET    /api/health                   - Store health check
    POST   /api/reviews                  - Submit a review
    PATCH  /api/reviews/{review_id}      - Edit a review
    DELETE /api/reviews/{review_id}      - Remove a review
    POST   /api/ratings                  - Record a rating
    DELETE /api/customers/{customer_id}  - Remove a customer (cascades reviews)

Usage:
    uvicorn src.api.main:app --reload --port 8000

    Or with CLI:
    python -m src.api.main
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging
import os

from ..data.config import get_settings
from ..orchestrator.logging_config import setup_logging_from_settings
from .models import HealthResponse
from .review_routes import router as review_router, reset_review_service
from . import db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging_from_settings()
    logger.info("Starting PRREVIEW API...")

    db.get_store()

    yield

    reset_review_service()
    db.close_store()
    logger.info("Shutting down PRREVIEW API...")


app = FastAPI(
    title="PRREVIEW API",
    description="Product reviews with consistent average ratings",
    version=get_settings().app_version,
    lifespan=lifespan,
)

app.include_router(review_router)


# ============================================================================
# HEALTH ENDPOINT
# ============================================================================

@app.get("/api/health", response_model=HealthResponse)
def health_check():
    """Health check endpoint: store connectivity and backend."""
    store_health = db.check_health()
    overall = "healthy" if store_health["status"] == "connected" else "degraded"

    return HealthResponse(
        status=overall,
        version=get_settings().app_version,
        backend=store_health.get("backend"),
        store=store_health["status"],
        store_version=store_health.get("version"),
    )


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("src.api.main:app", host="0.0.0.0", port=port)
