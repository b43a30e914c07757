"""
System API router.

Routes defined at root level:
- GET /health - Health check endpoint

These routes are mounted at the root level in the main app.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from shop.api.responses import HealthCheckResponse

logger = logging.getLogger(__name__)

# Create the router for system endpoints
router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check() -> HealthCheckResponse:
    """Health check endpoint."""
    logger.debug("Health check requested")
    return HealthCheckResponse(
        status="healthy",
        version="0.1.0",
        timestamp=datetime.now(timezone.utc),
    )
