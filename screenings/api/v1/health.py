"""
Health check endpoints for monitoring application status
"""
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request
from sqlalchemy import text

from screenings.models.common import HealthResponse

router = APIRouter(prefix="/health")

VERSION = "1.0.0"


@router.get("", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint to verify the API is running
    """
    return HealthResponse(
        status="healthy",
        message="Screenings API is running",
        timestamp=datetime.now(timezone.utc),
        version=VERSION,
    )


@router.get("/ready", response_model=HealthResponse)
async def readiness_check(request: Request):
    """
    Readiness check: the database must answer a trivial query
    """
    database = request.app.state.db
    try:
        async with database.session() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Database not ready: {str(e)}")

    return HealthResponse(
        status="ready",
        message="Screenings API is ready to accept requests",
        timestamp=datetime.now(timezone.utc),
        version=VERSION,
    )
