"""
Common Pydantic models and column helpers for the Screenings API
"""
from datetime import datetime, timezone

from pydantic import BaseModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthResponse(BaseModel):
    """
    Health check response model
    """
    status: str
    message: str
    timestamp: datetime
    version: str


class MessageResponse(BaseModel):
    message: str
