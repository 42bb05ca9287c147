import hmac
from uuid import UUID

from fastapi import Header, HTTPException, Request

from screenings.core.config import settings
from screenings.services.payment_processor import PaymentProcessor


# -----------------------------
# Dependency: Current user
# -----------------------------
async def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> UUID:
    """
    The upstream auth gateway authenticates the caller and forwards their id.
    Raises 401 if the header is missing or malformed.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user id")


# -----------------------------
# Dependency: Admin guard
# -----------------------------
async def require_admin(
    x_admin_key: str | None = Header(default=None, alias="X-Admin-Key"),
) -> None:
    if not settings.ADMIN_KEY:
        raise HTTPException(status_code=500, detail="ADMIN_KEY not configured")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, settings.ADMIN_KEY):
        raise HTTPException(status_code=403, detail="Forbidden")


# -----------------------------
# Dependency: Payment processor
# -----------------------------
def get_processor(request: Request) -> PaymentProcessor:
    return request.app.state.processor
