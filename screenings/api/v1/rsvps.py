from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from screenings.api.deps import get_current_user_id
from screenings.db.session import get_db
from screenings.models.common import MessageResponse
from screenings.models.rsvp import RsvpStatus
from screenings.schemas.rsvp import RsvpRead, RsvpRemoved, RsvpRequest, RsvpWithEvent
from screenings.services import rsvp_service
from screenings.services.rsvp_service import RsvpAction

router = APIRouter()


@router.post(
    "/events/{event_id}/rsvp",
    response_model=RsvpRead,
    status_code=status.HTTP_201_CREATED,
    responses={200: {"model": RsvpRemoved}},
)
async def create_or_toggle_rsvp(
    event_id: UUID,
    body: RsvpRequest,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    """
    Create or update the caller's RSVP.
    Sending the status you already hold removes the RSVP (toggle).
    """
    decision, rsvp = await rsvp_service.upsert_rsvp(
        db,
        user_id=user_id,
        event_id=event_id,
        status=body.status,
        toggle=True,
    )

    if decision.action == RsvpAction.delete:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=RsvpRemoved().model_dump(by_alias=True, mode="json"),
        )

    return rsvp


@router.put("/events/{event_id}/rsvp", response_model=RsvpRead)
async def set_rsvp(
    event_id: UUID,
    body: RsvpRequest,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    """
    Idempotent set: repeating the same status changes nothing.
    Used by clients that must not toggle (payment reconciliation).
    """
    _, rsvp = await rsvp_service.upsert_rsvp(
        db,
        user_id=user_id,
        event_id=event_id,
        status=body.status,
        toggle=False,
    )
    return rsvp


@router.delete("/events/{event_id}/rsvp", response_model=MessageResponse)
async def delete_rsvp(
    event_id: UUID,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    await rsvp_service.delete_rsvp(db, user_id=user_id, event_id=event_id)
    return MessageResponse(message="RSVP deleted successfully")


@router.get("/me/rsvps", response_model=list[RsvpWithEvent])
async def list_my_rsvps(
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    return await rsvp_service.list_for_user(db, user_id=user_id)


@router.get("/events/{event_id}/rsvps", response_model=list[RsvpRead])
async def list_event_rsvps(
    event_id: UUID,
    status_filter: RsvpStatus | None = Query(default=None, alias="status"),
    db: AsyncSession = Depends(get_db),
    _user_id: UUID = Depends(get_current_user_id),
):
    return await rsvp_service.list_for_event(db, event_id=event_id, status=status_filter)
