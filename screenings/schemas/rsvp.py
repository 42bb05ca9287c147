from datetime import datetime
from uuid import UUID

from screenings.models.rsvp import RsvpStatus
from screenings.schemas.base import CamelModel
from screenings.schemas.event import EventSummary


class RsvpRequest(CamelModel):
    status: RsvpStatus


class RsvpRead(CamelModel):
    user_id: UUID
    event_id: UUID
    status: RsvpStatus
    created_at: datetime
    updated_at: datetime


class RsvpWithEvent(RsvpRead):
    event: EventSummary


class RsvpRemoved(CamelModel):
    message: str = "RSVP removed"
    status: RsvpStatus | None = None
