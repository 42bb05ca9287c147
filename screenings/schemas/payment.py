from datetime import datetime
from uuid import UUID

from pydantic import Field

from screenings.core.stripe_config import RefundReason
from screenings.models.payment import PaymentStatus
from screenings.schemas.base import CamelModel
from screenings.schemas.event import EventSummary


class CreateIntentRequest(CamelModel):
    event_id: UUID
    # Minor units; required for pay-what-you-can events, ignored for fixed price
    amount: int | None = Field(default=None, gt=0)


class CreateIntentResponse(CamelModel):
    client_secret: str
    payment_intent_id: str
    amount: int


class SyncIntentRequest(CamelModel):
    payment_intent_id: str = Field(..., min_length=1)


class SyncIntentResponse(CamelModel):
    synced: bool
    status: str
    payment_status: PaymentStatus


class RefundRequest(CamelModel):
    # Minor units; omitted = full refund
    amount: int | None = Field(default=None, gt=0)
    reason: RefundReason | None = None


class RefundSummary(CamelModel):
    id: str
    amount: int
    status: str


class RefundResponse(CamelModel):
    message: str
    refund: RefundSummary


class PaymentRead(CamelModel):
    id: UUID
    event_id: UUID
    amount: int
    currency: str
    status: PaymentStatus
    created_at: datetime
    updated_at: datetime


class PaymentHistoryItem(PaymentRead):
    event: EventSummary
