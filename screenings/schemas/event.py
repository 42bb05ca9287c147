from datetime import datetime
from uuid import UUID

from pydantic import Field, model_validator

from screenings.schemas.base import CamelModel


class EventCreate(CamelModel):
    """
    Write-side event payload.

    A pay-what-you-can event must carry a price: it is the suggested amount
    shown to the payer. The combination "PWYC without price" is rejected here
    rather than repaired after the fact.
    """
    title: str = Field(..., min_length=1, max_length=255)
    starts_at: datetime
    location: str | None = Field(default=None, max_length=255)
    max_capacity: int | None = Field(default=None, gt=0)
    price: int | None = Field(default=None, ge=0)
    pay_what_you_can: bool = False
    min_price: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_pricing(self) -> "EventCreate":
        if self.pay_what_you_can:
            if not self.price:
                raise ValueError("pay-what-you-can events must have a suggested price")
            if self.min_price is not None and self.min_price > self.price:
                raise ValueError("min_price cannot exceed the suggested price")
        elif self.min_price is not None:
            raise ValueError("min_price is only meaningful for pay-what-you-can events")
        return self


class EventSummary(CamelModel):
    id: UUID
    title: str
    starts_at: datetime
    location: str | None = None


class EventRead(EventSummary):
    max_capacity: int | None
    price: int | None
    pay_what_you_can: bool
    min_price: int | None
    going_count: int
