import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from screenings.db.base import Base
from screenings.models.common import utcnow


class Event(Base):
    """
    A screening people can RSVP to.

    Money is stored in minor units (pence). ``going_count`` mirrors the number
    of RSVPs with status "going" and is only ever changed through the
    capacity guard's conditional updates.
    """
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint(
            "NOT pay_what_you_can OR (price IS NOT NULL AND price > 0)",
            name="ck_events_pwyc_requires_price",
        ),
        CheckConstraint("going_count >= 0", name="ck_events_going_count_non_negative"),
        CheckConstraint(
            "max_capacity IS NULL OR going_count <= max_capacity",
            name="ck_events_going_count_within_capacity",
        ),
        CheckConstraint(
            "max_capacity IS NULL OR max_capacity > 0",
            name="ck_events_max_capacity_positive",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    starts_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # None = unlimited
    max_capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # None = free (unless pay_what_you_can, where it is the suggested amount)
    price: Mapped[int | None] = mapped_column(Integer, nullable=True)

    pay_what_you_can: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    min_price: Mapped[int | None] = mapped_column(Integer, nullable=True)

    going_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    rsvps = relationship("Rsvp", back_populates="event", passive_deletes=True)
    payments = relationship("Payment", back_populates="event")

    def __repr__(self) -> str:
        return f"<Event id={self.id} title={self.title} going={self.going_count}/{self.max_capacity}>"
