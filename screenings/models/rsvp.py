import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from screenings.db.base import Base
from screenings.models.common import utcnow


class RsvpStatus(str, enum.Enum):
    going = "going"
    interested = "interested"
    not_going = "not_going"


class Rsvp(Base):
    """
    One row per (user, event). A missing row and a "not_going" row mean the same thing.
    """
    __tablename__ = "rsvps"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True)

    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("events.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )

    status: Mapped[RsvpStatus] = mapped_column(
        Enum(RsvpStatus, name="rsvp_status_enum"),
        nullable=False,
        index=True,
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

    event = relationship("Event", back_populates="rsvps")

    def __repr__(self) -> str:
        return f"<Rsvp user={self.user_id} event={self.event_id} status={self.status}>"
