import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from screenings.db.base import Base
from screenings.models.common import utcnow


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    succeeded = "succeeded"
    failed = "failed"
    refunded = "refunded"


class Payment(Base):
    """
    One payment attempt for one ticket.

    Created "pending" when the intent is requested. Only the webhook reducer
    (shared by the webhook, manual sync, refunds and the stale sweep) moves it
    out of "pending".
    """
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(), nullable=False, index=True)

    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("events.id"),
        nullable=False,
        index=True,
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="gbp")

    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status_enum"),
        nullable=False,
        default=PaymentStatus.pending,
        index=True,
    )

    # Stripe PaymentIntent id; idempotency key for webhook processing
    stripe_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
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

    event = relationship("Event", back_populates="payments")

    def __repr__(self) -> str:
        return f"<Payment id={self.id} stripe_id={self.stripe_id} status={self.status}>"
