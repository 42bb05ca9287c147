from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from screenings.core.config import settings
from screenings.core.errors import (
    AlreadyRefunded,
    CapacityExceeded,
    NotFound,
    ProcessorUnavailable,
    ValidationError,
)
from screenings.core.logging import get_logger
from screenings.core.pricing import format_amount, resolve_charge_amount
from screenings.core.stripe_config import REFUND_REASONS
from screenings.models.common import utcnow
from screenings.models.event import Event
from screenings.models.payment import Payment, PaymentStatus
from screenings.models.rsvp import RsvpStatus
from screenings.services import rsvp_service
from screenings.services.capacity_guard import can_admit
from screenings.services.payment_processor import PaymentProcessor, ProcessorRefund
from screenings.services.stripe_webhook_service import (
    ChargeRefunded,
    Ignored,
    PaymentFailed,
    apply_command,
    command_from_intent,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class CreatedIntent:
    client_secret: str
    payment_intent_id: str
    amount: int


@dataclass(frozen=True)
class SyncResult:
    status: str
    payment_status: PaymentStatus
    payment_id: UUID
    refund_due: bool = False


async def _pending_payment(
    db: AsyncSession,
    *,
    user_id: UUID,
    event_id: UUID,
    amount: int,
) -> Payment | None:
    res = await db.execute(
        select(Payment)
        .where(
            Payment.user_id == user_id,
            Payment.event_id == event_id,
            Payment.amount == amount,
            Payment.status == PaymentStatus.pending,
            Payment.stripe_id.is_not(None),
        )
        .order_by(Payment.created_at.desc())
        .limit(1)
    )
    return res.scalar_one_or_none()


async def _reuse_pending_intent(
    db: AsyncSession,
    processor: PaymentProcessor,
    *,
    user_id: UUID,
    event_id: UUID,
    amount: int,
) -> CreatedIntent | None:
    """
    Hand back the open intent for the same (user, event, amount) instead of
    opening a second one the user could also pay.

    A canceled intent is marked failed and a fresh one is created; an intent
    Stripe already reports succeeded is waiting for its webhook, so asking
    again is refused.
    """
    payment = await _pending_payment(db, user_id=user_id, event_id=event_id, amount=amount)
    if payment is None:
        return None

    intent = await processor.retrieve_intent(payment.stripe_id)

    if intent.status == "canceled":
        try:
            await apply_command(db, PaymentFailed(intent_id=intent.id))
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return None

    if intent.status == "succeeded":
        raise ValidationError("Your payment for this event is being confirmed")

    logger.info("Reusing open intent %s for user %s event %s", intent.id, user_id, event_id)
    return CreatedIntent(
        client_secret=intent.client_secret or "",
        payment_intent_id=intent.id,
        amount=payment.amount,
    )


async def create_intent(
    db: AsyncSession,
    processor: PaymentProcessor,
    *,
    event_id: UUID,
    user_id: UUID,
    requested_amount: int | None,
) -> CreatedIntent:
    """
    Resolve the amount, create the Stripe PaymentIntent and record a pending payment.

    Capacity is checked here as well as at webhook time: the gap between the
    two can be minutes, so this check only avoids charging for a full event,
    it does not reserve a seat.
    """
    event = await db.get(Event, event_id)
    if not event:
        raise NotFound("Event not found")

    amount = resolve_charge_amount(event, requested_amount)

    existing = await rsvp_service.get_rsvp(db, user_id=user_id, event_id=event_id)
    if existing and existing.status == RsvpStatus.going:
        raise ValidationError("You are already going to this event")

    # One ticket per user: a paid user re-RSVPs with PUT, no second charge
    if await rsvp_service.has_succeeded_payment(db, user_id=user_id, event_id=event_id):
        raise ValidationError("You have already paid for this event")

    if not can_admit(event, event.going_count):
        raise CapacityExceeded()

    reused = await _reuse_pending_intent(db, processor, user_id=user_id, event_id=event_id, amount=amount)
    if reused is not None:
        return reused

    payment_id = uuid.uuid4()

    intent = await processor.create_intent(
        amount=amount,
        currency=settings.CURRENCY,
        metadata={
            "user_id": str(user_id),
            "event_id": str(event_id),
            "event_title": event.title,
            "payment_id": str(payment_id),
        },
        idempotency_key=f"payment-intent:{payment_id}",
    )

    db.add(
        Payment(
            id=payment_id,
            user_id=user_id,
            event_id=event_id,
            amount=amount,
            currency=settings.CURRENCY,
            status=PaymentStatus.pending,
            stripe_id=intent.id,
        )
    )
    await db.commit()

    logger.info(
        "Created intent %s for user %s event %s (%s)",
        intent.id,
        user_id,
        event_id,
        format_amount(amount, settings.CURRENCY),
    )

    return CreatedIntent(
        client_secret=intent.client_secret or "",
        payment_intent_id=intent.id,
        amount=amount,
    )


async def get_payment_by_intent(db: AsyncSession, intent_id: str) -> Payment | None:
    res = await db.execute(select(Payment).where(Payment.stripe_id == intent_id))
    return res.scalar_one_or_none()


async def sync_intent(
    db: AsyncSession,
    processor: PaymentProcessor,
    *,
    user_id: UUID,
    payment_intent_id: str,
) -> SyncResult:
    """
    Client fallback for slow webhooks: ask Stripe directly and push the answer
    through the same reducer the webhook uses.
    """
    payment = await get_payment_by_intent(db, payment_intent_id)
    if not payment or payment.user_id != user_id:
        raise NotFound("Payment not found")

    intent = await processor.retrieve_intent(payment_intent_id)
    command = command_from_intent(intent)

    refund_due = False
    if not isinstance(command, Ignored):
        try:
            result = await apply_command(db, command)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        refund_due = result.refund_due

    logger.info(
        "Synced intent %s: stripe=%s local=%s",
        payment_intent_id,
        intent.status,
        payment.status.value,
    )
    return SyncResult(
        status=intent.status,
        payment_status=payment.status,
        payment_id=payment.id,
        refund_due=refund_due,
    )


async def refund_payment(
    db: AsyncSession,
    processor: PaymentProcessor,
    *,
    payment_id: UUID,
    amount: int | None = None,
    reason: str | None = None,
) -> ProcessorRefund:
    payment = await db.get(Payment, payment_id)
    if not payment:
        raise NotFound("Payment not found")

    if payment.status == PaymentStatus.refunded:
        raise AlreadyRefunded()

    if not payment.stripe_id:
        raise ValidationError("No Stripe payment ID found")

    if payment.status != PaymentStatus.succeeded:
        raise ValidationError(f"Cannot refund a {payment.status.value} payment")

    if amount is not None and amount > payment.amount:
        raise ValidationError("Refund amount exceeds the amount paid")

    if reason is not None and reason not in REFUND_REASONS:
        raise ValidationError(f"Unknown refund reason '{reason}'")

    refund = await processor.create_refund(
        intent_id=payment.stripe_id,
        amount=amount,
        reason=reason,
    )

    # Same transition the charge.refunded webhook would apply; that webhook becomes a no-op
    try:
        await apply_command(db, ChargeRefunded(intent_id=payment.stripe_id))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Refunded payment %s (refund %s, %s)", payment.id, refund.id, refund.status)
    return refund


async def refund_unneeded_payment(
    db: AsyncSession,
    processor: PaymentProcessor,
    payment_id: UUID,
) -> bool:
    """
    Refund a succeeded payment that does not pay for a seat: either another
    succeeded payment already covers the same (user, event), or the event was
    full when it succeeded.
    Returns False when there is nothing to do any more.
    """
    payment = await db.get(Payment, payment_id)
    if not payment or payment.status != PaymentStatus.succeeded:
        return False

    duplicate = await rsvp_service.has_succeeded_payment(
        db,
        user_id=payment.user_id,
        event_id=payment.event_id,
        exclude_payment_id=payment.id,
    )

    if not duplicate:
        rsvp = await rsvp_service.get_rsvp(db, user_id=payment.user_id, event_id=payment.event_id)
        if rsvp and rsvp.status == RsvpStatus.going:
            # Got a seat after all (someone left); keep the payment
            return False

    reason = "duplicate" if duplicate else "requested_by_customer"
    await refund_payment(db, processor, payment_id=payment_id, reason=reason)
    logger.warning("Refunded unneeded payment %s (%s)", payment_id, reason)
    return True


async def payment_history(db: AsyncSession, *, user_id: UUID) -> list[Payment]:
    res = await db.execute(
        select(Payment)
        .where(Payment.user_id == user_id)
        .options(selectinload(Payment.event))
        .order_by(Payment.created_at.desc())
    )
    return list(res.scalars().all())


async def reconcile_stale_payments(
    db: AsyncSession,
    processor: PaymentProcessor,
    *,
    older_than: timedelta,
    limit: int = 100,
) -> dict[str, Any]:
    """
    Sweep pending payments whose webhook never arrived:
      - intent succeeded -> succeeded + RSVP going
      - intent canceled  -> failed (abandoned payment sheet)
      - anything else    -> left pending
    """
    cutoff = utcnow() - older_than
    res = await db.execute(
        select(Payment.id, Payment.stripe_id)
        .where(
            Payment.status == PaymentStatus.pending,
            Payment.stripe_id.is_not(None),
            Payment.created_at < cutoff,
        )
        .order_by(Payment.created_at.asc())
        .limit(limit)
    )
    rows = res.all()
    await db.commit()

    updated = 0
    errors = 0
    refund_due: list[UUID] = []

    for payment_id, intent_id in rows:
        try:
            intent = await processor.retrieve_intent(intent_id)
        except (ProcessorUnavailable, ValidationError) as e:
            errors += 1
            logger.warning("Stale sweep could not fetch intent %s: %s", intent_id, e.message)
            continue

        command = command_from_intent(intent)
        if isinstance(command, Ignored):
            continue

        try:
            result = await apply_command(db, command)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        if result.transition is not None:
            updated += 1
        if result.refund_due:
            refund_due.append(payment_id)

    logger.info(
        "Stale payment sweep: checked=%d updated=%d errors=%d refund_due=%d",
        len(rows),
        updated,
        errors,
        len(refund_due),
    )
    return {
        "checked": len(rows),
        "updated": updated,
        "errors": errors,
        "refund_due": refund_due,
    }
