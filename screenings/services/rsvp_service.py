from __future__ import annotations

import enum
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from screenings.core.errors import CapacityExceeded, NotFound, PaymentRequired
from screenings.core.logging import get_logger
from screenings.core.pricing import requires_payment
from screenings.models.event import Event
from screenings.models.payment import Payment, PaymentStatus
from screenings.models.rsvp import Rsvp, RsvpStatus
from screenings.services.capacity_guard import can_admit, release_seat, reserve_seat

logger = get_logger(__name__)


class RsvpAction(str, enum.Enum):
    create = "create"
    update = "update"
    delete = "delete"
    noop = "noop"


@dataclass(frozen=True)
class RsvpDecision:
    action: RsvpAction
    previous: RsvpStatus | None
    target: RsvpStatus | None

    @property
    def seat_delta(self) -> int:
        was_going = self.previous == RsvpStatus.going
        will_be_going = self.target == RsvpStatus.going
        if will_be_going and not was_going:
            return 1
        if was_going and not will_be_going:
            return -1
        return 0


def decide_rsvp(
    current: RsvpStatus | None,
    requested: RsvpStatus,
    *,
    toggle: bool,
) -> RsvpDecision:
    """
    Decide what a request does before storage is touched.

    toggle=True  (user pressing a button): asking for the status you already
                 hold removes the RSVP.
    toggle=False (webhook, sync, PUT): asking for the status you already hold
                 changes nothing.
    """
    if current is None:
        return RsvpDecision(RsvpAction.create, None, requested)

    if current == requested:
        if toggle:
            return RsvpDecision(RsvpAction.delete, current, None)
        return RsvpDecision(RsvpAction.noop, current, current)

    return RsvpDecision(RsvpAction.update, current, requested)


async def _lock_event(db: AsyncSession, event_id: UUID) -> Event:
    # FOR UPDATE serializes RSVP writes per event on PostgreSQL (no-op on SQLite)
    res = await db.execute(
        select(Event)
        .where(Event.id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    event = res.scalar_one_or_none()
    if not event:
        raise NotFound("Event not found")
    return event


async def get_rsvp(db: AsyncSession, *, user_id: UUID, event_id: UUID) -> Rsvp | None:
    res = await db.execute(
        select(Rsvp)
        .where(Rsvp.user_id == user_id, Rsvp.event_id == event_id)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def has_succeeded_payment(
    db: AsyncSession,
    *,
    user_id: UUID,
    event_id: UUID,
    exclude_payment_id: UUID | None = None,
) -> bool:
    q = select(Payment.id).where(
        Payment.user_id == user_id,
        Payment.event_id == event_id,
        Payment.status == PaymentStatus.succeeded,
    )
    if exclude_payment_id is not None:
        q = q.where(Payment.id != exclude_payment_id)

    res = await db.execute(q.limit(1))
    return res.scalar_one_or_none() is not None


async def _apply_decision(
    db: AsyncSession,
    *,
    event: Event,
    user_id: UUID,
    rsvp: Rsvp | None,
    decision: RsvpDecision,
) -> Rsvp | None:
    if decision.seat_delta > 0:
        if requires_payment(event) and not await has_succeeded_payment(
            db, user_id=user_id, event_id=event.id
        ):
            raise PaymentRequired()

        # Early out on the locked row; reserve_seat is the authoritative check
        if not can_admit(event, event.going_count):
            raise CapacityExceeded()
        await reserve_seat(db, event.id)

    elif decision.seat_delta < 0:
        await release_seat(db, event.id)

    if decision.action == RsvpAction.create:
        rsvp = Rsvp(user_id=user_id, event_id=event.id, status=decision.target)
        db.add(rsvp)
    elif decision.action == RsvpAction.update:
        rsvp.status = decision.target
    elif decision.action == RsvpAction.delete:
        await db.delete(rsvp)
        rsvp = None

    await db.flush()
    return rsvp


async def set_rsvp_status(
    db: AsyncSession,
    *,
    user_id: UUID,
    event_id: UUID,
    status: RsvpStatus,
) -> Rsvp | None:
    """
    Idempotent set used inside a caller-owned transaction (webhook, sync).
    Does not commit.
    """
    event = await _lock_event(db, event_id)
    rsvp = await get_rsvp(db, user_id=user_id, event_id=event_id)
    decision = decide_rsvp(rsvp.status if rsvp else None, status, toggle=False)
    return await _apply_decision(db, event=event, user_id=user_id, rsvp=rsvp, decision=decision)


async def mark_not_going(db: AsyncSession, *, user_id: UUID, event_id: UUID) -> Rsvp | None:
    """
    Refund path: flip an existing RSVP to not_going and free its seat.
    Missing RSVP is left missing. A seat still covered by another succeeded
    payment is kept. Does not commit.
    """
    event = await _lock_event(db, event_id)
    rsvp = await get_rsvp(db, user_id=user_id, event_id=event_id)
    if not rsvp:
        return None

    if await has_succeeded_payment(db, user_id=user_id, event_id=event_id):
        logger.info(
            "User %s still holds a succeeded payment for event %s; keeping RSVP",
            user_id,
            event_id,
        )
        return rsvp

    decision = decide_rsvp(rsvp.status, RsvpStatus.not_going, toggle=False)
    return await _apply_decision(db, event=event, user_id=user_id, rsvp=rsvp, decision=decision)


async def upsert_rsvp(
    db: AsyncSession,
    *,
    user_id: UUID,
    event_id: UUID,
    status: RsvpStatus,
    toggle: bool = True,
) -> tuple[RsvpDecision, Rsvp | None]:
    """
    User-facing create/update/remove, committed as one transaction:
    lock event -> read RSVP -> decide -> move seat -> write RSVP.
    """
    attempts = 2
    for attempt in range(1, attempts + 1):
        try:
            event = await _lock_event(db, event_id)
            rsvp = await get_rsvp(db, user_id=user_id, event_id=event_id)
            decision = decide_rsvp(rsvp.status if rsvp else None, status, toggle=toggle)

            rsvp = await _apply_decision(
                db,
                event=event,
                user_id=user_id,
                rsvp=rsvp,
                decision=decision,
            )
            await db.commit()
            break
        except IntegrityError:
            # Same user racing themselves: the composite primary key already won,
            # re-read and decide again against the stored row
            await db.rollback()
            if attempt == attempts:
                raise
            logger.info("Concurrent RSVP write for user %s event %s; retrying", user_id, event_id)
        except Exception:
            await db.rollback()
            raise

    logger.info(
        "RSVP %s for user %s event %s: %s -> %s",
        decision.action.value,
        user_id,
        event_id,
        decision.previous.value if decision.previous else None,
        decision.target.value if decision.target else None,
    )
    return decision, rsvp


async def delete_rsvp(db: AsyncSession, *, user_id: UUID, event_id: UUID) -> None:
    try:
        event = await _lock_event(db, event_id)
        rsvp = await get_rsvp(db, user_id=user_id, event_id=event_id)
        if not rsvp:
            raise NotFound("RSVP not found")

        decision = RsvpDecision(RsvpAction.delete, rsvp.status, None)
        await _apply_decision(db, event=event, user_id=user_id, rsvp=rsvp, decision=decision)
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def list_for_user(db: AsyncSession, *, user_id: UUID) -> list[Rsvp]:
    res = await db.execute(
        select(Rsvp)
        .join(Event, Event.id == Rsvp.event_id)
        .where(Rsvp.user_id == user_id)
        .options(selectinload(Rsvp.event))
        .order_by(Event.starts_at.asc())
    )
    return list(res.scalars().all())


async def list_for_event(
    db: AsyncSession,
    *,
    event_id: UUID,
    status: RsvpStatus | None = None,
) -> list[Rsvp]:
    event = await db.get(Event, event_id)
    if not event:
        raise NotFound("Event not found")

    q = select(Rsvp).where(Rsvp.event_id == event_id)
    if status is not None:
        q = q.where(Rsvp.status == status)

    res = await db.execute(q.order_by(Rsvp.created_at.asc()))
    return list(res.scalars().all())


async def count_going(db: AsyncSession, *, event_id: UUID) -> int:
    event = await db.get(Event, event_id, populate_existing=True)
    if not event:
        raise NotFound("Event not found")
    return event.going_count
