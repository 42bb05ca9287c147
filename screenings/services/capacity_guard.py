from __future__ import annotations

from uuid import UUID

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from screenings.core.errors import CapacityExceeded
from screenings.models.event import Event


def can_admit(event: Event, current_going_count: int) -> bool:
    """
    Whether one more "going" RSVP fits.

    current_going_count must NOT include the requesting user's own "going"
    RSVP: re-asserting "going" never takes a second seat.
    """
    if event.max_capacity is None:
        return True
    return current_going_count < event.max_capacity


def seats_remaining(event: Event) -> int | None:
    if event.max_capacity is None:
        return None
    return max(event.max_capacity - (event.going_count or 0), 0)


async def reserve_seat(db: AsyncSession, event_id: UUID) -> None:
    """
    Take one seat with a single conditional UPDATE.

    The capacity predicate is evaluated by the database against the current
    row, so two concurrent admissions can never both see a stale count.
    Must run inside the transaction that writes the "going" RSVP.
    """
    res = await db.execute(
        update(Event)
        .where(
            Event.id == event_id,
            or_(
                Event.max_capacity.is_(None),
                Event.going_count < Event.max_capacity,
            ),
        )
        .values(going_count=Event.going_count + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise CapacityExceeded()


async def release_seat(db: AsyncSession, event_id: UUID) -> None:
    await db.execute(
        update(Event)
        .where(Event.id == event_id, Event.going_count > 0)
        .values(going_count=Event.going_count - 1)
        .execution_options(synchronize_session=False)
    )
