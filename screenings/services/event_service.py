from __future__ import annotations

from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from screenings.core.errors import NotFound
from screenings.core.logging import get_logger
from screenings.models.event import Event
from screenings.schemas.event import EventCreate

logger = get_logger(__name__)


async def create_event(db: AsyncSession, event_in: EventCreate) -> Event:
    # EventCreate already refuses PWYC without a price; the CHECK constraint backs it up
    event = Event(
        title=event_in.title,
        starts_at=event_in.starts_at,
        location=event_in.location,
        max_capacity=event_in.max_capacity,
        price=event_in.price or None,
        pay_what_you_can=event_in.pay_what_you_can,
        min_price=event_in.min_price if event_in.pay_what_you_can else None,
        going_count=0,
    )
    db.add(event)
    await db.commit()
    await db.refresh(event)

    logger.info("Created event %s (%s)", event.id, event.title)
    return event


async def get_event(db: AsyncSession, event_id: UUID) -> Event:
    event = await db.get(Event, event_id)
    if not event:
        raise NotFound("Event not found")
    return event


async def find_pwyc_events_without_price(db: AsyncSession) -> list[Event]:
    # Only finds rows in databases that predate ck_events_pwyc_requires_price
    res = await db.execute(
        select(Event).where(
            Event.pay_what_you_can.is_(True),
            or_(Event.price.is_(None), Event.price == 0),
        )
    )
    return list(res.scalars().all())


async def disable_pwyc_without_price(db: AsyncSession) -> list[UUID]:
    """
    Legacy data repair: PWYC events with no price become free events.
    Returns the ids that were changed.

    Such rows can only exist in a database created before the
    ck_events_pwyc_requires_price constraint; run it before adding that
    constraint.
    """
    events = await find_pwyc_events_without_price(db)
    ids = [e.id for e in events]
    if not ids:
        return []

    await db.execute(
        update(Event)
        .where(Event.id.in_(ids))
        .values(pay_what_you_can=False, min_price=None)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    logger.warning("Disabled pay-what-you-can on %d events without a price", len(ids))
    return ids
