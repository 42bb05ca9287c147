from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from screenings.schemas.event import EventCreate
from screenings.services import event_service

STARTS_AT = datetime(2026, 11, 1, 19, 30, tzinfo=timezone.utc)


def test_pwyc_without_price_is_rejected():
    with pytest.raises(ValidationError):
        EventCreate(title="Rear Window", starts_at=STARTS_AT, pay_what_you_can=True)

    with pytest.raises(ValidationError):
        EventCreate(title="Rear Window", starts_at=STARTS_AT, pay_what_you_can=True, price=0)


def test_min_price_rules():
    with pytest.raises(ValidationError):
        EventCreate(title="Vertigo", starts_at=STARTS_AT, price=500, pay_what_you_can=True, min_price=800)

    with pytest.raises(ValidationError):
        EventCreate(title="Vertigo", starts_at=STARTS_AT, price=500, min_price=100)

    ok = EventCreate(title="Vertigo", startsAt=STARTS_AT, price=500, payWhatYouCan=True, minPrice=300)
    assert ok.pay_what_you_can is True
    assert ok.min_price == 300


@pytest.mark.asyncio
async def test_create_and_get_event(database, make_event):
    event = await make_event(max_capacity=40, price=800)

    async with database.session() as db:
        stored = await event_service.get_event(db, event.id)

    assert stored.title == "Night of the Living Dead"
    assert stored.max_capacity == 40
    assert stored.price == 800
    assert stored.going_count == 0


@pytest.mark.asyncio
async def test_free_event_stores_no_price(make_event):
    event = await make_event(price=0)
    assert event.price is None


@pytest.mark.asyncio
async def test_no_pwyc_events_without_price_to_fix(database, make_event):
    await make_event(price=1000, pay_what_you_can=True, min_price=100)
    await make_event(starts_at=datetime.now(timezone.utc) + timedelta(days=1))

    async with database.session() as db:
        assert await event_service.find_pwyc_events_without_price(db) == []
        assert await event_service.disable_pwyc_without_price(db) == []


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_readiness_checks_database(client):
    resp = await client.get("/api/v1/health/ready")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ready"
