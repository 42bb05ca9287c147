from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from screenings.models.rsvp import RsvpStatus
from screenings.services.rsvp_service import RsvpAction, decide_rsvp
from helpers import user_headers


def test_decide_rsvp_toggle_removes_same_status():
    decision = decide_rsvp(RsvpStatus.going, RsvpStatus.going, toggle=True)
    assert decision.action == RsvpAction.delete
    assert decision.seat_delta == -1


def test_decide_rsvp_set_is_noop_for_same_status():
    decision = decide_rsvp(RsvpStatus.going, RsvpStatus.going, toggle=False)
    assert decision.action == RsvpAction.noop
    assert decision.seat_delta == 0


def test_decide_rsvp_seat_deltas():
    assert decide_rsvp(None, RsvpStatus.going, toggle=True).seat_delta == 1
    assert decide_rsvp(RsvpStatus.interested, RsvpStatus.going, toggle=True).seat_delta == 1
    assert decide_rsvp(RsvpStatus.going, RsvpStatus.not_going, toggle=True).seat_delta == -1
    assert decide_rsvp(None, RsvpStatus.interested, toggle=True).seat_delta == 0


@pytest.mark.asyncio
async def test_post_same_status_twice_removes_rsvp(client, make_event, user_id):
    event = await make_event(max_capacity=10)
    url = f"/api/v1/events/{event.id}/rsvp"

    first = await client.post(url, json={"status": "going"}, headers=user_headers(user_id))
    assert first.status_code == 201
    body = first.json()
    assert body["status"] == "going"
    assert body["eventId"] == str(event.id)

    second = await client.post(url, json={"status": "going"}, headers=user_headers(user_id))
    assert second.status_code == 200
    assert second.json() == {"message": "RSVP removed", "status": None}

    mine = await client.get("/api/v1/me/rsvps", headers=user_headers(user_id))
    assert mine.json() == []

    going = await client.get(f"/api/v1/events/{event.id}/rsvps?status=going", headers=user_headers(user_id))
    assert going.json() == []


@pytest.mark.asyncio
async def test_post_different_status_updates(client, make_event, user_id):
    event = await make_event(max_capacity=10)
    url = f"/api/v1/events/{event.id}/rsvp"

    await client.post(url, json={"status": "interested"}, headers=user_headers(user_id))
    resp = await client.post(url, json={"status": "going"}, headers=user_headers(user_id))

    assert resp.status_code == 201
    assert resp.json()["status"] == "going"

    mine = (await client.get("/api/v1/me/rsvps", headers=user_headers(user_id))).json()
    assert len(mine) == 1
    assert mine[0]["status"] == "going"
    assert mine[0]["event"]["title"] == "Night of the Living Dead"


@pytest.mark.asyncio
async def test_put_is_idempotent(client, make_event, user_id, database):
    event = await make_event(max_capacity=10)
    url = f"/api/v1/events/{event.id}/rsvp"

    for _ in range(3):
        resp = await client.put(url, json={"status": "going"}, headers=user_headers(user_id))
        assert resp.status_code == 200
        assert resp.json()["status"] == "going"

    going = await client.get(f"/api/v1/events/{event.id}/rsvps?status=going", headers=user_headers(user_id))
    assert len(going.json()) == 1


@pytest.mark.asyncio
async def test_delete_rsvp(client, make_event, user_id):
    event = await make_event()
    url = f"/api/v1/events/{event.id}/rsvp"

    await client.post(url, json={"status": "going"}, headers=user_headers(user_id))

    resp = await client.delete(url, headers=user_headers(user_id))
    assert resp.status_code == 200
    assert resp.json() == {"message": "RSVP deleted successfully"}

    again = await client.delete(url, headers=user_headers(user_id))
    assert again.status_code == 404
    assert again.json()["error"] == "RSVP not found"


@pytest.mark.asyncio
async def test_leaving_frees_a_seat(client, make_event):
    event = await make_event(max_capacity=1)
    url = f"/api/v1/events/{event.id}/rsvp"
    alice, bob = uuid4(), uuid4()

    assert (await client.post(url, json={"status": "going"}, headers=user_headers(alice))).status_code == 201
    assert (await client.post(url, json={"status": "going"}, headers=user_headers(bob))).status_code == 400

    await client.post(url, json={"status": "not_going"}, headers=user_headers(alice))

    assert (await client.post(url, json={"status": "going"}, headers=user_headers(bob))).status_code == 201


@pytest.mark.asyncio
async def test_unknown_event_is_404(client, user_id):
    resp = await client.post(
        f"/api/v1/events/{uuid4()}/rsvp",
        json={"status": "going"},
        headers=user_headers(user_id),
    )
    assert resp.status_code == 404
    assert resp.json() == {"error": "Event not found", "code": "not_found"}


@pytest.mark.asyncio
async def test_missing_user_header_is_401(client, make_event):
    event = await make_event()
    resp = await client.post(f"/api/v1/events/{event.id}/rsvp", json={"status": "going"})
    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthorized"


@pytest.mark.asyncio
async def test_invalid_status_is_400(client, make_event, user_id):
    event = await make_event()
    resp = await client.post(
        f"/api/v1/events/{event.id}/rsvp",
        json={"status": "maybe"},
        headers=user_headers(user_id),
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_paid_event_requires_payment_before_going(client, make_event, user_id):
    event = await make_event(price=1000)

    resp = await client.post(
        f"/api/v1/events/{event.id}/rsvp",
        json={"status": "going"},
        headers=user_headers(user_id),
    )
    assert resp.status_code == 402
    assert resp.json()["code"] == "payment_required"

    # interest needs no payment
    resp = await client.post(
        f"/api/v1/events/{event.id}/rsvp",
        json={"status": "interested"},
        headers=user_headers(user_id),
    )
    assert resp.status_code == 201


@pytest.mark.asyncio
async def test_my_rsvps_are_ordered_by_start_time(client, make_event, user_id):
    now = datetime.now(timezone.utc)
    for title, days in (("Late", 10), ("Early", 2), ("Middle", 5)):
        event = await make_event(title=title, starts_at=now + timedelta(days=days))
        resp = await client.post(
            f"/api/v1/events/{event.id}/rsvp",
            json={"status": "interested"},
            headers=user_headers(user_id),
        )
        assert resp.status_code == 201

    mine = (await client.get("/api/v1/me/rsvps", headers=user_headers(user_id))).json()
    assert [r["event"]["title"] for r in mine] == ["Early", "Middle", "Late"]
