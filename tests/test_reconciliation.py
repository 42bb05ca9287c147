from uuid import uuid4

import pytest

from screenings.client.api_client import ScreeningsClient
from screenings.client.reconciliation import PollState, ReconciliationPoller, backoff_delay
from screenings.core.errors import AmountBelowMinimum, ProcessorUnavailable
from helpers import post_webhook, signed_webhook, user_headers


class RecordingSleep:
    def __init__(self, on_sleep=None):
        self.delays = []
        self.on_sleep = on_sleep

    async def __call__(self, delay):
        self.delays.append(delay)
        if self.on_sleep is not None:
            await self.on_sleep(len(self.delays))


def test_backoff_delays_double_and_cap():
    assert [backoff_delay(a) for a in range(6)] == [0.5, 1.0, 2.0, 4.0, 5.0, 5.0]


@pytest.mark.asyncio
async def test_webhook_first_confirms_by_polling(client, make_event, user_id, processor):
    event = await make_event(price=1000, max_capacity=5)
    api = ScreeningsClient(client, user_id=user_id)

    created = await api.create_intent(event.id)
    intent_id = created["paymentIntentId"]
    processor.set_status(intent_id, "succeeded")

    body, headers = signed_webhook("payment_intent.succeeded", processor.intent_object(intent_id))
    await post_webhook(client, body, headers)

    sleep = RecordingSleep()
    outcome = await ReconciliationPoller(api, sleep=sleep).wait_for_confirmation(event.id, intent_id)

    assert outcome.state == PollState.confirmed
    assert outcome.confirmed_by == "poll"
    assert outcome.attempts == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_webhook_arriving_mid_poll_confirms(client, make_event, user_id, processor):
    event = await make_event(price=1000, max_capacity=5)
    api = ScreeningsClient(client, user_id=user_id)
    intent_id = (await api.create_intent(event.id))["paymentIntentId"]
    processor.set_status(intent_id, "succeeded")

    async def deliver_webhook(n):
        if n == 2:
            body, headers = signed_webhook("payment_intent.succeeded", processor.intent_object(intent_id))
            await post_webhook(client, body, headers)

    sleep = RecordingSleep(on_sleep=deliver_webhook)
    outcome = await ReconciliationPoller(api, sleep=sleep).wait_for_confirmation(event.id, intent_id)

    assert outcome.confirmed_by == "poll"
    assert outcome.attempts == 3
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_fallback_first_then_late_webhook_converges(client, make_event, user_id, processor):
    event = await make_event(price=1000, max_capacity=5)
    api = ScreeningsClient(client, user_id=user_id)
    intent_id = (await api.create_intent(event.id))["paymentIntentId"]
    processor.set_status(intent_id, "succeeded")

    poller = ReconciliationPoller(api, sleep=RecordingSleep(), max_attempts=3)
    outcome = await poller.wait_for_confirmation(event.id, intent_id)

    assert outcome.state == PollState.confirmed
    assert outcome.confirmed_by == "fallback"
    assert outcome.processor_status == "succeeded"
    assert outcome.attempts == 3

    # the webhook finally shows up
    body, headers = signed_webhook("payment_intent.succeeded", processor.intent_object(intent_id))
    resp = await post_webhook(client, body, headers)
    assert resp.status_code == 200

    rsvps = await api.list_my_rsvps()
    assert [r["status"] for r in rsvps] == ["going"]

    going = (
        await client.get(f"/api/v1/events/{event.id}/rsvps?status=going", headers=user_headers(user_id))
    ).json()
    assert len(going) == 1

    history = await api.payment_history()
    assert [p["status"] for p in history] == ["succeeded"]


@pytest.mark.asyncio
async def test_unpaid_intent_stays_unconfirmed(client, make_event, user_id, processor):
    event = await make_event(price=1000)
    api = ScreeningsClient(client, user_id=user_id)
    intent_id = (await api.create_intent(event.id))["paymentIntentId"]

    sleep = RecordingSleep()
    outcome = await ReconciliationPoller(api, sleep=sleep, max_attempts=4).wait_for_confirmation(
        event.id, intent_id
    )

    assert outcome.state == PollState.unconfirmed
    assert outcome.processor_status == "requires_payment_method"
    assert sleep.delays == [0.5, 1.0, 2.0]
    assert await api.list_my_rsvps() == []


@pytest.mark.asyncio
async def test_processor_outage_leaves_unconfirmed(client, make_event, user_id, processor):
    event = await make_event(price=1000)
    api = ScreeningsClient(client, user_id=user_id)
    intent_id = (await api.create_intent(event.id))["paymentIntentId"]
    processor.unavailable = True

    outcome = await ReconciliationPoller(api, sleep=RecordingSleep(), max_attempts=1).wait_for_confirmation(
        event.id, intent_id
    )

    assert outcome.state == PollState.unconfirmed
    assert isinstance(outcome.error, ProcessorUnavailable)
    assert outcome.error.outcome == "retry_later"


class StubClient:
    """
    Sync reports success but never creates the RSVP, so only the PUT can.
    """

    def __init__(self):
        self.calls = []
        self.going = False

    async def is_going(self, event_id):
        self.calls.append("is_going")
        return self.going

    async def sync_intent(self, payment_intent_id):
        self.calls.append("sync_intent")
        return {"synced": True, "status": "succeeded", "paymentStatus": "succeeded"}

    async def set_rsvp(self, event_id, status):
        self.calls.append(f"set_rsvp:{status}")
        self.going = True
        return {"status": status}


@pytest.mark.asyncio
async def test_fallback_sets_rsvp_with_put():
    stub = StubClient()
    poller = ReconciliationPoller(stub, sleep=RecordingSleep(), max_attempts=2)

    outcome = await poller.wait_for_confirmation(uuid4(), "pi_stub")

    assert outcome.confirmed_by == "fallback"
    assert stub.calls == ["is_going", "is_going", "sync_intent", "is_going", "set_rsvp:going"]


@pytest.mark.asyncio
async def test_client_maps_error_codes(client, make_event, user_id):
    event = await make_event(price=1000, pay_what_you_can=True, min_price=500)
    api = ScreeningsClient(client, user_id=user_id)

    with pytest.raises(AmountBelowMinimum) as exc:
        await api.create_intent(event.id, amount=499)

    assert exc.value.minimum == 500
    assert exc.value.outcome == "change_input"
