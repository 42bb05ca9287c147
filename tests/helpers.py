import dataclasses
import hashlib
import hmac
import json
import time
from uuid import uuid4

import httpx

from screenings.core.errors import ProcessorUnavailable, ValidationError
from screenings.services.payment_processor import ProcessorIntent, ProcessorRefund

WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}


class FakePaymentProcessor:
    """
    In-memory stand-in for Stripe. Intents start in "requires_payment_method";
    tests move them with set_status().
    """

    def __init__(self):
        self.intents: dict[str, ProcessorIntent] = {}
        self.refunds: list[tuple[str, ProcessorRefund]] = []
        self.unavailable = False
        self._seq = 0

    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}_test_{self._seq}"

    def _check_available(self):
        if self.unavailable:
            raise ProcessorUnavailable()

    async def create_intent(self, *, amount, currency, metadata, idempotency_key=None):
        self._check_available()
        intent_id = self._next_id("pi")
        intent = ProcessorIntent(
            id=intent_id,
            status="requires_payment_method",
            amount=amount,
            client_secret=f"{intent_id}_secret_abc",
            metadata=dict(metadata),
        )
        self.intents[intent_id] = intent
        return intent

    async def retrieve_intent(self, intent_id):
        self._check_available()
        if intent_id not in self.intents:
            raise ValidationError(f"No such payment_intent: '{intent_id}'")
        return self.intents[intent_id]

    async def create_refund(self, *, intent_id, amount=None, reason=None):
        self._check_available()
        intent = self.intents[intent_id]
        refund = ProcessorRefund(
            id=self._next_id("re"),
            amount=amount if amount is not None else intent.amount,
            status="succeeded",
        )
        self.refunds.append((intent_id, refund))
        return refund

    def set_status(self, intent_id: str, status: str) -> None:
        self.intents[intent_id] = dataclasses.replace(self.intents[intent_id], status=status)

    def intent_object(self, intent_id: str) -> dict:
        intent = self.intents[intent_id]
        return {
            "id": intent.id,
            "object": "payment_intent",
            "amount": intent.amount,
            "currency": "gbp",
            "status": intent.status,
            "metadata": dict(intent.metadata),
        }


# -----------------------------
# Webhook signing
# -----------------------------
def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    ts = timestamp if timestamp is not None else int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{ts}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={ts},v1={signature}"


def signed_webhook(
    event_type: str,
    data_object: dict,
    *,
    event_id: str | None = None,
    livemode: bool = False,
    secret: str = WEBHOOK_SECRET,
) -> tuple[str, dict]:
    body = json.dumps(
        {
            "id": event_id or f"evt_{uuid4().hex}",
            "object": "event",
            "type": event_type,
            "livemode": livemode,
            "created": int(time.time()),
            "data": {"object": data_object},
        }
    )
    headers = {
        "Stripe-Signature": sign_payload(body, secret),
        "Content-Type": "application/json",
    }
    return body, headers


async def post_webhook(client: httpx.AsyncClient, body: str, headers: dict) -> httpx.Response:
    return await client.post("/api/v1/payments/webhook", content=body, headers=headers)


def user_headers(user_id) -> dict:
    return {"X-User-Id": str(user_id)}


async def create_intent(client: httpx.AsyncClient, event_id, user_id, amount=None) -> httpx.Response:
    body = {"eventId": str(event_id)}
    if amount is not None:
        body["amount"] = amount
    return await client.post("/api/v1/payments/create-intent", json=body, headers=user_headers(user_id))


async def pay_for_event(client, processor, event_id, user_id, amount=None) -> str:
    """
    Full happy path: create the intent, let "Stripe" succeed it and deliver
    the webhook. Returns the payment intent id.
    """
    resp = await create_intent(client, event_id, user_id, amount)
    assert resp.status_code == 200, resp.text
    intent_id = resp.json()["paymentIntentId"]

    processor.set_status(intent_id, "succeeded")
    body, headers = signed_webhook("payment_intent.succeeded", processor.intent_object(intent_id))
    webhook = await post_webhook(client, body, headers)
    assert webhook.status_code == 200, webhook.text
    return intent_id
