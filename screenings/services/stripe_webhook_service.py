from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Union
from uuid import UUID

import stripe
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from screenings.core.errors import CapacityExceeded, SignatureInvalid
from screenings.core.logging import get_logger
from screenings.core.stripe_config import (
    EVENT_CHARGE_REFUNDED,
    EVENT_PAYMENT_FAILED,
    EVENT_PAYMENT_SUCCEEDED,
)
from screenings.models.event import Event
from screenings.models.payment import Payment, PaymentStatus
from screenings.models.rsvp import RsvpStatus
from screenings.models.stripe_event import StripeEvent
from screenings.services import rsvp_service
from screenings.services.payment_processor import ProcessorIntent

logger = get_logger(__name__)


# -----------------------------
# Verification + parsing
# -----------------------------
@dataclass(frozen=True)
class WebhookEnvelope:
    id: str
    type: str
    livemode: bool
    created: int
    data_object: dict[str, Any] = field(default_factory=dict)


def verify_and_parse(
    payload: bytes,
    sig_header: str | None,
    secret: str | None,
    *,
    tolerance: int = 300,
) -> WebhookEnvelope:
    """
    Verify the Stripe-Signature header over the raw body, then parse it.
    Anything that fails here is rejected outright: Stripe must not retry it.
    """
    if not secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured; rejecting webhook")
        raise SignatureInvalid("Webhook not configured")

    if not sig_header:
        raise SignatureInvalid("No signature provided")

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise SignatureInvalid("Webhook payload is not valid UTF-8") from e

    try:
        stripe.WebhookSignature.verify_header(body, sig_header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning("Rejected webhook with invalid signature: %s", str(e))
        raise SignatureInvalid(f"Invalid webhook signature: {str(e)}") from e

    try:
        raw = json.loads(body)
        return WebhookEnvelope(
            id=raw["id"],
            type=raw["type"],
            livemode=bool(raw.get("livemode", False)),
            created=int(raw.get("created") or 0),
            data_object=(raw.get("data") or {}).get("object") or {},
        )
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise SignatureInvalid("Malformed webhook payload") from e


# -----------------------------
# Commands (closed set)
# -----------------------------
@dataclass(frozen=True)
class PaymentSucceeded:
    intent_id: str
    amount: int | None = None
    currency: str | None = None
    user_id: UUID | None = None
    event_id: UUID | None = None


@dataclass(frozen=True)
class PaymentFailed:
    intent_id: str


@dataclass(frozen=True)
class ChargeRefunded:
    intent_id: str


@dataclass(frozen=True)
class Ignored:
    reason: str


WebhookCommand = Union[PaymentSucceeded, PaymentFailed, ChargeRefunded, Ignored]


def _uuid_or_none(value: Any) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def classify(envelope: WebhookEnvelope, *, is_production: bool) -> WebhookCommand:
    # Never let a live charge touch a dev/staging database
    if envelope.livemode and not is_production:
        return Ignored("livemode event outside production")

    obj = envelope.data_object

    if envelope.type in (EVENT_PAYMENT_SUCCEEDED, EVENT_PAYMENT_FAILED) and not obj.get("id"):
        return Ignored(f"{envelope.type} without payment intent id")

    if envelope.type == EVENT_PAYMENT_SUCCEEDED:
        metadata = obj.get("metadata") or {}
        return PaymentSucceeded(
            intent_id=obj["id"],
            amount=obj.get("amount"),
            currency=obj.get("currency"),
            user_id=_uuid_or_none(metadata.get("user_id")),
            event_id=_uuid_or_none(metadata.get("event_id")),
        )

    if envelope.type == EVENT_PAYMENT_FAILED:
        return PaymentFailed(intent_id=obj["id"])

    if envelope.type == EVENT_CHARGE_REFUNDED:
        intent_id = obj.get("payment_intent")
        if not intent_id:
            return Ignored("refunded charge without payment_intent")
        return ChargeRefunded(intent_id=intent_id)

    return Ignored(f"unhandled event type {envelope.type}")


def command_from_intent(intent: ProcessorIntent) -> WebhookCommand:
    """
    Same commands, derived from a fetched PaymentIntent (manual sync, stale sweep).
    """
    if intent.status == "succeeded":
        return PaymentSucceeded(
            intent_id=intent.id,
            amount=intent.amount,
            user_id=_uuid_or_none(intent.metadata.get("user_id")),
            event_id=_uuid_or_none(intent.metadata.get("event_id")),
        )
    if intent.status == "canceled":
        return PaymentFailed(intent_id=intent.id)
    return Ignored(f"intent status {intent.status}")


# -----------------------------
# Reducer (pure)
# -----------------------------
class RsvpEffect(str, enum.Enum):
    none = "none"
    admit = "admit"
    release = "release"


@dataclass(frozen=True)
class PaymentTransition:
    status: PaymentStatus
    rsvp_effect: RsvpEffect = RsvpEffect.none


def reduce_payment(
    current: PaymentStatus,
    command: WebhookCommand,
) -> PaymentTransition | None:
    """
    Next payment state for a command, or None when the command is a no-op
    (replay, or a stale event delivered out of order).

      succeeded: pending|failed -> succeeded (+admit)
      failed:    pending        -> failed
      refunded:  any but refunded -> refunded (+release)
    """
    if isinstance(command, PaymentSucceeded):
        if current in (PaymentStatus.pending, PaymentStatus.failed):
            return PaymentTransition(PaymentStatus.succeeded, RsvpEffect.admit)
        return None

    if isinstance(command, PaymentFailed):
        if current == PaymentStatus.pending:
            return PaymentTransition(PaymentStatus.failed)
        return None

    if isinstance(command, ChargeRefunded):
        if current != PaymentStatus.refunded:
            return PaymentTransition(PaymentStatus.refunded, RsvpEffect.release)
        return None

    return None


# -----------------------------
# Applying commands
# -----------------------------
@dataclass
class ApplyResult:
    payment: Payment | None
    transition: PaymentTransition | None
    over_capacity: bool = False
    # another succeeded payment already covers this (user, event)
    duplicate: bool = False

    @property
    def refund_due(self) -> bool:
        return self.over_capacity or self.duplicate


async def _lock_payment(db: AsyncSession, intent_id: str) -> Payment | None:
    res = await db.execute(
        select(Payment)
        .where(Payment.stripe_id == intent_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def _recreate_payment(db: AsyncSession, command: PaymentSucceeded) -> Payment | None:
    """
    A success for an intent we have no row for (crash between Stripe and our
    insert). Rebuild the row from the intent metadata when it is complete.
    """
    if not command.user_id or not command.event_id or command.amount is None:
        return None

    event = await db.get(Event, command.event_id)
    if not event:
        return None

    payment = Payment(
        user_id=command.user_id,
        event_id=command.event_id,
        amount=int(command.amount),
        currency=(command.currency or "gbp").lower(),
        status=PaymentStatus.pending,
        stripe_id=command.intent_id,
    )
    db.add(payment)
    await db.flush()

    logger.warning("Recreated missing payment %s for intent %s", payment.id, command.intent_id)
    return payment


async def apply_command(db: AsyncSession, command: WebhookCommand) -> ApplyResult:
    """
    Apply one command to the payment (locked) and the RSVP ledger.
    Runs in the caller's transaction; does not commit.
    """
    if isinstance(command, Ignored):
        return ApplyResult(payment=None, transition=None)

    payment = await _lock_payment(db, command.intent_id)

    if payment is None and isinstance(command, PaymentSucceeded):
        payment = await _recreate_payment(db, command)

    if payment is None:
        logger.warning(
            "No local payment for intent %s (%s); nothing to apply",
            command.intent_id,
            type(command).__name__,
        )
        return ApplyResult(payment=None, transition=None)

    transition = reduce_payment(payment.status, command)
    if transition is None:
        logger.info(
            "Payment %s already %s; %s is a no-op",
            payment.id,
            payment.status.value,
            type(command).__name__,
        )
        return ApplyResult(payment=payment, transition=None)

    previous = payment.status
    payment.status = transition.status
    await db.flush()

    over_capacity = False
    duplicate = False

    if transition.rsvp_effect == RsvpEffect.admit:
        try:
            await rsvp_service.set_rsvp_status(
                db,
                user_id=payment.user_id,
                event_id=payment.event_id,
                status=RsvpStatus.going,
            )
        except CapacityExceeded:
            # Paid but the event filled up since the intent was created
            over_capacity = True
            logger.warning(
                "Payment %s succeeded but event %s is full; scheduling refund",
                payment.id,
                payment.event_id,
            )

        # set_rsvp_status holds the event row lock, so concurrent successes for
        # the same user see each other here
        duplicate = await rsvp_service.has_succeeded_payment(
            db,
            user_id=payment.user_id,
            event_id=payment.event_id,
            exclude_payment_id=payment.id,
        )
        if duplicate:
            logger.warning(
                "Payment %s duplicates a succeeded payment of user %s for event %s; scheduling refund",
                payment.id,
                payment.user_id,
                payment.event_id,
            )

    elif transition.rsvp_effect == RsvpEffect.release:
        await rsvp_service.mark_not_going(
            db,
            user_id=payment.user_id,
            event_id=payment.event_id,
        )

    logger.info(
        "Payment %s: %s -> %s (rsvp %s)",
        payment.id,
        previous.value,
        transition.status.value,
        transition.rsvp_effect.value,
    )
    return ApplyResult(
        payment=payment,
        transition=transition,
        over_capacity=over_capacity,
        duplicate=duplicate,
    )


class _DuplicateDelivery(Exception):
    pass


async def process_webhook_event(
    db: AsyncSession,
    envelope: WebhookEnvelope,
    command: WebhookCommand,
) -> tuple[dict[str, Any], ApplyResult | None]:
    """
    Atomic + idempotent:
      - insert StripeEvent first (unique stripe_event_id acts like a lock)
      - apply the command under the same transaction
    A replayed event id rolls back and is acknowledged without side effects.
    """
    if isinstance(command, Ignored):
        logger.info("Ignoring webhook %s (%s): %s", envelope.id, envelope.type, command.reason)
        return {"received": True, "ignored": True}, None

    try:
        async with db.begin():
            db.add(
                StripeEvent(
                    stripe_event_id=envelope.id,
                    event_type=envelope.type,
                    payment_intent_id=command.intent_id,
                    stripe_event_created=envelope.created,
                )
            )
            try:
                await db.flush()
            except IntegrityError as e:
                raise _DuplicateDelivery() from e

            result = await apply_command(db, command)

    except _DuplicateDelivery:
        logger.info("Webhook %s already processed; acknowledging replay", envelope.id)
        return {"received": True, "idempotent": True}, None

    return {"received": True}, result
