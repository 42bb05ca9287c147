"""
Post-payment confirmation for clients.

After the payment sheet reports success the RSVP may not exist yet: it is
created by the webhook, which can lag. The poller waits for it and, once the
wait budget is spent, drives the same end state itself:

    WAITING --rsvp seen--> CONFIRMED
    WAITING --budget spent--> TIMED_OUT
    TIMED_OUT --sync succeeded + PUT going--> CONFIRMED
    TIMED_OUT --otherwise--> UNCONFIRMED

The fallback uses the idempotent PUT, never the toggling POST, so racing the
webhook cannot remove a seat that was just granted.
"""
from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional
from uuid import UUID

from screenings.client.api_client import ScreeningsClient
from screenings.core.errors import ServiceError
from screenings.core.logging import get_logger

logger = get_logger(__name__)

BASE_DELAY_SECONDS = 0.5
MAX_DELAY_SECONDS = 5.0
DEFAULT_MAX_ATTEMPTS = 8


class PollState(str, enum.Enum):
    waiting = "waiting"
    confirmed = "confirmed"
    timed_out = "timed_out"
    unconfirmed = "unconfirmed"


@dataclass(frozen=True)
class ConfirmationOutcome:
    state: PollState
    attempts: int
    # "poll" when the webhook got there first, "fallback" when the poller did
    confirmed_by: Optional[str] = None
    processor_status: Optional[str] = None
    error: Optional[ServiceError] = None

    @property
    def confirmed(self) -> bool:
        return self.state == PollState.confirmed


def backoff_delay(attempt: int) -> float:
    return min(BASE_DELAY_SECONDS * (2 ** attempt), MAX_DELAY_SECONDS)


class ReconciliationPoller:
    def __init__(
        self,
        client: ScreeningsClient,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client
        self.sleep = sleep
        self.max_attempts = max_attempts
        self.state = PollState.waiting

    async def wait_for_confirmation(
        self,
        event_id: UUID,
        payment_intent_id: str,
    ) -> ConfirmationOutcome:
        self.state = PollState.waiting
        attempts = 0

        for attempt in range(self.max_attempts):
            attempts = attempt + 1
            try:
                if await self.client.is_going(event_id):
                    self.state = PollState.confirmed
                    return ConfirmationOutcome(self.state, attempts, confirmed_by="poll")
            except ServiceError as e:
                # Polling is best effort; a failed read just costs one attempt
                logger.info("RSVP poll %d for event %s failed: %s", attempts, event_id, e.message)

            if attempt < self.max_attempts - 1:
                await self.sleep(backoff_delay(attempt))

        self.state = PollState.timed_out
        logger.info(
            "No RSVP for event %s after %d polls; syncing intent %s",
            event_id,
            attempts,
            payment_intent_id,
        )
        return await self._fallback(event_id, payment_intent_id, attempts)

    async def _fallback(
        self,
        event_id: UUID,
        payment_intent_id: str,
        attempts: int,
    ) -> ConfirmationOutcome:
        if self.state != PollState.timed_out:
            raise RuntimeError(f"fallback is only allowed from timed_out, not {self.state.value}")

        try:
            synced = await self.client.sync_intent(payment_intent_id)
        except ServiceError as e:
            self.state = PollState.unconfirmed
            return ConfirmationOutcome(self.state, attempts, error=e)

        processor_status = synced.get("status")
        if processor_status != "succeeded":
            self.state = PollState.unconfirmed
            return ConfirmationOutcome(self.state, attempts, processor_status=processor_status)

        try:
            # The sync usually created the RSVP already; PUT is a no-op then
            if not await self.client.is_going(event_id):
                await self.client.set_rsvp(event_id, "going")
        except ServiceError as e:
            self.state = PollState.unconfirmed
            return ConfirmationOutcome(
                self.state, attempts, processor_status=processor_status, error=e
            )

        self.state = PollState.confirmed
        return ConfirmationOutcome(
            self.state,
            attempts,
            confirmed_by="fallback",
            processor_status=processor_status,
        )
