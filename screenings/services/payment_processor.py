from __future__ import annotations

import asyncio
import functools
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

import stripe

from screenings.core.config import settings
from screenings.core.errors import ProcessorUnavailable, ValidationError
from screenings.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProcessorIntent:
    id: str
    status: str
    amount: int
    client_secret: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ProcessorRefund:
    id: str
    amount: int
    status: str


class PaymentProcessor(Protocol):
    async def create_intent(
        self,
        *,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str | None = None,
    ) -> ProcessorIntent: ...

    async def retrieve_intent(self, intent_id: str) -> ProcessorIntent: ...

    async def create_refund(
        self,
        *,
        intent_id: str,
        amount: int | None = None,
        reason: str | None = None,
    ) -> ProcessorRefund: ...


def _metadata(obj: Any) -> dict[str, str]:
    raw = getattr(obj, "metadata", None)
    if not raw:
        return {}
    return {k: str(v) for k, v in dict(raw).items()}


def _to_intent(obj: Any) -> ProcessorIntent:
    return ProcessorIntent(
        id=obj.id,
        status=obj.status,
        amount=int(obj.amount),
        client_secret=getattr(obj, "client_secret", None),
        metadata=_metadata(obj),
    )


class StripeProcessor:
    """
    Stripe-backed PaymentProcessor.

    The SDK is synchronous; each call runs in a worker thread and is bounded
    by PROCESSOR_TIMEOUT_SECONDS so a slow Stripe never pins a request.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout if timeout is not None else settings.PROCESSOR_TIMEOUT_SECONDS

    async def _call(self, fn: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(functools.partial(fn, **kwargs)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Stripe call %s timed out after %ss", fn.__qualname__, self.timeout)
            raise ProcessorUnavailable() from e
        except stripe.InvalidRequestError as e:
            # Our request was wrong (bad amount, unknown intent): retrying won't help
            logger.info("Stripe rejected %s: %s", fn.__qualname__, e.user_message or str(e))
            raise ValidationError(e.user_message or "Payment request rejected by processor") from e
        except stripe.StripeError as e:
            logger.error("Stripe call %s failed: %s", fn.__qualname__, str(e))
            raise ProcessorUnavailable() from e

    async def create_intent(
        self,
        *,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str | None = None,
    ) -> ProcessorIntent:
        kwargs: dict[str, Any] = {
            "amount": amount,
            "currency": currency,
            "metadata": metadata,
            # Apple Pay, Google Pay, cards...
            "automatic_payment_methods": {"enabled": True},
        }
        if idempotency_key:
            kwargs["idempotency_key"] = idempotency_key

        intent = await self._call(stripe.PaymentIntent.create, **kwargs)
        return _to_intent(intent)

    async def retrieve_intent(self, intent_id: str) -> ProcessorIntent:
        intent = await self._call(stripe.PaymentIntent.retrieve, id=intent_id)
        return _to_intent(intent)

    async def create_refund(
        self,
        *,
        intent_id: str,
        amount: int | None = None,
        reason: str | None = None,
    ) -> ProcessorRefund:
        kwargs: dict[str, Any] = {
            "payment_intent": intent_id,
            "reason": reason or "requested_by_customer",
        }
        # Omitted amount = full refund
        if amount is not None:
            kwargs["amount"] = amount

        refund = await self._call(stripe.Refund.create, **kwargs)
        return ProcessorRefund(
            id=refund.id,
            amount=int(refund.amount),
            status=refund.status,
        )
