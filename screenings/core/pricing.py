from __future__ import annotations

from screenings.core.errors import AmountBelowMinimum, EventIsFree
from screenings.models.event import Event


def requires_payment(event: Event) -> bool:
    # price 0 counts as free, same as a missing price
    return bool(event.price) or bool(event.pay_what_you_can)


def resolve_charge_amount(event: Event, requested_amount: int | None) -> int:
    """
    Amount (minor units) to charge for one ticket.

      - free event            -> EventIsFree
      - pay-what-you-can      -> requested_amount, must be >= min_price (default 0)
      - fixed price           -> event.price, requested_amount ignored
    """
    if not requires_payment(event):
        raise EventIsFree()

    if event.pay_what_you_can:
        minimum = event.min_price or 0
        if requested_amount is None or requested_amount < minimum:
            raise AmountBelowMinimum(minimum)
        return requested_amount

    return event.price


def format_amount(amount: int, currency: str = "gbp") -> str:
    symbol = {"gbp": "£", "usd": "$", "eur": "€"}.get(currency.lower(), "")
    return f"{symbol}{amount / 100:.2f}"
