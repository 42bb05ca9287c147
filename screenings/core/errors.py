"""
Error taxonomy shared by the API and the client.

Every error carries an HTTP status, a stable machine-readable code and an
``outcome`` telling the caller what it can do about it:

- ``change_input``: retry with a different request (larger amount, other event)
- ``retry_later``: transient failure, the same request may succeed later
- ``done``: nothing left to do
- ``fix_request``: the request itself is wrong
"""
from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    status_code: int = 400
    code: str = "service_error"
    outcome: str = "fix_request"
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None, **extra: Any) -> None:
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, **self.extra}


class ValidationError(ServiceError):
    code = "validation_error"
    default_message = "Invalid request"


class NotFound(ServiceError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class CapacityExceeded(ServiceError):
    code = "capacity_exceeded"
    outcome = "change_input"
    default_message = "Event is at full capacity"


class EventIsFree(ServiceError):
    code = "event_is_free"
    default_message = "This event is free"


class AmountBelowMinimum(ServiceError):
    code = "amount_below_minimum"
    outcome = "change_input"

    def __init__(self, minimum: int, message: str | None = None) -> None:
        self.minimum = minimum
        super().__init__(
            message or f"Amount must be at least {minimum} ({minimum / 100:.2f})",
            minimum=minimum,
        )


class PaymentRequired(ServiceError):
    status_code = 402
    code = "payment_required"
    outcome = "change_input"
    default_message = "A completed payment is required to attend this event"


class SignatureInvalid(ServiceError):
    code = "signature_invalid"
    default_message = "Invalid webhook signature"


class ProcessorUnavailable(ServiceError):
    status_code = 503
    code = "processor_unavailable"
    outcome = "retry_later"
    default_message = "Payment processor unavailable, please try again later"


class AlreadyRefunded(ServiceError):
    code = "already_refunded"
    outcome = "done"
    default_message = "Payment already refunded"


ERRORS_BY_CODE: dict[str, type[ServiceError]] = {
    cls.code: cls
    for cls in (
        ValidationError,
        NotFound,
        CapacityExceeded,
        EventIsFree,
        AmountBelowMinimum,
        PaymentRequired,
        SignatureInvalid,
        ProcessorUnavailable,
        AlreadyRefunded,
    )
}


def error_from_payload(status_code: int, payload: dict[str, Any] | None) -> ServiceError:
    """
    Rebuild a ServiceError from an API error body (client side).
    Unknown codes fall back on the status: 5xx is retryable, the rest is not.
    """
    payload = payload or {}
    message = payload.get("error") or payload.get("detail")
    if not isinstance(message, str):
        message = None

    cls = ERRORS_BY_CODE.get(payload.get("code") or "")

    if cls is AmountBelowMinimum:
        return AmountBelowMinimum(int(payload.get("minimum") or 0), message)

    if cls is None:
        if status_code >= 500:
            return ProcessorUnavailable(message)
        if status_code == 404:
            return NotFound(message)
        err = ServiceError(message)
        err.status_code = status_code
        return err

    err = cls(message)
    err.status_code = status_code
    return err
