from typing import Literal, get_args

import stripe

from screenings.core.config import settings
from screenings.core.logging import get_logger

logger = get_logger(__name__)

STRIPE_API_KEY = settings.STRIPE_API_KEY

stripe.api_key = STRIPE_API_KEY
stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES

# Webhook event types we act on; everything else is acknowledged and ignored
EVENT_PAYMENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_PAYMENT_FAILED = "payment_intent.payment_failed"
EVENT_CHARGE_REFUNDED = "charge.refunded"

RefundReason = Literal["duplicate", "fraudulent", "requested_by_customer"]
REFUND_REASONS: tuple[str, ...] = get_args(RefundReason)


def warn_if_live_key_outside_production() -> None:
    if STRIPE_API_KEY.startswith("sk_live_") and not settings.is_production:
        logger.warning(
            "Using a LIVE Stripe key in the %s environment; switch to sk_test_... to avoid real charges",
            settings.ENVIRONMENT,
        )
