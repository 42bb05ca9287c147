from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from screenings.core.config import settings
from screenings.core.logging import get_logger
from screenings.db.session import get_db
from screenings.services.job_queue import enqueue_unneeded_payment_refund
from screenings.services.stripe_webhook_service import (
    classify,
    process_webhook_event,
    verify_and_parse,
)

logger = get_logger(__name__)

router = APIRouter()


@router.post("/payments/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Stripe webhook receiver.

      - bad/missing signature or missing secret -> 400 (never retried)
      - processed, replayed or ignored          -> 200 {"received": true}
      - processing failure                      -> 500 (Stripe retries)
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    # SignatureInvalid propagates to the ServiceError handler as a 400
    envelope = verify_and_parse(
        payload,
        sig_header,
        settings.STRIPE_WEBHOOK_SECRET,
        tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
    )
    command = classify(envelope, is_production=settings.is_production)

    try:
        response, result = await process_webhook_event(db, envelope, command)
    except Exception as e:
        # Rollback is automatic with db.begin() on exception; Stripe will retry
        logger.exception("Webhook %s (%s) processing failed", envelope.id, envelope.type)
        raise HTTPException(status_code=500, detail=f"Webhook processing failed: {str(e)}")

    if result is not None and result.refund_due and result.payment is not None:
        try:
            await enqueue_unneeded_payment_refund(
                result.payment.id,
                database=request.app.state.db,
                processor=request.app.state.processor,
            )
        except Exception:
            # Payment state is already committed; a retry would be a no-op
            logger.exception("Could not schedule refund for payment %s", result.payment.id)

    return response
