from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from screenings.api.deps import get_current_user_id, get_processor, require_admin
from screenings.core.logging import get_logger
from screenings.db.session import get_db
from screenings.schemas.payment import (
    CreateIntentRequest,
    CreateIntentResponse,
    PaymentHistoryItem,
    RefundRequest,
    RefundResponse,
    RefundSummary,
    SyncIntentRequest,
    SyncIntentResponse,
)
from screenings.services import payment_service
from screenings.services.job_queue import enqueue_unneeded_payment_refund
from screenings.services.payment_processor import PaymentProcessor

logger = get_logger(__name__)

router = APIRouter(prefix="/payments")


@router.post("/create-intent", response_model=CreateIntentResponse)
async def create_payment_intent(
    body: CreateIntentRequest,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    processor: PaymentProcessor = Depends(get_processor),
):
    created = await payment_service.create_intent(
        db,
        processor,
        event_id=body.event_id,
        user_id=user_id,
        requested_amount=body.amount,
    )
    return CreateIntentResponse(
        client_secret=created.client_secret,
        payment_intent_id=created.payment_intent_id,
        amount=created.amount,
    )


@router.post("/sync-intent", response_model=SyncIntentResponse)
async def sync_payment_intent(
    body: SyncIntentRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    processor: PaymentProcessor = Depends(get_processor),
):
    """
    Fallback for slow/failed webhooks: fetch the intent from Stripe and
    apply it exactly as the webhook would.
    """
    result = await payment_service.sync_intent(
        db,
        processor,
        user_id=user_id,
        payment_intent_id=body.payment_intent_id,
    )

    if result.refund_due:
        try:
            await enqueue_unneeded_payment_refund(
                result.payment_id,
                database=request.app.state.db,
                processor=processor,
            )
        except Exception:
            logger.exception("Could not schedule refund for payment %s", result.payment_id)

    return SyncIntentResponse(
        synced=True,
        status=result.status,
        payment_status=result.payment_status,
    )


@router.get("/history", response_model=list[PaymentHistoryItem])
async def get_payment_history(
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    return await payment_service.payment_history(db, user_id=user_id)


@router.post(
    "/{payment_id}/refund",
    response_model=RefundResponse,
    dependencies=[Depends(require_admin)],
)
async def create_refund(
    payment_id: UUID,
    body: RefundRequest,
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_processor),
):
    refund = await payment_service.refund_payment(
        db,
        processor,
        payment_id=payment_id,
        amount=body.amount,
        reason=body.reason,
    )
    return RefundResponse(
        message="Refund created successfully",
        refund=RefundSummary(id=refund.id, amount=refund.amount, status=refund.status),
    )
