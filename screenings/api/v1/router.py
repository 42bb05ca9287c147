from fastapi import APIRouter

from screenings.api.v1 import health, payments, rsvps, stripe_webhook

router = APIRouter()
router.include_router(health.router, tags=["health"])
router.include_router(rsvps.router, tags=["rsvps"])
router.include_router(payments.router, tags=["payments"])
router.include_router(stripe_webhook.router, tags=["payments"])
