from __future__ import annotations

import asyncio
from typing import Any, Optional
from uuid import UUID

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from screenings.core.config import settings
from screenings.core.logging import get_logger
from screenings.services.payment_service import refund_unneeded_payment

logger = get_logger(__name__)

TASK_REFUND_UNNEEDED_PAYMENT = "refund_unneeded_payment"

_redis_pool: Optional[ArqRedis] = None
_pool_lock = asyncio.Lock()


async def init_redis_pool() -> ArqRedis:
    global _redis_pool
    async with _pool_lock:
        if _redis_pool is None:
            _redis_pool = await create_pool(RedisSettings.from_dsn(settings.REDIS_URL))
        return _redis_pool


async def get_redis_pool() -> ArqRedis:
    if _redis_pool is None:
        return await init_redis_pool()
    return _redis_pool


async def close_redis_pool() -> None:
    global _redis_pool
    async with _pool_lock:
        if _redis_pool is None:
            return

        pool = _redis_pool
        _redis_pool = None

        # redis asyncio: close is async, named aclose on recent versions
        if hasattr(pool, "aclose"):
            await pool.aclose()  # type: ignore[attr-defined]
        else:
            await pool.close()  # type: ignore[func-returns-value]


def refund_job_id(payment_id: UUID | str) -> str:
    return f"refund-unneeded-payment:{payment_id}"


async def enqueue_unneeded_payment_refund(
    payment_id: UUID,
    *,
    database: Any,
    processor: Any,
) -> dict[str, Any]:
    """
    Refund a succeeded payment that pays for no seat (event already full,
    or the user had already paid).

    With the ARQ worker enabled the refund is a retried background job
    (job id = payment id, so double scheduling collapses into one job).
    Without it the refund runs inline on a fresh session.
    """
    if settings.USE_ARQ_WORKER:
        redis = await get_redis_pool()
        job = await redis.enqueue_job(
            TASK_REFUND_UNNEEDED_PAYMENT,
            str(payment_id),
            _job_id=refund_job_id(payment_id),
        )
        return {
            "queued": True,
            "queue": "arq",
            "job_id": job.job_id if job else None,
        }

    async with database.session() as db:
        refunded = await refund_unneeded_payment(db, processor, payment_id)
    return {"queued": False, "refunded": refunded}
