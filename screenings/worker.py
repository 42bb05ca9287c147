from __future__ import annotations

from datetime import timedelta
from uuid import UUID

from arq import cron
from arq.connections import RedisSettings

from screenings.core.config import settings
from screenings.core.logging import get_logger, setup_logging
from screenings.db.session import Database
from screenings.services import payment_service
from screenings.services.job_queue import TASK_REFUND_UNNEEDED_PAYMENT, refund_job_id
from screenings.services.payment_processor import StripeProcessor

logger = get_logger(__name__)


def _safe_error_summary(err: str | None, max_len: int = 200) -> str | None:
    if not err:
        return None
    s = str(err).replace("\n", " ").replace("\r", " ").strip()
    if len(s) <= max_len:
        return s
    return s[:max_len] + "…"


async def startup(ctx) -> None:
    setup_logging()
    database = Database(settings.DATABASE_URL, echo=settings.DEBUG)
    await database.connect()
    ctx["db"] = database
    ctx["processor"] = StripeProcessor()
    logger.info("Worker started")


async def shutdown(ctx) -> None:
    database: Database | None = ctx.get("db")
    if database is not None:
        await database.disconnect()


async def refund_unneeded_payment(ctx, payment_id: str) -> bool:
    """
    ARQ task entrypoint: refund a payment that pays for no seat.
    """
    pid = UUID(payment_id)

    try:
        async with ctx["db"].session() as db:
            return await payment_service.refund_unneeded_payment(db, ctx["processor"], pid)

    except Exception as e:
        job_try = int(ctx.get("job_try") or 1)
        max_tries = int(settings.ARQ_MAX_TRIES)

        # Last try -> dead-letter: leave it to a human, Stripe still holds the money
        if job_try >= max_tries:
            logger.error(
                "Dead-lettered %s for payment %s after %d tries: %s",
                TASK_REFUND_UNNEEDED_PAYMENT,
                payment_id,
                job_try,
                _safe_error_summary(str(e)),
            )
            return False

        # Otherwise re-raise to let ARQ retry
        raise


async def reconcile_pending_payments(ctx) -> dict:
    """
    Cron: re-sync pending payments whose webhook never arrived.
    """
    async with ctx["db"].session() as db:
        summary = await payment_service.reconcile_stale_payments(
            db,
            ctx["processor"],
            older_than=timedelta(minutes=settings.PENDING_PAYMENT_STALE_MINUTES),
        )

    redis = ctx.get("redis")
    for payment_id in summary["refund_due"] if redis is not None else []:
        await redis.enqueue_job(
            TASK_REFUND_UNNEEDED_PAYMENT,
            str(payment_id),
            _job_id=refund_job_id(payment_id),
        )

    return {**summary, "refund_due": [str(p) for p in summary["refund_due"]]}


class WorkerSettings:
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    functions = [refund_unneeded_payment]
    cron_jobs = [cron(reconcile_pending_payments, minute={0, 15, 30, 45})]

    on_startup = startup
    on_shutdown = shutdown

    max_jobs = 10
    job_timeout = 60 * 5
    max_tries = settings.ARQ_MAX_TRIES
