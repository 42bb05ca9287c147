from __future__ import annotations

from contextlib import asynccontextmanager

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from screenings.api.v1.router import router as api_router
from screenings.core.config import settings
from screenings.core.errors import ServiceError
from screenings.core.logging import get_logger, setup_logging
from screenings.core.stripe_config import warn_if_live_key_outside_production
from screenings.db.session import Database
from screenings.services.job_queue import close_redis_pool, init_redis_pool
from screenings.services.payment_processor import PaymentProcessor, StripeProcessor

logger = get_logger(__name__)

HTTP_ERROR_CODES = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    500: "internal_error",
    503: "unavailable",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    warn_if_live_key_outside_production()

    database: Database = app.state.db
    if not database.is_connected:
        await database.connect()

    if settings.USE_ARQ_WORKER:
        await init_redis_pool()

    logger.info("Screenings API started (environment=%s)", settings.ENVIRONMENT)

    yield

    # Shutdown
    if settings.USE_ARQ_WORKER:
        await close_redis_pool()

    await database.disconnect()


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "code": "validation_error", "details": details},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": str(exc.detail),
            "code": HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
        },
        headers=getattr(exc, "headers", None),
    )


def create_app(
    *,
    database: Database | None = None,
    processor: PaymentProcessor | None = None,
) -> FastAPI:
    app = FastAPI(title="Screenings API", lifespan=lifespan)

    app.state.db = database or Database(settings.DATABASE_URL, echo=settings.DEBUG)
    app.state.processor = processor or StripeProcessor()

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
