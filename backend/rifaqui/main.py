# backend/rifaqui/main.py

import asyncio
import logging
import os
import time

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as SA_TimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import models  # noqa: F401  registers tables on Base.metadata
from .api import api_checkout, api_ops, api_webhooks
from .core.config import settings
from .core.observability import setup_logging, setup_tracer
from .database import Base, engine
from .db_utils import ensure_payment_columns, ensure_settlement_indexes, ensure_ticket_columns
from .services.ops_scheduler import run_maintenance
from .utils.errors import RaffleError, error_response
from .utils.notifications import alert_scheduler_failure
from .utils.status_logger import register_status_listeners

# Configure logging before creating any loggers
setup_logging()
logger = logging.getLogger(__name__)

_BOOT_TS = time.time()

register_status_listeners()

# Patch legacy databases before the ORM touches them
ensure_ticket_columns(engine)
ensure_payment_columns(engine)

Base.metadata.create_all(bind=engine)
ensure_settlement_indexes(engine)

app = FastAPI(title="Rifaqui Settlement API", default_response_class=ORJSONResponse)

setup_tracer(app)

# ─── CORS middleware ─────────────────────────────────────────────────────────
# Browser checkout only; webhook routes set their own wildcard headers.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials="*" not in settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
logger.info("CORS origins set to: %s", settings.CORS_ORIGINS)


@app.middleware("http")
async def catch_exceptions(request: Request, call_next):
    """Return JSON responses for errors that escape the routes and log them."""
    try:
        response = await call_next(request)
    except StarletteHTTPException as exc:
        logger.error(
            "HTTP error %s at %s: %s", exc.status_code, request.url.path, exc.detail
        )
        response = ORJSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail, "detail": exc.detail},
        )
    except SA_TimeoutError as exc:  # DB pool timeout -> 503 to reduce retry storms
        logger.error("DB timeout at %s: %s", request.url.path, str(exc))
        response = ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"success": False, "error": "Database busy, please retry"},
        )
    except Exception as exc:
        logger.exception("Unhandled error: %s", exc)
        response = ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "Internal server error",
                "message": str(exc),
            },
        )

    # Keep CORS headers on error responses too
    origin = request.headers.get("origin")
    if origin and "Access-Control-Allow-Origin" not in response.headers:
        if "*" in settings.CORS_ORIGINS:
            response.headers["Access-Control-Allow-Origin"] = "*"
        elif origin in settings.CORS_ORIGINS:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"

    return response


@app.exception_handler(RaffleError)
async def raffle_error_handler(request: Request, exc: RaffleError):
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    logger.warning("Validation error at %s: %s", request.url.path, errors)
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"success": False, "error": "Invalid request", "detail": errors},
    )


def _db_ping_sync() -> float:
    """Synchronous DB ping; must not run on the event loop."""
    t0 = time.perf_counter()
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return (time.perf_counter() - t0) * 1000.0


@app.get("/healthz/live", tags=["health"])
async def health_live():
    """Liveness probe: process can respond; does not touch the DB."""
    return {
        "status": "ok",
        "kind": "live",
        "uptime_s": round(time.time() - _BOOT_TS, 1),
        "pid": os.getpid(),
    }


@app.get("/healthz/ready", tags=["health"])
async def health_ready():
    """Readiness probe: the database answers ``SELECT 1`` within a second."""
    try:
        ping_ms = await asyncio.wait_for(asyncio.to_thread(_db_ping_sync), timeout=1.0)
    except asyncio.TimeoutError:
        return ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "error", "kind": "ready", "reason": "db_timeout"},
            headers={"Cache-Control": "no-store"},
        )
    except OperationalError as exc:
        return ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "error", "kind": "ready", "reason": "db_error", "error": str(exc)},
            headers={"Cache-Control": "no-store"},
        )
    return ORJSONResponse(
        content={"status": "ok", "kind": "ready", "db_ping_ms": round(ping_ms, 2)},
        headers={"Cache-Control": "no-store"},
    )


api_prefix = settings.API_V1_STR  # usually "/api/v1"

# ─── WEBHOOK ROUTES ──────────────────────────────────────────────────────────
# Providers POST to /api/v1/webhooks/{stripe,pix,suitpay,pay2m,fluxsis,paggue}
app.include_router(api_webhooks.router, prefix=f"{api_prefix}", tags=["webhooks"])

# ─── PAYMENT ROUTES ──────────────────────────────────────────────────────────
app.include_router(api_checkout.router, prefix=f"{api_prefix}", tags=["payments"])

# ─── OPS ROUTES (X-Admin-Key) ────────────────────────────────────────────────
app.include_router(api_ops.router, prefix=f"{api_prefix}", tags=["ops"])


async def ops_maintenance_loop() -> None:
    """Periodic cleanup: expired drafts, stale reservations, old audit entries."""
    while True:
        await asyncio.sleep(settings.MAINTENANCE_INTERVAL_SECONDS)
        # Retry with backoff on transient DB failures
        delay = 5
        max_retries = 5
        for attempt in range(max_retries):
            try:
                summary = await asyncio.to_thread(run_maintenance)
                logger.info("Maintenance summary: %s", summary)
                break
            except (OperationalError, RaffleError) as exc:
                alert_scheduler_failure(exc)
                if attempt < max_retries - 1:
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, 60)
                    continue
                # Give up for this cycle; try again next tick
                break
            except Exception as exc:  # keep the loop alive
                alert_scheduler_failure(exc)
                break


@app.on_event("startup")
async def start_background_tasks() -> None:
    """Launch the maintenance loop unless disabled or under test."""
    if os.getenv("PYTEST_RUN") == "1" or not settings.ENABLE_SCHEDULER:
        logger.info("Maintenance loop disabled")
        return
    asyncio.create_task(ops_maintenance_loop())


# ─── A simple root check ─────────────────────────────────────────────────────
@app.get("/")
async def root():
    return {"message": "Rifaqui Settlement API"}
