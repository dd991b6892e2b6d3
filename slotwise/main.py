import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from slotwise.api.routes import booking, payments
from slotwise.core.config import settings, _ENV_FILE
from slotwise.core.db import async_session_maker
from slotwise.core.errors import BookingError
from slotwise.services.appointment_service import expire_stale_holds
from slotwise.services.local_time import resolve_zone

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


async def _run_hold_sweep() -> None:
    """Cancel AwaitingPayment holds past their expiry so they stop blocking slots."""
    try:
        async with async_session_maker() as session:
            try:
                await expire_stale_holds(session)
            except Exception:
                await session.rollback()
                raise
    except Exception as e:
        logger.exception("Hold sweep failed: %s", e)


async def _hold_sweep_loop() -> None:
    while True:
        await asyncio.sleep(settings.hold_sweep_interval_seconds)
        await _run_hold_sweep()


def _startup_log() -> None:
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    logger.info(
        "Default time zone %s, slot interval %d min, payment hold %d min",
        settings.default_timezone,
        settings.default_slot_interval_minutes,
        settings.payment_hold_minutes,
    )
    if not settings.razorpay_webhook_secret:
        logger.warning(
            "Payments: RAZORPAY_WEBHOOK_SECRET not set; every webhook will be rejected. Set it in %s",
            _ENV_FILE,
        )
    if not settings.email_enabled:
        logger.warning("Email: SMTP not configured, booking confirmations will not be sent")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # An unusable default zone is a deployment error, not a request error
    resolve_zone(settings.default_timezone)
    _startup_log()
    await _run_hold_sweep()
    task = asyncio.create_task(_hold_sweep_loop())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    title="Slotwise API",
    description="Appointment booking: availability, reservations, payment holds",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(booking.router)
app.include_router(payments.router)


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    logger.log(
        exc.log_level,
        "%s on %s %s: %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected request body on %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid input", "details": jsonable_errors(exc)},
        headers=_cors_headers(request.headers.get("origin")),
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    headers = _cors_headers(request.headers.get("origin"))
    if exc.headers:
        headers.update(exc.headers)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Include CORS so 500 responses are not blocked by browser."""
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
