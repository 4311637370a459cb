import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import activity, bookings, professionals, slots
from app.core.config import settings, _ENV_FILE
from app.core.db import async_session_maker
from app.services.booking_service import complete_past_bookings
from app.services.errors import (
    BookingError,
    BookingNotFoundError,
    NotCancellableError,
    PaymentError,
    SlotUnavailableError,
)

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)

BOOKING_ERROR_STATUS: dict[type[BookingError], int] = {
    BookingNotFoundError: status.HTTP_404_NOT_FOUND,
    SlotUnavailableError: status.HTTP_409_CONFLICT,
    NotCancellableError: status.HTTP_400_BAD_REQUEST,
    PaymentError: status.HTTP_502_BAD_GATEWAY,
}


async def _run_booking_completion() -> None:
    try:
        async with async_session_maker() as session:
            try:
                n = await complete_past_bookings(session)
                await session.commit()
                if n:
                    logger.info("Booking completion: marked %d booking(s) completed", n)
            except Exception:
                await session.rollback()
                raise
    except Exception as e:
        logger.exception("Booking completion failed: %s", e)


async def _completion_loop() -> None:
    while True:
        await asyncio.sleep(settings.booking_completion_interval_minutes * 60)
        await _run_booking_completion()


def _log_integrations() -> None:
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    if settings.payments_enabled:
        logger.info("Stripe: configured")
    else:
        logger.warning("Stripe: NOT configured. Cancellations will not move money (set STRIPE_SECRET_KEY)")
    if not settings.email_enabled:
        logger.warning("Brevo: NOT configured. Set BREVO_API_KEY and FROM_EMAIL in %s", _ENV_FILE)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _log_integrations()
    await _run_booking_completion()
    task = asyncio.create_task(_completion_loop())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    title="The Suite API",
    description="Backend for The Suite: availability, bookings, cancellations",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(slots.router, prefix="/api/v1")
app.include_router(professionals.router, prefix="/api/v1")
app.include_router(bookings.router, prefix="/api/v1")
app.include_router(activity.router, prefix="/api/v1")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """CORS headers for responses built by exception handlers, which bypass the middleware."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    code = next(
        (c for cls, c in BOOKING_ERROR_STATUS.items() if isinstance(exc, cls)),
        status.HTTP_400_BAD_REQUEST,
    )
    logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(
        status_code=code,
        content={"detail": str(exc)},
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    headers = _cors_headers(request.headers.get("origin"))
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    detail = "Internal server error" if settings.env == "production" else f"{type(exc).__name__}: {exc}"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
