import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from .config import ALLOWED_ORIGINS
from .database import Base, engine, get_db
from .domain.catalog.router import router as catalog_router
from .domain.notifications.router import router as notifications_router
from .domain.orders.router import router as orders_router
from .domain.payments.router import router as payments_router
from .domain.scheduling.router import router as scheduling_router
from .errors import AdmissionRejected, PaymentCallbackError, StoreUnavailable
from .realtime import get_redis_client

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Quiet per-request logging from the HTTP clients
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Car wash booking API starting")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
    except (OperationalError, ProgrammingError) as e:
        # Several uvicorn workers may race to create the same tables
        if "already exists" not in str(e):
            logger.error(f"❌ Could not create tables: {e}")

    try:
        get_redis_client().ping()
        logger.info("✅ Redis reachable, live channels enabled")
    except RedisError as e:
        logger.warning(f"⚠️ Redis unreachable, live updates will be dropped: {e}")

    yield
    logger.info("👋 Car wash booking API stopped")


app = FastAPI(title="Car Wash Booking API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    # A malformed Authorization header is an auth problem, not a payload problem
    if any("authorization" in str(error.get("loc", "")).lower() for error in errors):
        return JSONResponse(status_code=401, content={"detail": "Not authenticated"})

    logger.warning(f"Validation error on {request.method} {request.url.path}: {errors}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})


@app.exception_handler(AdmissionRejected)
async def admission_rejected_handler(request: Request, exc: AdmissionRejected):
    logger.info(f"🚫 Slot full: {exc.time_slot} on {exc.date} ({request.url.path})")
    return JSONResponse(
        status_code=409,
        content={
            "detail": "This time slot is fully booked. Please choose another time.",
            "date": str(exc.date),
            "time_slot": exc.time_slot,
            "capacity": exc.capacity,
        },
    )


@app.exception_handler(PaymentCallbackError)
async def payment_callback_error_handler(request: Request, exc: PaymentCallbackError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "reason": exc.reason, "detail": str(exc)},
    )


@app.exception_handler(StoreUnavailable)
@app.exception_handler(OperationalError)
async def store_unavailable_handler(request: Request, exc: Exception):
    logger.error(f"❌ Database unavailable on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable. Please try again shortly."},
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    if response.status_code >= 500:
        logger.error(
            f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f}ms)"
        )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(scheduling_router)
app.include_router(catalog_router)
app.include_router(orders_router)
app.include_router(payments_router)
app.include_router(notifications_router)


@app.get("/")
def root():
    return {"message": "Car Wash Booking API is running"}


@app.get("/health")
def health(db: Session = Depends(get_db)):
    """Liveness plus a round trip to the database; Redis is reported, not required"""
    try:
        db.execute(text("SELECT 1"))
    except OperationalError as e:
        raise StoreUnavailable(str(e)) from e

    try:
        started = time.perf_counter()
        get_redis_client().ping()
        redis_status = {
            "connected": True,
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
        }
    except RedisError as e:
        redis_status = {"connected": False, "error": str(e)}

    return {"status": "healthy", "database": "ok", "redis": redis_status}
