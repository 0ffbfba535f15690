# orgpark/main.py
"""
FastAPI application entry point.
Includes security middleware, error handlers, all routers and the
background auto-activation sweeper.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from orgpark.routers import bookings, watchmen, payments, parking_lots, health
from orgpark.database import create_tables
from orgpark.config import settings
from orgpark.services.activation_sweeper import run_activation_sweeper
from orgpark.utils.exceptions import BookingEngineError
from orgpark.utils.logger import get_logger
import time
import asyncio

logger = get_logger(__name__)

app = FastAPI(
    title="OrgPark Booking Engine API",
    description="Organization parking: slot allocation, bookings, gate verification and penalties.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (allow mobile / admin dashboard to call the API) ───────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Restrict to app origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Optional lightweight API key auth.
    Set API_KEY in .env. Leave empty to disable auth.
    """
    async def dispatch(self, request: Request, call_next):
        open_paths = {"/api/v1/health", "/docs", "/redoc", "/openapi.json"}
        if request.url.path in open_paths or not settings.API_KEY:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if api_key != settings.API_KEY:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API key"},
            )
        return await call_next(request)


if settings.API_KEY:
    app.add_middleware(APIKeyMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Booking Engine Errors ────────────────────────────────────────────────────
@app.exception_handler(BookingEngineError)
async def booking_error_handler(request: Request, exc: BookingEngineError):
    if exc.status_code >= 500:
        logger.critical(f"Invariant violation on {request.url.path}: {exc.code}: {exc.detail}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


# ── Global Exception Handler ─────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(bookings.router,     prefix="/api/v1", tags=["🎫 Bookings"])
app.include_router(watchmen.router,     prefix="/api/v1", tags=["👮 Watchmen / Gate"])
app.include_router(payments.router,     prefix="/api/v1", tags=["💳 Payments"])
app.include_router(parking_lots.router, prefix="/api/v1", tags=["🅿️  Parking Lots"])
app.include_router(health.router,       prefix="/api/v1", tags=["💚 Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
_background_tasks = set()


@app.on_event("startup")
async def startup():
    logger.info("🚀 OrgPark Backend starting up...")
    create_tables()
    logger.info("✅ Database tables ready")
    logger.info(f"🌐 Listening on http://{settings.BACKEND_IP}:{settings.BACKEND_PORT}")
    logger.info("📖 API docs at /docs")

    if settings.AUTO_ACTIVATE_ENABLED:
        task = asyncio.create_task(run_activation_sweeper(settings.SWEEP_INTERVAL_SECONDS))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        logger.info("⏱️  Auto-activation sweeper started")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 OrgPark Backend shutting down...")
    for task in list(_background_tasks):
        task.cancel()
