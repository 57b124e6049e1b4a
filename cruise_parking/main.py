from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded
import logging
import time
import uuid

from . import __version__
from .config import settings
from .database import create_tables
from .exceptions import AppException
from .services.sync_scheduler import start_scheduler, stop_scheduler
from .utils.logging_config import setup_logging, get_logger, set_request_context, clear_request_context
from .utils.rate_limiter import limiter

from .routers import occupancy, sync, orders, health

setup_logging(level=settings.log_level, json_format=settings.log_json)
logger = logging.getLogger(__name__)
request_logger = get_logger("cruise_parking.requests")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting cruise-parking backend {__version__}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"CORS Origins: {settings.cors_origins}")

    create_tables()

    if not settings.has_feed_credentials:
        logger.warning("WooCommerce credentials missing, POST /api/sync will fail until they are set")

    if settings.sync_schedule_enabled:
        start_scheduler()
    else:
        logger.info("Scheduled sync disabled (SYNC_SCHEDULE_ENABLED=false)")

    yield

    logger.info("Shutting down cruise-parking backend...")
    stop_scheduler()


app = FastAPI(
    title="Cruise Parking Occupancy API",
    description="Order sync and daily lot occupancy for cruise parking",
    version=__version__,
    lifespan=lifespan
)

app.state.limiter = limiter

# Calendar frontend origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags every log line of a request with its X-Request-ID"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        set_request_context(request_id)

        start = time.time()
        try:
            response = await call_next(request)
            duration_ms = round((time.time() - start) * 1000, 2)
            if not request.url.path.startswith("/health"):
                request_logger.api_request(request.method, request.url.path, response.status_code, duration_ms)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_request_context()

app.add_middleware(RequestIdMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_code": exc.error_code}
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests, try again later", "error_code": "RATE_LIMITED"}
    )

# Include routers
app.include_router(occupancy.router)
app.include_router(sync.router)
app.include_router(orders.router)
app.include_router(health.router)


@app.get("")
@app.get("/")
async def root():
    return {
        "message": "Cruise Parking Occupancy API",
        "version": __version__,
        "docs": "/docs",
        "status": "running",
    }
