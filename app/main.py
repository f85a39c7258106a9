import logging
import sys
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from app.api.router import api_router
from app.config import settings
from app.core.database import get_db, init_db
from app.core.exceptions import StoreUnavailable
from app.domain.base_operations import store_operation


def setup_logging() -> None:
    """Configure application logging."""
    # Format: timestamp - level - logger name - message
    log_format = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
    date_format = "%H:%M:%S"

    # Configure root logger
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format=log_format,
        datefmt=date_format,
        stream=sys.stdout,
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    # Quieten uvicorn access logs (we'll log requests ourselves)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    from app.services.scheduler import scheduler

    # Startup
    setup_logging()
    logger.info("Guild Shop API starting up")
    if settings.debug:
        await init_db()
    scheduler.start()
    yield
    # Shutdown
    scheduler.stop()
    logger.info("Guild Shop API shutting down")


app = FastAPI(
    title="Guild Shop API",
    description="Coupon pricing, purchases and entitlements for Discord guild shops",
    version="0.1.0",
    lifespan=lifespan,
)

# Proxy headers middleware - trust X-Forwarded-For/Proto from the reverse proxy.
# The redeem rate limiter keys on the forwarded client address.
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    """Database unreachable: nothing was written, ask the caller to retry."""
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable. Please try again."},
        headers={"Retry-After": "5"},
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests, skipping OPTIONS preflight."""
    # Skip OPTIONS (CORS preflight) and health checks
    if request.method == "OPTIONS" or request.url.path == "/health":
        return await call_next(request)

    response = await call_next(request)

    # Only log failures and ledger writes
    path = request.url.path
    if response.status_code >= 400 or any(
        keyword in path for keyword in ["checkout", "redeem", "payments", "revoke", "cancel"]
    ):
        logger.info(f"{request.method} {path} -> {response.status_code}")

    return response


# Include API routes
app.include_router(api_router)


@store_operation
async def ping_database(db: AsyncSession) -> None:
    await db.execute(text("SELECT 1"))


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Health check endpoint. 503 when the database cannot be reached."""
    await ping_database(db)
    return {"status": "healthy"}
