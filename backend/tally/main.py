"""Tally Financial Manager - FastAPI Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from tally.config import settings
from tally.database import engine, Base, async_session
from tally.middleware.error_capture import ErrorCaptureMiddleware
from tally.api import (
    accounts,
    clients,
    credits,
    journal,
    payments,
    stock,
    tenants,
    third_parties,
    treasury,
)
import tally.models  # noqa: F401  registers every table on Base.metadata
from tally.seed_chart import seed_demo_tenant
from tally.services.errors import InvalidAmount, TallyError

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup (dev only); in prod use Alembic migrations."""
    if settings.environment == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with async_session() as db:
            await seed_demo_tenant(db)
    yield
    await engine.dispose()


limiter = Limiter(key_func=get_remote_address)

app = FastAPI(
    title="Tally API",
    description="Multi-tenant ledger, credit and collections API for small businesses",
    version="0.1.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(TallyError)
async def tally_error_handler(request: Request, exc: TallyError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Malformed input is reported under the same kind as a bad amount
    return JSONResponse(
        status_code=400,
        content={"detail": {
            "error": InvalidAmount.kind,
            "message": "Request validation failed",
            "fields": jsonable_encoder(exc.errors()),
        }},
    )


# ── Security headers middleware ──────────────────────────────────
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"
        if settings.environment != "development":
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        return response


# Error capture middleware (outermost; catches everything)
app.add_middleware(ErrorCaptureMiddleware)

# Security headers
app.add_middleware(SecurityHeadersMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Requested-With"],
)

# Routers
TENANT_PREFIX = "/api/tenants/{tenant_id}"

app.include_router(tenants.router, prefix="/api/tenants", tags=["Tenants"])
app.include_router(accounts.router, prefix=TENANT_PREFIX, tags=["Chart of Accounts"])
app.include_router(journal.router, prefix=TENANT_PREFIX, tags=["Journal"])
app.include_router(third_parties.router, prefix=TENANT_PREFIX, tags=["Third Parties"])
app.include_router(treasury.router, prefix=TENANT_PREFIX, tags=["Treasury"])
app.include_router(stock.router, prefix=TENANT_PREFIX, tags=["Stock"])
app.include_router(credits.router, prefix=TENANT_PREFIX, tags=["Credits"])
app.include_router(clients.router, prefix=TENANT_PREFIX, tags=["Clients"])
app.include_router(payments.router, prefix=TENANT_PREFIX, tags=["Payments"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "tally-api", "version": "0.1.0"}
