"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.routes import files, folders, links, onboarding
from app.config import settings
from app.core.errors import DomainError
from app.db.exceptions import ConnectionError as DatabaseConnectionError
from app.db.exceptions import DatabaseError
from app.middleware.rate_limiter import limiter, rate_limit_exceeded_handler
from app.middleware.request_id import RequestIDLogFilter, RequestIDMiddleware
from app.models.envelope import ApiError, error_response
from app.services.redis_client import close_redis, get_redis

logger = logging.getLogger(__name__)

# Configure logging format based on dev_mode
if not settings.dev_mode:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='{"time":"%(asctime)s","level":"%(levelname)s","name":"%(name)s",'
        '"request_id":"%(request_id)s","message":"%(message)s"}',
    )
else:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s: %(message)s",
    )
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIDLogFilter())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    yield
    await close_redis()  # Close Redis connection pool

app = FastAPI(
    title="Foldly API",
    description="Multi-tenant file collection: workspaces, folders, files and shareable links",
    version="0.1.0",
    openapi_url="/api/v1/openapi.json",
    docs_url="/docs" if settings.dev_mode else None,
    redoc_url="/redoc" if settings.dev_mode else None,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.state.limiter = limiter


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if not settings.dev_mode:
            response.headers["Strict-Transport-Security"] = (
                "max-age=63072000; includeSubDomains"
            )
        return response


app.add_middleware(SlowAPIMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIDMiddleware)


# ---------------------------------------------------------------------------
# Global exception handlers
# ---------------------------------------------------------------------------

app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(DomainError)
async def _domain_error_handler(_request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(ApiError(code=exc.code, message=exc.message, field=exc.field), **exc.flags()),
    )


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    return JSONResponse(
        status_code=422,
        content=error_response(
            ApiError(
                code="VALIDATION_ERROR",
                message=first.get("msg", "Invalid request"),
                field=".".join(location) or None,
            )
        ),
    )


@app.exception_handler(DatabaseError)
async def _database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    logger.error("Database failure on %s %s: %s", request.method, request.url.path, exc)
    if isinstance(exc, DatabaseConnectionError):
        status_code, code, message = 503, "DATABASE_UNAVAILABLE", "Database temporarily unavailable"
    else:
        status_code, code, message = 500, "TRANSACTION_FAILED", "The operation could not be completed"
    return JSONResponse(
        status_code=status_code,
        content=error_response(ApiError(code=code, message=message)),
    )


@app.exception_handler(Exception)
async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception on %s %s", request.method, request.url.path, exc_info=True)
    detail = str(exc) if settings.dev_mode else "Internal server error"
    return JSONResponse(
        status_code=500,
        content=error_response(ApiError(code="INTERNAL_ERROR", message=detail)),
    )


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["X-Request-ID", "X-Archive-Entries", "Content-Disposition"],
)


# ---------------------------------------------------------------------------
# Routers (all under /api/v1/)
# ---------------------------------------------------------------------------

app.include_router(onboarding.router, prefix="/api/v1/onboarding", tags=["onboarding"])
app.include_router(folders.router, prefix="/api/v1/folders", tags=["folders"])
app.include_router(files.router, prefix="/api/v1/files", tags=["files"])
app.include_router(links.router, prefix="/api/v1/links", tags=["links"])

# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health_check() -> dict:
    """Liveness check: the API process is alive."""
    return {"status": "healthy"}


@app.get("/health/ready")
async def readiness_check() -> JSONResponse:
    """Readiness check: DB and, when used for counters, Redis are reachable."""
    checks: dict[str, str] = {}

    try:
        from app.db.database import engine
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception:
        checks["database"] = "unavailable"

    if settings.rate_limit_store == "redis":
        try:
            redis_client = await get_redis()
            await redis_client.ping()
            checks["redis"] = "ok"
        except Exception:
            checks["redis"] = "unavailable"

    all_ok = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={"status": "ready" if all_ok else "degraded", "services": checks},
    )


@app.get("/api/v1/version")
async def version() -> dict:
    """Return build / version metadata."""
    return {
        "version": app.version,
        "title": app.title,
        "api_prefix": "/api/v1",
    }
