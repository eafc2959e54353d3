"""
api/main.py -- FastAPI application entry point for AuthLab.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- lets browser clients send Authorization and
                              read the WWW-Authenticate challenge
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (user store, first-run seed, nonce store, gate,
sweep task) and shutdown (cancel sweep task, close DB) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.protected import router as protected_router
from api.routes.v1.auth import router as auth_router
from auth.gate import AuthGate
from auth.models import User
from auth.nonce import NonceStore
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import Settings, get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authlab.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background nonce sweep
# ---------------------------------------------------------------------------


async def _sweep_loop(app: FastAPI, interval: float) -> None:
    """Purge expired nonces every `interval` seconds.

    is_valid() already evicts expired nonces lazily; this loop only bounds
    memory for challenges that are never answered. CancelledError from
    task.cancel() during shutdown propagates out of asyncio.sleep.
    """
    while True:
        await asyncio.sleep(interval)
        removed = app.state.nonces.purge_expired()
        if removed:
            logger.info("Nonce sweep removed %d expired entries", removed)


def _seed_admin(user_store: UserStore, settings: Settings) -> bool:
    """Create the configured admin account on first run (empty user table).

    Returns True if an account was created. Without a configured password
    (production with SEED_ADMIN_PASSWORD unset) nothing is seeded.
    """
    if user_store.has_users():
        return False
    if not settings.seed_admin_password:
        logger.warning("User table is empty and SEED_ADMIN_PASSWORD is not set; no account seeded")
        return False
    user_store.create_user(
        User(
            username=settings.seed_admin_username,
            hashed_password=hash_password(settings.seed_admin_password),
            digest_secret=settings.seed_admin_password,
        )
    )
    logger.warning("Seeded first-run account %r -- change its password", settings.seed_admin_username)
    return True


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters: the gate needs both the nonce store and the
    user store, and the sweep task references app.state.nonces.
    """
    logger.info("AuthLab API starting up")
    app.state.user_store = UserStore()
    _seed_admin(app.state.user_store, _settings)
    app.state.nonces = NonceStore(ttl=_settings.nonce_ttl_seconds)
    app.state.auth_gate = AuthGate(
        nonces=app.state.nonces,
        lookup_user=app.state.user_store.get_digest_record,
        realm=_settings.digest_realm,
        opaque=_settings.digest_opaque,
    )
    logger.info(
        "Digest auth initialized (realm=%r, nonce_ttl=%ss)",
        _settings.digest_realm,
        _settings.nonce_ttl_seconds,
    )
    app.state.sweep_task = asyncio.create_task(_sweep_loop(app, _settings.nonce_sweep_interval_seconds))

    yield

    app.state.sweep_task.cancel()
    app.state.user_store.close()
    logger.info("AuthLab API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="AuthLab API",
    description="HTTP Digest, Basic and Bearer authentication, side by side.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    expose_headers=["WWW-Authenticate"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(protected_router, tags=["Protected"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error and Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI HTTP exceptions.

    exc.headers is forwarded as-is: the auth dependencies put their
    WWW-Authenticate challenge there, and a 401 without it is useless to
    Digest and Basic clients.
    """
    if isinstance(exc.detail, dict):
        content = {"error": exc.detail}
    else:
        content = ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump()
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is logged only, never written to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version and the current nonce count."""
    return HealthResponse(version=__version__, active_nonces=len(request.app.state.nonces))
