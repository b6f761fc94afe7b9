"""
api/main.py -- FastAPI application entry point for KeyDash.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  3. log_requests          -- one access-log line per request
  4. access_gate           -- session validation + allow/redirect decision

Lifespan builds every shared resource (settings, stores, OTP verifier) on
app.state at startup and closes them on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.dashboard import router as dashboard_router
from auth.gate import GateAction, decide, is_public
from auth.otp import YubicoVerifier
from auth.sessions import SESSION_COOKIE, clear_session_cookie, validate_session
from auth.store import CredentialStore
from cache.store import MarketHoursCache
from core.config import get_settings
from dashboard.store import LayoutStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("keydash.api")
gate_logger = logging.getLogger("keydash.gate")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Configuration is read once here and never hot-reloaded. Missing secrets
    are logged loudly but do not stop startup: login attempts report a
    server configuration error instead.
    """
    # Startup
    logger.info("KeyDash starting up")
    settings = get_settings()
    app.state.settings = settings
    missing = settings.missing_secrets()
    if missing:
        logger.error("Missing required configuration: %s -- logins will fail", ", ".join(missing))

    app.state.credentials = CredentialStore(settings.database_url)
    seeded = app.state.credentials.ensure_registered(settings.allowed_yubikey_ids)
    logger.info("Credential registry initialized (%d seeded)", seeded)
    app.state.layouts = LayoutStore(settings.database_url)
    app.state.market_cache = MarketHoursCache()
    app.state.otp_verifier = YubicoVerifier(
        client_id=settings.yubico_client_id,
        secret_key=settings.yubico_secret_key,
        url=settings.yubico_verify_url,
        timeout=settings.yubico_timeout_seconds,
    )

    yield

    # Shutdown
    app.state.credentials.close()
    app.state.layouts.close()
    app.state.market_cache.close()
    logger.info("KeyDash shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="KeyDash",
    description="Personal market dashboard behind YubiKey OTP login.",
    version=VERSION,
    lifespan=lifespan,
    # The dashboard has no public API consumers; keep the schema private.
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)


# ---------------------------------------------------------------------------
# Access gate middleware
#
# Runs before every route. Public assets skip session validation entirely.
# Everything else has its auth_session cookie validated (a registry lookup,
# so it runs in the thread pool) and is then allowed or redirected by
# auth.gate.decide(). Every validation failure looks the same from outside.
#
# Starlette wraps middleware in reverse registration order: the function
# registered first ends up innermost. Register innermost-first below.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def access_gate(request: Request, call_next):
    path = request.url.path
    if is_public(path):
        return await call_next(request)

    settings = request.app.state.settings
    subject_id = await run_in_threadpool(
        validate_session,
        request.headers.get("cookie"),
        settings.session_secret,
        request.app.state.credentials,
    )
    decision = decide(path, subject_id)
    if decision.action is GateAction.REDIRECT:
        gate_logger.debug("%s %s -> %s", request.method, path, decision.location)
        resp = RedirectResponse(decision.location, status_code=302)
        if subject_id is None and SESSION_COOKIE in request.cookies:
            # Stale or forged cookie: drop it so the browser stops sending it.
            clear_session_cookie(resp)
        return resp

    request.state.subject_id = decision.subject_id
    return await call_next(request)


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Wraps the gate, so redirects issued by the gate are logged too.
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


app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=get_settings().allowed_hosts,
)

# Attach the shared limiter to app.state so SlowAPIMiddleware can locate it.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(dashboard_router, prefix="/api/v1", tags=["Dashboard"])
# Web UI router is mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every JSON error leaves through _error_envelope(), so API clients always see
# {"error": {"code", "message", "detail"}} whatever the status code.
# ---------------------------------------------------------------------------


def _error_envelope(status: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status, content=body.model_dump())


def _retry_after_seconds(request: Request, exc: RateLimitExceeded) -> int:
    """Seconds until the exceeded window resets, as slowapi computes it for its own headers."""
    view_limit = getattr(request.state, "view_rate_limit", None)
    if view_limit is not None:
        item, args = view_limit
        reset_at, _remaining = limiter.limiter.get_window_stats(item, *args)
        return max(1, int(1 + reset_at - time.time()))
    return int(exc.limit.limit.get_expiry())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with Retry-After. Login floods land here before any Yubico call."""
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "unknown")
    resp = _error_envelope(429, "rate_limited", "Too many requests.", str(exc))
    resp.headers["Retry-After"] = str(_retry_after_seconds(request, exc))
    return resp


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_envelope(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Pass route-raised {"code", "message"} details through as the error body."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return _error_envelope(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the traceback, tell the client nothing."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_envelope(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Listed in auth.gate.PUBLIC_PATHS so load balancers can reach it without a
# session. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return liveness and current version."""
    return HealthResponse(version=VERSION)
