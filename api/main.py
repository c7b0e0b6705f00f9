"""
api/main.py -- FastAPI application entry point for Gatekeeper.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Authentication is not a middleware: each route composes the Depends()
helpers from auth/dependencies.py explicitly, so the required scope of every
endpoint is visible at its definition.

Lifespan handles startup (store, auth service, session purge task) and
shutdown (cancel purge task, close DB connection) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.dependencies import get_current_auth
from auth.errors import AuthError, StoreUnavailable, Unauthenticated
from auth.service import Authenticated, build_auth_service
from auth.store import UserStore
from core.config import get_settings

VERSION = "0.1.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.DEBUG if _settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gatekeeper.api")

# ---------------------------------------------------------------------------
# Background session purge
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval_seconds: int) -> None:
    """Sweep expired sessions every interval_seconds.

    validate() already sweeps on every authenticated request; this loop bounds
    storage growth when traffic is idle. The sweep itself is a blocking DB
    call, so it runs in the thread pool. A failing sweep is logged and retried
    next round -- the loop must outlive a database hiccup.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_in_threadpool(app.state.auth_service.sessions.sweep)
        except StoreUnavailable:
            logger.warning("Background session purge failed; will retry")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the stores and auth service on startup; release them on shutdown.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The purge task is started last because it references
    app.state.auth_service.
    """
    logger.info("Gatekeeper API starting up")
    app.state.user_store = UserStore(_settings.database_url)
    app.state.auth_service = build_auth_service(_settings, app.state.user_store)
    logger.info(
        "Auth initialized (session_validity=%ds, hash_cost=%d)",
        _settings.session_validity_seconds,
        _settings.hash_cost,
    )
    app.state.purge_task = asyncio.create_task(_purge_loop(app, _settings.session_purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    app.state.user_store.close()
    logger.info("Gatekeeper API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Gatekeeper API",
    description="Cookie-backed session authentication, password policy and role-based access control.",
    version=VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced by auth-protected routes below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status and latency. Never logs cookies or bodies."""
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
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
def docs(auth: Authenticated = Depends(get_current_auth)):
    """Swagger UI -- requires a valid session."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="Gatekeeper API")


@app.get("/redoc", include_in_schema=False)
def redoc(auth: Authenticated = Depends(get_current_auth)):
    """ReDoc UI -- requires a valid session."""
    return get_redoc_html(openapi_url="/openapi.json", title="Gatekeeper API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render typed auth outcomes. Unauthenticated may also clear a dead cookie."""
    if isinstance(exc, StoreUnavailable):
        logger.error("Store unavailable on %s %s", request.method, request.url.path)
    response = _error(exc.status_code, exc.code, exc.message)
    if isinstance(exc, Unauthenticated) and exc.clear_cookie:
        request.app.state.auth_service.codec.clear_cookie(response)
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation.

    Only field locations and messages are echoed back; submitted values are
    dropped so a rejected password never appears in a response body.
    """
    problems = [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]
    return _error(422, "validation_error", "Request validation failed.", str(problems))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The traceback goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly here (not in a router) so it is always reachable. No rate
# limit -- load balancer health checks must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and database reachability."""
    database = "ok" if request.app.state.user_store.ping() else "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
