"""
api/main.py -- FastAPI application entry point for SecretKeeper.

Run with:  python main.py
           uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests           -- one log line per request with latency
  2. TrustedHostMiddleware  -- rejects requests with unexpected Host headers
  3. SessionMiddleware      -- signed cookie carrying the opaque session
                               token, flash messages and authlib OAuth state

Lifespan builds every collaborator once and hangs it on app.state, so route
handlers receive explicit handles instead of module globals:
  app.state.user_store, app.state.vault         -- SQLAlchemy stores
  app.state.sessions                            -- SessionManager
  app.state.guard                               -- AccessGuard
  app.state.credentials, app.state.federation   -- local / federated strategies
  app.state.oauth                               -- authlib registry
"""

from __future__ import annotations

import asyncio
import html
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.credentials import CredentialVerifier
from auth.dependencies import AccessGuard
from auth.errors import InfrastructureError, NotAuthenticated
from auth.flash import flash
from auth.oauth import FederationAdapter, build_oauth
from auth.sessions import MemorySessionStore, SessionManager, SessionStore
from auth.store import UserStore
from core.config import get_settings
from core.errors import StoreUnavailable
from vault.store import SecretStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("secretkeeper.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: int) -> None:
    """Delete expired sessions every `interval` seconds.

    The purge runs in a worker thread because the stores are synchronous.
    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(app.state.sessions.purge_expired)
        except StoreUnavailable:
            logger.warning("Session purge skipped: store unavailable")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build stores and auth collaborators on startup, release them on shutdown."""
    settings = get_settings()
    logger.info("SecretKeeper starting up")

    user_store = UserStore(settings.database_url)
    app.state.user_store = user_store
    app.state.vault = SecretStore(settings.database_url)

    if settings.session_backend == "memory":
        session_store = MemorySessionStore()
        logger.warning("Using in-memory session store -- sessions will not survive a restart")
    else:
        session_store = SessionStore(settings.database_url)
    app.state.sessions = SessionManager(session_store, user_store, settings.session_expire_seconds)
    app.state.guard = AccessGuard(app.state.sessions)
    app.state.credentials = CredentialVerifier(user_store)
    app.state.federation = FederationAdapter(user_store)
    app.state.oauth = build_oauth(settings)
    logger.info("Auth initialized (session_backend=%s, google=%s)", settings.session_backend, settings.google_enabled)

    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.session_purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    session_store.close()
    app.state.vault.close()
    user_store.close()
    logger.info("SecretKeeper shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SecretKeeper",
    description="Register, log in with a password or Google, and keep private secrets.",
    version=VERSION,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette makes the most recently added middleware the outermost one, so
# SessionMiddleware is added first and wraps the routes most closely.
# ---------------------------------------------------------------------------

# same_site="lax" keeps the cookie on the top-level redirect back from Google,
# which authlib needs to read its OAuth state.
app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    session_cookie="secretkeeper_session",
    max_age=_settings.session_expire_seconds,
    same_site="lax",
    https_only=_settings.secure_cookies,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)


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
# Web UI router is mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Exception handlers
#
# JSON errors share the ErrorResponse envelope. Paths outside /api/ are
# browser pages and get redirects or a small HTML page instead.
# ---------------------------------------------------------------------------


def _is_api(request: Request) -> bool:
    return request.url.path.startswith("/api/")


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(NotAuthenticated)
async def not_authenticated_handler(request: Request, exc: NotAuthenticated):
    """Deny: 401 for API clients; flash + redirect to /login for the browser."""
    if _is_api(request):
        return _error(401, "unauthorized", exc.message)
    flash(request, exc.message)
    return RedirectResponse("/login", status_code=302)


@app.exception_handler(InfrastructureError)
async def infrastructure_error_handler(request: Request, exc: InfrastructureError):
    """Store or identity provider unavailable. Aborts the request with a generic 503."""
    logger.error("%s on %s %s: %s", exc.__class__.__name__, request.method, request.url.path, exc)
    if _is_api(request):
        return _error(503, "service_unavailable", "Service temporarily unavailable.")
    return HTMLResponse(
        "<h1>Service unavailable</h1><p>Please try again in a moment.</p>",
        status_code=503,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(422, "validation_error", "Malformed request.", detail=str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """404/405 and friends. Browser paths get plain text, API paths the JSON envelope."""
    if not _is_api(request):
        page = f"<h1>{exc.status_code}</h1><p>{html.escape(str(exc.detail))}</p>"
        return HTMLResponse(page, status_code=exc.status_code)
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Last resort. The traceback goes to the log, the client sees a generic 500."""
    logger.exception("Unhandled %s on %s %s", exc.__class__.__name__, request.method, request.url.path)
    if not _is_api(request):
        return HTMLResponse("<h1>Server error</h1><p>Something went wrong on our side.</p>", status_code=500)
    return _error(500, "internal_error", "Something went wrong on our side.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness, version and database reachability. No auth required."""
    user_store: UserStore = request.app.state.user_store
    db_ok = await asyncio.to_thread(user_store.ping)
    return HealthResponse(
        version=VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
