"""
web/routes.py -- Jinja2 template routes for the SecretKeeper web UI.

Route handlers are thin: they read form fields, call the strategy or store
hanging off app.state, and translate AuthError into a flash message plus a
redirect. Infrastructure failures are left to propagate to the handlers in
api/main.py.

Routes:
  GET  /                     -- landing page
  GET  /login                -- login form, shows flash messages once
  POST /auth/login           -- password login; success -> /secrets
  GET  /auth/google          -- redirect to Google (account chooser forced)
  GET  /auth/google/secrets  -- Google callback; success -> /secrets
  GET  /register             -- registration form, shows flash messages once
  POST /register             -- register then log in; success -> /secrets
  GET  /secrets              -- the user's secrets (session required)
  GET  /submit               -- secret submission form (session required)
  POST /submit               -- store a secret, redirect /secrets (session required)
  POST /logout               -- destroy session, redirect / (session required)
"""

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool

from auth.credentials import CredentialVerifier
from auth.dependencies import end_session, require_user, start_session, try_get_current_user
from auth.errors import AuthFailure, FederationRejected, RegistrationFailure, StoreUnavailable
from auth.flash import flash, get_flashed_messages
from auth.models import User
from auth.oauth import GOOGLE, FederationAdapter, fetch_provider_profile, redirect_to_provider
from core.config import get_settings
from vault.models import Secret
from vault.store import SecretStore

logger = logging.getLogger("secretkeeper.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# Expose try_get_current_user as a Jinja2 global so layout.html can show the
# logout button without every handler passing current_user explicitly.
templates.env.globals["try_get_current_user"] = try_get_current_user
router = APIRouter()

_GOOGLE_DISABLED = "Google sign-in is not configured on this server."
_MAX_SECRET_LENGTH = 10_000
_SECRET_TOO_LONG = f"Secrets are limited to {_MAX_SECRET_LENGTH:,} characters."


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=302)


def _google_client(request: Request):
    """Return the registered Google client, or None when it is not configured."""
    return request.app.state.oauth.create_client(GOOGLE)


# ---------------------------------------------------------------------------
# Landing page
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "home.html", {})


# ---------------------------------------------------------------------------
# Local strategy
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login form. Flash messages are consumed by this render."""
    return templates.TemplateResponse(
        request,
        "login.html",
        {
            "messages": get_flashed_messages(request),
            "google_enabled": get_settings().google_enabled,
        },
    )


@router.post("/auth/login")
def login_post(
    request: Request,
    username: str = Form(default=""),
    password: str = Form(default=""),
) -> RedirectResponse:
    """Handle username/password login form submission."""
    credentials: CredentialVerifier = request.app.state.credentials
    try:
        user = credentials.verify(username, password)
    except AuthFailure as exc:
        flash(request, exc.message)
        return _redirect("/login")

    start_session(request, user)
    resp = _redirect("/secrets")
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "register.html",
        {
            "messages": get_flashed_messages(request),
            "google_enabled": get_settings().google_enabled,
        },
    )


@router.post("/register")
def register_post(
    request: Request,
    username: str = Form(default=""),
    password: str = Form(default=""),
) -> RedirectResponse:
    """Register a local user, then log them in.

    register() itself never creates a session; the session is established
    here only after the user row has been written.
    """
    credentials: CredentialVerifier = request.app.state.credentials
    try:
        user = credentials.register(username, password)
    except RegistrationFailure as exc:
        flash(request, exc.message)
        return _redirect("/register")

    start_session(request, user)
    return _redirect("/secrets")


# ---------------------------------------------------------------------------
# Federated strategy (Google)
# ---------------------------------------------------------------------------


@router.get("/auth/google")
async def google_login(request: Request):
    """Redirect the browser to Google's account chooser."""
    client = _google_client(request)
    if client is None:
        flash(request, _GOOGLE_DISABLED)
        return _redirect("/login")
    return await redirect_to_provider(client, request, get_settings().google_callback_url)


@router.get("/auth/google/secrets")
async def google_callback(request: Request) -> RedirectResponse:
    """Complete the Google handshake, find-or-create the user, start a session."""
    client = _google_client(request)
    if client is None:
        flash(request, _GOOGLE_DISABLED)
        return _redirect("/login")

    try:
        profile = await fetch_provider_profile(client, GOOGLE, request)
    except FederationRejected as exc:
        flash(request, exc.message)
        return _redirect("/login")

    federation: FederationAdapter = request.app.state.federation
    user = await run_in_threadpool(federation.resolve_federated_user, profile)
    await run_in_threadpool(start_session, request, user)
    resp = _redirect("/secrets")
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Secrets (session required)
# ---------------------------------------------------------------------------


@router.get("/secrets", response_class=HTMLResponse)
def secrets_page(request: Request, user: User = Depends(require_user)) -> HTMLResponse:
    vault: SecretStore = request.app.state.vault
    return templates.TemplateResponse(
        request,
        "secrets.html",
        {"user": user, "secrets": vault.list_for_owner(user.id)},
    )


@router.get("/submit", response_class=HTMLResponse)
def submit_form(request: Request, user: User = Depends(require_user)) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "submit.html",
        {"user": user, "max_length": _MAX_SECRET_LENGTH, "messages": get_flashed_messages(request)},
    )


@router.post("/submit")
def submit_post(
    request: Request,
    secret: str = Form(default=""),
    user: User = Depends(require_user),
) -> RedirectResponse:
    """Store a new secret owned by the session's user.

    Text is stored exactly as submitted. Oversized text is refused with a
    flash on /submit. A failed write is logged and the user is still sent to
    /secrets, where the missing entry is visible.
    """
    if len(secret) > _MAX_SECRET_LENGTH:
        flash(request, _SECRET_TOO_LONG)
        return _redirect("/submit")
    vault: SecretStore = request.app.state.vault
    try:
        vault.create_secret(Secret(owner_id=user.id, text=secret))
    except (ValueError, StoreUnavailable) as exc:
        logger.warning("Secret not saved for user %s: %s", user.id, exc)
    return _redirect("/secrets")


@router.post("/logout")
def logout(request: Request, user: User = Depends(require_user)) -> RedirectResponse:
    """Destroy the session and return to the landing page.

    A store failure propagates (503) instead of pretending the logout worked.
    """
    end_session(request)
    logger.info("User %s logged out", user.id)
    return _redirect("/")

