"""
auth/dependencies.py -- Access guard and FastAPI Depends() helpers.

The browser carries one signed Starlette session cookie. Inside it,
SESSION_TOKEN_KEY holds the opaque server-side session token issued by
SessionManager.establish(). Flash messages and authlib's OAuth state live in
the same cookie under their own keys.

AccessGuard.authorize(token) is the allow/deny decision: a token resolves to
a User (Allowed) or to None (Denied -- no session, expired, destroyed or
unknown token).

try_get_current_user() is the soft variant (returns None on failure).
require_user() raises NotAuthenticated, which api/main.py turns into a redirect
to /login with a flash message (or a 401 under /api/).

start_session() / end_session() are the only places that write or remove the
token, so route handlers never touch request.session directly.

Layer rule: no imports from web/ or vault/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import NotAuthenticated
from auth.models import User
from auth.sessions import SessionManager

SESSION_TOKEN_KEY = "session_token"


class AccessGuard:
    """Allows or denies a request based on its session token."""

    def __init__(self, sessions: SessionManager) -> None:
        self.sessions = sessions

    def authorize(self, token: str | None) -> User | None:
        """Return the User for an allowed token, None for a denied one."""
        return self.sessions.resolve(token)


def try_get_current_user(request: Request) -> User | None:
    """Resolve the request's session. Never raises for a missing/invalid token.

    A token that no longer resolves is dropped from the cookie so the next
    request starts anonymous.
    """
    token = request.session.get(SESSION_TOKEN_KEY)
    if not token:
        return None
    guard: AccessGuard = request.app.state.guard
    user = guard.authorize(token)
    if user is None:
        request.session.pop(SESSION_TOKEN_KEY, None)
        return None
    request.state.user = user
    return user


def require_user(request: Request) -> User:
    """Require an authenticated session.

    Use as a FastAPI dependency:
        @router.get("/secrets")
        def route(user: User = Depends(require_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise NotAuthenticated()
    return user


def start_session(request: Request, user: User) -> None:
    """Establish a session for user and store the token in the cookie.

    Any token already in the cookie is destroyed first, so a session id
    planted before login is never promoted to an authenticated one.
    """
    sessions: SessionManager = request.app.state.sessions
    old_token = request.session.get(SESSION_TOKEN_KEY)
    if old_token:
        sessions.destroy(old_token)
    token = sessions.establish(user)
    request.session[SESSION_TOKEN_KEY] = token


def end_session(request: Request) -> None:
    """Destroy the server-side session and wipe the cookie contents.

    SessionManager.destroy() runs before the cookie is cleared, so a store
    failure propagates with the token still in place.
    """
    sessions: SessionManager = request.app.state.sessions
    sessions.destroy(request.session.get(SESSION_TOKEN_KEY))
    request.session.clear()
