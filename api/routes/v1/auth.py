"""
api/routes/v1/auth.py -- JSON view of the current session.

Routes:
  GET /api/v1/auth/me   -- current user info (requires session)
  GET /api/v1/secrets   -- current user's secrets (requires session)

Both read the same signed session cookie as the web UI. Unauthenticated
requests get a 401 JSON error envelope from the NotAuthenticated handler in
api/main.py instead of the HTML redirect.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MeResponse, SecretResponse
from auth.dependencies import require_user
from auth.models import FederatedAccount, User
from vault.store import SecretStore

# Auth policy:
# - GET /api/v1/auth/me:  requires session (require_user)
# - GET /api/v1/secrets:  requires session (require_user), owner-scoped
router = APIRouter()


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: User = Depends(require_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    provider = current_user.account.provider if isinstance(current_user.account, FederatedAccount) else None
    return MeResponse(
        user_id=current_user.id,
        username=current_user.username,
        method="federated" if provider else "local",
        provider=provider,
    )


@router.get("/secrets", response_model=list[SecretResponse])
def list_secrets(request: Request, current_user: User = Depends(require_user)) -> list[SecretResponse]:
    """List the current user's secrets. Other users' secrets are never returned."""
    vault: SecretStore = request.app.state.vault
    return [
        SecretResponse(id=s.id, text=s.text, created_at=s.created_at) for s in vault.list_for_owner(current_user.id)
    ]
