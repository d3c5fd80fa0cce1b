"""
API request and response models for SecretKeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
vault/models.py, which own the internal domain representation. Route handlers
map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    method: str  # "local" | "federated"
    provider: Optional[str] = None


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------


class SecretResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    created_at: str


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
