"""
core/config.py -- SecretKeeper settings, read once from the environment.

Every knob the server has lives on Settings: the cookie signing key, the
database URL, session lifetime and backend, and the optional Google client.
Other modules call get_settings() rather than reading os.environ themselves.

Values come from environment variables (SECRET_KEY, DATABASE_URL, ...) or a
.env file in the working directory, matched case-insensitively to the field
names below. get_settings() is cached, so the environment is read at first
use and the same instance is shared by the app, the CLI and the lifespan.

Signing key rules:
  [M6] SECRET_KEY must be 32 characters or longer. It signs the session
       cookie that holds the opaque session token and pending flash messages.

  [M7] Outside debug mode SECRET_KEY has to be provided. With DEBUG=true a
       throwaway key is generated and a warning is logged, which means every
       restart logs all users out.

Layer rule: core/ imports nothing from api/, web/, auth/ or vault/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("secretkeeper.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'secretkeeper.db'}"


class Settings(BaseSettings):
    """Server settings. Every field has a default except the key in production."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    debug: bool = False
    # "" means unset; validate_secret_key replaces or rejects it.
    secret_key: str = ""
    host: str = "127.0.0.1"
    port: int = 3000
    # Host headers accepted by TrustedHostMiddleware. JSON list in the env,
    # e.g. ALLOWED_HOSTS='["secrets.example.com"]'.
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    # One database holds users, secrets and (with the "database" backend)
    # sessions. Any SQLAlchemy URL works: sqlite:///..., postgresql://...
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    # "memory" loses every session on restart; local development only.
    session_backend: Literal["database", "memory"] = "database"
    session_expire_seconds: int = 24 * 3600
    session_purge_interval_seconds: int = 3600
    # Set behind HTTPS so the session cookie carries the Secure flag.
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Google sign-in. Disabled unless both id and secret are set.
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    google_callback_url: str = "http://localhost:3000/auth/google/secrets"

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Fill in a throwaway key under DEBUG, otherwise require one [M6, M7]."""
        if not self.secret_key:
            if not self.debug:
                raise ValueError("SECRET_KEY is not set. Provide one, or set DEBUG=true for a throwaway key.")
            self.secret_key = secrets.token_hex(32)
            logger.warning("No SECRET_KEY configured; generated one for this process. Sessions end on restart.")
        if len(self.secret_key) < 32:
            raise ValueError(f"SECRET_KEY is {len(self.secret_key)} characters; at least 32 are required.")
        return self

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


@lru_cache
def get_settings() -> Settings:
    """Return the shared Settings instance. Tests call get_settings.cache_clear() to re-read env."""
    return Settings()
