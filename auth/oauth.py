"""
auth/oauth.py -- Authlib OAuth/OIDC registry and the federated strategy.

build_oauth() registers Google when both client ID and secret are configured.
The registry is built once in the application lifespan and stored on
app.state.oauth; tests replace it with a mock.

Security notes:
  [H1] Email verification is mandatory. profile_from_token() raises
       FederationRejected if Google does not confirm the email is verified.
       The email becomes the username of a new federated user.

  OAuth state parameter (CSRF protection) is handled by authlib automatically
  via Starlette SessionMiddleware. The session stores the state between the
  authorization redirect and the callback.

Error mapping (fetch_provider_profile):
  OAuthError (state mismatch, consent denied, bad code) -> FederationRejected
      -- the user can simply try again; flash + redirect to /login.
  httpx.HTTPError (provider unreachable, timeout)        -> ProviderUnavailable
      -- infrastructure failure; generic 503.

Layer rule: no imports from api/, web/, or vault/. Import from core/
is allowed -- core/ is the kernel layer.
"""

from __future__ import annotations

import logging

import httpx
from authlib.integrations.starlette_client import OAuth, OAuthError
from starlette.requests import Request

from auth.errors import FederationRejected, ProviderUnavailable
from auth.models import ProviderProfile, User
from auth.store import UserStore
from core.config import Settings

logger = logging.getLogger("secretkeeper.auth.oauth")

GOOGLE = "google"

# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------


def build_oauth(settings: Settings) -> OAuth:
    """Return an OAuth registry with every configured provider registered."""
    oauth = OAuth()
    if settings.google_enabled:
        oauth.register(
            name=GOOGLE,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Google OAuth provider registered")
    else:
        logger.info("Google OAuth not configured -- federated login disabled")
    return oauth


# ---------------------------------------------------------------------------
# Handshake
# ---------------------------------------------------------------------------


async def redirect_to_provider(client, request: Request, redirect_uri: str):
    """Send the browser to the provider, always asking which account to use."""
    try:
        return await client.authorize_redirect(request, redirect_uri, prompt="select_account")
    except httpx.HTTPError as exc:
        # Fetching the discovery document failed.
        raise ProviderUnavailable(f"{client.name} metadata unavailable") from exc


async def fetch_provider_profile(client, provider: str, request: Request) -> ProviderProfile:
    """Complete the code exchange for the callback request and return the profile."""
    try:
        token = await client.authorize_access_token(request)
    except OAuthError as exc:
        logger.warning("OAuth token exchange rejected for %r: %s", provider, exc.error)
        raise FederationRejected() from exc
    except httpx.HTTPError as exc:
        logger.error("OAuth provider %r unreachable: %s", provider, exc.__class__.__name__)
        raise ProviderUnavailable(f"{provider} token exchange failed") from exc
    return profile_from_token(provider, token)


def profile_from_token(provider: str, token: dict) -> ProviderProfile:
    """Extract (subject, email) from an OIDC token response.

    [H1] The email claim is only accepted when email_verified is True. Some
    providers omit email_verified entirely -- that counts as unverified.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        logger.warning("%s OAuth: no userinfo in token response", provider)
        raise FederationRejected()

    if not userinfo.get("email_verified", False):
        logger.warning("%s OAuth: email is not verified", provider)
        raise FederationRejected("Your Google email address is not verified.")

    email = userinfo.get("email")
    subject = userinfo.get("sub")
    if not email or not subject:
        logger.warning("%s OAuth: missing email or sub claim in userinfo", provider)
        raise FederationRejected()

    return ProviderProfile(provider=provider, subject=str(subject), primary_email=email)


# ---------------------------------------------------------------------------
# Federated strategy
# ---------------------------------------------------------------------------


class FederationAdapter:
    """Maps a verified provider profile onto a local User."""

    def __init__(self, user_store: UserStore) -> None:
        self.user_store = user_store

    def resolve_federated_user(self, profile: ProviderProfile) -> User:
        """Find-or-create the User for profile. Safe under concurrent first logins.

        A returning user is handed back as stored; the username keeps the
        email seen at first login even if the provider's email has changed.
        """
        return self.user_store.find_or_create_federated(
            provider=profile.provider,
            subject=profile.subject,
            username=profile.primary_email,
        )
