"""Canonical Pydantic models shared across all clauth modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Protocol models** -- values produced and consumed by the OAuth core:
    :class:`OAuthConfig`, :class:`PKCEPair`, :class:`Session`,
    :class:`TokenInfo`, :class:`DeviceAuthorization`, and
    :class:`AuthFlowResult`.

**Configuration models** -- serialised as JSON in the user's config
directory and consumed by the CLI:
    :class:`ProviderProfile`.

Protocol models are frozen: a :class:`TokenInfo` handed to a caller is an
independent value, and replacing a token means storing a new instance.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never raise."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


# --- OAuth client configuration ---


class OAuthConfig(BaseModel):
    """Provider endpoints and client registration for one OAuth client.

    Immutable once built. Use :mod:`clauth.presets` for well-known providers.

    Example::

        OAuthConfig(
            client_id="my-client",
            authorization_endpoint="https://auth.example.com/authorize",
            token_endpoint="https://auth.example.com/token",
            redirect_uri="http://127.0.0.1:8080/callback",
            scope="read write",
        )
    """

    model_config = ConfigDict(frozen=True)

    client_id: str
    authorization_endpoint: str
    token_endpoint: str
    device_authorization_endpoint: Optional[str] = Field(
        default=None,
        description="RFC 8628 device authorization endpoint",
    )
    redirect_uri: Optional[str] = Field(
        default=None,
        description="Redirect URI registered with the provider (redirect flow only)",
    )
    scope: Optional[str] = Field(
        default=None, description="Space-separated scopes to request"
    )

    def validate_config(self) -> list[str]:
        """Check the configuration before use.

        Returns:
            A list of human-readable error strings. Empty if valid.
        """
        errors: list[str] = []
        if not self.client_id.strip():
            errors.append("client_id must not be empty")
        if not _is_http_url(self.authorization_endpoint):
            errors.append(
                f"authorization_endpoint is not an http(s) URL: {self.authorization_endpoint!r}"
            )
        if not _is_http_url(self.token_endpoint):
            errors.append(f"token_endpoint is not an http(s) URL: {self.token_endpoint!r}")
        if self.device_authorization_endpoint is not None and not _is_http_url(
            self.device_authorization_endpoint
        ):
            errors.append(
                "device_authorization_endpoint is not an http(s) URL: "
                f"{self.device_authorization_endpoint!r}"
            )
        if self.redirect_uri is not None and not urlparse(self.redirect_uri).scheme:
            errors.append(f"redirect_uri is not an absolute URI: {self.redirect_uri!r}")
        return errors


# --- PKCE and pending sessions ---


class PKCEPair(BaseModel):
    """A PKCE code verifier and its S256 challenge (:rfc:`7636`).

    Only ``code_challenge`` travels in the authorization request. The
    verifier is sent once, to the token endpoint, during code exchange.
    """

    model_config = ConfigDict(frozen=True)

    code_verifier: str = Field(min_length=43, max_length=128)
    code_challenge: str
    challenge_method: Literal["S256"] = "S256"


class Session(BaseModel):
    """A pending authorization: the CSRF ``state`` bound to its PKCE verifier.

    Created by :meth:`~clauth.client.OAuthClient.start_flow` and consumed
    exactly once by :meth:`~clauth.client.OAuthClient.exchange_code`.
    """

    model_config = ConfigDict(frozen=True)

    state: str
    code_verifier: str
    created_at: datetime = Field(default_factory=utcnow)

    def age(self, now: datetime | None = None) -> timedelta:
        """Return how long ago this session was created."""
        return (now or utcnow()) - _as_utc(self.created_at)


class AuthFlowResult(BaseModel):
    """What :meth:`~clauth.client.OAuthClient.start_flow` hands back to the caller."""

    model_config = ConfigDict(frozen=True)

    authorization_url: str
    state: str


# --- Tokens ---


class TokenInfo(BaseModel):
    """Token material returned by the token endpoint.

    Attributes:
        access_token: The bearer credential.
        refresh_token: Optional refresh token. ``None`` means the token
            cannot be renewed without a new authorization.
        token_type: Usually ``"Bearer"``.
        expires_at: Absolute UTC expiry, or ``None`` when the provider
            reported no lifetime.
        expires_in: Lifetime in seconds as reported, kept for proactive
            refresh decisions.
        scope: Scope string granted by the provider, if reported.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_at: Optional[datetime] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None

    def is_expired(self, skew: float = 0.0, now: datetime | None = None) -> bool:
        """Return ``True`` if the token is past expiry.

        A token with unknown expiry is assumed valid until a request proves
        otherwise.

        Args:
            skew: Seconds of safety margin; the token counts as expired this
                many seconds early.
            now: Reference time, defaults to the current UTC time.
        """
        if self.expires_at is None:
            return False
        current = now or utcnow()
        return current + timedelta(seconds=skew) >= _as_utc(self.expires_at)

    def lifetime_elapsed(self, now: datetime | None = None) -> float | None:
        """Return the fraction of the reported lifetime that has elapsed.

        Returns:
            A float (may exceed 1.0 after expiry), or ``None`` when either
            ``expires_at`` or a positive ``expires_in`` is unknown.
        """
        if self.expires_at is None or not self.expires_in:
            return None
        remaining = (_as_utc(self.expires_at) - (now or utcnow())).total_seconds()
        return (self.expires_in - remaining) / self.expires_in


# --- Device authorization ---


class DeviceAuthorization(BaseModel):
    """Response of the device authorization endpoint (:rfc:`8628` section 3.2).

    ``device_code`` goes back to the token endpoint and is never shown to
    the user; ``user_code`` and ``verification_uri`` are for display.
    """

    model_config = ConfigDict(frozen=True)

    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: Optional[str] = None
    interval: int = Field(default=5, ge=0)
    expires_at: datetime


# --- CLI configuration ---


class ProviderProfile(BaseModel):
    """A named provider configuration persisted by the CLI.

    A profile either names a preset (``github``, ``google``, ...) or spells
    out endpoints explicitly. Explicit fields override preset values.

    Example::

        ProviderProfile(name="gh", preset="github", client_id="Iv1.abc", scope="repo")
    """

    name: str = Field(description="Profile identifier")
    preset: Optional[str] = Field(
        default=None, description="Preset name: github, google, microsoft, gitlab, tuist"
    )
    client_id: str = Field(
        description="Client id, or a source descriptor: env:VAR, file:/path"
    )
    authorization_endpoint: Optional[str] = None
    token_endpoint: Optional[str] = None
    device_authorization_endpoint: Optional[str] = None
    redirect_uri: Optional[str] = None
    scope: Optional[str] = None
    base_url: Optional[str] = Field(
        default=None, description="Instance URL for self-hosted presets (gitlab, tuist)"
    )
    tenant: Optional[str] = Field(
        default=None, description="Tenant id for the microsoft preset"
    )
    storage: Literal["file", "keyring", "memory"] = Field(
        default="file", description="Where tokens are persisted"
    )
