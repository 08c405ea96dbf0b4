"""Well-known provider configurations.

Presets are a thin configuration layer: each function returns an
:class:`~clauth.models.OAuthConfig` and there is no provider-specific code
path anywhere else. :func:`build_oauth_config` turns a persisted
:class:`~clauth.models.ProviderProfile` into a config, with explicit profile
fields overriding preset values.

======================  ============  =====================================
Preset                  Device flow   Parameters
======================  ============  =====================================
``github``              yes           --
``google``              yes           --
``microsoft``           yes           ``tenant`` (default ``common``)
``gitlab``              no            ``base_url`` (default gitlab.com)
``tuist``               yes           ``base_url`` (default cloud.tuist.io)
======================  ============  =====================================
"""

from __future__ import annotations

from typing import Callable, Optional

from clauth.config import resolve_credential
from clauth.exceptions import InvalidArgumentError
from clauth.models import OAuthConfig, ProviderProfile

DEFAULT_REDIRECT_URI = "http://127.0.0.1:8080/callback"
GITLAB_DEFAULT_URL = "https://gitlab.com"
TUIST_DEFAULT_URL = "https://cloud.tuist.io"


def github(
    client_id: str,
    *,
    scope: Optional[str] = None,
    redirect_uri: str = DEFAULT_REDIRECT_URI,
) -> OAuthConfig:
    return OAuthConfig(
        client_id=client_id,
        authorization_endpoint="https://github.com/login/oauth/authorize",
        token_endpoint="https://github.com/login/oauth/access_token",
        device_authorization_endpoint="https://github.com/login/device/code",
        redirect_uri=redirect_uri,
        scope=scope,
    )


def google(
    client_id: str,
    *,
    scope: Optional[str] = None,
    redirect_uri: str = DEFAULT_REDIRECT_URI,
) -> OAuthConfig:
    return OAuthConfig(
        client_id=client_id,
        authorization_endpoint="https://accounts.google.com/o/oauth2/v2/auth",
        token_endpoint="https://oauth2.googleapis.com/token",
        device_authorization_endpoint="https://oauth2.googleapis.com/device/code",
        redirect_uri=redirect_uri,
        scope=scope,
    )


def microsoft(
    client_id: str,
    *,
    tenant: str = "common",
    scope: Optional[str] = None,
    redirect_uri: str = DEFAULT_REDIRECT_URI,
) -> OAuthConfig:
    """Microsoft identity platform (v2.0 endpoints).

    Args:
        tenant: ``common``, ``organizations``, ``consumers`` or a tenant id.
    """
    base = f"https://login.microsoftonline.com/{tenant}/oauth2/v2.0"
    return OAuthConfig(
        client_id=client_id,
        authorization_endpoint=f"{base}/authorize",
        token_endpoint=f"{base}/token",
        device_authorization_endpoint=f"{base}/devicecode",
        redirect_uri=redirect_uri,
        scope=scope,
    )


def gitlab(
    client_id: str,
    *,
    base_url: str = GITLAB_DEFAULT_URL,
    scope: Optional[str] = None,
    redirect_uri: str = DEFAULT_REDIRECT_URI,
) -> OAuthConfig:
    """GitLab.com or a self-managed instance. No device flow."""
    base = base_url.rstrip("/")
    return OAuthConfig(
        client_id=client_id,
        authorization_endpoint=f"{base}/oauth/authorize",
        token_endpoint=f"{base}/oauth/token",
        redirect_uri=redirect_uri,
        scope=scope,
    )


def tuist(
    client_id: str,
    *,
    base_url: str = TUIST_DEFAULT_URL,
    scope: Optional[str] = None,
    redirect_uri: str = DEFAULT_REDIRECT_URI,
) -> OAuthConfig:
    base = base_url.rstrip("/")
    return OAuthConfig(
        client_id=client_id,
        authorization_endpoint=f"{base}/oauth/authorize",
        token_endpoint=f"{base}/oauth/token",
        device_authorization_endpoint=f"{base}/oauth/device/code",
        redirect_uri=redirect_uri,
        scope=scope,
    )


PRESETS: dict[str, Callable[..., OAuthConfig]] = {
    "github": github,
    "google": google,
    "microsoft": microsoft,
    "gitlab": gitlab,
    "tuist": tuist,
}


def get_preset(
    name: str,
    client_id: str,
    *,
    scope: Optional[str] = None,
    redirect_uri: Optional[str] = None,
    base_url: Optional[str] = None,
    tenant: Optional[str] = None,
) -> OAuthConfig:
    """Build the config for a named preset.

    Parameters a preset does not take (``tenant`` for github, ...) are
    rejected rather than silently dropped.

    Raises:
        InvalidArgumentError: For an unknown preset name or an unsupported
            parameter.
    """
    factory = PRESETS.get(name.lower())
    if factory is None:
        raise InvalidArgumentError(
            f"Unknown preset '{name}'. Available: {', '.join(sorted(PRESETS))}"
        )

    kwargs: dict[str, str] = {}
    if scope is not None:
        kwargs["scope"] = scope
    if redirect_uri is not None:
        kwargs["redirect_uri"] = redirect_uri
    if base_url is not None:
        if factory not in (gitlab, tuist):
            raise InvalidArgumentError(f"Preset '{name}' does not take a base_url")
        kwargs["base_url"] = base_url
    if tenant is not None:
        if factory is not microsoft:
            raise InvalidArgumentError(f"Preset '{name}' does not take a tenant")
        kwargs["tenant"] = tenant
    return factory(client_id, **kwargs)


def build_oauth_config(profile: ProviderProfile) -> OAuthConfig:
    """Resolve a :class:`ProviderProfile` into an :class:`OAuthConfig`.

    The profile's ``client_id`` may be a source descriptor
    (``env:VAR``, ``file:/path``); see :func:`clauth.config.resolve_credential`.

    Raises:
        InvalidArgumentError: If the profile names an unknown preset, or
            has no preset and lacks explicit endpoints.
        ConfigError: If the client id source cannot be resolved.
    """
    client_id = resolve_credential(profile.client_id)

    if profile.preset:
        base = get_preset(
            profile.preset,
            client_id,
            scope=profile.scope,
            redirect_uri=profile.redirect_uri,
            base_url=profile.base_url,
            tenant=profile.tenant,
        )
        overrides = {
            field: getattr(profile, field)
            for field in (
                "authorization_endpoint",
                "token_endpoint",
                "device_authorization_endpoint",
            )
            if getattr(profile, field) is not None
        }
        return base.model_copy(update=overrides) if overrides else base

    if not profile.authorization_endpoint or not profile.token_endpoint:
        raise InvalidArgumentError(
            f"Profile '{profile.name}' needs a preset or both "
            "'authorization_endpoint' and 'token_endpoint'"
        )
    return OAuthConfig(
        client_id=client_id,
        authorization_endpoint=profile.authorization_endpoint,
        token_endpoint=profile.token_endpoint,
        device_authorization_endpoint=profile.device_authorization_endpoint,
        redirect_uri=profile.redirect_uri or DEFAULT_REDIRECT_URI,
        scope=profile.scope,
    )
