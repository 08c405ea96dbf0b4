"""Auth commands -- log in, print tokens, inspect and clear stored tokens.

Provides the ``clauth auth`` sub-command group. Every command takes an
optional profile name; when omitted, the ``--profile`` global flag, the
``CLAUTH_PROFILE`` variable, or the only existing profile is used.

Typical workflow::

    clauth auth login gh             # browser + loopback redirect
    clauth auth login gh --device    # headless: enter a code on another device
    export GH_TOKEN=$(clauth auth token gh)
    clauth auth status gh
    clauth auth logout gh
"""

from __future__ import annotations

from typing import Optional

import typer

from clauth.client import OAuthClient
from clauth.exceptions import ClauthError, NotFoundError
from clauth.models import DeviceAuthorization, ProviderProfile, utcnow
from clauth.output import error, get_output, info, print_data, success, suggest, warning
from clauth.storage import FileStore, KeyringStore, MemoryStore
from clauth.transport import HttpxTransport, Transport

auth_app = typer.Typer(no_args_is_help=True)

REFRESH_SKEW = 30
"""Seconds before expiry at which ``auth token`` refreshes."""


def _make_transport() -> Transport:
    return HttpxTransport()


def _resolve_profile(ctx: typer.Context, name: Optional[str]) -> ProviderProfile:
    """Load the profile named on the command line or selected globally.

    Raises:
        typer.Exit: With code 2 if no profile is selected or it cannot be loaded.
    """
    from clauth.config import load_profile, resolve_profile_name

    cli_profile = name or (ctx.obj.get("profile") if ctx.obj else None)
    resolved = resolve_profile_name(cli_profile)
    if resolved is None:
        error("No profile selected.")
        suggest("Pass a profile name, set CLAUTH_PROFILE, or run: clauth profile add")
        raise typer.Exit(code=2)
    try:
        return load_profile(resolved)
    except ClauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _open_client(profile: ProviderProfile) -> OAuthClient:
    """Build a client for *profile* with the storage it asks for."""
    from clauth.presets import build_oauth_config

    try:
        config = build_oauth_config(profile)
    except ClauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if profile.storage == "keyring":
        store = KeyringStore()
    elif profile.storage == "memory":
        store = MemoryStore()
    else:
        store = FileStore()
    return OAuthClient(config, store.sessions, store.tokens, _make_transport())


def _show_device_prompt(authorization: DeviceAuthorization) -> None:
    info("")
    info(f"Go to: {authorization.verification_uri}")
    info(f"Enter code: {authorization.user_code}")
    if authorization.verification_uri_complete:
        info(f"Or open: {authorization.verification_uri_complete}")
    info("")
    info("Waiting for authorization...")


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Profile name."),
    device: bool = typer.Option(
        False, "--device", help="Use the device flow (for SSH sessions, containers, CI)."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the URL instead of opening a browser."
    ),
    key: Optional[str] = typer.Option(
        None, "--key", "-k", help="Token store key (default: the profile name)."
    ),
    timeout: int = typer.Option(
        120, "--timeout", help="Seconds to wait for the browser redirect."
    ),
) -> None:
    """Authorize with the provider and store the resulting token.

    Without ``--device``, opens the authorization page and receives the
    redirect on the profile's loopback ``redirect_uri``. With ``--device``,
    prints a short code to enter at the provider's verification page.

    Raises:
        typer.Exit: With the error's exit code if the flow fails
            (3 denied or expired, 6 connection, 9 timeout, ...).

    Example::

        clauth auth login gh
        clauth auth login gh --device --key gh:ci
    """
    profile = _resolve_profile(ctx, name)
    token_key = key or profile.name

    with _open_client(profile) as client:
        try:
            if device:
                token = client.authorize_device(
                    on_prompt=_show_device_prompt, open_browser=not no_browser
                )
            else:
                token = client.authorize(
                    open_browser=not no_browser,
                    timeout=timeout,
                    on_url=lambda url: info(f"Open this URL to authorize:\n\n  {url}\n"),
                )
            client.save_token(token_key, token)
        except ClauthError as exc:
            error(str(exc))
            raise typer.Exit(code=exc.exit_code) from None

    success(f'Logged in with "{profile.name}"; token stored as "{token_key}".')
    if profile.storage == "memory":
        warning("This profile uses memory storage; the token is not persisted.")
        print_data(token.access_token)
    else:
        suggest(f"Use it: clauth auth token {profile.name}")


@auth_app.command("token")
def auth_token(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Profile name."),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Token store key."),
    fresh: bool = typer.Option(False, "--fresh", help="Force a refresh first."),
) -> None:
    """Print a valid access token to stdout, refreshing it if needed.

    Example::

        curl -H "Authorization: Bearer $(clauth auth token gh)" https://api.github.com/user
    """
    from clauth.lock import RefreshLockManager
    from clauth.refresher import TokenRefresher

    profile = _resolve_profile(ctx, name)
    token_key = key or profile.name
    # persistent stores are shared with other clauth processes
    lock_manager = None if profile.storage == "memory" else RefreshLockManager()

    with _open_client(profile) as client:
        refresher = TokenRefresher(client, skew=REFRESH_SKEW, lock_manager=lock_manager)
        try:
            token = refresher.refresh(token_key) if fresh else refresher.get_valid(token_key)
        except NotFoundError:
            error(f'Not logged in: no token stored as "{token_key}".')
            suggest(f"Log in: clauth auth login {profile.name}")
            raise typer.Exit(code=NotFoundError.exit_code) from None
        except ClauthError as exc:
            error(str(exc))
            suggest(f"Log in again: clauth auth login {profile.name}")
            raise typer.Exit(code=exc.exit_code) from None
        finally:
            refresher.close()

    print_data(token.access_token)


@auth_app.command("status")
def auth_status(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Profile name."),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Token store key."),
) -> None:
    """Show the stored token's type, expiry and scope. Secrets are not printed."""
    profile = _resolve_profile(ctx, name)
    token_key = key or profile.name

    with _open_client(profile) as client:
        try:
            token = client.get_token(token_key)
        except NotFoundError:
            info(f'Not logged in: no token stored as "{token_key}".')
            raise typer.Exit(code=NotFoundError.exit_code) from None
        except ClauthError as exc:
            error(str(exc))
            raise typer.Exit(code=exc.exit_code) from None

    get_output().print_record(
        {
            "key": token_key,
            "token_type": token.token_type,
            "expires_at": token.expires_at.isoformat() if token.expires_at else None,
            "expired": token.is_expired(now=utcnow()),
            "refreshable": token.refresh_token is not None,
            "scope": token.scope,
        },
        title=f"Token {token_key}",
    )


@auth_app.command("logout")
def auth_logout(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Profile name."),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Token store key."),
) -> None:
    """Delete the stored token. The provider-side grant is not revoked."""
    profile = _resolve_profile(ctx, name)
    token_key = key or profile.name

    with _open_client(profile) as client:
        try:
            client.delete_token(token_key)
        except ClauthError as exc:
            error(str(exc))
            raise typer.Exit(code=exc.exit_code) from None

    success(f'Token "{token_key}" removed.')
