"""Profile commands -- manage saved provider configurations.

A profile records which provider to talk to and with which client id, so
that ``clauth auth login <profile>`` needs no further flags.

Typical workflow::

    clauth profile add gh --preset github --client-id Iv1.abc123 --scope repo
    clauth profile list
    clauth profile show gh
    clauth profile remove gh
"""

from __future__ import annotations

from typing import Optional

import typer

from clauth.exceptions import ClauthError
from clauth.models import ProviderProfile
from clauth.output import error, get_output, info, success, suggest
from clauth.presets import PRESETS

profile_app = typer.Typer(no_args_is_help=True)


@profile_app.command("add")
def profile_add(
    name: str = typer.Argument(help="Profile name."),
    client_id: str = typer.Option(
        ..., "--client-id", help="Client id, or a source: env:VAR, file:/path."
    ),
    preset: Optional[str] = typer.Option(
        None, "--preset", help=f"Provider preset: {', '.join(PRESETS)}."
    ),
    scope: Optional[str] = typer.Option(None, "--scope", help="Space-separated scopes."),
    redirect_uri: Optional[str] = typer.Option(
        None, "--redirect-uri", help="Loopback redirect URI registered with the provider."
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="Instance URL for gitlab/tuist."
    ),
    tenant: Optional[str] = typer.Option(None, "--tenant", help="Tenant for microsoft."),
    authorization_endpoint: Optional[str] = typer.Option(
        None, "--authorization-endpoint", help="Authorization endpoint (no preset)."
    ),
    token_endpoint: Optional[str] = typer.Option(
        None, "--token-endpoint", help="Token endpoint (no preset)."
    ),
    device_endpoint: Optional[str] = typer.Option(
        None, "--device-endpoint", help="Device authorization endpoint (no preset)."
    ),
    storage: str = typer.Option("file", "--storage", help="Token storage: file, keyring or memory."),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing profile."),
) -> None:
    """Create or replace a provider profile.

    Either ``--preset`` or both ``--authorization-endpoint`` and
    ``--token-endpoint`` must be given.

    Raises:
        typer.Exit: With code 2 for invalid options or an existing profile
            without ``--force``.

    Example::

        clauth profile add gh --preset github --client-id env:GH_CLIENT_ID
        clauth profile add corp --client-id abc \\
            --authorization-endpoint https://sso.corp/authorize \\
            --token-endpoint https://sso.corp/token
    """
    from clauth.config import profile_exists, save_profile
    from clauth.presets import build_oauth_config

    if profile_exists(name) and not force:
        error(f'Profile "{name}" already exists.')
        suggest("Use --force to overwrite it.")
        raise typer.Exit(code=2)

    if storage not in ("file", "keyring", "memory"):
        error(f"Invalid storage '{storage}': must be 'file', 'keyring' or 'memory'")
        raise typer.Exit(code=2)

    profile = ProviderProfile(
        name=name,
        preset=preset,
        client_id=client_id,
        scope=scope,
        redirect_uri=redirect_uri,
        base_url=base_url,
        tenant=tenant,
        authorization_endpoint=authorization_endpoint,
        token_endpoint=token_endpoint,
        device_authorization_endpoint=device_endpoint,
        storage=storage,  # type: ignore[arg-type]
    )

    # Check the profile resolves to a usable config. Client id sources are
    # only resolved at login time, so a placeholder stands in for them here.
    check = profile.model_copy(update={"client_id": "placeholder"})
    try:
        build_oauth_config(check)
    except ClauthError as exc:
        error(str(exc))
        raise typer.Exit(code=2) from None
    except ValueError as exc:
        error(f"Invalid profile: {exc}")
        raise typer.Exit(code=2) from None

    save_profile(profile)
    success(f'Profile "{name}" saved.')
    suggest(f"Log in: clauth auth login {name}")


@profile_app.command("list")
def profile_list() -> None:
    """List saved profiles.

    Profiles that fail to load are shown with an ``error`` preset.
    """
    from clauth.config import list_profiles, load_profile

    names = list_profiles()
    if not names:
        info("No profiles configured.")
        suggest("Create one: clauth profile add <name> --preset github --client-id <id>")
        return

    rows: list[list[str]] = []
    for name in names:
        try:
            profile = load_profile(name)
        except ClauthError:
            rows.append([name, "error", "-", "-"])
            continue
        rows.append([name, profile.preset or "custom", profile.client_id, profile.storage])

    get_output().print_table(["Profile", "Preset", "Client ID", "Storage"], rows, title="Profiles")


@profile_app.command("show")
def profile_show(name: str = typer.Argument(help="Profile name.")) -> None:
    """Show a profile and the endpoints it resolves to."""
    from clauth.config import load_profile
    from clauth.presets import build_oauth_config

    try:
        profile = load_profile(name)
    except ClauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    record: dict[str, Optional[str]] = {
        "name": profile.name,
        "preset": profile.preset,
        "client_id": profile.client_id,
        "storage": profile.storage,
    }
    try:
        config = build_oauth_config(profile.model_copy(update={"client_id": "-"}))
    except ClauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    record.update(
        authorization_endpoint=config.authorization_endpoint,
        token_endpoint=config.token_endpoint,
        device_authorization_endpoint=config.device_authorization_endpoint,
        redirect_uri=config.redirect_uri,
        scope=config.scope,
    )
    get_output().print_record(record, title=f"Profile {name}")


@profile_app.command("remove")
def profile_remove(
    name: str = typer.Argument(help="Profile name."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Delete a profile. Stored tokens are left alone; use ``auth logout`` for those."""
    from clauth.config import delete_profile, profile_exists

    if not profile_exists(name):
        error(f'Profile "{name}" not found.')
        raise typer.Exit(code=2)

    if not force and not typer.confirm(f'Remove profile "{name}"?'):
        info("Cancelled.")
        raise typer.Exit()

    delete_profile(name)
    success(f'Profile "{name}" removed.')
