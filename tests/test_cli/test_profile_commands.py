"""Tests for the ``clauth profile`` command group."""

from __future__ import annotations

import json
from pathlib import Path

from clauth.app import app
from clauth.config import load_profile, profile_exists, save_profile
from clauth.models import ProviderProfile


class TestProfileAdd:
    def test_add_preset_profile(self, isolated_config: Path, cli_runner) -> None:
        result = cli_runner.invoke(
            app,
            ["profile", "add", "gh", "--preset", "github", "--client-id", "Iv1.abc", "--scope", "repo"],
        )
        assert result.exit_code == 0, result.output
        profile = load_profile("gh")
        assert profile.preset == "github"
        assert profile.scope == "repo"
        assert profile.storage == "file"

    def test_add_custom_profile(self, isolated_config: Path, cli_runner) -> None:
        result = cli_runner.invoke(
            app,
            [
                "profile", "add", "corp",
                "--client-id", "env:CORP_CLIENT_ID",
                "--authorization-endpoint", "https://sso.corp/authorize",
                "--token-endpoint", "https://sso.corp/token",
                "--storage", "memory",
            ],
        )
        assert result.exit_code == 0, result.output
        profile = load_profile("corp")
        assert profile.client_id == "env:CORP_CLIENT_ID"
        assert profile.storage == "memory"

    def test_custom_profile_without_endpoints_rejected(
        self, isolated_config: Path, cli_runner
    ) -> None:
        result = cli_runner.invoke(app, ["profile", "add", "corp", "--client-id", "abc"])
        assert result.exit_code == 2
        assert "needs a preset" in result.output
        assert not profile_exists("corp")

    def test_unknown_preset_rejected(self, isolated_config: Path, cli_runner) -> None:
        result = cli_runner.invoke(
            app, ["profile", "add", "x", "--preset", "okta", "--client-id", "abc"]
        )
        assert result.exit_code == 2
        assert "Unknown preset" in result.output

    def test_keyring_storage_accepted(self, isolated_config: Path, cli_runner) -> None:
        result = cli_runner.invoke(
            app,
            ["profile", "add", "gh", "--preset", "github", "--client-id", "a", "--storage", "keyring"],
        )
        assert result.exit_code == 0, result.output
        assert load_profile("gh").storage == "keyring"

    def test_invalid_storage_rejected(self, isolated_config: Path, cli_runner) -> None:
        result = cli_runner.invoke(
            app,
            ["profile", "add", "gh", "--preset", "github", "--client-id", "a", "--storage", "disk"],
        )
        assert result.exit_code == 2

    def test_existing_profile_needs_force(self, isolated_config: Path, cli_runner) -> None:
        save_profile(ProviderProfile(name="gh", preset="github", client_id="old"))
        args = ["profile", "add", "gh", "--preset", "github", "--client-id", "new"]

        result = cli_runner.invoke(app, args)
        assert result.exit_code == 2
        assert load_profile("gh").client_id == "old"

        result = cli_runner.invoke(app, args + ["--force"])
        assert result.exit_code == 0, result.output
        assert load_profile("gh").client_id == "new"


class TestProfileListShow:
    def test_list_empty(self, isolated_config: Path, cli_runner) -> None:
        result = cli_runner.invoke(app, ["profile", "list"])
        assert result.exit_code == 0
        assert "No profiles configured" in result.output

    def test_list_json(self, isolated_config: Path, cli_runner) -> None:
        save_profile(ProviderProfile(name="gh", preset="github", client_id="Iv1.abc"))
        save_profile(
            ProviderProfile(
                name="corp",
                client_id="cid",
                authorization_endpoint="https://sso.corp/authorize",
                token_endpoint="https://sso.corp/token",
                storage="memory",
            )
        )
        result = cli_runner.invoke(app, ["--json", "profile", "list"])
        assert result.exit_code == 0, result.output
        rows = json.loads(result.stdout)
        assert rows == [
            {"Profile": "corp", "Preset": "custom", "Client ID": "cid", "Storage": "memory"},
            {"Profile": "gh", "Preset": "github", "Client ID": "Iv1.abc", "Storage": "file"},
        ]

    def test_show_resolves_endpoints(self, isolated_config: Path, cli_runner) -> None:
        save_profile(
            ProviderProfile(name="ms", preset="microsoft", client_id="cid", tenant="contoso")
        )
        result = cli_runner.invoke(app, ["--json", "profile", "show", "ms"])
        assert result.exit_code == 0, result.output
        record = json.loads(result.stdout)
        assert record["token_endpoint"] == (
            "https://login.microsoftonline.com/contoso/oauth2/v2.0/token"
        )
        assert record["client_id"] == "cid"

    def test_show_missing(self, isolated_config: Path, cli_runner) -> None:
        result = cli_runner.invoke(app, ["profile", "show", "nope"])
        assert result.exit_code == 2
        assert "not found" in result.output


class TestProfileRemove:
    def test_remove_with_force(self, isolated_config: Path, cli_runner) -> None:
        save_profile(ProviderProfile(name="gh", preset="github", client_id="a"))
        result = cli_runner.invoke(app, ["profile", "remove", "gh", "--force"])
        assert result.exit_code == 0, result.output
        assert not profile_exists("gh")

    def test_remove_confirmed(self, isolated_config: Path, cli_runner) -> None:
        save_profile(ProviderProfile(name="gh", preset="github", client_id="a"))
        result = cli_runner.invoke(app, ["profile", "remove", "gh"], input="y\n")
        assert result.exit_code == 0, result.output
        assert not profile_exists("gh")

    def test_remove_declined(self, isolated_config: Path, cli_runner) -> None:
        save_profile(ProviderProfile(name="gh", preset="github", client_id="a"))
        result = cli_runner.invoke(app, ["profile", "remove", "gh"], input="n\n")
        assert result.exit_code == 0
        assert profile_exists("gh")

    def test_remove_missing(self, isolated_config: Path, cli_runner) -> None:
        result = cli_runner.invoke(app, ["profile", "remove", "nope", "--force"])
        assert result.exit_code == 2
