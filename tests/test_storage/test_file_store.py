"""Tests for the file-backed session and token stores."""

from __future__ import annotations

import json
import os
import stat
from datetime import datetime, timezone
from pathlib import Path

import pytest

from clauth.exceptions import NotFoundError, StorageError
from clauth.models import Session, TokenInfo
from clauth.storage import FileStore


@pytest.fixture()
def file_store(tmp_path: Path) -> FileStore:
    return FileStore(tmp_path / "store")


class TestFileTokenStore:
    def test_round_trip_is_field_for_field_equal(self, file_store: FileStore) -> None:
        token = TokenInfo(
            access_token="a",
            refresh_token="r",
            token_type="Bearer",
            expires_at=datetime(2030, 1, 1, 8, 30, tzinfo=timezone.utc),
            expires_in=3600,
            scope="repo user",
        )
        file_store.tokens.save("github.com:octocat", token)
        assert file_store.tokens.get("github.com:octocat") == token

    def test_round_trip_without_refresh_token(self, file_store: FileStore) -> None:
        token = TokenInfo(access_token="a")
        file_store.tokens.save("k", token)
        assert file_store.tokens.get("k") == token

    def test_survives_new_store_instance(self, tmp_path: Path) -> None:
        FileStore(tmp_path).tokens.save("k", TokenInfo(access_token="a"))
        assert FileStore(tmp_path).tokens.get("k").access_token == "a"

    def test_file_permissions_are_0600(self, file_store: FileStore) -> None:
        file_store.tokens.save("k", TokenInfo(access_token="a"))
        path = file_store.directory / "tokens" / "k.json"
        mode = stat.S_IMODE(os.stat(path).st_mode)
        assert mode == 0o600

    def test_keys_are_percent_encoded(self, file_store: FileStore) -> None:
        file_store.tokens.save("a/b:c", TokenInfo(access_token="x"))
        names = os.listdir(file_store.directory / "tokens")
        assert names == ["a%2Fb%3Ac.json"]
        assert file_store.tokens.keys() == ["a/b:c"]

    def test_keys_empty_before_first_write(self, file_store: FileStore) -> None:
        assert file_store.tokens.keys() == []

    def test_no_temp_files_left(self, file_store: FileStore) -> None:
        file_store.tokens.save("k", TokenInfo(access_token="a"))
        file_store.tokens.save("k", TokenInfo(access_token="b"))
        assert os.listdir(file_store.directory / "tokens") == ["k.json"]

    def test_get_missing_raises_not_found(self, file_store: FileStore) -> None:
        with pytest.raises(NotFoundError):
            file_store.tokens.get("missing")

    def test_delete_missing_is_noop(self, file_store: FileStore) -> None:
        file_store.tokens.delete("missing")

    def test_delete(self, file_store: FileStore) -> None:
        file_store.tokens.save("k", TokenInfo(access_token="a"))
        file_store.tokens.delete("k")
        with pytest.raises(NotFoundError):
            file_store.tokens.get("k")

    def test_corrupt_file_raises_storage_error(self, file_store: FileStore) -> None:
        file_store.tokens.save("k", TokenInfo(access_token="a"))
        (file_store.directory / "tokens" / "k.json").write_text("{not json")
        with pytest.raises(StorageError, match="Corrupt"):
            file_store.tokens.get("k")

    def test_invalid_schema_raises_storage_error(self, file_store: FileStore) -> None:
        path = file_store.directory / "tokens" / "k.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"token_type": "Bearer"}))
        with pytest.raises(StorageError):
            file_store.tokens.get("k")

    def test_write_failure_raises_storage_error(
        self, file_store: FileStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def boom(*args: object, **kwargs: object) -> None:
            raise OSError("disk full")

        monkeypatch.setattr("clauth.storage.file.atomic_write", boom)
        with pytest.raises(StorageError, match="disk full"):
            file_store.tokens.save("k", TokenInfo(access_token="a"))


class TestFileSessionStore:
    def test_save_get_pop(self, file_store: FileStore) -> None:
        session = Session(
            state="abc", code_verifier="v" * 43, created_at=datetime(2026, 1, 1, tzinfo=timezone.utc)
        )
        file_store.sessions.save(session)
        assert file_store.sessions.get("abc") == session
        assert file_store.sessions.pop("abc") == session
        with pytest.raises(NotFoundError):
            file_store.sessions.pop("abc")

    def test_delete_missing_is_noop(self, file_store: FileStore) -> None:
        file_store.sessions.delete("nope")


class TestDefaultDirectory:
    def test_defaults_to_data_dir(self, isolated_config: Path) -> None:
        store = FileStore()
        assert store.directory == isolated_config / "data" / "clauth"
