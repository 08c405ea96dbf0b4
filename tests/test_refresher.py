"""Tests for the single-flight TokenRefresher."""

from __future__ import annotations

import threading
import time
from datetime import timedelta

import pytest
from helpers import T0, FakeClock, ScriptedTransport, oauth_error, ok

from clauth.client import OAuthClient
from clauth.exceptions import (
    AuthorizationDeniedError,
    FlowTimeoutError,
    InvalidArgumentError,
    NoRefreshTokenError,
    NotFoundError,
)
from clauth.models import TokenInfo
from clauth.refresher import TokenRefresher
from clauth.storage import MemoryStore

EXPIRED = TokenInfo(access_token="old", refresh_token="rt", expires_at=T0 - timedelta(seconds=1))
FRESH = TokenInfo(access_token="fresh", refresh_token="rt", expires_at=T0 + timedelta(hours=1))


def _wait_until(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        time.sleep(0.005)


def _run_concurrently(count: int, target) -> list[object]:
    """Run *target* in *count* threads released together; return results or exceptions."""
    barrier = threading.Barrier(count)
    results: list[object] = [None] * count

    def worker(index: int) -> None:
        barrier.wait()
        try:
            results[index] = target()
        except Exception as exc:  # collected for assertions
            results[index] = exc

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results


class TestGetValid:
    def test_fresh_token_no_network(self, client: OAuthClient, transport: ScriptedTransport, clock: FakeClock) -> None:
        client.save_token("k", FRESH)
        refresher = TokenRefresher(client, clock=clock)
        assert refresher.get_valid("k") == FRESH
        assert transport.calls == []

    def test_missing_key_propagates_not_found(self, client: OAuthClient, clock: FakeClock) -> None:
        with pytest.raises(NotFoundError):
            TokenRefresher(client, clock=clock).get_valid("nope")

    def test_expired_without_refresh_token(
        self, client: OAuthClient, transport: ScriptedTransport, clock: FakeClock
    ) -> None:
        client.save_token("k", EXPIRED.model_copy(update={"refresh_token": None}))
        with pytest.raises(NoRefreshTokenError):
            TokenRefresher(client, clock=clock).get_valid("k")
        assert transport.calls == []

    def test_expired_token_refreshed_and_saved(
        self, client: OAuthClient, store: MemoryStore, transport: ScriptedTransport, clock: FakeClock
    ) -> None:
        transport.script.append(ok(access_token="new", expires_in=3600))
        client.save_token("k", EXPIRED)

        token = TokenRefresher(client, clock=clock).get_valid("k")

        assert token.access_token == "new"
        assert token.refresh_token == "rt"
        assert store.tokens.get("k") == token

    def test_skew_triggers_early_refresh(
        self, client: OAuthClient, transport: ScriptedTransport, clock: FakeClock
    ) -> None:
        transport.script.append(ok(access_token="new", expires_in=3600))
        client.save_token("k", FRESH.model_copy(update={"expires_at": T0 + timedelta(seconds=20)}))
        assert TokenRefresher(client, skew=30, clock=clock).get_valid("k").access_token == "new"

    def test_fifty_concurrent_callers_one_refresh(self, oauth_config, clock: FakeClock) -> None:
        store = MemoryStore()
        transport = ScriptedTransport([ok(access_token="new", expires_in=3600)], delay=0.1)
        client = OAuthClient(oauth_config, store.sessions, store.tokens, transport, clock=clock)
        client.save_token("k", EXPIRED)
        refresher = TokenRefresher(client, clock=clock)

        results = _run_concurrently(50, lambda: refresher.get_valid("k"))

        assert len(transport.calls) == 1
        assert all(isinstance(r, TokenInfo) for r in results)
        assert all(r == results[0] for r in results)
        assert results[0].access_token == "new"
        assert refresher.in_flight() == []

    def test_followers_share_leader_failure(self, oauth_config, clock: FakeClock) -> None:
        store = MemoryStore()
        release = threading.Event()

        def rejected(url: str, data: dict) -> object:
            release.wait(5)
            return oauth_error("invalid_grant")

        transport = ScriptedTransport([rejected])
        client = OAuthClient(oauth_config, store.sessions, store.tokens, transport, clock=clock)
        client.save_token("k", EXPIRED)
        refresher = TokenRefresher(client, clock=clock)

        results: list[object] = [None] * 10

        def call(index: int) -> None:
            try:
                results[index] = refresher.get_valid("k")
            except Exception as exc:  # collected for assertions
                results[index] = exc

        leader = threading.Thread(target=call, args=(0,))
        leader.start()
        _wait_until(lambda: len(transport.calls) == 1)
        followers = [threading.Thread(target=call, args=(i,)) for i in range(1, 10)]
        for t in followers:
            t.start()
        # followers only need to reach the arena lookup before the leader returns
        time.sleep(0.2)
        release.set()
        for t in [leader, *followers]:
            t.join(timeout=5)

        assert all(isinstance(r, AuthorizationDeniedError) for r in results)
        assert all(r is results[0] for r in results)
        assert len(transport.calls) == 1
        assert store.tokens.get("k") == EXPIRED
        assert refresher.in_flight() == []

    def test_follower_wait_bounded_by_timeout(self, client: OAuthClient, transport: ScriptedTransport, clock: FakeClock) -> None:
        release = threading.Event()

        def blocked(url: str, data: dict) -> object:
            release.wait(5)
            return ok(access_token="new", expires_in=3600)

        transport.script.append(blocked)
        client.save_token("k", EXPIRED)
        refresher = TokenRefresher(client, timeout=0.05, clock=clock)

        leader = threading.Thread(target=refresher.get_valid, args=("k",))
        leader.start()
        _wait_until(lambda: refresher.in_flight() == ["k"])
        try:
            with pytest.raises(FlowTimeoutError):
                refresher.get_valid("k")
        finally:
            release.set()
            leader.join(5)

    def test_unrelated_keys_do_not_contend(
        self, client: OAuthClient, store: MemoryStore, transport: ScriptedTransport, clock: FakeClock
    ) -> None:
        release = threading.Event()

        def by_key(url: str, data: dict) -> object:
            if data["refresh_token"] == "rt-a":
                release.wait(5)
            return ok(access_token=f"new-{data['refresh_token']}", expires_in=3600)

        transport.script.append(by_key)
        client.save_token("a", EXPIRED.model_copy(update={"refresh_token": "rt-a"}))
        client.save_token("b", EXPIRED.model_copy(update={"refresh_token": "rt-b"}))
        refresher = TokenRefresher(client, clock=clock)

        blocked = threading.Thread(target=refresher.get_valid, args=("a",))
        blocked.start()
        _wait_until(lambda: refresher.in_flight() == ["a"])
        try:
            assert refresher.get_valid("b").access_token == "new-rt-b"
        finally:
            release.set()
            blocked.join(5)
        assert store.tokens.get("a").access_token == "new-rt-a"


class TestThreshold:
    def _lifetime_token(self) -> TokenInfo:
        return TokenInfo(
            access_token="old",
            refresh_token="rt",
            expires_at=T0 + timedelta(seconds=100),
            expires_in=100,
        )

    def test_refreshes_past_threshold(
        self, client: OAuthClient, transport: ScriptedTransport, clock: FakeClock
    ) -> None:
        transport.script.append(ok(access_token="new", expires_in=100))
        client.save_token("k", self._lifetime_token())
        clock.advance(80)
        token = TokenRefresher(client, clock=clock).get_valid_with_threshold("k", 0.75)
        assert token.access_token == "new"

    def test_keeps_token_before_threshold(
        self, client: OAuthClient, transport: ScriptedTransport, clock: FakeClock
    ) -> None:
        client.save_token("k", self._lifetime_token())
        clock.advance(50)
        token = TokenRefresher(client, clock=clock).get_valid_with_threshold("k", 0.75)
        assert token.access_token == "old"
        assert transport.calls == []

    def test_unrefreshable_token_returned_until_expiry(self, client: OAuthClient, clock: FakeClock) -> None:
        client.save_token("k", self._lifetime_token().model_copy(update={"refresh_token": None}))
        refresher = TokenRefresher(client, clock=clock)
        clock.advance(90)
        assert refresher.get_valid_with_threshold("k", 0.5).access_token == "old"
        clock.advance(20)
        with pytest.raises(NoRefreshTokenError):
            refresher.get_valid_with_threshold("k", 0.5)

    @pytest.mark.parametrize("threshold", [0, -0.5, 1.5])
    def test_invalid_threshold(self, client: OAuthClient, threshold: float) -> None:
        with pytest.raises(InvalidArgumentError):
            TokenRefresher(client).get_valid_with_threshold("k", threshold)


class TestForcedRefresh:
    def test_refreshes_fresh_token(
        self, client: OAuthClient, transport: ScriptedTransport, clock: FakeClock
    ) -> None:
        transport.script.append(ok(access_token="forced"))
        client.save_token("k", FRESH)
        assert TokenRefresher(client, clock=clock).refresh("k").access_token == "forced"
        assert len(transport.calls) == 1

    def test_without_refresh_token(self, client: OAuthClient, clock: FakeClock) -> None:
        client.save_token("k", TokenInfo(access_token="at"))
        with pytest.raises(NoRefreshTokenError):
            TokenRefresher(client, clock=clock).refresh("k")


class TestWait:
    def test_idle_key_returns_immediately(self, client: OAuthClient) -> None:
        refresher = TokenRefresher(client)
        started = time.monotonic()
        assert refresher.wait("k") is True
        assert refresher.drain() is True
        assert time.monotonic() - started < 0.5

    def test_blocks_until_refresh_committed(
        self, client: OAuthClient, store: MemoryStore, transport: ScriptedTransport, clock: FakeClock
    ) -> None:
        release = threading.Event()

        def blocked(url: str, data: dict) -> object:
            release.wait(5)
            return ok(access_token="new", expires_in=3600)

        transport.script.append(blocked)
        client.save_token("k", EXPIRED)
        refresher = TokenRefresher(client, clock=clock)

        leader = threading.Thread(target=refresher.get_valid, args=("k",))
        leader.start()
        _wait_until(lambda: refresher.in_flight() == ["k"])

        assert refresher.wait("k", timeout=0.05) is False
        assert refresher.drain(timeout=0.05) is False

        release.set()
        assert refresher.wait("k", timeout=5) is True
        assert store.tokens.get("k").access_token == "new"
        leader.join(5)
        refresher.close()
        assert refresher.in_flight() == []
