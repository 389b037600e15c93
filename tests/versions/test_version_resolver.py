from __future__ import annotations

import http.client
import json
import threading
from datetime import timedelta
from typing import Mapping

import pytest

from csproj_sdk.registry import RegistryClient
from csproj_sdk.versions import (
    MemoryVersionCacheStore,
    VersionCacheEntry,
    VersionResolver,
)

NOW = 1_760_000_000
DAY = 24 * 60 * 60


class CountingGet:
    def __init__(self, status: int = 200, body: str = '{"versions": ["1.0.0", "1.4.2"]}') -> None:
        self.status = status
        self.body = body
        self.calls = 0
        self.timeouts: list[float | None] = []

    def __call__(self, url: str, headers: Mapping[str, str], timeout: float | None) -> tuple[int, str]:
        self.calls += 1
        self.timeouts.append(timeout)
        return self.status, self.body


def _resolver(store: MemoryVersionCacheStore, get) -> VersionResolver:  # type: ignore[no-untyped-def]
    return VersionResolver(store, client=RegistryClient(get=get), clock=lambda: NOW)


def test_fresh_cache_skips_network() -> None:
    store = MemoryVersionCacheStore(
        VersionCacheEntry(last_fetch_epoch_seconds=NOW - DAY + 60, cached_version="1.3.0")
    )
    get = CountingGet()

    resolver = _resolver(store, get)

    assert resolver.resolve() == "1.3.0"
    assert resolver.void_sdk_identifier() == "Csproj.Sdk.Void/1.3.0"
    assert get.calls == 0
    assert store.saves == []


def test_stale_cache_fetches_and_persists_latest() -> None:
    store = MemoryVersionCacheStore(
        VersionCacheEntry(last_fetch_epoch_seconds=NOW - DAY, cached_version="1.3.0", request_timeout_millis=1500)
    )
    get = CountingGet()

    resolver = _resolver(store, get)

    assert resolver.resolve() == "1.4.2"
    assert get.calls == 1
    assert get.timeouts == [1.5]
    # Timestamp is written before the request goes out, then the version.
    assert store.saves[0] == VersionCacheEntry(NOW, "1.3.0", 1500)
    assert store.saves[-1] == VersionCacheEntry(NOW, "1.4.2", 1500)


def test_first_run_without_cache_fetches() -> None:
    store = MemoryVersionCacheStore()
    get = CountingGet()

    assert _resolver(store, get).void_sdk_identifier() == "Csproj.Sdk.Void/1.4.2"
    assert store.entry.last_fetch_epoch_seconds == NOW
    assert store.entry.cached_version == "1.4.2"


def test_result_is_memoised_per_resolver() -> None:
    store = MemoryVersionCacheStore()
    get = CountingGet()
    resolver = _resolver(store, get)

    assert not resolver.resolved
    first = resolver.resolve()
    store.entry = VersionCacheEntry()
    second = resolver.resolve()

    assert resolver.resolved
    assert first == second == "1.4.2"
    assert get.calls == 1


@pytest.mark.parametrize(
    ("status", "body"),
    [
        (500, "{}"),
        (404, '{"versions": ["9.9.9"]}'),
        (200, "not json"),
        (200, '{"versions": []}'),
        (200, '{"items": ["1.0.0"]}'),
    ],
)
def test_failed_fetch_falls_back_to_default(status: int, body: str, caplog: pytest.LogCaptureFixture) -> None:
    store = MemoryVersionCacheStore(
        VersionCacheEntry(last_fetch_epoch_seconds=NOW - 3 * DAY, cached_version="1.3.0")
    )
    get = CountingGet(status=status, body=body)
    resolver = _resolver(store, get)

    with caplog.at_level("ERROR"):
        assert resolver.resolve() is None

    assert resolver.void_sdk_identifier() == "Csproj.Sdk.Void/1.1.0"
    assert store.entry.cached_version is None
    assert store.entry.last_fetch_epoch_seconds == NOW
    assert "Registry lookup" in caplog.text
    assert get.calls == 1


def test_failed_fetch_memoises_failure() -> None:
    store = MemoryVersionCacheStore()
    get = CountingGet(status=503)
    resolver = _resolver(store, get)

    assert resolver.resolve() is None
    assert resolver.resolve() is None
    assert get.calls == 1


def test_failed_fetch_suppresses_retry_within_a_day() -> None:
    store = MemoryVersionCacheStore()
    failing = CountingGet(status=500)
    assert _resolver(store, failing).resolve() is None

    later = CountingGet()
    resolver = VersionResolver(
        store, client=RegistryClient(get=later), clock=lambda: NOW + DAY - 1
    )

    assert resolver.resolve() is None
    assert later.calls == 0


def test_slow_registry_times_out() -> None:
    release = threading.Event()

    def slow_get(url: str, headers: Mapping[str, str], timeout: float | None) -> tuple[int, str]:
        release.wait(5)
        return 200, json.dumps({"versions": ["7.0.0"]})

    store = MemoryVersionCacheStore(
        VersionCacheEntry(last_fetch_epoch_seconds=0, cached_version="1.3.0", request_timeout_millis=50)
    )
    resolver = _resolver(store, slow_get)

    try:
        assert resolver.void_sdk_identifier() == "Csproj.Sdk.Void/1.1.0"
    finally:
        release.set()

    assert store.entry.cached_version is None
    assert store.entry.last_fetch_epoch_seconds == NOW


def test_blank_cached_version_is_cleared() -> None:
    store = MemoryVersionCacheStore(
        VersionCacheEntry(last_fetch_epoch_seconds=NOW - 10, cached_version="  ")
    )
    get = CountingGet()

    assert _resolver(store, get).resolve() is None
    assert store.entry.cached_version is None
    assert get.calls == 0


def test_custom_throttle_window() -> None:
    store = MemoryVersionCacheStore(
        VersionCacheEntry(last_fetch_epoch_seconds=NOW - 120, cached_version="1.3.0")
    )
    get = CountingGet()
    resolver = VersionResolver(
        store,
        client=RegistryClient(get=get),
        clock=lambda: NOW,
        throttle=timedelta(minutes=1),
    )

    assert resolver.resolve() == "1.4.2"
    assert get.calls == 1


@pytest.mark.parametrize(
    "exc",
    [
        http.client.IncompleteRead(b'{"vers'),
        http.client.BadStatusLine("HTTP/9.9 ???"),
        http.client.LineTooLong("header line"),
        ValueError("unknown url type"),
    ],
)
def test_protocol_errors_fall_back_to_default(exc: Exception, caplog: pytest.LogCaptureFixture) -> None:
    def broken_get(url: str, headers: Mapping[str, str], timeout: float | None) -> tuple[int, str]:
        raise exc

    store = MemoryVersionCacheStore(VersionCacheEntry(cached_version="1.3.0"))
    resolver = _resolver(store, broken_get)

    with caplog.at_level("ERROR"):
        assert resolver.void_sdk_identifier() == "Csproj.Sdk.Void/1.1.0"

    assert resolver.resolved
    assert store.entry.cached_version is None
    assert store.entry.last_fetch_epoch_seconds == NOW
    assert "Registry lookup timed out or is unavailable" in caplog.text


def test_base_url_without_scheme_falls_back_to_default() -> None:
    store = MemoryVersionCacheStore()
    resolver = VersionResolver(
        store,
        client=RegistryClient(base_url="api.nuget.org/v3"),
        clock=lambda: NOW,
    )

    assert resolver.void_sdk_identifier() == "Csproj.Sdk.Void/1.1.0"
    assert store.entry.last_fetch_epoch_seconds == NOW


def test_unexpected_worker_error_settles_resolution(caplog: pytest.LogCaptureFixture) -> None:
    calls: list[str] = []

    def buggy_get(url: str, headers: Mapping[str, str], timeout: float | None) -> tuple[int, str]:
        calls.append(url)
        raise KeyError("versions")

    store = MemoryVersionCacheStore(VersionCacheEntry(cached_version="1.3.0"))
    resolver = _resolver(store, buggy_get)

    with caplog.at_level("ERROR"):
        assert resolver.resolve() is None
        assert resolver.resolve() is None

    assert resolver.void_sdk_identifier() == "Csproj.Sdk.Void/1.1.0"
    assert store.entry.cached_version is None
    assert len(calls) == 1
    assert "failed unexpectedly" in caplog.text
