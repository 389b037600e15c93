"""Resolve the void SDK version stamped into rewritten descriptors.

The registry is consulted at most once a day.  The fetch timestamp is
persisted *before* the request goes out, so a failed or slow registry does
not trigger a retry until the throttle window has passed again.  Within one
resolver the first answer is memoised, whatever it turned out to be.
"""

from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol

from .registry import RegistryClient, RegistryError

logger = logging.getLogger(__name__)

VOID_SDK_NAME_SLASH = "Csproj.Sdk.Void/"
VOID_SDK_DEFAULT_VERSION = "1.1.0"
DEFAULT_TIMEOUT_MILLIS = 5000
DEFAULT_THROTTLE = timedelta(days=1)

_UNSET: Any = object()


@dataclass(frozen=True, slots=True)
class VersionCacheEntry:
    """Persisted registry state shared between runs."""

    last_fetch_epoch_seconds: int = 0
    cached_version: str | None = None
    request_timeout_millis: int = DEFAULT_TIMEOUT_MILLIS

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "VersionCacheEntry":
        last_fetch = payload.get("last_fetch_epoch_seconds", 0)
        timeout = payload.get("request_timeout_millis", DEFAULT_TIMEOUT_MILLIS)
        cached = payload.get("cached_version")
        if not isinstance(last_fetch, int) or isinstance(last_fetch, bool):
            last_fetch = 0
        if not isinstance(timeout, int) or isinstance(timeout, bool) or timeout <= 0:
            timeout = DEFAULT_TIMEOUT_MILLIS
        if not isinstance(cached, str):
            cached = None
        return cls(
            last_fetch_epoch_seconds=last_fetch,
            cached_version=cached,
            request_timeout_millis=timeout,
        )

    def to_mapping(self) -> Mapping[str, Any]:
        return {
            "last_fetch_epoch_seconds": self.last_fetch_epoch_seconds,
            "cached_version": self.cached_version,
            "request_timeout_millis": self.request_timeout_millis,
        }


class VersionCacheStore(Protocol):
    """Loads and persists :class:`VersionCacheEntry` values."""

    def load(self) -> VersionCacheEntry:
        """Return the stored entry, or defaults when nothing is stored."""

    def save(self, entry: VersionCacheEntry) -> None:
        """Persist ``entry``."""


class MemoryVersionCacheStore:
    def __init__(self, entry: VersionCacheEntry | None = None) -> None:
        self.entry = entry or VersionCacheEntry()
        self.saves: list[VersionCacheEntry] = []

    def load(self) -> VersionCacheEntry:
        return self.entry

    def save(self, entry: VersionCacheEntry) -> None:
        self.entry = entry
        self.saves.append(entry)


class JsonVersionCacheStore:
    """Version cache kept as a small JSON document on disk."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> VersionCacheEntry:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return VersionCacheEntry()
        try:
            payload = json.loads(text)
        except ValueError:
            logger.warning("Ignoring unreadable version cache at %s", self.path)
            return VersionCacheEntry()
        if not isinstance(payload, Mapping):
            logger.warning("Ignoring unexpected version cache payload at %s", self.path)
            return VersionCacheEntry()
        return VersionCacheEntry.from_mapping(payload)

    def save(self, entry: VersionCacheEntry) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(entry.to_mapping(), indent=2, sort_keys=True)
        self.path.write_text(text + "\n", encoding="utf-8")


class VersionResolver:
    """Throttled, memoised lookup of the latest published void SDK version."""

    def __init__(
        self,
        store: VersionCacheStore,
        *,
        client: RegistryClient | None = None,
        clock: Callable[[], float] = time.time,
        throttle: timedelta = DEFAULT_THROTTLE,
    ) -> None:
        self._store = store
        self._client = client or RegistryClient()
        self._clock = clock
        self._throttle_seconds = throttle.total_seconds()
        self._memo: str | None = _UNSET

    @property
    def resolved(self) -> bool:
        return self._memo is not _UNSET

    def resolve(self) -> str | None:
        """Return the latest known version, or ``None`` when none is usable."""

        if self._memo is _UNSET:
            self._memo = self._resolve_once()
        return self._memo

    def void_sdk_identifier(self) -> str:
        return VOID_SDK_NAME_SLASH + (self.resolve() or VOID_SDK_DEFAULT_VERSION)

    def _resolve_once(self) -> str | None:
        entry = self._store.load()
        now = int(self._clock())
        elapsed = now - entry.last_fetch_epoch_seconds
        if elapsed < self._throttle_seconds:
            logger.debug("Registry fetched %ss ago; using cached version", elapsed)
            return self._validated(entry.cached_version, entry)

        entry = replace(entry, last_fetch_epoch_seconds=now)
        self._store.save(entry)

        logger.info("Fetching %s for the latest %s", self._client.url, VOID_SDK_NAME_SLASH)
        timeout = entry.request_timeout_millis / 1000.0
        try:
            version: str | None = self._fetch_latest(timeout)
        except RegistryError as exc:
            logger.error("Registry lookup timed out or is unavailable: %s", exc)
            version = None
        except Exception:  # noqa: BLE001
            logger.exception("Registry lookup failed unexpectedly")
            version = None
        else:
            logger.info("Latest version found: %s%s", VOID_SDK_NAME_SLASH, version)
        return self._validated(version, entry)

    def _fetch_latest(self, timeout: float) -> str:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="csproj-sdk-registry")
        try:
            future = executor.submit(self._client.fetch_latest, timeout)
            try:
                return future.result(timeout=timeout)
            except FutureTimeoutError as exc:
                future.cancel()
                raise RegistryError(f"Registry did not answer within {timeout:.3f}s") from exc
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _validated(self, version: str | None, entry: VersionCacheEntry) -> str | None:
        if version is None or not version.strip():
            if entry.cached_version is not None or version is not None:
                self._store.save(replace(entry, cached_version=None))
            return None
        if version != entry.cached_version:
            self._store.save(replace(entry, cached_version=version))
        return version


__all__ = [
    "DEFAULT_THROTTLE",
    "DEFAULT_TIMEOUT_MILLIS",
    "JsonVersionCacheStore",
    "MemoryVersionCacheStore",
    "VOID_SDK_DEFAULT_VERSION",
    "VOID_SDK_NAME_SLASH",
    "VersionCacheEntry",
    "VersionCacheStore",
    "VersionResolver",
]
