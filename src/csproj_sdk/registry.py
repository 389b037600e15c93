from __future__ import annotations

import json
import time
from http.client import HTTPException
from typing import Callable, Mapping
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

DEFAULT_REGISTRY_URL = "https://api.nuget.org/v3-flatcontainer"
VOID_SDK_PACKAGE_ID = "Csproj.Sdk.Void"

_MIME_JSON = "application/json"
_READ_CHUNK = 8192

_Response = tuple[int, str]


class RegistryError(RuntimeError):
    """Raised when the package registry cannot supply a version list."""


def _get_json(url: str, headers: Mapping[str, str], timeout: float | None) -> _Response:
    request = Request(url, headers=dict(headers), method="GET")
    deadline = None if timeout is None else time.monotonic() + timeout
    chunks: list[bytes] = []
    with urlopen(request, timeout=timeout) as response:  # type: ignore[no-untyped-call]
        status = response.getcode()
        # The socket timeout is per read; a trickling server is cut off here.
        while True:
            chunk = response.read(_READ_CHUNK)
            if not chunk:
                break
            chunks.append(chunk)
            if deadline is not None and time.monotonic() > deadline:
                raise TimeoutError(f"Registry response exceeded {timeout:.3f}s")
    return status, b"".join(chunks).decode("utf-8", "replace")


def index_url(base_url: str, package_id: str) -> str:
    """Flat-container version index URL; package ids are lower-cased there."""

    return f"{base_url.rstrip('/')}/{package_id.lower()}/index.json"


def parse_versions(body: str) -> list[str]:
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise RegistryError("Registry returned malformed JSON") from exc
    if not isinstance(payload, dict):
        raise RegistryError("Registry payload must be a JSON object")
    versions = payload.get("versions")
    if not isinstance(versions, list) or not versions:
        raise RegistryError("Registry payload has no versions")
    if not all(isinstance(entry, str) for entry in versions):
        raise RegistryError("Registry versions must be strings")
    return versions


class RegistryClient:
    """Fetch the published versions of one package from a NuGet flat container."""

    def __init__(
        self,
        package_id: str = VOID_SDK_PACKAGE_ID,
        *,
        base_url: str = DEFAULT_REGISTRY_URL,
        get: Callable[[str, Mapping[str, str], float | None], _Response] | None = None,
    ) -> None:
        if not package_id.strip():
            raise RegistryError("Package id must not be empty")
        self.package_id = package_id
        self.url = index_url(base_url, package_id)
        self._get = get or _get_json

    def fetch_versions(self, timeout: float | None) -> list[str]:
        """Return the ascending version list, raising ``RegistryError`` on failure."""

        try:
            status, body = self._get(self.url, {"Accept": _MIME_JSON}, timeout)
        except HTTPError as exc:
            raise RegistryError(f"Registry rejected request: status={exc.code}") from exc
        except (URLError, OSError, HTTPException, ValueError) as exc:
            raise RegistryError(f"Failed to contact registry at {self.url}") from exc
        if not 200 <= status < 300:
            raise RegistryError(f"Registry rejected request: status={status}")
        return parse_versions(body)

    def fetch_latest(self, timeout: float | None) -> str:
        return self.fetch_versions(timeout)[-1]


__all__ = [
    "DEFAULT_REGISTRY_URL",
    "RegistryClient",
    "RegistryError",
    "VOID_SDK_PACKAGE_ID",
    "index_url",
    "parse_versions",
]
