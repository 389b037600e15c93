from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

SETTINGS_FILE_NAME = "CsprojSdk.json"
VERSION_CACHE_FILE_NAME = "CsprojSdk.VersionCache.json"
CUSTOM_SDK_NOT_SET = "custom_sdk_name_with_version is not set"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class SettingsError(ValueError):
    """Raised when settings payloads or overrides are invalid."""


def default_settings_path(project_dir: Path) -> Path:
    """Shared settings live beside Unity's own project settings."""

    return Path(project_dir) / "ProjectSettings" / SETTINGS_FILE_NAME


def default_version_cache_path(project_dir: Path) -> Path:
    """Fetch state is per machine, so it goes into the ignored Library folder."""

    return Path(project_dir) / "Library" / VERSION_CACHE_FILE_NAME


def _parse_bool(key: str, raw: str) -> bool:
    text = raw.strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise SettingsError(f"{key} expects a boolean, got {raw!r}")


@dataclass(frozen=True)
class ConverterSettings:
    """Toggles controlling how generated descriptors are post-processed.

    ``custom_sdk_name_with_version`` must carry a version, for example
    ``Sdk.PackageName.On.Nuget.Org/1.0.0``; it is only used when
    ``use_void_sdk`` is off.
    """

    enable_generator: bool = True
    disable_on_build: bool = False
    disable_in_debug_mode: bool = False
    enable_sdk_style: bool = True
    use_void_sdk: bool = True
    custom_sdk_name_with_version: str = CUSTOM_SDK_NOT_SET

    @classmethod
    def keys(cls) -> tuple[str, ...]:
        return tuple(field.name for field in fields(cls))

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ConverterSettings":
        values: dict[str, Any] = {}
        for field in fields(cls):
            if field.name not in payload:
                continue
            value = payload[field.name]
            expected = bool if field.type in ("bool", bool) else str
            if not isinstance(value, expected):
                raise SettingsError(
                    f"{field.name} must be {expected.__name__}, got {type(value).__name__}"
                )
            values[field.name] = value
        return cls(**values)

    def to_mapping(self) -> Mapping[str, Any]:
        return {field.name: getattr(self, field.name) for field in fields(self)}

    def with_value(self, key: str, raw: str) -> "ConverterSettings":
        """Return a copy with ``key`` set from its command-line text form."""

        if key not in self.keys():
            raise SettingsError(f"Unknown setting: {key}")
        if isinstance(getattr(self, key), bool):
            return replace(self, **{key: _parse_bool(key, raw)})
        if not raw.strip():
            raise SettingsError(f"{key} must not be empty")
        return replace(self, **{key: raw.strip()})

    @classmethod
    def load(cls, path: Path) -> "ConverterSettings":
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise SettingsError(f"Settings file is not valid JSON: {path}") from exc
        if not isinstance(payload, Mapping):
            raise SettingsError(f"Settings file must contain a JSON object: {path}")
        return cls.from_mapping(payload)

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(self.to_mapping(), indent=4)
        path.write_text(text + "\n", encoding="utf-8")


__all__ = [
    "CUSTOM_SDK_NOT_SET",
    "ConverterSettings",
    "SETTINGS_FILE_NAME",
    "SettingsError",
    "VERSION_CACHE_FILE_NAME",
    "default_settings_path",
    "default_version_cache_path",
]
