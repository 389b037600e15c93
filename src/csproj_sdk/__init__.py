"""Post-process Unity generated ``.csproj`` files into the SDK-style layout.

The package exposes the descriptor rewrite, the throttled registry lookup
that picks the void SDK version, and the pipeline hooks that tie both to the
persisted converter settings.
"""

from __future__ import annotations

from .descriptor import (
    DEFAULT_IMPORTS,
    BuildMode,
    DescriptorRewriter,
    ImportKind,
    MalformedDescriptorError,
    rewrite_descriptor,
    strip_default_namespace,
)
from .pipeline import BuildHooks, ProjectPostprocessor
from .registry import RegistryClient, RegistryError
from .scaffold import ensure_companion_files
from .settings import ConverterSettings, SettingsError
from .versions import (
    JsonVersionCacheStore,
    MemoryVersionCacheStore,
    VersionCacheEntry,
    VersionResolver,
)

__all__ = [
    "BuildHooks",
    "BuildMode",
    "ConverterSettings",
    "DEFAULT_IMPORTS",
    "DescriptorRewriter",
    "ImportKind",
    "JsonVersionCacheStore",
    "MalformedDescriptorError",
    "MemoryVersionCacheStore",
    "ProjectPostprocessor",
    "RegistryClient",
    "RegistryError",
    "SettingsError",
    "VersionCacheEntry",
    "VersionResolver",
    "ensure_companion_files",
    "rewrite_descriptor",
    "strip_default_namespace",
]
