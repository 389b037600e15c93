"""Hook points called by the project generator integration.

``ProjectPostprocessor.on_generated_project`` receives every descriptor the
IDE integration produces and returns the text that should be written to disk.
``BuildHooks`` regenerates descriptors around a player build so the build
sees the build-mode layout and the editor gets its own layout back after.
Use ``BuildHooks.building()`` where the host cannot promise a post-build
callback, such as batch builds that abort on error.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, Sequence

from .descriptor import DEFAULT_IMPORTS, DEFAULT_MARKER, BuildMode, DescriptorRewriter, ImportKind
from .scaffold import ensure_companion_files
from .settings import ConverterSettings, default_version_cache_path
from .versions import JsonVersionCacheStore, VersionResolver

logger = logging.getLogger(__name__)

Regenerate = Callable[[BuildMode], None]


class ProjectPostprocessor:
    """Apply the settings gates, scaffold companions and rewrite descriptors."""

    def __init__(
        self,
        settings: ConverterSettings,
        project_dir: Path,
        *,
        resolver: Optional[VersionResolver] = None,
        project_name: Optional[str] = None,
        imports: Sequence[ImportKind] = DEFAULT_IMPORTS,
        marker: str = DEFAULT_MARKER,
    ) -> None:
        self.settings = settings
        self.project_dir = Path(project_dir)
        if resolver is None:
            store = JsonVersionCacheStore(default_version_cache_path(self.project_dir))
            resolver = VersionResolver(store)
        self.resolver = resolver
        self.project_name = project_name or self.project_dir.resolve().name
        self.imports = tuple(imports)
        self.rewriter = DescriptorRewriter(self.project_name, imports=self.imports, marker=marker)

    def is_active(self, mode: BuildMode, *, debug: bool = False) -> bool:
        settings = self.settings
        if not settings.enable_generator:
            return False
        if mode is BuildMode.BUILD and settings.disable_on_build:
            return False
        if debug and settings.disable_in_debug_mode:
            return False
        return True

    def sdk_identifier(self) -> str:
        if not self.settings.use_void_sdk:
            return self.settings.custom_sdk_name_with_version
        return self.resolver.void_sdk_identifier()

    def on_generated_project(
        self,
        path: str,
        content: str,
        mode: BuildMode = BuildMode.EDIT,
        *,
        debug: bool = False,
    ) -> str:
        mode = BuildMode(mode)
        if not self.is_active(mode, debug=debug):
            logger.debug("Generator inactive for %s (mode=%s); returning as-is", path, mode.value)
            return content

        ensure_companion_files(self.project_dir, self.project_name, self.imports)

        sdk_style = self.settings.enable_sdk_style
        identifier = self.sdk_identifier() if sdk_style else ""
        return self.rewriter.rewrite(content, mode, sdk_style=sdk_style, sdk_identifier=identifier)


class BuildHooks:
    """Regenerate descriptors before and after a player build."""

    def __init__(self, settings: ConverterSettings, regenerate: Regenerate) -> None:
        self.settings = settings
        self._regenerate = regenerate

    def before_build(self) -> None:
        if not self.settings.enable_generator:
            return
        # disable_on_build is honoured by the postprocessor, which still has to
        # run so descriptors revert to the generator's original output.
        logger.info("Regenerating project files for build")
        self._regenerate(BuildMode.BUILD)

    def after_build(self) -> None:
        if not self.settings.enable_generator:
            return
        logger.info("Regenerating project files for the editor")
        self._regenerate(BuildMode.EDIT)

    @contextmanager
    def building(self) -> Iterator[None]:
        """Wrap a build so the editor layout is restored even when it fails."""

        self.before_build()
        try:
            yield
        finally:
            self.after_build()


__all__ = ["BuildHooks", "ProjectPostprocessor", "Regenerate"]
