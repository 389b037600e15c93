from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from .descriptor import DEFAULT_IMPORTS, MSBUILD_NAMESPACE, PROPS_EXTENSION, TARGETS_EXTENSION, ImportKind

logger = logging.getLogger(__name__)

_INDENT = "    "

# MSBuild imports these from the project directory without an <Import>.
AUTO_IMPORT_STEM = "Directory.Build"
AUTO_IMPORT_FILES: tuple[tuple[str, Optional[str]], ...] = (
    (AUTO_IMPORT_STEM + PROPS_EXTENSION, "<Nullable>enable</Nullable>"),
    (AUTO_IMPORT_STEM + TARGETS_EXTENSION, None),
)


def placeholder_content(property_group: Optional[str] = None) -> str:
    """Minimal MSBuild project, optionally seeding its ``PropertyGroup``."""

    content = f'<Project xmlns="{MSBUILD_NAMESPACE}">\n{_INDENT}<PropertyGroup>\n'
    if property_group is not None:
        body = property_group.replace("\n", "\n" + _INDENT * 2).rstrip()
        content += f"{_INDENT * 2}{body}\n"
    content += f"{_INDENT}</PropertyGroup>\n</Project>\n"
    return content


PLACEHOLDER_CONTENT = placeholder_content()


def companion_file_names(
    project_name: str, imports: Iterable[ImportKind] = DEFAULT_IMPORTS
) -> List[str]:
    """Names of every ``.props``/``.targets`` file the rewrite may reference."""

    names: List[str] = []
    for extension in (PROPS_EXTENSION, TARGETS_EXTENSION):
        for kind in imports:
            names.append(kind.file_name(project_name, extension))
    return names


def create_file_if_missing(path: Path, property_group: Optional[str] = None) -> bool:
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(placeholder_content(property_group), encoding="utf-8")
    logger.info("Created placeholder %s", path)
    return True


def ensure_companion_files(
    directory: Path,
    project_name: str,
    imports: Iterable[ImportKind] = DEFAULT_IMPORTS,
) -> List[Path]:
    """Create missing auto-import and companion files; return the new paths."""

    directory = Path(directory)
    created: List[Path] = []
    for name, property_group in AUTO_IMPORT_FILES:
        target = directory / name
        if create_file_if_missing(target, property_group):
            created.append(target)
    for name in companion_file_names(project_name, imports):
        target = directory / name
        if create_file_if_missing(target):
            created.append(target)
    return created


__all__ = [
    "AUTO_IMPORT_FILES",
    "AUTO_IMPORT_STEM",
    "PLACEHOLDER_CONTENT",
    "companion_file_names",
    "create_file_if_missing",
    "ensure_companion_files",
    "placeholder_content",
]
