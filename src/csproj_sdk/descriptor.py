"""Rewrite generated ``.csproj`` descriptors into the SDK-style layout.

Unity regenerates every project file from scratch, so the rewrite runs on a
fresh descriptor each time. Edits are applied in a fixed order:

1. Parse with the hardened ``defusedxml`` parser (comments kept) and locate
   the root plus its first ``PropertyGroup``.  Anything else is treated as a
   malformed descriptor and passed through untouched.
2. Replace the legacy root attributes with a single ``Sdk`` attribute when
   SDK style is enabled and the root does not already carry one.
3. Bracket the existing children with ``.props`` imports at the front and
   ``.targets`` imports at the back, each block fenced by marker comments.
4. Tag the ``UnityProjectGenerator`` value with the tool marker.
5. Serialise as UTF-8 and, for SDK style, drop the default namespace
   declaration from the opening tag with a bounded textual replace.
   ElementTree keeps namespaces on tag names rather than attributes, so there
   is no structural way to remove the declaration.

The rewrite is deterministic but not idempotent: running it over its own
output duplicates the inserted blocks.
"""

from __future__ import annotations

import enum
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Optional, Sequence

from defusedxml.common import DefusedXmlException
from defusedxml.ElementTree import DefusedXMLParser

logger = logging.getLogger(__name__)

MSBUILD_NAMESPACE = "http://schemas.microsoft.com/developer/msbuild/2003"
DEFAULT_MARKER = "CsprojSdk"
NAMESPACE_SEARCH_LIMIT = 512

PROPS_EXTENSION = ".props"
TARGETS_EXTENSION = ".targets"

_ATTR_SDK = "Sdk"
_ATTR_PROJECT = "Project"
_TAG_IMPORT = "Import"
_TAG_PROPERTY_GROUP = "PropertyGroup"
_TAG_GENERATOR = "UnityProjectGenerator"
_XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'

# Serialise MSBuild elements without an ``ns0:`` prefix. The prefix map is
# process-wide, so importing this module makes every ElementTree user in the
# process render the MSBuild namespace as the default namespace.
ET.register_namespace("", MSBUILD_NAMESPACE)


class BuildMode(str, enum.Enum):
    """Which consumer the descriptor is generated for."""

    EDIT = "edit"
    BUILD = "build"


@dataclass(frozen=True, slots=True)
class ImportKind:
    """One family of shared MSBuild files referenced from every descriptor."""

    name: str
    suffix: str
    editor_only: bool = False

    def file_name(self, project_name: str, extension: str) -> str:
        return f"{project_name}{self.suffix}{extension}"

    def applies_to(self, mode: BuildMode) -> bool:
        return not (self.editor_only and mode is BuildMode.BUILD)


SHARED_IMPORT = ImportKind(name="shared", suffix=".UnityShared")
EDITOR_IMPORT = ImportKind(name="editor", suffix=".UnityEditor", editor_only=True)
DEFAULT_IMPORTS: tuple[ImportKind, ...] = (SHARED_IMPORT, EDITOR_IMPORT)


class MalformedDescriptorError(ValueError):
    """Raised when a descriptor lacks the structure the rewrite depends on."""


def _namespace_of(tag: str) -> str:
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return ""


def _local_name(name: str) -> str:
    return name.split("}", 1)[-1]


def _qualify(namespace: str, local: str) -> str:
    return f"{{{namespace}}}{local}" if namespace else local


def _has_sdk_attribute(root: ET.Element) -> bool:
    return any(_local_name(name).lower() == _ATTR_SDK.lower() for name in root.attrib)


def _indentation(root: ET.Element) -> Optional[str]:
    text = root.text
    if text and not text.strip():
        return text
    return None


def parse_descriptor(raw_text: str) -> ET.Element:
    """Parse ``raw_text`` keeping comments; raise ``MalformedDescriptorError``."""

    parser = DefusedXMLParser(target=ET.TreeBuilder(insert_comments=True))
    try:
        parser.feed(raw_text)
        root = parser.close()
    except (ET.ParseError, DefusedXmlException) as exc:
        raise MalformedDescriptorError(f"unable to parse descriptor: {exc}") from exc
    if root is None:
        raise MalformedDescriptorError("descriptor has no root element")
    return root


def strip_default_namespace(
    text: str, namespace: str, *, limit: int = NAMESPACE_SEARCH_LIMIT
) -> str:
    """Remove `` xmlns="<namespace>"`` from the first ``limit`` characters."""

    if not namespace:
        return text
    declaration = f' xmlns="{namespace}"'
    head = text[:limit]
    if declaration not in head:
        return text
    return head.replace(declaration, "") + text[limit:]


class DescriptorRewriter:
    """Apply the SDK-style rewrite to one descriptor at a time."""

    def __init__(
        self,
        project_name: str,
        *,
        imports: Sequence[ImportKind] = DEFAULT_IMPORTS,
        marker: str = DEFAULT_MARKER,
        namespace_search_limit: int = NAMESPACE_SEARCH_LIMIT,
    ) -> None:
        if not project_name.strip():
            raise ValueError("project_name must not be empty")
        self.project_name = project_name
        self.imports = tuple(imports)
        self.marker = marker
        self.namespace_search_limit = namespace_search_limit

    def rewrite(
        self,
        raw_text: str,
        mode: BuildMode = BuildMode.EDIT,
        *,
        sdk_style: bool,
        sdk_identifier: str,
    ) -> str:
        try:
            return self._rewrite(raw_text, BuildMode(mode), sdk_style, sdk_identifier)
        except MalformedDescriptorError as exc:
            logger.warning("Leaving descriptor unchanged: %s", exc)
            return raw_text

    def _rewrite(
        self, raw_text: str, mode: BuildMode, sdk_style: bool, sdk_identifier: str
    ) -> str:
        root = parse_descriptor(raw_text)
        namespace = _namespace_of(root.tag)
        property_group = next(root.iter(_qualify(namespace, _TAG_PROPERTY_GROUP)), None)
        if property_group is None:
            raise MalformedDescriptorError(f"descriptor has no <{_TAG_PROPERTY_GROUP}> element")

        if sdk_style and not _has_sdk_attribute(root):
            root.attrib.clear()
            root.set(_ATTR_SDK, sdk_identifier)

        self._prepend_props(root, namespace, mode)
        self._append_targets(root, namespace, mode)

        generator = next(root.iter(_qualify(namespace, _TAG_GENERATOR)), None)
        if generator is not None:
            generator.text = f"{generator.text or ''}-{self.marker}"

        text = self._serialise(root)
        if sdk_style:
            text = strip_default_namespace(text, namespace, limit=self.namespace_search_limit)
        if raw_text.endswith("\n") and not text.endswith("\n"):
            text += "\n"
        return text

    def _import(self, namespace: str, kind: ImportKind, extension: str) -> ET.Element:
        element = ET.Element(_qualify(namespace, _TAG_IMPORT))
        element.set(_ATTR_PROJECT, kind.file_name(self.project_name, extension))
        return element

    def _prepend_props(self, root: ET.Element, namespace: str, mode: BuildMode) -> None:
        indent = _indentation(root)

        def add_first(node: ET.Element) -> None:
            node.tail = indent
            root.insert(0, node)

        # Each insert lands at index 0, so the reversed walk renders in declared order.
        add_first(ET.Comment(""))
        for kind in reversed(self.imports):
            if not kind.applies_to(mode):
                continue
            add_first(self._import(namespace, kind, PROPS_EXTENSION))
        add_first(ET.Comment(self.marker))
        add_first(ET.Comment(""))

    def _append_targets(self, root: ET.Element, namespace: str, mode: BuildMode) -> None:
        indent = _indentation(root)
        closing = root[-1].tail
        if indent is not None:
            root[-1].tail = indent

        nodes: list[ET.Element] = [ET.Comment(""), ET.Comment(self.marker)]
        for kind in self.imports:
            if not kind.applies_to(mode):
                continue
            nodes.append(self._import(namespace, kind, TARGETS_EXTENSION))
        nodes.append(ET.Comment(""))

        for node in nodes:
            node.tail = indent
            root.append(node)
        root[-1].tail = closing

    @staticmethod
    def _serialise(root: ET.Element) -> str:
        # ElementTree would declare the locale encoding for str output; the
        # descriptor is always written to disk as UTF-8.
        body = ET.tostring(root, encoding="unicode")
        return f"{_XML_DECLARATION}\n{body}"


def rewrite_descriptor(
    raw_text: str,
    mode: BuildMode = BuildMode.EDIT,
    *,
    project_name: str,
    sdk_style: bool,
    sdk_identifier: str,
    imports: Sequence[ImportKind] = DEFAULT_IMPORTS,
    marker: str = DEFAULT_MARKER,
) -> str:
    """Convenience wrapper around :class:`DescriptorRewriter`."""

    rewriter = DescriptorRewriter(project_name, imports=imports, marker=marker)
    return rewriter.rewrite(raw_text, mode, sdk_style=sdk_style, sdk_identifier=sdk_identifier)


__all__ = [
    "BuildMode",
    "DEFAULT_IMPORTS",
    "DEFAULT_MARKER",
    "DescriptorRewriter",
    "EDITOR_IMPORT",
    "ImportKind",
    "MSBUILD_NAMESPACE",
    "MalformedDescriptorError",
    "NAMESPACE_SEARCH_LIMIT",
    "PROPS_EXTENSION",
    "SHARED_IMPORT",
    "TARGETS_EXTENSION",
    "parse_descriptor",
    "rewrite_descriptor",
    "strip_default_namespace",
]
