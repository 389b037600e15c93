from __future__ import annotations

from pathlib import Path

from csproj_sdk.descriptor import ImportKind
from csproj_sdk.scaffold import (
    PLACEHOLDER_CONTENT,
    companion_file_names,
    create_file_if_missing,
    ensure_companion_files,
    placeholder_content,
)

AUTO_IMPORTS = ["Directory.Build.props", "Directory.Build.targets"]


def test_companion_file_names_cover_props_and_targets() -> None:
    assert companion_file_names("Game") == [
        "Game.UnityShared.props",
        "Game.UnityEditor.props",
        "Game.UnityShared.targets",
        "Game.UnityEditor.targets",
    ]


def test_missing_files_are_created_with_placeholder(tmp_path: Path) -> None:
    created = ensure_companion_files(tmp_path, "Game")

    assert sorted(path.name for path in created) == sorted(AUTO_IMPORTS + companion_file_names("Game"))
    for name in companion_file_names("Game"):
        assert (tmp_path / name).read_text(encoding="utf-8") == PLACEHOLDER_CONTENT


def test_auto_import_files_are_scaffolded_first(tmp_path: Path) -> None:
    created = ensure_companion_files(tmp_path, "Game")

    assert [path.name for path in created[:2]] == AUTO_IMPORTS
    assert (tmp_path / "Directory.Build.props").read_text(encoding="utf-8") == (
        '<Project xmlns="http://schemas.microsoft.com/developer/msbuild/2003">\n'
        "    <PropertyGroup>\n"
        "        <Nullable>enable</Nullable>\n"
        "    </PropertyGroup>\n"
        "</Project>\n"
    )
    assert (tmp_path / "Directory.Build.targets").read_text(encoding="utf-8") == PLACEHOLDER_CONTENT


def test_existing_files_are_left_alone(tmp_path: Path) -> None:
    existing = tmp_path / "Game.UnityShared.props"
    existing.write_text("<Project><PropertyGroup><Nullable>enable</Nullable></PropertyGroup></Project>", encoding="utf-8")
    auto_import = tmp_path / "Directory.Build.props"
    auto_import.write_text("<Project />", encoding="utf-8")

    created = ensure_companion_files(tmp_path, "Game")

    assert existing not in created
    assert auto_import not in created
    assert "Nullable" in existing.read_text(encoding="utf-8")
    assert auto_import.read_text(encoding="utf-8") == "<Project />"
    assert ensure_companion_files(tmp_path, "Game") == []


def test_custom_import_kinds(tmp_path: Path) -> None:
    created = ensure_companion_files(tmp_path, "Game", (ImportKind(name="ci", suffix=".CI"),))

    assert sorted(path.name for path in created) == sorted(AUTO_IMPORTS + ["Game.CI.props", "Game.CI.targets"])


def test_multiline_property_group_is_indented(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "Custom.props"

    assert create_file_if_missing(target, "<LangVersion>latest</LangVersion>\n<Nullable>enable</Nullable>\n")
    assert not create_file_if_missing(target)

    assert target.read_text(encoding="utf-8") == placeholder_content(
        "<LangVersion>latest</LangVersion>\n<Nullable>enable</Nullable>"
    )
    assert "        <LangVersion>latest</LangVersion>\n        <Nullable>enable</Nullable>\n" in target.read_text(
        encoding="utf-8"
    )


def test_placeholder_is_minimal_msbuild_project() -> None:
    assert PLACEHOLDER_CONTENT.startswith(
        '<Project xmlns="http://schemas.microsoft.com/developer/msbuild/2003">'
    )
    assert "<PropertyGroup>" in PLACEHOLDER_CONTENT
