"""Command-line entry point for converting Unity generated ``.csproj`` files.

The editor integration calls :mod:`csproj_sdk.pipeline` directly; this module
exposes the same pipeline for scripted builds and manual review:

* ``convert`` rewrites descriptors in place or into an output directory.
* ``sdk-version`` prints the SDK identifier a rewrite would stamp.
* ``settings`` shows or toggles the persisted converter settings.
* ``scaffold`` creates the shared ``.props``/``.targets`` companion files.
* ``preprocess`` runs ``dotnet msbuild -preprocess`` on a project for review.
"""

from __future__ import annotations

import argparse
import json
import logging
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Optional, Sequence

from .descriptor import BuildMode
from .pipeline import ProjectPostprocessor
from .scaffold import ensure_companion_files
from .settings import (
    ConverterSettings,
    SettingsError,
    default_settings_path,
    default_version_cache_path,
)
from .versions import JsonVersionCacheStore, VersionResolver


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--project-dir",
        type=Path,
        default=None,
        help="Unity project root (default: current directory).",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        default=None,
        help="Settings JSON (default: <project>/ProjectSettings/CsprojSdk.json).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )


def _add_cache_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--cache-file",
        type=Path,
        default=None,
        help="Version cache JSON (default: <project>/Library/CsprojSdk.VersionCache.json).",
    )


def _build_convert_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="csproj-sdk convert",
        description="Rewrite generated .csproj files into the SDK-style layout.",
    )
    parser.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="Descriptor files freshly written by the project generator.",
    )
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in BuildMode],
        default=BuildMode.EDIT.value,
        help="Generate for the editor or for a player build (default: edit).",
    )
    parser.add_argument(
        "--debug-build",
        action="store_true",
        help="Treat the compilation as a debug build (see disable_in_debug_mode).",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Write rewritten files here instead of in place.",
    )
    _add_common_arguments(parser)
    _add_cache_argument(parser)
    return parser


def _build_sdk_version_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="csproj-sdk sdk-version",
        description="Print the SDK identifier stamped into rewritten descriptors.",
    )
    _add_common_arguments(parser)
    _add_cache_argument(parser)
    return parser


def _build_settings_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="csproj-sdk settings",
        description="Show or change the persisted converter settings.",
    )
    parser.add_argument("action", choices=("show", "set"))
    parser.add_argument("key", nargs="?", help="Setting name (for 'set').")
    parser.add_argument("value", nargs="?", help="New value (for 'set').")
    _add_common_arguments(parser)
    return parser


def _build_scaffold_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="csproj-sdk scaffold",
        description="Create missing shared .props/.targets companion files.",
    )
    _add_common_arguments(parser)
    return parser


def _build_preprocess_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="csproj-sdk preprocess",
        description="Run 'dotnet msbuild -preprocess' to review the effective project.",
    )
    parser.add_argument("project", type=Path, help="The .csproj file to preprocess.")
    parser.add_argument(
        "--output",
        type=Path,
        help="Destination XML (default: <tmp>/<project>.msbuild.preprocess.xml).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _project_dir(args: argparse.Namespace) -> Path:
    return (args.project_dir or Path.cwd()).expanduser().resolve()


def _settings_path(args: argparse.Namespace, project_dir: Path) -> Path:
    if args.settings is not None:
        return args.settings.expanduser().resolve()
    return default_settings_path(project_dir)


def _load_settings(parser: argparse.ArgumentParser, path: Path) -> ConverterSettings:
    try:
        return ConverterSettings.load(path)
    except SettingsError as exc:
        parser.error(str(exc))
        raise  # pragma: no cover - parser.error exits


def _build_postprocessor(
    args: argparse.Namespace, parser: argparse.ArgumentParser
) -> ProjectPostprocessor:
    project_dir = _project_dir(args)
    settings = _load_settings(parser, _settings_path(args, project_dir))
    cache_path = args.cache_file or default_version_cache_path(project_dir)
    resolver = VersionResolver(JsonVersionCacheStore(cache_path))
    return ProjectPostprocessor(settings, project_dir, resolver=resolver)


def _run_convert(argv: Sequence[str]) -> int:
    parser = _build_convert_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    postprocessor = _build_postprocessor(args, parser)
    mode = BuildMode(args.mode)

    output_dir: Optional[Path] = None
    if args.output_dir is not None:
        output_dir = args.output_dir.expanduser().resolve()
        output_dir.mkdir(parents=True, exist_ok=True)

    exit_code = 0
    for path in args.paths:
        source = path.expanduser().resolve()
        try:
            content = source.read_text(encoding="utf-8-sig")
        except OSError as exc:
            sys.stderr.write(f"error: unable to read {source}: {exc}\n")
            exit_code = 1
            continue

        rewritten = postprocessor.on_generated_project(
            str(source), content, mode, debug=args.debug_build
        )
        destination = output_dir / source.name if output_dir else source
        if rewritten == content and destination == source:
            sys.stdout.write(f"Unchanged {source}\n")
            continue
        destination.write_text(rewritten, encoding="utf-8")
        sys.stdout.write(f"Rewrote {source} -> {destination}\n")

    return exit_code


def _run_sdk_version(argv: Sequence[str]) -> int:
    parser = _build_sdk_version_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    postprocessor = _build_postprocessor(args, parser)
    sys.stdout.write(postprocessor.sdk_identifier() + "\n")
    return 0


def _run_settings(argv: Sequence[str]) -> int:
    parser = _build_settings_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    path = _settings_path(args, _project_dir(args))
    settings = _load_settings(parser, path)

    if args.action == "set":
        if args.key is None or args.value is None:
            parser.error("'set' requires KEY and VALUE")
        try:
            settings = settings.with_value(args.key, args.value)
        except SettingsError as exc:
            parser.error(str(exc))
        settings.save(path)
        sys.stdout.write(f"Saved {args.key} to {path}\n")

    sys.stdout.write(json.dumps(settings.to_mapping(), indent=2) + "\n")
    return 0


def _run_scaffold(argv: Sequence[str]) -> int:
    parser = _build_scaffold_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    project_dir = _project_dir(args)
    created = ensure_companion_files(project_dir, project_dir.name)
    for path in created:
        sys.stdout.write(f"Created {path}\n")
    if not created:
        sys.stdout.write("All companion files already exist\n")
    return 0


def _run_preprocess(argv: Sequence[str]) -> int:
    parser = _build_preprocess_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    project = args.project.expanduser().resolve()
    if not project.is_file():
        parser.error(f"Project file does not exist: {project}")

    dotnet = shutil.which("dotnet")
    if dotnet is None:
        sys.stderr.write("error: 'dotnet' was not found on PATH\n")
        return 1

    output = args.output or Path(tempfile.gettempdir()) / f"{project.stem}.msbuild.preprocess.xml"
    command = [dotnet, "msbuild", f"-preprocess:{output}", str(project)]
    logging.getLogger(__name__).debug("Running %s", " ".join(command))
    result = subprocess.run(command, check=False)
    if result.returncode != 0:
        sys.stderr.write(f"error: dotnet msbuild exited with {result.returncode}\n")
        return 1
    sys.stdout.write(f"Preprocessed project written to {output}\n")
    return 0


_COMMANDS = {
    "convert": _run_convert,
    "sdk-version": _run_sdk_version,
    "settings": _run_settings,
    "scaffold": _run_scaffold,
    "preprocess": _run_preprocess,
}


def main(argv: Sequence[str] | None = None) -> int:
    if argv is None:
        argv = list(sys.argv[1:])
    else:
        argv = list(argv)
    if argv and argv[0] in _COMMANDS:
        return _COMMANDS[argv[0]](argv[1:])
    return _run_convert(argv)


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())


def console_main() -> None:
    """Entry point for the ``csproj-sdk`` console script."""

    sys.exit(main())
