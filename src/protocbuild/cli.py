"""Command-line entrypoint.

Usage:
    protocbuild compile [PROJECT] [--config protoc.json] [--protoc PATH]
    protocbuild test-compile [PROJECT] [--toolchains toolchains.json]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import ProtocSettings, load_settings
from .errors import ProtocBuildError
from .host import AlwaysChangedContext, Project
from .observability import StructuredLogger
from .orchestrator import CompileOutcome, CompileScope, ProtocRunner
from .toolchain import ToolchainRegistry

DEFAULT_CONFIG_NAME = "protoc.json"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="protocbuild", description="Compile protocol buffer definitions for a project"
    )
    sub = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("compile", "Compile src/main/proto into generated sources"),
        ("test-compile", "Compile src/test/proto into generated test sources"),
    ):
        command = sub.add_parser(name, help=help_text)
        command.add_argument("project", nargs="?", default=".", help="Project directory")
        command.add_argument(
            "--config", help=f"Settings file (default: <project>/{DEFAULT_CONFIG_NAME})"
        )
        command.add_argument("--toolchains", help="Toolchains JSON file")
        command.add_argument("--protoc", help="Compiler executable, overrides toolchains")
        command.add_argument("--language", help="Built-in generator or 'custom'")
        command.add_argument(
            "--dependency",
            action="append",
            default=[],
            help="Dependency archive or directory to search for definitions (repeatable)",
        )
        command.add_argument("--packaging", default="jar", help="Project packaging type")
        command.add_argument("--skip", action="store_true", help="Skip compilation")
        command.add_argument("--force", action="store_true", help="Run even for 'pom' packaging")
        command.add_argument("--log-json", help="Write structured log records to this file")
        command.add_argument("--debug", action="store_true", help="Keep debug log records")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    basedir = Path(args.project).absolute()
    logger = StructuredLogger(debug_enabled=args.debug)
    try:
        outcome = _run(args, basedir, logger)
    except ProtocBuildError as exc:
        logger.log(
            operation="cli",
            component="cli",
            level="error",
            message=str(exc),
            extra={"code": exc.code},
        )
        print(f"error[{exc.code}]: {exc}", file=sys.stderr)
        return 1
    finally:
        if args.log_json:
            logger.to_json_lines(args.log_json)

    for message in logger.messages("info"):
        print(message)
    _report(outcome)
    return 0


def _run(args: argparse.Namespace, basedir: Path, logger: StructuredLogger) -> CompileOutcome:
    settings = _load_settings(args, basedir)
    toolchains = ToolchainRegistry.from_json(args.toolchains) if args.toolchains else None
    project = Project(basedir=basedir, packaging=args.packaging)
    dependencies = tuple(Path(item).absolute() for item in args.dependency)
    if args.command == "test-compile":
        scope = CompileScope.test(
            basedir,
            build_directory=project.target,
            dependency_artifacts=dependencies,
            main_output_directory=project.output_directory,
        )
    else:
        scope = CompileScope.main(
            basedir, build_directory=project.target, dependency_artifacts=dependencies
        )
    runner = ProtocRunner(
        settings,
        scope,
        project,
        build_context=AlwaysChangedContext(),
        toolchains=toolchains,
        logger=logger,
    )
    return runner.execute()


def _load_settings(args: argparse.Namespace, basedir: Path) -> ProtocSettings:
    if args.config:
        settings = load_settings(args.config)
    elif (basedir / DEFAULT_CONFIG_NAME).is_file():
        settings = load_settings(basedir / DEFAULT_CONFIG_NAME)
    else:
        settings = ProtocSettings()
    return settings.with_overrides(
        protoc_executable=args.protoc,
        language=args.language,
        skip=True if args.skip else None,
        force=True if args.force else None,
    )


def _report(outcome: CompileOutcome) -> None:
    if outcome.skipped is not None:
        print(f"Skipped ({outcome.skipped.value})")
        return
    print(f"Compiled {len(outcome.definition_files)} file(s) into {outcome.output_directory}")


if __name__ == "__main__":
    raise SystemExit(main())
