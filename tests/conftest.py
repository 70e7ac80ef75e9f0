"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from protocbuild.observability import StructuredLogger

FAKE_PROTOC = """#!/bin/sh
printf '%s\\n' "$@" > "{args_file}"
printf '%s' "{stdout}"
printf '%s' "{stderr}" >&2
exit {status}
"""

FakeProtoc = Callable[..., tuple[Path, Path]]


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger()


@pytest.fixture
def fake_protoc(tmp_path: Path) -> FakeProtoc:
    """Return a factory writing a compiler stand-in that records its arguments.

    The factory returns ``(script, args_file)``; ``args_file`` receives one
    argument per line when the script runs.
    """

    def write(*, status: int = 0, stdout: str = "", stderr: str = "") -> tuple[Path, Path]:
        directory = tmp_path / "bin"
        directory.mkdir(parents=True, exist_ok=True)
        script = directory / "protoc"
        args_file = directory / "protoc.args"
        script.write_text(
            FAKE_PROTOC.format(args_file=args_file, stdout=stdout, stderr=stderr, status=status),
            encoding="utf-8",
        )
        script.chmod(0o755)
        return script, args_file

    return write
