"""Definition file discovery and staleness checks.

Patterns follow the Ant convention used by JVM build tools: they are matched
against the ``/``-separated path relative to the scanned root, ``**`` spans any
number of directories (including none), while ``*`` and ``?`` stay within a
single path segment. A pattern ending in ``/`` is shorthand for ``/**``.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable
from functools import lru_cache
from pathlib import Path

from .models import DEFAULT_INCLUDES

DEFAULT_EXCLUDES = (
    "**/.git/**",
    "**/.svn/**",
    "**/.hg/**",
    "**/.bzr/**",
    "**/CVS/**",
    "**/.DS_Store",
)


@lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    normalized = pattern.replace("\\", "/").lstrip("/")
    if normalized.endswith("/"):
        normalized += "**"

    parts: list[str] = []
    segments = normalized.split("/")
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if segment == "**":
            parts.append(".*" if last else "(?:.*/)?")
            continue
        regex = ""
        for char in segment:
            if char == "*":
                regex += "[^/]*"
            elif char == "?":
                regex += "[^/]"
            else:
                regex += re.escape(char)
        parts.append(regex if last else regex + "/")
    return re.compile("".join(parts) + r"\Z")


def matches(relative_path: str, pattern: str) -> bool:
    return _compile_pattern(pattern).match(relative_path.replace("\\", "/")) is not None


def find_files(
    root: str | Path,
    includes: Iterable[str] = ("**/*",),
    excludes: Iterable[str] = (),
    *,
    default_excludes: bool = True,
) -> frozenset[Path]:
    """Return every file under *root* matching an include and no exclude."""
    root_path = Path(root)
    if not root_path.is_dir():
        raise NotADirectoryError(f"{root_path} is not a directory")

    include_patterns = tuple(includes) or ("**/*",)
    exclude_patterns = tuple(excludes)
    if default_excludes:
        exclude_patterns += DEFAULT_EXCLUDES

    found: set[Path] = set()
    for dirpath, _dirnames, filenames in os.walk(root_path):
        for filename in filenames:
            path = Path(dirpath) / filename
            relative = path.relative_to(root_path).as_posix()
            if not any(matches(relative, pattern) for pattern in include_patterns):
                continue
            if any(matches(relative, pattern) for pattern in exclude_patterns):
                continue
            found.add(path.absolute())
    return frozenset(found)


def find_definition_files(
    root: str | Path,
    includes: Iterable[str] = DEFAULT_INCLUDES,
    excludes: Iterable[str] = (),
) -> frozenset[Path]:
    """Return the definition files under *root* selected by the pattern sets."""
    return find_files(root, includes, excludes)


def find_generated_files(directory: str | Path | None, pattern: str = "**/*") -> frozenset[Path]:
    if directory is None or not Path(directory).is_dir():
        return frozenset()
    return find_files(directory, (pattern,), default_excludes=False)


def last_modified(files: Iterable[Path]) -> int:
    """Newest modification time across *files* in milliseconds, ``0`` if empty."""
    result = 0
    for file in files:
        result = max(result, file.stat().st_mtime_ns // 1_000_000)
    return result


def is_up_to_date(
    sources: Iterable[Path],
    outputs: Iterable[Path],
    tolerance_ms: int = 0,
) -> bool:
    """True when the newest source is not newer than the newest output plus tolerance.

    Compares whole sets, so a newly added source carrying an old timestamp
    is not noticed.
    """
    return last_modified(sources) <= last_modified(outputs) + tolerance_ms
