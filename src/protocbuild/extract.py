"""Extraction of definition files bundled in dependency archives."""

from __future__ import annotations

import os
import shutil
import warnings
import zipfile
import zlib
from collections.abc import Callable, Iterable
from pathlib import Path, PurePosixPath

from .fs import clean_directory, ensure_directory
from .models import PROTO_FILE_SUFFIX
from .observability import StructuredLogger
from .paths import PathTruncator
from .sources import find_definition_files


class ArchiveSkippedWarning(UserWarning):
    """Warning raised when a dependency archive cannot be scanned."""


def make_proto_path(
    staging_dir: Path,
    artifacts: Iterable[Path],
    *,
    truncator: Callable[[str | Path], str] | None = None,
    logger: StructuredLogger | None = None,
) -> frozenset[Path]:
    """Derive search-path roots from the definition files inside *artifacts*.

    Archive entries land in ``staging_dir/<truncated archive path>/<entry>``.
    Directories that already hold definition files are used in place.
    """
    artifact_list = list(artifacts)
    if not artifact_list:
        return frozenset()

    truncate = truncator or PathTruncator()
    if staging_dir.exists():
        clean_directory(staging_dir, operation="extract")

    roots: set[Path] = set()
    for artifact in artifact_list:
        if artifact.is_dir():
            if find_definition_files(artifact):
                roots.add(artifact)
        elif not artifact.is_file():
            _skip(artifact, "artifact does not exist", logger)
        elif artifact.suffix == ".xml":
            # Project descriptors sometimes arrive alongside the archives.
            continue
        elif not os.access(artifact, os.R_OK):
            _skip(artifact, "artifact is not readable", logger)
        else:
            archive_root = _extract_archive(artifact, staging_dir, truncate, logger)
            if archive_root is not None:
                roots.add(archive_root)
    return frozenset(roots)


def _extract_archive(
    archive: Path,
    staging_dir: Path,
    truncate: Callable[[str | Path], str],
    logger: StructuredLogger | None,
) -> Path | None:
    try:
        bundle = zipfile.ZipFile(archive)
    except (OSError, zipfile.BadZipFile) as exc:
        _skip(archive, f"not a readable archive ({exc})", logger)
        return None

    archive_root = staging_dir / truncate(archive.resolve())
    extracted = False
    with bundle:
        try:
            for entry in bundle.infolist():
                if entry.is_dir() or not entry.filename.endswith(PROTO_FILE_SUFFIX):
                    continue
                entry_path = PurePosixPath(entry.filename)
                if entry_path.is_absolute() or ".." in entry_path.parts:
                    _skip(archive, f"entry escapes staging directory: {entry.filename}", logger)
                    continue
                destination = archive_root.joinpath(*entry_path.parts)
                ensure_directory(destination.parent, operation="extract")
                with bundle.open(entry) as source, destination.open("wb") as target:
                    shutil.copyfileobj(source, target)
                extracted = True
        except (OSError, zipfile.BadZipFile, zlib.error) as exc:
            shutil.rmtree(archive_root, ignore_errors=True)
            _skip(archive, f"unreadable archive entry ({exc})", logger)
            return None

    if not extracted:
        return None

    if logger is not None:
        logger.log(
            operation="extract_archive",
            component="extract",
            phase="staging",
            level="debug",
            message=f"Extracted definitions from {archive}.",
            extra={"archive": str(archive), "root": str(archive_root)},
        )
    return archive_root


def _skip(artifact: Path, reason: str, logger: StructuredLogger | None) -> None:
    message = f"Skipping dependency {artifact}: {reason}."
    warnings.warn(message, ArchiveSkippedWarning, stacklevel=3)
    if logger is not None:
        logger.log(
            operation="extract_archive",
            component="extract",
            phase="staging",
            level="warn",
            message=message,
            extra={"archive": str(artifact)},
        )
