"""Directory preparation helpers for staging and output trees."""

from __future__ import annotations

import shutil
from pathlib import Path

from .errors import StagingError


def ensure_directory(path: Path, *, operation: str) -> Path:
    if path.is_file():
        raise StagingError(
            f"{path} is a file, not a directory.",
            hint="Remove the file or point the setting at a directory.",
            context={"operation": operation, "path": str(path)},
        )
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StagingError(
            f"Could not create directory {path}.",
            context={"operation": operation, "path": str(path), "error": str(exc)},
        ) from exc
    return path


def clean_directory(path: Path, *, operation: str) -> None:
    """Delete the contents of *path* but keep the directory itself."""
    if not path.exists():
        return
    try:
        for child in path.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()
    except OSError as exc:
        raise StagingError(
            f"Could not clean directory {path}.",
            hint="Check for open file handles or permission problems.",
            context={"operation": operation, "path": str(path), "error": str(exc)},
        ) from exc


def prepare_clean_directory(path: Path, *, operation: str) -> Path:
    ensure_directory(path, operation=operation)
    clean_directory(path, operation=operation)
    return path
