"""Staging subdirectory names derived from dependency archive paths."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path


def hash_path(archive_path: str | Path) -> str:
    """Return the hex MD5 digest of the path string.

    The digest only names a directory, it is not a security boundary.
    """
    return hashlib.md5(str(archive_path).encode("utf-8"), usedforsecurity=False).hexdigest()


def strip_repository_prefix(archive_path: str | Path, repository_root: str | Path | None) -> str:
    path = str(archive_path).replace("\\", "/")
    if repository_root is not None:
        repository = str(repository_root).replace("\\", "/")
        if not repository.endswith("/"):
            repository += "/"
        index = path.find(repository)
        if index != -1:
            path = path[index + len(repository) :]

    # Drop a leftover drive qualifier such as ``C:/``.
    colon = path.find(":")
    if colon != -1:
        path = path[colon + 2 :]
    return path.lstrip("/")


@dataclass(frozen=True, slots=True)
class PathTruncator:
    hash_paths: bool = True
    repository_root: Path | None = None

    def __call__(self, archive_path: str | Path) -> str:
        if self.hash_paths:
            return hash_path(archive_path)
        return strip_repository_prefix(archive_path, self.repository_root)
