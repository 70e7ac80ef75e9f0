"""Host build collaborators: change tracking and the project model."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .models import AttachedArtifact, ResourceSpec


class BuildContext(Protocol):
    def has_changes(self, file: Path) -> bool:
        """Return ``True`` when *file* changed since the previous build."""

    def refresh(self, directory: Path) -> None:
        """Tell the host that *directory* holds freshly generated files."""


class ProjectModel(Protocol):
    @property
    def packaging(self) -> str: ...

    def add_compile_source_root(self, directory: Path) -> None: ...

    def add_test_compile_source_root(self, directory: Path) -> None: ...

    def add_resource(
        self, directory: Path, includes: Sequence[str], excludes: Sequence[str]
    ) -> None: ...

    def add_test_resource(
        self, directory: Path, includes: Sequence[str], excludes: Sequence[str]
    ) -> None: ...

    def attach_artifact(self, type: str, classifier: str | None, file: Path) -> None: ...


@dataclass(slots=True)
class AlwaysChangedContext:
    """Full-build context: every file counts as changed."""

    refreshed: list[Path] = field(default_factory=list)

    def has_changes(self, file: Path) -> bool:
        return True

    def refresh(self, directory: Path) -> None:
        self.refreshed.append(directory)


@dataclass(slots=True)
class RecordingBuildContext:
    """Incremental context that only reports the files it was told about."""

    changed: set[Path] = field(default_factory=set)
    refreshed: list[Path] = field(default_factory=list)

    def mark_changed(self, *files: Path) -> None:
        self.changed.update(file.absolute() for file in files)

    def has_changes(self, file: Path) -> bool:
        return file.absolute() in self.changed

    def refresh(self, directory: Path) -> None:
        self.refreshed.append(directory)


@dataclass(slots=True)
class Project:
    """In-memory project model that records what the compile step attaches."""

    basedir: Path
    build_directory: Path | None = None
    packaging: str = "jar"
    output_directory: Path | None = None
    compile_artifacts: list[Path] = field(default_factory=list)
    test_artifacts: list[Path] = field(default_factory=list)
    compile_source_roots: list[Path] = field(default_factory=list)
    test_compile_source_roots: list[Path] = field(default_factory=list)
    resources: list[ResourceSpec] = field(default_factory=list)
    test_resources: list[ResourceSpec] = field(default_factory=list)
    attached_artifacts: list[AttachedArtifact] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.build_directory is None:
            self.build_directory = self.basedir / "target"
        if self.output_directory is None:
            self.output_directory = self.build_directory / "classes"

    @property
    def target(self) -> Path:
        return Path(str(self.build_directory))

    def add_compile_source_root(self, directory: Path) -> None:
        if directory not in self.compile_source_roots:
            self.compile_source_roots.append(directory)

    def add_test_compile_source_root(self, directory: Path) -> None:
        if directory not in self.test_compile_source_roots:
            self.test_compile_source_roots.append(directory)

    def add_resource(
        self, directory: Path, includes: Sequence[str], excludes: Sequence[str]
    ) -> None:
        self.resources.append(ResourceSpec(directory, tuple(includes), tuple(excludes)))

    def add_test_resource(
        self, directory: Path, includes: Sequence[str], excludes: Sequence[str]
    ) -> None:
        self.test_resources.append(ResourceSpec(directory, tuple(includes), tuple(excludes)))

    def attach_artifact(self, type: str, classifier: str | None, file: Path) -> None:
        self.attached_artifacts.append(AttachedArtifact(type=type, classifier=classifier, file=file))
