"""Runtime classpath resolution for Java-hosted compiler plugins."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from protocbuild.errors import DependencyResolutionError
from protocbuild.models import MavenCoordinates

RUNTIME_SCOPES = frozenset({"compile", "runtime"})
PROPERTY_PATTERN = re.compile(r"\$\{([^}]+)\}")


class ArtifactResolver(Protocol):
    def resolve(self, coordinates: MavenCoordinates) -> list[Path]:
        """Return the artifact and its runtime dependencies as local files."""


@dataclass(frozen=True, slots=True)
class StaticResolver:
    """Resolver backed by a fixed coordinate-to-files table."""

    table: Mapping[str, tuple[Path, ...]]

    def resolve(self, coordinates: MavenCoordinates) -> list[Path]:
        files = self.table.get(coordinates.key) or self.table.get(str(coordinates))
        if not files:
            raise DependencyResolutionError(
                "Unable to resolve plugin artifact.",
                context={"operation": "resolve", "artifact": str(coordinates)},
            )
        return list(files)


@dataclass(frozen=True, slots=True)
class _Dependency:
    coordinates: MavenCoordinates
    scope: str
    optional: bool
    exclusions: frozenset[str]


@dataclass(slots=True)
class _Pom:
    properties: dict[str, str] = field(default_factory=dict)
    managed: dict[str, str] = field(default_factory=dict)
    dependencies: list[_Dependency] = field(default_factory=list)


@dataclass(slots=True)
class MavenRepositoryResolver:
    """Resolve artifacts from a local repository laid out the Maven way.

    Transitive dependencies come from each artifact's ``.pom``: compile and
    runtime scoped, non-optional entries are followed breadth first and the
    nearest declaration of a ``groupId:artifactId`` wins. Parent POMs found in
    the repository contribute properties and managed versions.
    """

    root: Path
    _poms: dict[str, _Pom] = field(default_factory=dict, repr=False)

    def artifact_path(self, coordinates: MavenCoordinates) -> Path:
        suffix = f"-{coordinates.classifier}" if coordinates.classifier else ""
        return (
            self._version_dir(coordinates)
            / f"{coordinates.artifact_id}-{coordinates.version}{suffix}.{coordinates.extension}"
        )

    def pom_path(self, coordinates: MavenCoordinates) -> Path:
        return self._version_dir(coordinates) / (
            f"{coordinates.artifact_id}-{coordinates.version}.pom"
        )

    def resolve(self, coordinates: MavenCoordinates) -> list[Path]:
        resolved: list[Path] = []
        seen: set[str] = set()
        queue: deque[tuple[MavenCoordinates, frozenset[str]]] = deque(
            [(coordinates, frozenset())]
        )
        while queue:
            current, exclusions = queue.popleft()
            if current.key in seen:
                continue
            seen.add(current.key)

            artifact = self.artifact_path(current)
            if not artifact.is_file():
                raise DependencyResolutionError(
                    f"Artifact {current} is not present in the local repository.",
                    hint="Install the artifact into the repository or fix the coordinates.",
                    context={
                        "operation": "resolve",
                        "artifact": str(current),
                        "path": str(artifact),
                        "root": str(coordinates),
                    },
                )
            resolved.append(artifact)

            for dependency in self._load_pom(current).dependencies:
                if dependency.optional or dependency.scope not in RUNTIME_SCOPES:
                    continue
                if _excluded(dependency.coordinates, exclusions):
                    continue
                queue.append((dependency.coordinates, exclusions | dependency.exclusions))
        return resolved

    def _version_dir(self, coordinates: MavenCoordinates) -> Path:
        return (
            self.root.joinpath(*coordinates.group_id.split("."))
            / coordinates.artifact_id
            / coordinates.version
        )

    def _load_pom(self, coordinates: MavenCoordinates) -> _Pom:
        cache_key = f"{coordinates.key}:{coordinates.version}"
        if cache_key in self._poms:
            return self._poms[cache_key]

        path = self.pom_path(coordinates)
        pom = _Pom()
        if path.is_file():
            pom = self._parse_pom(path, coordinates)
        self._poms[cache_key] = pom
        return pom

    def _parse_pom(self, path: Path, coordinates: MavenCoordinates) -> _Pom:
        try:
            project = ET.parse(path).getroot()
        except ET.ParseError as exc:
            raise DependencyResolutionError(
                f"Invalid POM for {coordinates}.",
                hint=str(exc),
                context={"operation": "resolve", "path": str(path)},
            ) from exc
        _strip_namespaces(project)

        properties: dict[str, str] = {}
        managed: dict[str, str] = {}
        parent = project.find("parent")
        if parent is not None:
            parent_coordinates = MavenCoordinates(
                group_id=_text(parent, "groupId"),
                artifact_id=_text(parent, "artifactId"),
                version=_text(parent, "version"),
                extension="pom",
            )
            parent_pom = self._load_pom(parent_coordinates)
            properties.update(parent_pom.properties)
            managed.update(parent_pom.managed)
            properties["project.parent.version"] = parent_coordinates.version
            properties["project.parent.groupId"] = parent_coordinates.group_id

        group_id = _text(project, "groupId") or properties.get("project.parent.groupId", "")
        version = _text(project, "version") or properties.get("project.parent.version", "")
        properties.update(
            {
                "project.groupId": group_id,
                "project.artifactId": _text(project, "artifactId"),
                "project.version": version,
                "pom.version": version,
                "version": version,
                "groupId": group_id,
            }
        )
        for prop in project.findall("properties/*"):
            properties[prop.tag] = (prop.text or "").strip()

        for dep in project.findall("dependencyManagement/dependencies/dependency"):
            key = f"{_interpolate(_text(dep, 'groupId'), properties)}:" + _interpolate(
                _text(dep, "artifactId"), properties
            )
            managed[key] = _interpolate(_text(dep, "version"), properties)

        dependencies: list[_Dependency] = []
        for dep in project.findall("dependencies/dependency"):
            dep_group = _interpolate(_text(dep, "groupId"), properties)
            dep_artifact = _interpolate(_text(dep, "artifactId"), properties)
            dep_version = _interpolate(_text(dep, "version"), properties) or managed.get(
                f"{dep_group}:{dep_artifact}", ""
            )
            dep_type = _interpolate(_text(dep, "type"), properties) or "jar"
            scope = _interpolate(_text(dep, "scope"), properties) or "compile"
            if scope in RUNTIME_SCOPES and not dep_version:
                raise DependencyResolutionError(
                    f"Dependency {dep_group}:{dep_artifact} of {coordinates} has no version.",
                    context={"operation": "resolve", "path": str(path)},
                )
            dependencies.append(
                _Dependency(
                    coordinates=MavenCoordinates(
                        group_id=dep_group,
                        artifact_id=dep_artifact,
                        version=dep_version,
                        classifier=_interpolate(_text(dep, "classifier"), properties) or None,
                        extension=dep_type,
                    ),
                    scope=scope,
                    optional=_text(dep, "optional").lower() == "true",
                    exclusions=frozenset(
                        f"{_text(ex, 'groupId')}:{_text(ex, 'artifactId')}"
                        for ex in dep.findall("exclusions/exclusion")
                    ),
                )
            )
        return _Pom(properties=properties, managed=managed, dependencies=dependencies)


def _strip_namespaces(element: ET.Element) -> None:
    for node in element.iter():
        if isinstance(node.tag, str) and node.tag.startswith("{"):
            node.tag = node.tag.split("}", 1)[1]


def _text(element: ET.Element, path: str) -> str:
    found = element.find(path)
    if found is None or found.text is None:
        return ""
    return found.text.strip()


def _interpolate(value: str, properties: Mapping[str, str]) -> str:
    # Properties may reference other properties; a few passes settle them.
    for _ in range(5):
        replaced = PROPERTY_PATTERN.sub(lambda m: properties.get(m.group(1), m.group(0)), value)
        if replaced == value:
            break
        value = replaced
    return value


def _excluded(coordinates: MavenCoordinates, exclusions: Iterable[str]) -> bool:
    for exclusion in exclusions:
        group, _, artifact = exclusion.partition(":")
        if group in ("*", coordinates.group_id) and artifact in ("*", coordinates.artifact_id):
            return True
    return False
