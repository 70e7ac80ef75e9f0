"""Core typed dataclasses for compiler targets, plugins, and descriptor sets."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Literal

from .errors import InvalidArgumentError, MisconfiguredPluginError

PROTO_FILE_SUFFIX = ".proto"
DEFAULT_INCLUDES = ("**/*" + PROTO_FILE_SUFFIX,)
PLUGIN_PREFIX = "protoc-gen-"

WinJvmDataModel = Literal["32", "64"]


class Generator(StrEnum):
    """Code generators built into the compiler, in command-line order."""

    JAVA = "java"
    CPP = "cpp"
    PYTHON = "python"
    JAVANANO = "javanano"


# The descriptor set writer is built in too, but it is driven by its own flag.
RESERVED_GENERATOR_IDS = frozenset({*(generator.value for generator in Generator), "descriptor_set"})


def is_reserved_id(plugin_id: str) -> bool:
    return plugin_id in RESERVED_GENERATOR_IDS


@dataclass(frozen=True, slots=True)
class OutputTarget:
    """Pairs a generator (built-in or custom id) with its output directory."""

    generator: Generator | str
    directory: Path

    @property
    def generator_id(self) -> str:
        return str(self.generator)

    def argument(self) -> str:
        return f"--{self.generator_id}_out={self.directory}"


@dataclass(frozen=True, slots=True)
class MavenCoordinates:
    group_id: str
    artifact_id: str
    version: str
    classifier: str | None = None
    extension: str = "jar"

    @property
    def key(self) -> str:
        """Version-less identity used for nearest-wins conflict resolution."""
        return f"{self.group_id}:{self.artifact_id}"

    def __str__(self) -> str:
        parts = [self.group_id, self.artifact_id, self.extension]
        if self.classifier:
            parts.append(self.classifier)
        parts.append(self.version)
        return ":".join(parts)

    @classmethod
    def parse(cls, spec: str) -> MavenCoordinates:
        """Parse ``group:artifact:version`` or ``group:artifact:ext[:classifier]:version``."""
        parts = spec.split(":")
        if len(parts) == 3:
            return cls(group_id=parts[0], artifact_id=parts[1], version=parts[2])
        if len(parts) == 4:
            return cls(
                group_id=parts[0], artifact_id=parts[1], extension=parts[2], version=parts[3]
            )
        if len(parts) == 5:
            return cls(
                group_id=parts[0],
                artifact_id=parts[1],
                extension=parts[2],
                classifier=parts[3],
                version=parts[4],
            )
        raise InvalidArgumentError(
            f"Invalid artifact coordinates: {spec}",
            hint="Use groupId:artifactId:version or groupId:artifactId:type[:classifier]:version.",
        )


@dataclass(slots=True)
class PluginDefinition:
    """A Java-hosted compiler plugin wrapped in a generated native launcher.

    ``java_home`` may be left unset in configuration; the runner fills it in
    from the detected base installation before assembly.
    """

    id: str
    group_id: str | None = None
    artifact_id: str | None = None
    version: str | None = None
    main_class: str | None = None
    classifier: str | None = None
    java_home: Path | None = None
    win_jvm_data_model: WinJvmDataModel | None = None
    args: tuple[str, ...] = ()
    jvm_args: tuple[str, ...] = ()
    output_directory: Path | None = None

    @property
    def plugin_name(self) -> str:
        return PLUGIN_PREFIX + self.id

    @property
    def coordinates(self) -> MavenCoordinates:
        self.validate_coordinates()
        return MavenCoordinates(
            group_id=str(self.group_id),
            artifact_id=str(self.artifact_id),
            version=str(self.version),
            classifier=self.classifier,
        )

    def executable_file(self, plugin_directory: Path, *, windows: bool) -> Path:
        if windows:
            return plugin_directory / f"{self.plugin_name}.exe"
        return plugin_directory / self.plugin_name

    def validate(self) -> None:
        if not self.id:
            raise MisconfiguredPluginError("id must be set in plugin definition")
        if is_reserved_id(self.id):
            raise MisconfiguredPluginError(
                f"Plugin id '{self.id}' matches one of the built-in generators.",
                hint=f"Pick an id outside of: {', '.join(sorted(RESERVED_GENERATOR_IDS))}.",
                context={"plugin": self.id},
            )
        self.validate_coordinates()
        if not self.main_class:
            raise MisconfiguredPluginError(
                "mainClass must be set in plugin definition", context={"plugin": self.id}
            )
        if self.java_home is None or not Path(self.java_home).is_dir():
            raise MisconfiguredPluginError(
                f"javaHome is invalid: {self.java_home}",
                hint="Point javaHome at an existing JDK or JRE installation.",
                context={"plugin": self.id},
            )
        if self.win_jvm_data_model is not None and self.win_jvm_data_model not in ("32", "64"):
            raise MisconfiguredPluginError(
                "winJvmDataModel must be '32' or '64'",
                context={"plugin": self.id, "winJvmDataModel": str(self.win_jvm_data_model)},
            )

    def validate_coordinates(self) -> None:
        for name, value in (
            ("groupId", self.group_id),
            ("artifactId", self.artifact_id),
            ("version", self.version),
        ):
            if not value:
                raise MisconfiguredPluginError(
                    f"{name} must be set in plugin definition", context={"plugin": self.id}
                )


@dataclass(frozen=True, slots=True)
class NativePlugin:
    """A custom generator backed by an executable already on disk or on PATH."""

    id: str
    output_directory: Path
    executable: str | None = None
    parameter: str | None = None

    def validate(self) -> None:
        if not self.id:
            raise InvalidArgumentError("'nativePluginId' is empty")
        if is_reserved_id(self.id):
            raise InvalidArgumentError(
                f"'nativePluginId' {self.id} matches one of the built-in generators",
                hint=f"Reserved ids: {', '.join(sorted(RESERVED_GENERATOR_IDS))}.",
            )
        if self.parameter is not None and ":" in self.parameter:
            raise InvalidArgumentError("'nativePluginParameter' contains illegal characters")

    def arguments(self) -> list[str]:
        argv: list[str] = []
        if self.executable is not None:
            argv.append(f"--plugin={PLUGIN_PREFIX}{self.id}={self.executable}")
        option = f"--{self.id}_out="
        if self.parameter is not None:
            option += self.parameter + ":"
        argv.append(option + str(self.output_directory))
        return argv


@dataclass(frozen=True, slots=True)
class DescriptorSetSpec:
    path: Path
    include_imports: bool = False

    def arguments(self) -> list[str]:
        argv = [f"--descriptor_set_out={self.path}"]
        if self.include_imports:
            argv.append("--include_imports")
        return argv


@dataclass(frozen=True, slots=True)
class ResourceSpec:
    """A resource root handed to the host build, with its filters."""

    directory: Path
    includes: tuple[str, ...] = DEFAULT_INCLUDES
    excludes: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class AttachedArtifact:
    type: str
    classifier: str | None
    file: Path
