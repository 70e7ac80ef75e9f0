"""Compile settings and their JSON configuration file.

A configuration file is a JSON object whose keys follow the build plugin's
parameter names, for example::

    {
      "language": "java",
      "checkStaleness": true,
      "staleMillis": 500,
      "writeDescriptorSet": true,
      "includeDependenciesInDescriptorSet": true,
      "protocPlugins": [
        {"id": "grpc-java", "groupId": "io.grpc", "artifactId": "protoc-gen-grpc-java",
         "version": "1.60.0", "mainClass": "io.grpc.Main"}
      ]
    }

Relative paths are resolved against the file's directory.

On Windows, Java plugins need WinRun4J launchers. None are shipped with the
package: set ``winrun4jDirectory`` to a directory holding ``WinRun4J32.exe``
and ``WinRun4J64.exe``, or copy them into the package's ``winrun4j``
directory. A missing launcher fails the run before any output is cleaned.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from .errors import ConfigurationError
from .models import DEFAULT_INCLUDES, Generator, PluginDefinition

CUSTOM_LANGUAGE = "custom"
DESCRIPTOR_SET_SUFFIX = ".protobin"


@dataclass(frozen=True, slots=True)
class ProtocSettings:
    language: str = Generator.JAVA.value
    protoc_executable: str | None = None
    proto_source_root: Path | None = None
    output_directory: Path | None = None
    additional_proto_path_elements: tuple[Path, ...] = ()
    includes: tuple[str, ...] = DEFAULT_INCLUDES
    excludes: tuple[str, ...] = ()
    check_staleness: bool = False
    stale_millis: int = 0
    write_descriptor_set: bool = False
    descriptor_set_file_name: str | None = None
    descriptor_set_output_directory: Path | None = None
    descriptor_set_classifier: str | None = None
    include_dependencies_in_descriptor_set: bool = False
    protoc_plugins: tuple[PluginDefinition, ...] = ()
    native_plugin_id: str | None = None
    native_plugin_executable: str | None = None
    native_plugin_parameter: str | None = None
    native_plugin_toolchain: str | None = None
    native_plugin_tool: str | None = None
    native_plugin_artifact: str | None = None
    skip: bool = False
    force: bool = False
    hash_dependent_paths: bool = True
    temporary_proto_file_directory: Path | None = None
    protoc_plugin_directory: Path | None = None
    local_repository: Path | None = None
    attach_proto_sources: bool = True
    winrun4j_directory: Path | None = None

    def __post_init__(self) -> None:
        if self.stale_millis < 0:
            raise ConfigurationError(
                "staleMillis must not be negative.",
                context={"staleMillis": str(self.stale_millis)},
            )
        if self.language != CUSTOM_LANGUAGE and self.language not in {g.value for g in Generator}:
            choices = ", ".join([*(g.value for g in Generator), CUSTOM_LANGUAGE])
            raise ConfigurationError(
                f"Unknown language '{self.language}'.",
                hint=f"Use one of: {choices}.",
            )
        if self.language == CUSTOM_LANGUAGE and not self.native_plugin_id:
            raise ConfigurationError(
                "The custom language needs a nativePluginId.",
                hint="Set nativePluginId to the generator id passed as --<id>_out.",
            )

    @property
    def generator(self) -> Generator | None:
        if self.language == CUSTOM_LANGUAGE:
            return None
        return Generator(self.language)

    def with_overrides(self, **changes: Any) -> ProtocSettings:
        present = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **present)


# Configuration key -> (field name, kind)
_KEYS: dict[str, tuple[str, str]] = {
    "language": ("language", "str"),
    "protocExecutable": ("protoc_executable", "str"),
    "protoSourceRoot": ("proto_source_root", "path"),
    "outputDirectory": ("output_directory", "path"),
    "additionalProtoPathElements": ("additional_proto_path_elements", "paths"),
    "includes": ("includes", "strs"),
    "excludes": ("excludes", "strs"),
    "checkStaleness": ("check_staleness", "bool"),
    "staleMillis": ("stale_millis", "int"),
    "writeDescriptorSet": ("write_descriptor_set", "bool"),
    "descriptorSetFileName": ("descriptor_set_file_name", "str"),
    "descriptorSetOutputDirectory": ("descriptor_set_output_directory", "path"),
    "descriptorSetClassifier": ("descriptor_set_classifier", "str"),
    "includeDependenciesInDescriptorSet": ("include_dependencies_in_descriptor_set", "bool"),
    "protocPlugins": ("protoc_plugins", "plugins"),
    "nativePluginId": ("native_plugin_id", "str"),
    "nativePluginExecutable": ("native_plugin_executable", "str"),
    "nativePluginParameter": ("native_plugin_parameter", "str"),
    "nativePluginToolchain": ("native_plugin_toolchain", "str"),
    "nativePluginTool": ("native_plugin_tool", "str"),
    "nativePluginArtifact": ("native_plugin_artifact", "str"),
    "skip": ("skip", "bool"),
    "forceMojoExecution": ("force", "bool"),
    "hashDependentPaths": ("hash_dependent_paths", "bool"),
    "temporaryProtoFileDirectory": ("temporary_proto_file_directory", "path"),
    "protocPluginDirectory": ("protoc_plugin_directory", "path"),
    "localRepository": ("local_repository", "path"),
    "attachProtoSources": ("attach_proto_sources", "bool"),
    "winrun4jDirectory": ("winrun4j_directory", "path"),
}

_PLUGIN_KEYS = {
    "id": "id",
    "groupId": "group_id",
    "artifactId": "artifact_id",
    "version": "version",
    "classifier": "classifier",
    "mainClass": "main_class",
    "javaHome": "java_home",
    "winJvmDataModel": "win_jvm_data_model",
    "args": "args",
    "jvmArgs": "jvm_args",
    "outputDirectory": "output_directory",
}


def load_settings(path: str | Path) -> ProtocSettings:
    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(
            "Configuration file does not exist.", context={"path": str(config_path)}
        ) from exc
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            "Invalid configuration JSON.", hint=str(exc), context={"path": str(config_path)}
        ) from exc
    return settings_from_payload(payload, base=config_path.parent)


def settings_from_payload(payload: Any, *, base: Path | None = None) -> ProtocSettings:
    if not isinstance(payload, dict):
        raise ConfigurationError("Configuration must be a JSON object.")
    unknown = sorted(set(payload) - set(_KEYS))
    if unknown:
        raise ConfigurationError(
            f"Unknown configuration keys: {', '.join(unknown)}.",
            hint=f"Supported keys: {', '.join(sorted(_KEYS))}.",
        )
    values: dict[str, Any] = {}
    for key, value in payload.items():
        name, kind = _KEYS[key]
        values[name] = _convert(key, kind, value, base)
    return ProtocSettings(**values)


def parse_plugin(payload: Any, *, base: Path | None = None) -> PluginDefinition:
    if not isinstance(payload, dict):
        raise ConfigurationError("Every protocPlugins entry must be an object.")
    unknown = sorted(set(payload) - set(_PLUGIN_KEYS))
    if unknown:
        raise ConfigurationError(
            f"Unknown plugin keys: {', '.join(unknown)}.",
            context={"plugin": str(payload.get("id", ""))},
        )
    values: dict[str, Any] = {}
    for key, value in payload.items():
        name = _PLUGIN_KEYS[key]
        if name in ("args", "jvm_args"):
            values[name] = _convert(key, "strs", value, base)
        elif name in ("java_home", "output_directory"):
            values[name] = _convert(key, "path", value, base)
        else:
            values[name] = _convert(key, "str", value, base)
    if "id" not in values:
        raise ConfigurationError("Every protocPlugins entry needs an `id`.")
    return PluginDefinition(**values)


def _convert(key: str, kind: str, value: Any, base: Path | None) -> Any:
    if kind == "str":
        if value is not None and not isinstance(value, str):
            raise ConfigurationError(f"Invalid `{key}` value: expected a string.")
        return value
    if kind == "bool":
        if not isinstance(value, bool):
            raise ConfigurationError(f"Invalid `{key}` value: expected a boolean.")
        return value
    if kind == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"Invalid `{key}` value: expected an integer.")
        return value
    if kind == "path":
        if value is None:
            return None
        if not isinstance(value, str) or not value:
            raise ConfigurationError(f"Invalid `{key}` value: expected a path string.")
        return _resolve(value, base)
    if kind in ("strs", "paths"):
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ConfigurationError(f"Invalid `{key}` value: expected a list of strings.")
        if kind == "paths":
            return tuple(_resolve(item, base) for item in value)
        return tuple(value)
    if kind == "plugins":
        if not isinstance(value, list):
            raise ConfigurationError(f"Invalid `{key}` value: expected a list of objects.")
        return tuple(parse_plugin(item, base=base) for item in value)
    raise ConfigurationError(f"Unsupported configuration kind for `{key}`.")


def _resolve(value: str, base: Path | None) -> Path:
    path = Path(value).expanduser()
    if base is not None and not path.is_absolute():
        return base / path
    return path
