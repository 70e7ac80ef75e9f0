"""Build-wide toolchain registry and executable resolution.

A toolchains file is a JSON document of the form::

    {
      "toolchains": [
        {"type": "protobuf",
         "provides": {"version": "3.25.1"},
         "configuration": {"protocExecutable": "/opt/protobuf/bin/protoc"}},
        {"type": "jdk",
         "configuration": {"jdkHome": "/usr/lib/jvm/java-17"}}
      ]
    }
"""

from __future__ import annotations

import json
import os
import shutil
import warnings
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import MisconfiguredToolchainError
from .observability import Level, StructuredLogger

PROTOBUF_TOOLCHAIN = "protobuf"
JDK_TOOLCHAIN = "jdk"
PROTOC_TOOL = "protoc"
PROTOC_EXECUTABLE_KEY = "protocExecutable"
JDK_HOME_KEY = "jdkHome"


class ToolchainFallbackWarning(UserWarning):
    """Warning raised when a tool falls back to a bare command name on PATH."""


class ToolchainIgnoredWarning(UserWarning):
    """Warning raised when an explicit executable overrides a toolchain."""


@dataclass(frozen=True, slots=True)
class Toolchain:
    kind: str
    tools: Mapping[str, str] = field(default_factory=dict)
    provides: Mapping[str, str] = field(default_factory=dict)
    home: Path | None = None

    def find_tool(self, name: str) -> str | None:
        configured = self.tools.get(name)
        if configured is None and self.home is not None:
            candidate = self.home / "bin" / name
            configured = str(candidate)
        if configured is None:
            return None
        path = Path(os.path.normpath(configured))
        if path.exists():
            return str(path.absolute())
        if os.name == "nt" and path.with_suffix(".exe").exists():
            return str(path.with_suffix(".exe").absolute())
        return None

    def matches(self, requirements: Mapping[str, str] | None) -> bool:
        if not requirements:
            return True
        return all(self.provides.get(key) == value for key, value in requirements.items())

    def __str__(self) -> str:
        if self.kind == PROTOBUF_TOOLCHAIN:
            return f"PROTOC[{self.tools.get(PROTOC_TOOL)}]"
        return f"{self.kind.upper()}[{self.home or dict(self.tools)}]"


def protobuf_toolchain(
    configuration: Mapping[str, str],
    provides: Mapping[str, str] | None = None,
) -> Toolchain:
    """Create a protobuf toolchain, validating the configured compiler path."""
    executable = configuration.get(PROTOC_EXECUTABLE_KEY)
    if executable is None:
        raise MisconfiguredToolchainError(
            f"Protobuf toolchain without the {PROTOC_EXECUTABLE_KEY} configuration element.",
            context={"toolchain": PROTOBUF_TOOLCHAIN},
        )
    normalized = os.path.normpath(executable)
    if not Path(normalized).exists():
        raise MisconfiguredToolchainError(
            f"Non-existing protoc executable at {Path(normalized).absolute()}",
            context={"toolchain": PROTOBUF_TOOLCHAIN},
        )
    return Toolchain(
        kind=PROTOBUF_TOOLCHAIN,
        tools={PROTOC_TOOL: normalized},
        provides=_validated_provides(provides),
    )


def jdk_toolchain(
    configuration: Mapping[str, str],
    provides: Mapping[str, str] | None = None,
) -> Toolchain:
    home = configuration.get(JDK_HOME_KEY)
    if home is None or not Path(home).is_dir():
        raise MisconfiguredToolchainError(
            f"JDK toolchain needs an existing {JDK_HOME_KEY} directory.",
            context={"toolchain": JDK_TOOLCHAIN, JDK_HOME_KEY: str(home)},
        )
    return Toolchain(kind=JDK_TOOLCHAIN, home=Path(home), provides=_validated_provides(provides))


def generic_toolchain(
    kind: str,
    configuration: Mapping[str, str],
    provides: Mapping[str, str] | None = None,
) -> Toolchain:
    return Toolchain(kind=kind, tools=dict(configuration), provides=_validated_provides(provides))


def _validated_provides(provides: Mapping[str, str] | None) -> dict[str, str]:
    result: dict[str, str] = {}
    for key, value in (provides or {}).items():
        if value is None or value == "":
            raise MisconfiguredToolchainError(
                f"Provides token '{key}' doesn't have any value configured."
            )
        result[key] = str(value)
    return result


@dataclass(slots=True)
class ToolchainRegistry:
    toolchains: list[Toolchain] = field(default_factory=list)

    def register(self, toolchain: Toolchain) -> None:
        self.toolchains.append(toolchain)

    def find(self, kind: str, requirements: Mapping[str, str] | None = None) -> Toolchain | None:
        for toolchain in self.toolchains:
            if toolchain.kind == kind and toolchain.matches(requirements):
                return toolchain
        return None

    @classmethod
    def from_json(cls, path: str | Path) -> ToolchainRegistry:
        file = Path(path)
        try:
            payload = json.loads(file.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise MisconfiguredToolchainError(
                "Toolchains file does not exist.", context={"path": str(file)}
            ) from exc
        except json.JSONDecodeError as exc:
            raise MisconfiguredToolchainError(
                "Toolchains file is not valid JSON.", hint=str(exc), context={"path": str(file)}
            ) from exc
        return cls.from_payload(payload)

    @classmethod
    def from_payload(cls, payload: Any) -> ToolchainRegistry:
        if not isinstance(payload, dict) or not isinstance(payload.get("toolchains", []), list):
            raise MisconfiguredToolchainError("Toolchains payload must hold a `toolchains` list.")
        registry = cls()
        for entry in payload.get("toolchains", []):
            if not isinstance(entry, dict) or not isinstance(entry.get("type"), str):
                raise MisconfiguredToolchainError("Every toolchain entry needs a string `type`.")
            kind = entry["type"]
            configuration = entry.get("configuration") or {}
            provides = entry.get("provides") or {}
            if kind == PROTOBUF_TOOLCHAIN:
                registry.register(protobuf_toolchain(configuration, provides))
            elif kind == JDK_TOOLCHAIN:
                registry.register(jdk_toolchain(configuration, provides))
            else:
                registry.register(generic_toolchain(kind, configuration, provides))
        return registry


def resolve_executable(
    *,
    registry: ToolchainRegistry | None,
    kind: str,
    tool: str,
    explicit: str | None = None,
    logger: StructuredLogger | None = None,
    setting: str = "protocExecutable",
) -> str:
    """Pick the executable for *tool*: explicit setting, toolchain, then PATH."""
    toolchain = registry.find(kind) if registry is not None else None
    if toolchain is not None:
        _log(logger, "info", f"Toolchain in use: {toolchain}", tool)
        if explicit is not None:
            message = f"Toolchains are ignored, '{setting}' parameter is set to {explicit}"
            warnings.warn(message, ToolchainIgnoredWarning, stacklevel=2)
            _log(logger, "warn", message, tool)
            return explicit
        found = toolchain.find_tool(tool)
        if found is not None:
            return found
    if explicit is not None:
        return explicit

    message = f"No '{setting}' parameter is configured, using the default: '{tool}'"
    warnings.warn(message, ToolchainFallbackWarning, stacklevel=2)
    _log(logger, "warn", message, tool)
    return tool


def detect_java_home(
    *,
    registry: ToolchainRegistry | None = None,
    environ: Mapping[str, str] | None = None,
    logger: StructuredLogger | None = None,
) -> Path | None:
    """Locate a Java installation for plugin launchers."""
    toolchain = registry.find(JDK_TOOLCHAIN) if registry is not None else None
    if toolchain is not None:
        if toolchain.home is not None:
            _log(logger, "debug", f"Using javaHome from toolchain: {toolchain.home}", "java")
            return toolchain.home
        java = toolchain.find_tool("java")
        if java is not None:
            home = Path(java).parent.parent
            if home.is_dir():
                _log(logger, "debug", f"Using javaHome based on toolchain java: {home}", "java")
                return home

    env = os.environ if environ is None else environ
    java_home = env.get("JAVA_HOME")
    if java_home and Path(java_home).is_dir():
        _log(logger, "debug", f"Using javaHome from JAVA_HOME: {java_home}", "java")
        return Path(java_home)

    java = shutil.which("java")
    if java is not None:
        home = Path(java).resolve().parent.parent
        _log(logger, "debug", f"Using javaHome based on java in PATH: {home}", "java")
        return home
    return None


def _log(logger: StructuredLogger | None, level: Level, message: str, tool: str) -> None:
    if logger is None:
        return
    logger.log(
        operation="resolve_toolchain",
        component="toolchain",
        phase="resolve",
        level=level,
        message=message,
        extra={"tool": tool},
    )
