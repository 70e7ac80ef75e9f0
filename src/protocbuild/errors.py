"""Typed error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across the compile pipeline."""

    INVALID_ARGUMENT = "E_INVALID_ARGUMENT"
    ILLEGAL_STATE = "E_ILLEGAL_STATE"
    CONFIGURATION = "E_CONFIGURATION"
    MISCONFIGURED_PLUGIN = "E_MISCONFIGURED_PLUGIN"
    MISCONFIGURED_TOOLCHAIN = "E_MISCONFIGURED_TOOLCHAIN"
    DEPENDENCY_RESOLUTION = "E_DEPENDENCY_RESOLUTION"
    PLUGIN_IO = "E_PLUGIN_IO"
    STAGING = "E_STAGING"
    COMPILER_EXECUTION = "E_COMPILER_EXECUTION"


class ProtocBuildError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        """Message, hint, then context; multi-line values such as compiler output as blocks."""
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        for key, value in self.context.items():
            lines = value.rstrip("\n").splitlines()
            if not lines:
                continue
            if len(lines) == 1:
                parts.append(f"  {key}: {lines[0]}")
            else:
                parts.append(f"  {key}:")
                parts.extend(f"    | {line}" for line in lines)
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class InvalidArgumentError(ProtocBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.INVALID_ARGUMENT, hint=hint, context=context)


class IllegalStateError(ProtocBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.ILLEGAL_STATE, hint=hint, context=context)


class ConfigurationError(ProtocBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.CONFIGURATION, hint=hint, context=context)


class MisconfiguredPluginError(ProtocBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.MISCONFIGURED_PLUGIN, hint=hint, context=context)


class MisconfiguredToolchainError(ProtocBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message, code=ErrorCode.MISCONFIGURED_TOOLCHAIN, hint=hint, context=context
        )


class DependencyResolutionError(ProtocBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message, code=ErrorCode.DEPENDENCY_RESOLUTION, hint=hint, context=context
        )


class PluginIOError(ProtocBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.PLUGIN_IO, hint=hint, context=context)


class StagingError(ProtocBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.STAGING, hint=hint, context=context)


class CompilerExecutionError(ProtocBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.COMPILER_EXECUTION, hint=hint, context=context)


__all__ = [
    "CompilerExecutionError",
    "ConfigurationError",
    "DependencyResolutionError",
    "ErrorCode",
    "IllegalStateError",
    "InvalidArgumentError",
    "MisconfiguredPluginError",
    "MisconfiguredToolchainError",
    "PluginIOError",
    "ProtocBuildError",
    "StagingError",
]
