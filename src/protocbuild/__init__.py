"""Build integration for the protocol buffer compiler."""

from .compiler import CompilationRun, CompilerCommandBuilder
from .config import ProtocSettings, load_settings
from .errors import (
    CompilerExecutionError,
    ConfigurationError,
    DependencyResolutionError,
    IllegalStateError,
    InvalidArgumentError,
    MisconfiguredPluginError,
    MisconfiguredToolchainError,
    PluginIOError,
    ProtocBuildError,
    StagingError,
)
from .extract import make_proto_path
from .host import AlwaysChangedContext, Project, ProjectModel, RecordingBuildContext
from .models import DescriptorSetSpec, Generator, NativePlugin, OutputTarget, PluginDefinition
from .observability import StructuredLogger
from .orchestrator import CompileOutcome, CompileScope, ProtocRunner, RunState, SkipReason
from .paths import PathTruncator
from .toolchain import ToolchainRegistry

__all__ = [
    "AlwaysChangedContext",
    "CompilationRun",
    "CompileOutcome",
    "CompileScope",
    "CompilerCommandBuilder",
    "CompilerExecutionError",
    "ConfigurationError",
    "DependencyResolutionError",
    "DescriptorSetSpec",
    "Generator",
    "IllegalStateError",
    "InvalidArgumentError",
    "MisconfiguredPluginError",
    "MisconfiguredToolchainError",
    "NativePlugin",
    "OutputTarget",
    "PathTruncator",
    "PluginDefinition",
    "PluginIOError",
    "ProjectModel",
    "ProtocBuildError",
    "ProtocRunner",
    "ProtocSettings",
    "Project",
    "RecordingBuildContext",
    "RunState",
    "SkipReason",
    "StagingError",
    "StructuredLogger",
    "ToolchainRegistry",
    "load_settings",
    "make_proto_path",
]
