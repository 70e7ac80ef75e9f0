"""Single-invocation driver for a compile step.

:class:`ProtocRunner` decides whether the step runs at all, prepares the
staging and output directories, assembles plugins, resolves the compiler,
builds and executes the command, and reports the results back to the host
project. Main and test compilation differ only in the :class:`CompileScope`
handed to the runner.
"""

from __future__ import annotations

import shutil
import sys
from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path
from typing import Literal

from .compiler import CompilationRun, CompilerCommandBuilder
from .config import DESCRIPTOR_SET_SUFFIX, ProtocSettings
from .errors import (
    CompilerExecutionError,
    ConfigurationError,
    DependencyResolutionError,
    IllegalStateError,
    InvalidArgumentError,
)
from .extract import make_proto_path
from .fs import ensure_directory, prepare_clean_directory
from .host import AlwaysChangedContext, BuildContext, ProjectModel
from .models import Generator, MavenCoordinates, NativePlugin, PluginDefinition
from .observability import Level, StructuredLogger
from .paths import PathTruncator
from .plugins import ArtifactResolver, MavenRepositoryResolver, PluginAssembler
from .sources import find_definition_files, find_generated_files, is_up_to_date
from .toolchain import (
    PROTOBUF_TOOLCHAIN,
    PROTOC_TOOL,
    ToolchainRegistry,
    detect_java_home,
    resolve_executable,
)

ScopeName = Literal["main", "test"]


class RunState(StrEnum):
    IDLE = "idle"
    CHECKED = "checked"
    STAGING_PREPARED = "staging_prepared"
    COMMAND_BUILT = "command_built"
    EXECUTED = "executed"
    FILES_ATTACHED = "files_attached"


class SkipReason(StrEnum):
    DISABLED = "disabled"
    AGGREGATOR = "aggregator"
    NO_SOURCE_ROOT = "no_source_root"
    NO_DEFINITIONS = "no_definitions"
    NO_CHANGES = "no_changes"
    UP_TO_DATE = "up_to_date"

    @property
    def reattaches(self) -> bool:
        """Skips that keep the previous output and still report it to the host."""
        return self in (SkipReason.NO_CHANGES, SkipReason.UP_TO_DATE)


@dataclass(frozen=True, slots=True)
class CompileScope:
    """What differs between compiling main and test definitions."""

    name: ScopeName
    source_root: Path
    build_directory: Path
    output_base: Path
    descriptor_set_directory: Path
    descriptor_set_type: str
    final_name: str
    dependency_artifacts: tuple[Path, ...] = ()
    default_classifier: str | None = None
    main_output_directory: Path | None = None

    @classmethod
    def main(
        cls,
        basedir: Path,
        *,
        build_directory: Path | None = None,
        dependency_artifacts: tuple[Path, ...] = (),
        final_name: str | None = None,
    ) -> CompileScope:
        target = build_directory or basedir / "target"
        return cls(
            name="main",
            source_root=basedir / "src" / "main" / "proto",
            build_directory=target,
            output_base=target / "generated-sources" / "protobuf",
            descriptor_set_directory=target / "generated-resources" / "protobuf" / "descriptor-sets",
            descriptor_set_type="protobin",
            final_name=final_name or basedir.name,
            dependency_artifacts=dependency_artifacts,
        )

    @classmethod
    def test(
        cls,
        basedir: Path,
        *,
        build_directory: Path | None = None,
        dependency_artifacts: tuple[Path, ...] = (),
        final_name: str | None = None,
        main_output_directory: Path | None = None,
    ) -> CompileScope:
        target = build_directory or basedir / "target"
        return cls(
            name="test",
            source_root=basedir / "src" / "test" / "proto",
            build_directory=target,
            output_base=target / "generated-test-sources" / "protobuf",
            descriptor_set_directory=(
                target / "generated-test-resources" / "protobuf" / "descriptor-sets"
            ),
            descriptor_set_type="test-protobin",
            final_name=final_name or basedir.name,
            dependency_artifacts=dependency_artifacts,
            default_classifier="test",
            main_output_directory=main_output_directory or target / "classes",
        )

    def attach_generated(self, project: ProjectModel, directory: Path) -> None:
        if self.name == "test":
            project.add_test_compile_source_root(directory)
        else:
            project.add_compile_source_root(directory)

    def attach_sources(
        self, project: ProjectModel, root: Path, includes: tuple[str, ...], excludes: tuple[str, ...]
    ) -> None:
        if self.name == "test":
            project.add_test_resource(root, includes, excludes)
        else:
            project.add_resource(root, includes, excludes)


@dataclass(frozen=True, slots=True)
class CompileOutcome:
    state: RunState
    output_directory: Path
    skipped: SkipReason | None = None
    definition_files: tuple[Path, ...] = ()
    command: tuple[str, ...] = ()
    output: str = ""
    error: str = ""

    @property
    def compiled(self) -> bool:
        return self.skipped is None and self.state == RunState.FILES_ATTACHED


class ProtocRunner:
    def __init__(
        self,
        settings: ProtocSettings,
        scope: CompileScope,
        project: ProjectModel,
        *,
        build_context: BuildContext | None = None,
        toolchains: ToolchainRegistry | None = None,
        resolver: ArtifactResolver | None = None,
        logger: StructuredLogger | None = None,
        platform: str | None = None,
    ) -> None:
        self.settings = settings
        self.scope = scope
        self.project = project
        self.build_context = build_context or AlwaysChangedContext()
        self.toolchains = toolchains
        self._resolver = resolver
        self.logger = logger or StructuredLogger()
        self.platform = platform or sys.platform
        self.state = RunState.IDLE

    @property
    def source_root(self) -> Path:
        return self.settings.proto_source_root or self.scope.source_root

    @property
    def output_directory(self) -> Path:
        if self.settings.output_directory is not None:
            return self.settings.output_directory
        if self.settings.generator is None:
            return self.scope.output_base / str(self.settings.native_plugin_id)
        return self.scope.output_base / self.settings.language

    @property
    def descriptor_set_directory(self) -> Path:
        return self.settings.descriptor_set_output_directory or self.scope.descriptor_set_directory

    @property
    def descriptor_set_file(self) -> Path:
        name = self.settings.descriptor_set_file_name or (
            self.scope.final_name + DESCRIPTOR_SET_SUFFIX
        )
        return self.descriptor_set_directory / name

    @property
    def staging_directory(self) -> Path:
        return self.settings.temporary_proto_file_directory or (
            self.scope.build_directory / "protoc-dependencies"
        )

    @property
    def plugin_directory(self) -> Path:
        return self.settings.protoc_plugin_directory or (
            self.scope.build_directory / "protoc-plugins"
        )

    @property
    def local_repository(self) -> Path:
        return self.settings.local_repository or Path.home() / ".m2" / "repository"

    @property
    def resolver(self) -> ArtifactResolver:
        if self._resolver is None:
            self._resolver = MavenRepositoryResolver(self.local_repository)
        return self._resolver

    def execute(self) -> CompileOutcome:
        if self.settings.skip:
            self._log("info", "Skipping protoc execution")
            return self._skipped(SkipReason.DISABLED)
        if not self.settings.force and self.project.packaging == "pom":
            self._log("info", "Skipping protoc execution for project with packaging type 'pom'")
            return self._skipped(SkipReason.AGGREGATOR)

        self._check_parameters()
        self.state = RunState.CHECKED

        source_root = self.source_root
        if not source_root.exists():
            self._log(
                "info",
                f"{source_root} does not exist. Review the configuration "
                "or consider disabling the plugin.",
            )
            return self._skipped(SkipReason.NO_SOURCE_ROOT)

        definitions = find_definition_files(
            source_root, self.settings.includes, self.settings.excludes
        )
        if not definitions:
            self._log("info", "No proto files to compile.")
            return self._skipped(SkipReason.NO_DEFINITIONS)
        if not any(self.build_context.has_changes(file) for file in definitions):
            self._log("info", "Skipping compilation because build context has no changes.")
            self._attach()
            return self._skipped(SkipReason.NO_CHANGES, definitions)
        if self.settings.check_staleness and is_up_to_date(
            definitions,
            find_generated_files(self.output_directory),
            self.settings.stale_millis,
        ):
            self._log(
                "info", "Skipping compilation because target directory newer than sources."
            )
            self._attach()
            return self._skipped(SkipReason.UP_TO_DATE, definitions)

        return self._compile(source_root, definitions)

    def _compile(self, source_root: Path, definitions: frozenset[Path]) -> CompileOutcome:
        # Everything below the checks deletes or writes files.
        plugins = self._configured_plugins()
        self._check_compile_inputs(plugins)

        truncator = PathTruncator(
            hash_paths=self.settings.hash_dependent_paths,
            repository_root=self.local_repository,
        )
        derived = make_proto_path(
            self.staging_directory,
            self.scope.dependency_artifacts,
            truncator=truncator,
            logger=self.logger,
        )
        prepare_clean_directory(self.output_directory, operation="prepare_output")
        if self.settings.write_descriptor_set:
            prepare_clean_directory(self.descriptor_set_directory, operation="prepare_output")
        self.state = RunState.STAGING_PREPARED

        self._assemble_plugins(plugins)
        executable = resolve_executable(
            registry=self.toolchains,
            kind=PROTOBUF_TOOLCHAIN,
            tool=PROTOC_TOOL,
            explicit=self.settings.protoc_executable,
            logger=self.logger,
        )

        run = self._build_command(executable, source_root, derived, definitions, plugins)
        self.state = RunState.COMMAND_BUILT
        self._log_search_path(source_root, derived)
        run.log_parameters(self.logger)
        self._log(
            "info",
            f"Compiling {len(definitions)} proto file(s) to {self.output_directory}",
        )

        try:
            status = run.run()
        except OSError as exc:
            raise CompilerExecutionError(
                f"An error occurred while invoking {executable}.",
                hint="Check that the compiler executable exists and is runnable.",
                context={"executable": executable, "error": str(exc)},
            ) from exc
        self.state = RunState.EXECUTED

        if status != 0:
            self._log("error", "protoc failed output: " + run.output)
            self._log("error", "protoc failed error: " + run.error)
            raise CompilerExecutionError(
                "protoc did not exit cleanly. Review output for more information.",
                context={
                    "executable": executable,
                    "exit_code": str(status),
                    "stdout": run.output,
                    "stderr": run.error,
                },
            )

        self._attach()
        return CompileOutcome(
            state=self.state,
            output_directory=self.output_directory,
            definition_files=run.definition_files,
            command=tuple(run.command()),
            output=run.output,
            error=run.error,
        )

    def _build_command(
        self,
        executable: str,
        source_root: Path,
        derived: frozenset[Path],
        definitions: frozenset[Path],
        plugins: list[PluginDefinition],
    ) -> CompilationRun:
        builder = CompilerCommandBuilder(executable, windows=self.platform == "win32")
        builder.add_search_path_root(source_root)
        builder.add_search_path_roots(sorted(derived))
        builder.add_search_path_roots(self.settings.additional_proto_path_elements)
        # Test definitions may import main ones.
        main_output = self.scope.main_output_directory
        if main_output is not None and main_output.is_dir():
            builder.add_search_path_root(main_output)
        builder.add_definition_files(sorted(definitions))

        generator = self.settings.generator
        if generator is not None:
            builder.set_output_target(generator, self.output_directory)
        if self.settings.native_plugin_id:
            builder.set_native_plugin(
                NativePlugin(
                    id=self.settings.native_plugin_id,
                    output_directory=self.output_directory,
                    executable=self._native_plugin_executable(),
                    parameter=self.settings.native_plugin_parameter,
                )
            )
        if plugins:
            for plugin in plugins:
                builder.add_plugin(plugin)
            builder.set_plugin_directory(self.plugin_directory)
        if self.settings.write_descriptor_set:
            descriptor = self.descriptor_set_file
            self._log("info", f"Will write descriptor set: {descriptor.absolute()}")
            builder.set_descriptor_set(
                descriptor, self.settings.include_dependencies_in_descriptor_set
            )
        return builder.build()

    def _configured_plugins(self) -> list[PluginDefinition]:
        """Plugin definitions with ``javaHome`` filled in, validated but not yet built."""
        if not self.settings.protoc_plugins:
            return []
        java_home = detect_java_home(registry=self.toolchains, logger=self.logger)
        configured: list[PluginDefinition] = []
        for plugin in self.settings.protoc_plugins:
            if plugin.java_home is None and java_home is not None:
                self._log("debug", f"Setting javaHome for plugin: {java_home}", plugin=plugin.id)
                plugin = replace(plugin, java_home=java_home)
            plugin.validate()
            if self.platform == "win32":
                self._assembler(plugin).check_launcher()
            configured.append(plugin)
        return configured

    def _check_compile_inputs(self, plugins: list[PluginDefinition]) -> None:
        if self.settings.native_plugin_id:
            NativePlugin(
                id=self.settings.native_plugin_id,
                output_directory=self.output_directory,
                parameter=self.settings.native_plugin_parameter,
            ).validate()
        for root in self.settings.additional_proto_path_elements:
            if not Path(root).is_dir():
                raise InvalidArgumentError(
                    f"Search path root is not a directory: {root}",
                    context={"setting": "additionalProtoPathElements", "path": str(root)},
                )
        if self.settings.generator != Generator.JAVA:
            for plugin in plugins:
                if plugin.output_directory is None:
                    raise IllegalStateError(
                        f"Plugin '{plugin.id}' has no output directory.",
                        hint="Set the plugin's output directory or use the java language.",
                        context={"plugin": plugin.id},
                    )

    def _assemble_plugins(self, plugins: list[PluginDefinition]) -> None:
        if not plugins:
            return
        ensure_directory(self.plugin_directory, operation="assemble_plugin")
        for plugin in plugins:
            self._log("info", f"Building protoc plugin: {plugin.id}", plugin=plugin.id)
            self._assembler(plugin).execute()

    def _assembler(self, plugin: PluginDefinition) -> PluginAssembler:
        return PluginAssembler(
            plugin,
            self.resolver,
            self.plugin_directory,
            logger=self.logger,
            platform=self.platform,
            launcher_dir=self.settings.winrun4j_directory,
        )

    def _native_plugin_executable(self) -> str | None:
        settings = self.settings
        executable = settings.native_plugin_executable
        if settings.native_plugin_toolchain and settings.native_plugin_tool:
            executable = resolve_native_tool(
                registry=self.toolchains,
                toolchain=settings.native_plugin_toolchain,
                tool=settings.native_plugin_tool,
                explicit=executable,
                logger=self.logger,
            )
        if executable is None and settings.native_plugin_artifact:
            executable = str(self._materialize_native_artifact(settings.native_plugin_artifact))
        return executable

    def _materialize_native_artifact(self, spec: str) -> Path:
        coordinates = MavenCoordinates.parse(spec)
        files = self.resolver.resolve(coordinates)
        if not files:
            raise DependencyResolutionError(
                f"Native plugin artifact {coordinates} resolved to nothing.",
                context={"artifact": spec},
            )
        ensure_directory(self.plugin_directory, operation="assemble_plugin")
        suffix = ".exe" if self.platform == "win32" else ""
        target = self.plugin_directory / f"protoc-gen-{self.settings.native_plugin_id}{suffix}"
        shutil.copyfile(files[0], target)
        target.chmod(0o755)
        return target

    def _check_parameters(self) -> None:
        for name, path in (
            ("protoSourceRoot", self.source_root),
            ("temporaryProtoFileDirectory", self.staging_directory),
            ("outputDirectory", self.output_directory),
        ):
            if path.is_file():
                raise ConfigurationError(
                    f"{name} is a file, not a directory",
                    context={"setting": name, "path": str(path)},
                )

    def _attach(self) -> None:
        if self.settings.attach_proto_sources:
            self.scope.attach_sources(
                self.project,
                self.source_root.absolute(),
                self.settings.includes,
                self.settings.excludes,
            )
        self.scope.attach_generated(self.project, self.output_directory.absolute())
        if self.settings.write_descriptor_set:
            self.project.attach_artifact(
                self.scope.descriptor_set_type,
                self.settings.descriptor_set_classifier or self.scope.default_classifier,
                self.descriptor_set_file,
            )
        self.build_context.refresh(self.output_directory)
        self.state = RunState.FILES_ATTACHED

    def _skipped(
        self, reason: SkipReason, definitions: frozenset[Path] = frozenset()
    ) -> CompileOutcome:
        return CompileOutcome(
            state=self.state,
            output_directory=self.output_directory,
            skipped=reason,
            definition_files=tuple(sorted(definitions)),
        )

    def _log_search_path(self, source_root: Path, derived: frozenset[Path]) -> None:
        self._log("debug", f"Proto source root: {source_root}")
        for path in sorted(derived):
            self._log("debug", f"Derived proto path: {path}")
        for path in self.settings.additional_proto_path_elements:
            self._log("debug", f"Additional proto path: {path}")

    def _log(self, level: Level, message: str, *, plugin: str | None = None) -> None:
        self.logger.log(
            operation=f"{self.scope.name}_compile",
            component="orchestrator",
            phase=self.state.value,
            plugin=plugin,
            level=level,
            message=message,
        )


def resolve_native_tool(
    *,
    registry: ToolchainRegistry | None,
    toolchain: str,
    tool: str,
    explicit: str | None,
    logger: StructuredLogger | None = None,
) -> str | None:
    """Look up a native plugin tool in a toolchain unless one is set explicitly."""
    if registry is None or registry.find(toolchain) is None:
        return explicit
    return resolve_executable(
        registry=registry,
        kind=toolchain,
        tool=tool,
        explicit=explicit,
        logger=logger,
        setting="nativePluginExecutable",
    )
