"""Command-line construction and execution for the ``protoc`` compiler.

:class:`CompilerCommandBuilder` accumulates search-path roots, definition
files, output targets and plugins, validating each addition eagerly.
:meth:`CompilerCommandBuilder.build` freezes the state into a
:class:`CompilationRun`, which renders the argument vector and runs the
compiler exactly once.
"""

from __future__ import annotations

import os
import subprocess
import sys
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .errors import IllegalStateError, InvalidArgumentError
from .models import (
    PROTO_FILE_SUFFIX,
    DescriptorSetSpec,
    Generator,
    NativePlugin,
    OutputTarget,
    PluginDefinition,
    RESERVED_GENERATOR_IDS,
)
from .observability import StructuredLogger

MAX_ANCESTOR_DEPTH = 256


@dataclass(frozen=True, slots=True)
class CompilationRun:
    executable: str
    search_path: tuple[Path, ...]
    definition_files: tuple[Path, ...]
    targets: tuple[OutputTarget, ...] = ()
    plugins: tuple[PluginDefinition, ...] = ()
    plugin_directory: Path | None = None
    native_plugin: NativePlugin | None = None
    descriptor_set: DescriptorSetSpec | None = None
    windows: bool = field(default_factory=lambda: sys.platform == "win32")
    _captured: dict[str, str] = field(default_factory=dict, repr=False, compare=False)

    def target_directory(self, generator: Generator | str) -> Path | None:
        for target in self.targets:
            if target.generator_id == str(generator):
                return target.directory
        return None

    def plugin_output_directory(self, plugin: PluginDefinition) -> Path | None:
        if plugin.output_directory is not None:
            return plugin.output_directory
        return self.target_directory(Generator.JAVA)

    def plugin_executable(self, plugin: PluginDefinition) -> Path:
        directory = self.plugin_directory if self.plugin_directory is not None else Path()
        return plugin.executable_file(directory, windows=self.windows)

    def arguments(self) -> list[str]:
        """Render the compiler arguments, without the executable."""
        argv = [f"--proto_path={root}" for root in self.search_path]
        argv.extend(target.argument() for target in self.targets)
        for plugin in self.plugins:
            argv.append(f"--plugin={plugin.plugin_name}={self.plugin_executable(plugin)}")
            argv.append(f"--{plugin.id}_out={self.plugin_output_directory(plugin)}")
        if self.native_plugin is not None:
            argv.extend(self.native_plugin.arguments())
        argv.extend(str(path) for path in self.definition_files)
        if self.descriptor_set is not None:
            argv.extend(self.descriptor_set.arguments())
        return argv

    def command(self) -> list[str]:
        return [self.executable, *self.arguments()]

    def environment(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        env = dict(os.environ if base is None else base)
        if self.plugin_directory is not None:
            current = env.get("PATH", "")
            env["PATH"] = (
                f"{self.plugin_directory}{os.pathsep}{current}"
                if current
                else str(self.plugin_directory)
            )
        return env

    def run(self) -> int:
        """Invoke the compiler and return its exit status.

        Output is buffered in memory; read it back through :attr:`output`
        and :attr:`error`. A nonzero status is returned, never raised.
        """
        if self._captured:
            raise IllegalStateError(
                "A compilation run can only be executed once.",
                hint="Build a new run from a CompilerCommandBuilder.",
            )
        completed = subprocess.run(
            self.command(),
            capture_output=True,
            text=True,
            check=False,
            env=self.environment(),
        )
        self._captured["output"] = completed.stdout or ""
        self._captured["error"] = completed.stderr or ""
        self._captured["returncode"] = str(completed.returncode)
        return completed.returncode

    @property
    def output(self) -> str:
        return self._captured.get("output", "")

    @property
    def error(self) -> str:
        return self._captured.get("error", "")

    def log_parameters(self, logger: StructuredLogger) -> None:
        def debug(message: str, **extra: object) -> None:
            logger.log(
                operation="compiler_parameters",
                component="compiler",
                phase="command",
                level="debug",
                message=message,
                extra=dict(extra) if extra else None,
            )

        debug(f"Executable: {self.executable}")
        for root in self.search_path:
            debug(f"Import path: {root}")
        for target in self.targets:
            debug(f"{target.generator_id} output directory: {target.directory}")
        for plugin in self.plugins:
            debug(f"Plugin: {plugin.id}", output=str(self.plugin_output_directory(plugin)))
        if self.plugin_directory is not None:
            debug(f"Plugin directory: {self.plugin_directory}")
        if self.native_plugin is not None:
            debug(
                f"Native plugin: {self.native_plugin.id}",
                executable=self.native_plugin.executable,
                parameter=self.native_plugin.parameter,
            )
        if self.descriptor_set is not None:
            debug(
                f"Descriptor set output file: {self.descriptor_set.path}",
                include_imports=self.descriptor_set.include_imports,
            )
        for path in self.definition_files:
            debug(f"Definition: {path}")
        debug("Command line: " + " ".join(self.command()))


class CompilerCommandBuilder:
    """Accumulates compiler inputs, failing fast on inconsistent additions."""

    def __init__(self, executable: str, *, windows: bool | None = None) -> None:
        if not executable:
            raise InvalidArgumentError("The compiler executable must not be empty.")
        self._executable = executable
        self._windows = sys.platform == "win32" if windows is None else windows
        self._search_path: dict[Path, None] = {}
        self._definition_files: dict[Path, None] = {}
        self._targets: dict[str, OutputTarget] = {}
        self._plugins: dict[str, PluginDefinition] = {}
        self._plugin_directory: Path | None = None
        self._native_plugin: NativePlugin | None = None
        self._descriptor_set: DescriptorSetSpec | None = None

    def add_search_path_root(self, directory: str | Path) -> CompilerCommandBuilder:
        path = Path(directory)
        if not path.is_dir():
            raise InvalidArgumentError(
                f"Search path root is not a directory: {path}",
                context={"operation": "add_search_path_root", "path": str(path)},
            )
        self._search_path[path.absolute()] = None
        return self

    def add_search_path_roots(self, directories: Iterable[str | Path]) -> CompilerCommandBuilder:
        for directory in directories:
            self.add_search_path_root(directory)
        return self

    def add_definition_file(self, file: str | Path) -> CompilerCommandBuilder:
        path = Path(file)
        if not path.is_file():
            raise InvalidArgumentError(
                f"Definition file does not exist or is not a regular file: {path}",
                context={"operation": "add_definition_file", "path": str(path)},
            )
        if not path.name.endswith(PROTO_FILE_SUFFIX):
            raise InvalidArgumentError(
                f"Definition file must end with {PROTO_FILE_SUFFIX}: {path}",
                context={"operation": "add_definition_file", "path": str(path)},
            )
        if self._registered_ancestor(path) is None:
            raise IllegalStateError(
                f"Definition file is not under any registered search path root: {path}",
                hint="Register the file's source root before adding definition files.",
                context={"operation": "add_definition_file", "path": str(path)},
            )
        self._definition_files[path.absolute()] = None
        return self

    def add_definition_files(self, files: Iterable[str | Path]) -> CompilerCommandBuilder:
        for file in files:
            self.add_definition_file(file)
        return self

    def set_output_target(
        self, generator: Generator | str, directory: str | Path
    ) -> CompilerCommandBuilder:
        if not str(generator):
            raise InvalidArgumentError("Generator id must not be empty.")
        path = Path(directory)
        if not path.is_dir():
            raise InvalidArgumentError(
                f"'{generator}' output directory is not a directory: {path}",
                context={"operation": "set_output_target", "generator": str(generator)},
            )
        self._targets[str(generator)] = OutputTarget(generator=generator, directory=path)
        return self

    def add_plugin(self, plugin: PluginDefinition) -> CompilerCommandBuilder:
        self._plugins[plugin.id] = plugin
        return self

    def set_plugin_directory(self, directory: str | Path) -> CompilerCommandBuilder:
        path = Path(directory)
        if not path.is_dir():
            raise InvalidArgumentError(
                f"Plugin directory {path} does not exist",
                context={"operation": "set_plugin_directory"},
            )
        self._plugin_directory = path
        return self

    def set_native_plugin(self, plugin: NativePlugin) -> CompilerCommandBuilder:
        plugin.validate()
        if not plugin.output_directory.is_dir():
            raise InvalidArgumentError(
                f"Custom output directory is not a directory: {plugin.output_directory}"
            )
        self._native_plugin = plugin
        return self

    def set_descriptor_set(
        self, path: str | Path, include_imports: bool = False
    ) -> CompilerCommandBuilder:
        descriptor = Path(path)
        if not descriptor.parent.is_dir():
            raise InvalidArgumentError(
                f"Descriptor set directory does not exist: {descriptor.parent}",
                context={"operation": "set_descriptor_set"},
            )
        self._descriptor_set = DescriptorSetSpec(path=descriptor, include_imports=include_imports)
        return self

    def build(self) -> CompilationRun:
        if not self._definition_files:
            raise IllegalStateError("No definition files were added.")
        if not (
            self._targets or self._plugins or self._native_plugin or self._descriptor_set
        ):
            raise IllegalStateError(
                "Nothing to generate.",
                hint=(
                    "Configure at least one output directory, a plugin, "
                    "or a descriptor set."
                ),
            )
        java_target = Generator.JAVA.value in self._targets
        for plugin in self._plugins.values():
            if plugin.output_directory is None and not java_target:
                raise IllegalStateError(
                    f"Plugin '{plugin.id}' has no output directory.",
                    hint="Set the plugin's output directory or configure a Java output target.",
                    context={"plugin": plugin.id},
                )

        return CompilationRun(
            executable=self._executable,
            search_path=tuple(self._search_path),
            definition_files=tuple(self._definition_files),
            targets=tuple(self._ordered_targets()),
            plugins=tuple(self._plugins.values()),
            plugin_directory=self._plugin_directory,
            native_plugin=self._native_plugin,
            descriptor_set=self._descriptor_set,
            windows=self._windows,
        )

    def _ordered_targets(self) -> list[OutputTarget]:
        built_in = [
            self._targets[generator.value]
            for generator in Generator
            if generator.value in self._targets
        ]
        custom = [
            target for key, target in self._targets.items() if key not in RESERVED_GENERATOR_IDS
        ]
        return built_in + custom

    def _registered_ancestor(self, file: Path) -> Path | None:
        directory = file.absolute().parent
        for _ in range(MAX_ANCESTOR_DEPTH):
            if directory in self._search_path:
                return directory
            parent = directory.parent
            if parent == directory:
                return None
            directory = parent
        return None
