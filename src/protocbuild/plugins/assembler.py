"""Materialize Java-hosted compiler plugins as native launchers."""

from __future__ import annotations

import platform as platform_module
import shutil
import sys
from importlib import resources
from pathlib import Path

from protocbuild.errors import DependencyResolutionError, PluginIOError
from protocbuild.fs import ensure_directory
from protocbuild.models import PluginDefinition, WinJvmDataModel
from protocbuild.observability import Level, StructuredLogger
from protocbuild.plugins.resolve import ArtifactResolver

JVM_LOCATIONS = (
    "jre/bin/server/jvm.dll",
    "bin/server/jvm.dll",
    "jre/bin/client/jvm.dll",
    "bin/client/jvm.dll",
)
MIN_VM_VERSION = "1.6"


class PluginAssembler:
    """Resolve a plugin's classpath and write a launcher the compiler can spawn.

    On POSIX hosts the launcher is a ``sh`` script exec'ing ``java``. On
    Windows it is a WinRun4J executable paired with an ``.ini`` file.
    """

    def __init__(
        self,
        plugin: PluginDefinition,
        resolver: ArtifactResolver,
        plugin_directory: Path,
        *,
        logger: StructuredLogger | None = None,
        platform: str | None = None,
        launcher_dir: Path | None = None,
    ) -> None:
        self.plugin = plugin
        self.resolver = resolver
        self.plugin_directory = plugin_directory
        self.logger = logger or StructuredLogger()
        self.platform = platform or sys.platform
        self.launcher_dir = launcher_dir

    @property
    def windows(self) -> bool:
        return self.platform == "win32"

    @property
    def executable_file(self) -> Path:
        return self.plugin.executable_file(self.plugin_directory, windows=self.windows)

    def execute(self) -> Path:
        self.plugin.validate()
        self._log("debug", f"plugin definition: {self.plugin}")

        classpath = self._resolve_classpath()
        ensure_directory(self.plugin_directory, operation="assemble_plugin")
        if self.windows:
            self._write_windows_ini(classpath)
            self._copy_winrun4j()
        else:
            self._write_unix_script(classpath)
        self._log("info", f"Built protoc plugin launcher: {self.executable_file}")
        return self.executable_file

    def _resolve_classpath(self) -> list[Path]:
        coordinates = self.plugin.coordinates
        classpath = [path.absolute() for path in self.resolver.resolve(coordinates)]
        if not classpath:
            raise DependencyResolutionError(
                f"Plugin {self.plugin.id} resolved to an empty classpath.",
                context={"plugin": self.plugin.id, "artifact": str(coordinates)},
            )
        for entry in classpath:
            self._log("debug", f"Resolved plugin classpath entry: {entry}")
        return classpath

    def _write_unix_script(self, classpath: list[Path]) -> None:
        java = Path(str(self.plugin.java_home)) / "bin" / "java"
        self._log("debug", f"javaLocation={java.absolute()}")
        lines = [
            "#!/bin/sh",
            "",
            "CP=" + ":".join(f'"{entry}"' for entry in classpath),
            'ARGS="' + "".join(f"{arg} " for arg in self.plugin.args) + '"',
            'JVMARGS="' + "".join(f"{arg} " for arg in self.plugin.jvm_args) + '"',
            "",
            f'exec "{java.absolute()}" $JVMARGS -cp $CP {self.plugin.main_class} $ARGS',
            "",
        ]
        script = self.executable_file
        try:
            script.write_text("\n".join(lines), encoding="utf-8")
            script.chmod(0o755)
        except OSError as exc:
            raise PluginIOError(
                f"Could not write plugin script file: {script}",
                context={"plugin": self.plugin.id, "error": str(exc)},
            ) from exc

    def _write_windows_ini(self, classpath: list[Path]) -> None:
        java_home = Path(str(self.plugin.java_home))
        jvm = find_jvm_location(java_home)
        ini = self.plugin_directory / f"{self.plugin.plugin_name}.ini"
        self._log("debug", f"jvmLocation={jvm if jvm is not None else '(none)'}")

        lines: list[str] = []
        if jvm is not None:
            lines.append(f"vm.location={jvm.absolute()}")
        lines.extend(f"classpath.{index}={entry}" for index, entry in enumerate(classpath, 1))
        lines.append(f"main.class={self.plugin.main_class}")
        lines.extend(f"arg.{index}={arg}" for index, arg in enumerate(self.plugin.args, 1))
        lines.extend(f"vmarg.{index}={arg}" for index, arg in enumerate(self.plugin.jvm_args, 1))
        lines.append(f"vm.version.min={MIN_VM_VERSION}")
        # WinRun4J logs to stdout by default, which would corrupt the plugin protocol.
        lines.extend(["log.level=none", "[ErrorMessages]", "show.popup=false"])
        try:
            ini.write_text("\r\n".join(lines) + "\r\n", encoding="utf-8")
        except OSError as exc:
            raise PluginIOError(
                f"Could not write WinRun4J ini file: {ini}",
                context={"plugin": self.plugin.id, "error": str(exc)},
            ) from exc

    def check_launcher(self) -> Path:
        """Return the WinRun4J executable to copy, failing when it is not there.

        The package ships no executables, so unless ``winrun4jDirectory`` is
        set they must have been dropped into the package's ``winrun4j``
        directory.
        """
        model = self.plugin.win_jvm_data_model or detect_data_model(
            Path(str(self.plugin.java_home))
        )
        source = self._launcher_directory() / f"WinRun4J{model}.exe"
        if not source.is_file():
            raise PluginIOError(
                f"Could not locate WinRun4J executable at path: {source}",
                hint=(
                    "Set winrun4jDirectory to a directory holding "
                    "WinRun4J32.exe and WinRun4J64.exe."
                ),
                context={"plugin": self.plugin.id, "winJvmDataModel": model},
            )
        return source

    def _copy_winrun4j(self) -> None:
        source = self.check_launcher()
        self._log("debug", f"WinRun4J launcher: {source}")
        try:
            shutil.copyfile(source, self.executable_file)
        except OSError as exc:
            raise PluginIOError(
                f"Could not copy WinRun4J executable to: {self.executable_file}",
                context={"plugin": self.plugin.id, "error": str(exc)},
            ) from exc

    def _launcher_directory(self) -> Path:
        if self.launcher_dir is not None:
            return self.launcher_dir
        return Path(str(resources.files("protocbuild") / "winrun4j"))

    def _log(self, level: Level, message: str) -> None:
        self.logger.log(
            operation="assemble_plugin",
            component="plugins",
            phase="assemble",
            plugin=self.plugin.id,
            level=level,
            message=message,
        )


def find_jvm_location(java_home: Path) -> Path | None:
    for relative in JVM_LOCATIONS:
        candidate = java_home / relative
        if candidate.is_file():
            return candidate
    return None


def detect_data_model(java_home: Path) -> WinJvmDataModel:
    """Guess the JVM pointer width from its directory layout."""
    if _arch_directory_exists(java_home, "amd64"):
        return "64"
    if _arch_directory_exists(java_home, "i386"):
        return "32"
    bits, _ = platform_module.architecture()
    if bits == "64bit":
        return "64"
    return "32"


def _arch_directory_exists(java_home: Path, arch: str) -> bool:
    return (java_home / "jre" / "lib" / arch).is_dir() or (java_home / "lib" / arch).is_dir()
