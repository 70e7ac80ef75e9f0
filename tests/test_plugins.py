import stat
import sys
from pathlib import Path

import pytest

from protocbuild.errors import DependencyResolutionError, MisconfiguredPluginError, PluginIOError
from protocbuild.models import MavenCoordinates, PluginDefinition
from protocbuild.plugins import (
    MavenRepositoryResolver,
    PluginAssembler,
    StaticResolver,
    detect_data_model,
    find_jvm_location,
)


class ExplodingResolver:
    def __init__(self) -> None:
        self.calls = 0

    def resolve(self, coordinates: MavenCoordinates) -> list[Path]:
        self.calls += 1
        raise AssertionError("resolution must not happen")


@pytest.mark.parametrize("plugin_id", ["java", "cpp", "python", "javanano", "descriptor_set"])
def test_reserved_plugin_id_rejected_before_resolution(tmp_path: Path, plugin_id: str) -> None:
    resolver = ExplodingResolver()
    plugin = _plugin(tmp_path, id=plugin_id)

    with pytest.raises(MisconfiguredPluginError) as excinfo:
        PluginAssembler(plugin, resolver, tmp_path / "plugins").execute()

    assert excinfo.value.code == "E_MISCONFIGURED_PLUGIN"
    assert resolver.calls == 0
    assert not (tmp_path / "plugins").exists()


@pytest.mark.parametrize(
    "changes",
    [
        {"group_id": None},
        {"artifact_id": ""},
        {"version": None},
        {"main_class": None},
        {"java_home": Path("/nonexistent/jdk")},
        {"win_jvm_data_model": "16"},
    ],
)
def test_incomplete_definition_is_rejected(tmp_path: Path, changes: dict) -> None:
    plugin = _plugin(tmp_path, **changes)

    with pytest.raises(MisconfiguredPluginError):
        PluginAssembler(plugin, ExplodingResolver(), tmp_path / "plugins").execute()


def test_empty_classpath_is_a_resolution_error(tmp_path: Path) -> None:
    class EmptyResolver:
        def resolve(self, coordinates: MavenCoordinates) -> list[Path]:
            return []

    with pytest.raises(DependencyResolutionError):
        PluginAssembler(_plugin(tmp_path), EmptyResolver(), tmp_path / "plugins").execute()


def test_posix_launcher_script(tmp_path: Path) -> None:
    jars = (tmp_path / "gen.jar", tmp_path / "dep.jar")
    plugin = _plugin(tmp_path, args=("--flag", "x"), jvm_args=("-Xmx64m",))
    resolver = StaticResolver({"com.acme:gen": jars})

    script = PluginAssembler(plugin, resolver, tmp_path / "plugins", platform="linux").execute()

    assert script == tmp_path / "plugins" / "protoc-gen-gen"
    text = script.read_text(encoding="utf-8")
    assert text.startswith("#!/bin/sh\n")
    assert f'CP="{jars[0]}":"{jars[1]}"' in text
    assert 'ARGS="--flag x "' in text
    assert 'JVMARGS="-Xmx64m "' in text
    java = plugin.java_home / "bin" / "java"
    assert f'exec "{java}" $JVMARGS -cp $CP com.acme.Gen $ARGS' in text
    if sys.platform != "win32":
        assert stat.S_IMODE(script.stat().st_mode) == 0o755


def test_windows_launcher_ini_and_executable(tmp_path: Path) -> None:
    plugin = _plugin(tmp_path, args=("a",), jvm_args=("-Xss1m", "-ea"))
    jvm = plugin.java_home / "jre" / "bin" / "server" / "jvm.dll"
    jvm.parent.mkdir(parents=True)
    jvm.write_bytes(b"")
    launchers = tmp_path / "launchers"
    launchers.mkdir()
    (launchers / "WinRun4J64.exe").write_bytes(b"MZ64")
    (plugin.java_home / "lib" / "amd64").mkdir(parents=True)
    resolver = StaticResolver({"com.acme:gen": (tmp_path / "gen.jar",)})

    exe = PluginAssembler(
        plugin, resolver, tmp_path / "plugins", platform="win32", launcher_dir=launchers
    ).execute()

    assert exe == tmp_path / "plugins" / "protoc-gen-gen.exe"
    assert exe.read_bytes() == b"MZ64"
    ini = (tmp_path / "plugins" / "protoc-gen-gen.ini").read_text(encoding="utf-8").splitlines()
    assert ini == [
        f"vm.location={jvm}",
        f"classpath.1={tmp_path / 'gen.jar'}",
        "main.class=com.acme.Gen",
        "arg.1=a",
        "vmarg.1=-Xss1m",
        "vmarg.2=-ea",
        "vm.version.min=1.6",
        "log.level=none",
        "[ErrorMessages]",
        "show.popup=false",
    ]


def test_windows_launcher_missing_executable(tmp_path: Path) -> None:
    plugin = _plugin(tmp_path, win_jvm_data_model="32")
    resolver = StaticResolver({"com.acme:gen": (tmp_path / "gen.jar",)})
    empty = tmp_path / "launchers"
    empty.mkdir()

    with pytest.raises(PluginIOError, match="WinRun4J32.exe"):
        PluginAssembler(
            plugin, resolver, tmp_path / "plugins", platform="win32", launcher_dir=empty
        ).execute()


def test_data_model_detection(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    amd64 = tmp_path / "jdk64"
    (amd64 / "jre" / "lib" / "amd64").mkdir(parents=True)
    i386 = tmp_path / "jdk32"
    (i386 / "lib" / "i386").mkdir(parents=True)
    bare = tmp_path / "bare"
    bare.mkdir()
    monkeypatch.setattr(
        "protocbuild.plugins.assembler.platform_module.architecture", lambda: ("32bit", "")
    )

    assert detect_data_model(amd64) == "64"
    assert detect_data_model(i386) == "32"
    assert detect_data_model(bare) == "32"
    monkeypatch.setattr(
        "protocbuild.plugins.assembler.platform_module.architecture", lambda: ("64bit", "")
    )
    assert detect_data_model(bare) == "64"


def test_jvm_location_search_order(tmp_path: Path) -> None:
    client = tmp_path / "bin" / "client" / "jvm.dll"
    client.parent.mkdir(parents=True)
    client.write_bytes(b"")
    assert find_jvm_location(tmp_path) == client

    server = tmp_path / "bin" / "server" / "jvm.dll"
    server.parent.mkdir(parents=True)
    server.write_bytes(b"")
    assert find_jvm_location(tmp_path) == server
    assert find_jvm_location(tmp_path / "missing") is None


def test_repository_resolver_follows_runtime_dependencies(tmp_path: Path) -> None:
    repo = tmp_path / "repository"
    _install(
        repo,
        "com.acme",
        "parent",
        "1.0",
        pom_body="""
        <properties><dep.version>2.0</dep.version></properties>
        <dependencyManagement><dependencies>
          <dependency><groupId>org.lib</groupId><artifactId>managed</artifactId>
            <version>3.1</version></dependency>
        </dependencies></dependencyManagement>
        """,
        jar=False,
    )
    gen = _install(
        repo,
        "com.acme",
        "gen",
        "1.0",
        pom_body="""
        <parent><groupId>com.acme</groupId><artifactId>parent</artifactId><version>1.0</version></parent>
        <dependencies>
          <dependency><groupId>org.lib</groupId><artifactId>core</artifactId>
            <version>${dep.version}</version></dependency>
          <dependency><groupId>org.lib</groupId><artifactId>managed</artifactId></dependency>
          <dependency><groupId>${project.groupId}</groupId><artifactId>shared</artifactId>
            <version>${project.version}</version></dependency>
          <dependency><groupId>org.test</groupId><artifactId>junit</artifactId>
            <version>4.13</version><scope>test</scope></dependency>
          <dependency><groupId>org.opt</groupId><artifactId>extra</artifactId>
            <version>1.0</version><optional>true</optional></dependency>
          <dependency><groupId>org.lib</groupId><artifactId>servlet</artifactId>
            <version>1.0</version><scope>provided</scope></dependency>
        </dependencies>
        """,
        omit_version=True,
    )
    core = _install(
        repo,
        "org.lib",
        "core",
        "2.0",
        pom_body="""
        <dependencies>
          <dependency><groupId>org.lib</groupId><artifactId>managed</artifactId>
            <version>9.9</version></dependency>
        </dependencies>
        """,
    )
    managed = _install(repo, "org.lib", "managed", "3.1")
    shared = _install(repo, "com.acme", "shared", "1.0")

    classpath = MavenRepositoryResolver(repo).resolve(
        MavenCoordinates("com.acme", "gen", "1.0")
    )

    assert classpath == [gen, core, managed, shared]


def test_repository_resolver_missing_artifact(tmp_path: Path) -> None:
    with pytest.raises(DependencyResolutionError) as excinfo:
        MavenRepositoryResolver(tmp_path).resolve(MavenCoordinates("com.acme", "gen", "1.0"))

    assert excinfo.value.context["artifact"] == "com.acme:gen:jar:1.0"


def test_repository_resolver_honours_exclusions_and_classifier(tmp_path: Path) -> None:
    repo = tmp_path / "repository"
    _install(
        repo,
        "com.acme",
        "gen",
        "1.0",
        pom_body="""
        <dependencies>
          <dependency><groupId>org.lib</groupId><artifactId>core</artifactId>
            <version>2.0</version>
            <exclusions><exclusion><groupId>org.noise</groupId><artifactId>*</artifactId>
            </exclusion></exclusions></dependency>
        </dependencies>
        """,
        classifier="shaded",
    )
    _install(
        repo,
        "org.lib",
        "core",
        "2.0",
        pom_body="""
        <dependencies>
          <dependency><groupId>org.noise</groupId><artifactId>log</artifactId>
            <version>1.0</version></dependency>
        </dependencies>
        """,
    )

    classpath = MavenRepositoryResolver(repo).resolve(
        MavenCoordinates("com.acme", "gen", "1.0", classifier="shaded")
    )

    assert [path.name for path in classpath] == ["gen-1.0-shaded.jar", "core-2.0.jar"]


def _plugin(tmp_path: Path, **changes: object) -> PluginDefinition:
    java_home = tmp_path / "jdk"
    java_home.mkdir(exist_ok=True)
    values: dict = {
        "id": "gen",
        "group_id": "com.acme",
        "artifact_id": "gen",
        "version": "1.0",
        "main_class": "com.acme.Gen",
        "java_home": java_home,
    }
    values.update(changes)
    return PluginDefinition(**values)


def _install(
    repo: Path,
    group: str,
    artifact: str,
    version: str,
    *,
    pom_body: str = "",
    jar: bool = True,
    classifier: str | None = None,
    omit_version: bool = False,
) -> Path:
    directory = repo.joinpath(*group.split(".")) / artifact / version
    directory.mkdir(parents=True, exist_ok=True)
    identity = f"<artifactId>{artifact}</artifactId>"
    if not omit_version:
        identity = f"<groupId>{group}</groupId>{identity}<version>{version}</version>"
    (directory / f"{artifact}-{version}.pom").write_text(
        '<project xmlns="http://maven.apache.org/POM/4.0.0">'
        f"{identity}{pom_body}</project>",
        encoding="utf-8",
    )
    suffix = f"-{classifier}" if classifier else ""
    path = directory / f"{artifact}-{version}{suffix}.jar"
    if jar:
        path.write_bytes(b"PK")
    return path
