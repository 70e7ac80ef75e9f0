import json
import warnings
from pathlib import Path

import pytest

from protocbuild.errors import MisconfiguredToolchainError
from protocbuild.observability import StructuredLogger
from protocbuild.toolchain import (
    ToolchainFallbackWarning,
    ToolchainIgnoredWarning,
    Toolchain,
    ToolchainRegistry,
    detect_java_home,
    jdk_toolchain,
    protobuf_toolchain,
    resolve_executable,
)


def test_protobuf_toolchain_requires_existing_executable(tmp_path: Path) -> None:
    with pytest.raises(MisconfiguredToolchainError) as excinfo:
        protobuf_toolchain({"protocExecutable": str(tmp_path / "missing")})
    assert excinfo.value.code == "E_MISCONFIGURED_TOOLCHAIN"

    with pytest.raises(MisconfiguredToolchainError):
        protobuf_toolchain({})


def test_provides_values_must_not_be_empty(tmp_path: Path) -> None:
    protoc = _executable(tmp_path / "protoc")

    with pytest.raises(MisconfiguredToolchainError, match="version"):
        protobuf_toolchain({"protocExecutable": str(protoc)}, {"version": ""})


def test_registry_matches_requirements(tmp_path: Path) -> None:
    old = protobuf_toolchain(
        {"protocExecutable": str(_executable(tmp_path / "old"))}, {"version": "3.0"}
    )
    new = protobuf_toolchain(
        {"protocExecutable": str(_executable(tmp_path / "new"))}, {"version": "3.25"}
    )
    registry = ToolchainRegistry([old, new])

    assert registry.find("protobuf") is old
    assert registry.find("protobuf", {"version": "3.25"}) is new
    assert registry.find("protobuf", {"version": "4"}) is None
    assert registry.find("jdk") is None


def test_registry_from_json(tmp_path: Path) -> None:
    protoc = _executable(tmp_path / "protoc")
    jdk = tmp_path / "jdk"
    jdk.mkdir()
    path = tmp_path / "toolchains.json"
    path.write_text(
        json.dumps(
            {
                "toolchains": [
                    {"type": "protobuf", "configuration": {"protocExecutable": str(protoc)}},
                    {"type": "jdk", "configuration": {"jdkHome": str(jdk)}},
                    {"type": "grpc", "configuration": {"protoc-gen-grpc": "/opt/grpc"}},
                ]
            }
        ),
        encoding="utf-8",
    )

    registry = ToolchainRegistry.from_json(path)

    assert registry.find("protobuf").find_tool("protoc") == str(protoc.absolute())
    assert registry.find("jdk").home == jdk
    assert registry.find("grpc").tools == {"protoc-gen-grpc": "/opt/grpc"}


def test_registry_from_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "toolchains.json"
    path.write_text("{", encoding="utf-8")

    with pytest.raises(MisconfiguredToolchainError) as excinfo:
        ToolchainRegistry.from_json(path)

    assert excinfo.value.hint is not None


def test_explicit_executable_wins_over_toolchain(tmp_path: Path) -> None:
    registry = ToolchainRegistry(
        [protobuf_toolchain({"protocExecutable": str(_executable(tmp_path / "protoc"))})]
    )
    logger = StructuredLogger()

    with pytest.warns(ToolchainIgnoredWarning):
        chosen = resolve_executable(
            registry=registry,
            kind="protobuf",
            tool="protoc",
            explicit="/custom/protoc",
            logger=logger,
        )

    assert chosen == "/custom/protoc"
    assert any("Toolchains are ignored" in message for message in logger.messages("warn"))


def test_toolchain_executable_used_when_not_explicit(tmp_path: Path) -> None:
    protoc = _executable(tmp_path / "protoc")
    registry = ToolchainRegistry([protobuf_toolchain({"protocExecutable": str(protoc)})])

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        chosen = resolve_executable(registry=registry, kind="protobuf", tool="protoc")

    assert chosen == str(protoc.absolute())


def test_falls_back_to_bare_name() -> None:
    logger = StructuredLogger()

    with pytest.warns(ToolchainFallbackWarning):
        chosen = resolve_executable(registry=None, kind="protobuf", tool="protoc", logger=logger)

    assert chosen == "protoc"
    assert logger.records_for(operation="resolve_toolchain", level="warn")


def test_explicit_without_toolchain_is_silent() -> None:
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        assert (
            resolve_executable(registry=None, kind="protobuf", tool="protoc", explicit="/p")
            == "/p"
        )


def test_java_home_prefers_jdk_toolchain(tmp_path: Path) -> None:
    jdk = tmp_path / "jdk"
    jdk.mkdir()
    registry = ToolchainRegistry([jdk_toolchain({"jdkHome": str(jdk)})])

    assert detect_java_home(registry=registry, environ={"JAVA_HOME": "/elsewhere"}) == jdk


def test_java_home_from_toolchain_java_tool(tmp_path: Path) -> None:
    java = _executable(tmp_path / "jre" / "bin" / "java")
    registry = ToolchainRegistry([Toolchain(kind="jdk", tools={"java": str(java)})])

    assert detect_java_home(registry=registry, environ={}) == tmp_path / "jre"


def test_java_home_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("protocbuild.toolchain.shutil.which", lambda _: None)

    assert detect_java_home(environ={"JAVA_HOME": str(tmp_path)}) == tmp_path
    assert detect_java_home(environ={}) is None


def test_java_home_from_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    java = _executable(tmp_path / "jdk" / "bin" / "java")
    monkeypatch.setattr("protocbuild.toolchain.shutil.which", lambda _: str(java))

    assert detect_java_home(environ={}) == (tmp_path / "jdk").resolve()


def _executable(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n", encoding="utf-8")
    path.chmod(0o755)
    return path
