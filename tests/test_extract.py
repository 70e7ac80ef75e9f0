import warnings
import zipfile
from pathlib import Path

import pytest

from protocbuild.extract import ArchiveSkippedWarning, make_proto_path
from protocbuild.observability import StructuredLogger
from protocbuild.paths import PathTruncator, hash_path


def test_extracts_definitions_into_hashed_directory(tmp_path: Path) -> None:
    jar = _jar(
        tmp_path / "repo" / "api-1.0.jar",
        {"acme/api.proto": "syntax = 'proto3';", "acme/Api.class": "bytes"},
    )
    staging = tmp_path / "staging"

    roots = make_proto_path(staging, [jar])

    root = staging / hash_path(jar.resolve())
    assert roots == frozenset({root})
    assert (root / "acme" / "api.proto").read_text(encoding="utf-8") == "syntax = 'proto3';"
    assert not (root / "acme" / "Api.class").exists()


def test_staging_is_idempotent_and_drops_stale_files(tmp_path: Path) -> None:
    jar = _jar(tmp_path / "api-1.0.jar", {"acme/api.proto": "v1"})
    staging = tmp_path / "staging"
    stale = staging / "leftover" / "old.proto"
    stale.parent.mkdir(parents=True)
    stale.write_text("old", encoding="utf-8")

    first = make_proto_path(staging, [jar])
    first_listing = _listing(staging)
    second = make_proto_path(staging, [jar])

    assert first == second
    assert _listing(staging) == first_listing
    assert not stale.exists()
    assert staging.is_dir()


def test_no_artifacts_leaves_staging_untouched(tmp_path: Path) -> None:
    staging = tmp_path / "staging"
    keep = staging / "keep.proto"
    keep.parent.mkdir(parents=True)
    keep.write_text("", encoding="utf-8")

    assert make_proto_path(staging, []) == frozenset()
    assert keep.exists()


def test_directory_artifact_is_used_in_place(tmp_path: Path) -> None:
    classes = tmp_path / "classes"
    (classes / "acme").mkdir(parents=True)
    (classes / "acme" / "shared.proto").write_text("", encoding="utf-8")
    empty = tmp_path / "empty-classes"
    empty.mkdir()

    roots = make_proto_path(tmp_path / "staging", [classes, empty])

    assert roots == frozenset({classes})


def test_xml_descriptors_are_ignored_silently(tmp_path: Path) -> None:
    pom = tmp_path / "api-1.0.pom.xml"
    pom.write_text("<project/>", encoding="utf-8")

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        roots = make_proto_path(tmp_path / "staging", [pom])

    assert roots == frozenset()


def test_corrupt_archive_is_skipped_with_warning(tmp_path: Path) -> None:
    broken = tmp_path / "broken.jar"
    broken.write_bytes(b"not a zip archive")
    good = _jar(tmp_path / "good.jar", {"a.proto": ""})
    logger = StructuredLogger()

    with pytest.warns(ArchiveSkippedWarning, match="broken.jar"):
        roots = make_proto_path(tmp_path / "staging", [broken, good], logger=logger)

    assert len(roots) == 1
    warn_records = logger.records_for(operation="extract_archive", level="warn")
    assert len(warn_records) == 1
    assert warn_records[0]["extra"] == {"archive": str(broken)}


def test_damaged_entry_is_skipped_and_partial_extraction_removed(tmp_path: Path) -> None:
    damaged = tmp_path / "damaged.jar"
    with zipfile.ZipFile(damaged, "w", compression=zipfile.ZIP_STORED) as bundle:
        bundle.writestr("a/first.proto", "message First {}")
        bundle.writestr("a/x.proto", "message Damaged {}")
    payload = damaged.read_bytes()
    offset = payload.index(b"message Damaged {}")
    damaged.write_bytes(payload[:offset] + b"M" + payload[offset + 1 :])
    good = _jar(tmp_path / "good.jar", {"b.proto": ""})
    staging = tmp_path / "staging"
    logger = StructuredLogger()

    with pytest.warns(ArchiveSkippedWarning, match="damaged.jar"):
        roots = make_proto_path(staging, [damaged, good], logger=logger)

    assert roots == frozenset({staging / hash_path(good.resolve())})
    assert not (staging / hash_path(damaged.resolve())).exists()
    assert len(logger.records_for(operation="extract_archive", level="warn")) == 1


def test_missing_artifact_is_skipped_with_warning(tmp_path: Path) -> None:
    with pytest.warns(ArchiveSkippedWarning, match="does not exist"):
        roots = make_proto_path(tmp_path / "staging", [tmp_path / "missing.jar"])

    assert roots == frozenset()


def test_entries_escaping_staging_are_skipped(tmp_path: Path) -> None:
    jar = _jar(tmp_path / "evil.jar", {"../escape.proto": "", "ok/fine.proto": ""})
    staging = tmp_path / "staging"

    with pytest.warns(ArchiveSkippedWarning, match="escapes"):
        roots = make_proto_path(staging, [jar])

    assert not (tmp_path / "escape.proto").exists()
    (root,) = roots
    assert (root / "ok" / "fine.proto").is_file()


def test_verbatim_truncation_mirrors_repository_layout(tmp_path: Path) -> None:
    repository = tmp_path / "repository"
    jar = _jar(repository / "com" / "acme" / "api" / "1.0" / "api-1.0.jar", {"a.proto": ""})
    staging = tmp_path / "staging"

    roots = make_proto_path(
        staging,
        [jar],
        truncator=PathTruncator(hash_paths=False, repository_root=repository.resolve()),
    )

    assert roots == frozenset({staging / "com" / "acme" / "api" / "1.0" / "api-1.0.jar"})


def _jar(path: Path, entries: dict[str, str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as bundle:
        for name, content in entries.items():
            bundle.writestr(name, content)
    return path


def _listing(root: Path) -> list[str]:
    return sorted(path.relative_to(root).as_posix() for path in root.rglob("*"))
