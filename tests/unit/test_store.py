from __future__ import annotations

import hashlib

import pytest

from astra_runner.infrastructure.store import ArtifactStore, FileSystemArtifactStore, MalformedStoreEntry
from astra_runner.models import ArtifactNotFound, Coordinate, ExactVersion, LatestRelease

ECHO = Coordinate.parse("example:echo")


def test_filesystem_store_satisfies_protocol(store) -> None:
    assert isinstance(store, ArtifactStore)


def test_list_versions_only_counts_directories_with_archives(store, store_root, publish, echo_archive) -> None:
    publish("example:echo", "1.0.0", echo_archive)
    publish("example:echo", "2.0.0", echo_archive)
    (store_root / "example" / "echo" / "3.0.0").mkdir()

    assert store.list_versions(ECHO) == ["1.0.0", "2.0.0"]


def test_resolve_reads_sidecar_and_metadata(store, publish, echo_archive) -> None:
    publish("example:echo", "1.0.0", echo_archive, dependencies=["example:lib:2.1.0"])

    with store.resolve(ECHO, ExactVersion(version="1.0.0")) as stored:
        assert stored.stream.read() == echo_archive
        assert stored.file_name == "echo-1.0.0.pyz"
        assert stored.digest == hashlib.sha256(echo_archive).hexdigest()
        assert stored.dependencies == ["example:lib:2.1.0"]
    assert stored.stream.closed


def test_digest_sidecar_is_optional(store, publish, echo_archive) -> None:
    publish("example:echo", "1.0.0", echo_archive, write_digest=False)

    with store.resolve(ECHO, ExactVersion(version="1.0.0")) as stored:
        assert stored.digest is None
        assert stored.dependencies == []


def test_missing_coordinate_and_version(store, publish, echo_archive) -> None:
    publish("example:echo", "1.0.0", echo_archive)

    with pytest.raises(ArtifactNotFound):
        store.list_versions(Coordinate.parse("example:other"))
    with pytest.raises(ArtifactNotFound):
        store.resolve(ECHO, ExactVersion(version="9.9.9"))
    with pytest.raises(ArtifactNotFound):
        store.resolve(ECHO, ExactVersion(version=".."))


def test_only_exact_versions_are_resolved(store) -> None:
    with pytest.raises(TypeError):
        store.resolve(ECHO, LatestRelease())


def test_root_is_resolved(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    assert FileSystemArtifactStore("store").root == tmp_path.resolve() / "store"


def test_malformed_metadata_is_an_os_error(store, publish, echo_archive) -> None:
    archive = publish("example:echo", "1.0.0", echo_archive)
    (archive.parent / "metadata.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(MalformedStoreEntry, match="metadata.json"):
        store.resolve(ECHO, ExactVersion(version="1.0.0"))
    assert issubclass(MalformedStoreEntry, OSError)


def test_undecodable_digest_sidecar_is_an_os_error(store, publish, echo_archive) -> None:
    archive = publish("example:echo", "1.0.0", echo_archive)
    archive.with_name(archive.name + ".sha256").write_bytes(b"\xff\xfe\x00bad")

    with pytest.raises(MalformedStoreEntry, match="digest sidecar"):
        store.resolve(ECHO, ExactVersion(version="1.0.0"))
