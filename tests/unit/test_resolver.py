from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from astra_runner.application.cache import ArtifactCache
from astra_runner.application.resolver import VersionResolver
from astra_runner.infrastructure.store import FileSystemArtifactStore, StoredArtifact
from astra_runner.models import ExactVersion, ResolutionError, ResolutionErrorCode
from astra_runner.models.coordinates import SENTINEL_TOKENS, WILDCARD_CHARS


def test_exact_resolution_downloads_and_digests(resolver, published_echo, tmp_path: Path) -> None:
    workspace = tmp_path / "ws"

    artifact = resolver.resolve("example:echo", "1.0.0", workspace)

    assert artifact.concrete_version == "1.0.0"
    assert artifact.content_digest == hashlib.sha256(published_echo).hexdigest()
    assert artifact.local_path.is_file()
    assert artifact.local_path.read_bytes() == published_echo
    assert artifact.local_path.parent.parent == workspace.resolve()
    assert artifact.local_path.parent.name.startswith("artifact-")
    assert artifact.declared_dependencies == ["example:lib:2.1.0"]


def test_resolving_twice_yields_same_digest_in_fresh_directories(resolver, published_echo, tmp_path: Path) -> None:
    first = resolver.resolve("example:echo", ExactVersion(version="1.0.0"), tmp_path / "ws")
    second = resolver.resolve("example:echo", ExactVersion(version="1.0.0"), tmp_path / "ws")

    assert first.content_digest == second.content_digest
    assert first.local_path.parent != second.local_path.parent


def test_latest_release_and_prefix(publish, echo_archive, resolver, tmp_path: Path) -> None:
    for version in ("1.0.0", "1.2.0", "1.10.0-SNAPSHOT", "2.0.0rc1", "10.0.0-beta"):
        publish("example:echo", version, echo_archive)

    latest = resolver.resolve("example:echo", "latest.release", tmp_path / "a")
    prefixed = resolver.resolve("example:echo", "1.+", tmp_path / "b")

    assert latest.concrete_version == "1.2.0"
    assert prefixed.concrete_version == "1.10.0-SNAPSHOT"
    for artifact in (latest, prefixed):
        assert not any(ch in WILDCARD_CHARS for ch in artifact.concrete_version)
        assert artifact.concrete_version.lower() not in SENTINEL_TOKENS


def test_malformed_spec_creates_no_directories(resolver, tmp_path: Path) -> None:
    workspace = tmp_path / "ws"

    with pytest.raises(ResolutionError) as excinfo:
        resolver.resolve("example:echo", "1 .0", workspace)

    assert excinfo.value.code is ResolutionErrorCode.INVALID_SPEC
    assert not workspace.exists()


def test_unknown_coordinate_is_not_found(resolver, tmp_path: Path) -> None:
    with pytest.raises(ResolutionError) as excinfo:
        resolver.resolve("example:missing", "latest.release", tmp_path / "ws")
    assert excinfo.value.code is ResolutionErrorCode.NOT_FOUND


def test_unknown_exact_version_is_not_found(resolver, published_echo, tmp_path: Path) -> None:
    with pytest.raises(ResolutionError) as excinfo:
        resolver.resolve("example:echo", "9.9.9", tmp_path / "ws")
    assert excinfo.value.code is ResolutionErrorCode.NOT_FOUND
    assert not (tmp_path / "ws").exists()


def test_ambiguous_versions(publish, echo_archive, resolver, tmp_path: Path) -> None:
    publish("example:echo", "1.0", echo_archive)
    publish("example:echo", "1.00", echo_archive)

    with pytest.raises(ResolutionError) as excinfo:
        resolver.resolve("example:echo", "latest.release", tmp_path / "ws")
    assert excinfo.value.code is ResolutionErrorCode.AMBIGUOUS_VERSION


def test_digest_mismatch_is_transport_error(publish, echo_archive, resolver, tmp_path: Path) -> None:
    publish("example:echo", "1.0.0", echo_archive, digest="0" * 64)

    with pytest.raises(ResolutionError) as excinfo:
        resolver.resolve("example:echo", "1.0.0", tmp_path / "ws")

    assert excinfo.value.code is ResolutionErrorCode.TRANSPORT_ERROR
    assert list((tmp_path / "ws").glob("artifact-*")) == []


class _BrokenStream:
    def read(self, _size: int) -> bytes:
        raise ConnectionResetError("connection reset by peer")

    def close(self) -> None:
        pass


class _FlakyStore(FileSystemArtifactStore):
    calls = 0

    def resolve(self, coordinate, version_spec):
        type(self).calls += 1
        return StoredArtifact(version=version_spec.version, stream=_BrokenStream(), file_name="echo.pyz")


def test_transport_failure_is_not_retried(store_root: Path, tmp_path: Path) -> None:
    _FlakyStore.calls = 0
    resolver = VersionResolver(_FlakyStore(store_root))

    with pytest.raises(ResolutionError) as excinfo:
        resolver.resolve("example:echo", "1.0.0", tmp_path / "ws")

    assert excinfo.value.code is ResolutionErrorCode.TRANSPORT_ERROR
    assert _FlakyStore.calls == 1


def test_cache_reuses_single_download(store, published_echo, tmp_path: Path) -> None:
    cache: ArtifactCache = ArtifactCache()
    resolver = VersionResolver(store, cache=cache)

    first = resolver.resolve("example:echo", "1.0.0", tmp_path / "a")
    second = resolver.resolve("example:echo", "latest.release", tmp_path / "b")

    assert second.local_path == first.local_path
    assert ("example:echo", "1.0.0") in cache


def test_malformed_metadata_is_transport_error(publish, echo_archive, resolver, tmp_path: Path) -> None:
    archive = publish("example:echo", "1.0.0", echo_archive)
    (archive.parent / "metadata.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(ResolutionError) as excinfo:
        resolver.resolve("example:echo", "1.0.0", tmp_path / "ws")

    assert excinfo.value.code is ResolutionErrorCode.TRANSPORT_ERROR
    assert not (tmp_path / "ws").exists()


class _RelabellingStore(FileSystemArtifactStore):
    def resolve(self, coordinate, version_spec):
        stored = super().resolve(coordinate, version_spec)
        stored.version = "latest"
        return stored


def test_concrete_version_is_the_selected_version(store_root: Path, published_echo, tmp_path: Path) -> None:
    resolver = VersionResolver(_RelabellingStore(store_root))

    artifact = resolver.resolve("example:echo", "1.0.0", tmp_path / "ws")

    assert artifact.concrete_version == "1.0.0"
