"""Artifact store collaborator.

The resolver depends only on :class:`ArtifactStore`. A filesystem-backed store
is provided for local use and tests:

- <root>/<namespace>/<name>/<version>/<file>.pyz | <file>.zip
- <root>/<namespace>/<name>/<version>/<file>.sha256     (optional digest sidecar)
- <root>/<namespace>/<name>/<version>/metadata.json     (optional, {"dependencies": [...]})
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable

from astra_runner.infrastructure.paths import UnsafePathError, safe_join
from astra_runner.models.coordinates import Coordinate, ExactVersion, VersionSpec
from astra_runner.models.errors import ArtifactNotFound

ARTIFACT_SUFFIXES = (".pyz", ".zip")
METADATA_FILE = "metadata.json"
DIGEST_SUFFIX = ".sha256"


class MalformedStoreEntry(OSError):
    """A stored file exists but cannot be decoded; resolvers treat it as a transport failure."""


@dataclass(slots=True)
class StoredArtifact:
    """Open handle on one stored artifact; the caller closes ``stream``."""

    version: str
    stream: BinaryIO
    file_name: str
    digest: str | None = None
    dependencies: list[str] = field(default_factory=list)

    def close(self) -> None:
        self.stream.close()

    def __enter__(self) -> "StoredArtifact":
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> None:
        self.close()


@runtime_checkable
class ArtifactStore(Protocol):
    def resolve(self, coordinate: Coordinate, version_spec: VersionSpec) -> StoredArtifact: ...

    def list_versions(self, coordinate: Coordinate) -> list[str]: ...


class FileSystemArtifactStore:
    """Artifact store over a local directory tree."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser().resolve()

    def _coordinate_dir(self, coordinate: Coordinate) -> Path:
        try:
            return safe_join(self.root, coordinate.namespace, coordinate.name)
        except UnsafePathError as exc:
            raise ArtifactNotFound(f"{coordinate} is not a valid store path") from exc

    def list_versions(self, coordinate: Coordinate) -> list[str]:
        base = self._coordinate_dir(coordinate)
        if not base.is_dir():
            raise ArtifactNotFound(f"{coordinate} not found in {self.root}")
        return sorted(entry.name for entry in base.iterdir() if entry.is_dir() and _find_archive(entry))

    def resolve(self, coordinate: Coordinate, version_spec: VersionSpec) -> StoredArtifact:
        if not isinstance(version_spec, ExactVersion):
            raise TypeError("FileSystemArtifactStore only resolves exact versions")

        base = self._coordinate_dir(coordinate)
        try:
            version_dir = safe_join(base, version_spec.version)
        except UnsafePathError as exc:
            raise ArtifactNotFound(f"{coordinate}:{version_spec.version} is not a valid store path") from exc

        archive = _find_archive(version_dir) if version_dir.is_dir() else None
        if archive is None:
            raise ArtifactNotFound(f"{coordinate}:{version_spec.version} not found in {self.root}")

        digest = _read_digest(archive.with_name(archive.name + DIGEST_SUFFIX))
        if digest is None:
            digest = _read_digest(archive.with_suffix(DIGEST_SUFFIX))
        dependencies = _read_dependencies(version_dir / METADATA_FILE)

        return StoredArtifact(
            version=version_spec.version,
            stream=archive.open("rb"),
            file_name=archive.name,
            digest=digest,
            dependencies=dependencies,
        )


def _find_archive(version_dir: Path) -> Path | None:
    candidates = sorted(
        path for path in version_dir.iterdir() if path.is_file() and path.suffix.lower() in ARTIFACT_SUFFIXES
    )
    return candidates[0] if candidates else None


def _read_digest(path: Path) -> str | None:
    if not path.is_file():
        return None
    # sha256sum format: "<hex>  <file name>"
    try:
        text = path.read_text(encoding="utf-8").strip()
    except UnicodeDecodeError as exc:
        raise MalformedStoreEntry(f"Unreadable digest sidecar {path}: {exc}") from exc
    return text.split()[0].lower() if text else None


def _read_dependencies(path: Path) -> list[str]:
    if not path.is_file():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise MalformedStoreEntry(f"Malformed {path}: {exc}") from exc
    deps = data.get("dependencies", []) if isinstance(data, dict) else []
    if not isinstance(deps, list):
        raise MalformedStoreEntry(f"Malformed {path}: \"dependencies\" must be a list")
    return [str(dep) for dep in deps]


__all__ = [
    "ARTIFACT_SUFFIXES",
    "ArtifactStore",
    "FileSystemArtifactStore",
    "MalformedStoreEntry",
    "StoredArtifact",
]
