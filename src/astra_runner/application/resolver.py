"""Turn ``(coordinate, version spec)`` into a downloaded, pinned artifact.

Resolution is a single attempt: a store transport failure surfaces
immediately as ``transport_error``. The version spec is validated before anything
touches the filesystem, so a malformed request leaves no directory behind.
"""

from __future__ import annotations

import hashlib
import shutil
from pathlib import Path

from pydantic import ValidationError

from astra_runner.application.cache import ArtifactCache
from astra_runner.application.versions import select_version
from astra_runner.infrastructure.observability.logger import RunLogger, get_run_logger
from astra_runner.infrastructure.paths import artifact_download_dir, safe_segment
from astra_runner.infrastructure.store import ArtifactStore, StoredArtifact
from astra_runner.models.artifacts import ResolvedArtifact
from astra_runner.models.coordinates import (
    Coordinate,
    ExactVersion,
    VersionSpec,
    coerce_version_spec,
    validate_concrete_version,
)
from astra_runner.models.errors import ArtifactNotFound, ResolutionError, ResolutionErrorCode

_DEFAULT_CHUNK_SIZE = 1024 * 1024


def _copy_with_digest(stream, destination: Path, *, chunk_size: int = _DEFAULT_CHUNK_SIZE) -> str:
    digest = hashlib.sha256()
    with destination.open("wb") as out:
        while True:
            chunk = stream.read(chunk_size)
            if not chunk:
                break
            out.write(chunk)
            digest.update(chunk)
    return digest.hexdigest()


class VersionResolver:
    def __init__(
        self,
        store: ArtifactStore,
        *,
        cache: ArtifactCache[ResolvedArtifact] | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._logger = logger if logger is not None else get_run_logger()

    def resolve(
        self,
        coordinate: Coordinate | str,
        version_spec: VersionSpec | str,
        workspace_root: Path,
        *,
        logger: RunLogger | None = None,
    ) -> ResolvedArtifact:
        """Pin ``version_spec`` to a concrete version and download it under ``workspace_root``.

        Raises :class:`ResolutionError`; nothing is created on disk for an invalid request.
        """

        log = logger if logger is not None else self._logger
        try:
            coord = coordinate if isinstance(coordinate, Coordinate) else Coordinate.parse(coordinate)
        except ValidationError as exc:
            raise ResolutionError(f"Invalid coordinate {coordinate!r}", code=ResolutionErrorCode.INVALID_SPEC) from exc
        spec = coerce_version_spec(version_spec)

        concrete = self._pick_version(coord, spec)

        if self._cache is None:
            return self._download(coord, concrete, Path(workspace_root), log)

        artifact, cached = self._cache.get_or_load(
            (str(coord), concrete),
            lambda: self._download(coord, concrete, Path(workspace_root), log),
        )
        if cached:
            self._log_resolved(log, artifact, cached=True)
        return artifact

    def _pick_version(self, coord: Coordinate, spec: VersionSpec) -> str:
        if isinstance(spec, ExactVersion):
            return validate_concrete_version(spec.version)

        try:
            available = self._store.list_versions(coord)
        except ArtifactNotFound as exc:
            raise ResolutionError(str(exc), code=ResolutionErrorCode.NOT_FOUND) from exc
        except OSError as exc:
            raise ResolutionError(
                f"Listing versions of {coord} failed: {exc}", code=ResolutionErrorCode.TRANSPORT_ERROR
            ) from exc

        concrete = select_version(spec, available, describe=str(coord))
        return validate_concrete_version(concrete)

    def _download(self, coord: Coordinate, version: str, workspace_root: Path, log: RunLogger) -> ResolvedArtifact:
        try:
            stored = self._store.resolve(coord, ExactVersion(version=version))
        except ArtifactNotFound as exc:
            raise ResolutionError(str(exc), code=ResolutionErrorCode.NOT_FOUND) from exc
        except OSError as exc:
            raise ResolutionError(
                f"Fetching {coord}:{version} failed: {exc}", code=ResolutionErrorCode.TRANSPORT_ERROR
            ) from exc

        with stored:
            target_dir = artifact_download_dir(workspace_root)
            target_dir.mkdir(parents=True, exist_ok=False)
            destination = target_dir / safe_segment(stored.file_name, fallback=f"{coord.name}-{version}.pyz")
            try:
                digest = _copy_with_digest(stored.stream, destination)
            except OSError as exc:
                shutil.rmtree(target_dir, ignore_errors=True)
                raise ResolutionError(
                    f"Downloading {coord}:{version} failed: {exc}", code=ResolutionErrorCode.TRANSPORT_ERROR
                ) from exc

        self._verify_digest(stored, digest, target_dir, coord, version)

        artifact = ResolvedArtifact(
            coordinate=coord,
            concrete_version=version,
            content_digest=digest,
            local_path=destination,
            declared_dependencies=list(stored.dependencies),
        )
        self._log_resolved(log, artifact, cached=False)
        return artifact

    def _verify_digest(
        self,
        stored: StoredArtifact,
        digest: str,
        target_dir: Path,
        coord: Coordinate,
        version: str,
    ) -> None:
        if stored.digest is None or stored.digest.lower() == digest:
            return
        shutil.rmtree(target_dir, ignore_errors=True)
        raise ResolutionError(
            f"Digest mismatch for {coord}:{version}: store declared {stored.digest}, downloaded {digest}",
            code=ResolutionErrorCode.TRANSPORT_ERROR,
        )

    @staticmethod
    def _log_resolved(log: RunLogger, artifact: ResolvedArtifact, *, cached: bool) -> None:
        payload = {
            "coordinate": str(artifact.coordinate),
            "version": artifact.concrete_version,
            "digest": artifact.content_digest,
            "path": str(artifact.local_path),
            "dependency_count": len(artifact.declared_dependencies),
            "cached": cached,
        }
        log.event(
            "artifact.resolved",
            message=f"Resolved {artifact.coordinate}:{artifact.concrete_version}",
            **payload,
        )


__all__ = ["VersionResolver"]
