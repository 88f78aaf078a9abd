"""Version ordering and selection.

Ordering compares dot-delimited segments left to right. Each segment's leading
digits compare numerically; a segment that carries a qualifier after its
digits (``0-rc1``, ``3a``) sorts below the bare number; on a shared prefix the
longer version wins (``1.2.1 > 1.2``).
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from astra_runner.models.coordinates import ExactVersion, LatestRelease, RangePrefix, VersionSpec
from astra_runner.models.errors import ResolutionError, ResolutionErrorCode

_SEGMENT = re.compile(r"^(\d*)(.*)$")

_PRERELEASE = re.compile(
    r"(?:^|[.\-_+])(?:snapshot|alpha|beta|rc|cr|milestone|m\d+|dev|pre|preview|ea)(?:\d+)?(?=$|[.\-_+])"
    r"|\d(?:a|b|rc)\d*$",
    re.IGNORECASE,
)

VersionKey = tuple[tuple[int, int, str], ...]


def version_key(version: str) -> VersionKey:
    key = []
    for segment in version.split("."):
        digits, qualifier = _SEGMENT.match(segment).groups()  # type: ignore[union-attr]
        number = int(digits) if digits else -1
        key.append((number, 0 if qualifier else 1, qualifier.lower()))
    return tuple(key)


def is_prerelease(version: str) -> bool:
    return bool(_PRERELEASE.search(version))


def matches_prefix(version: str, prefix: str) -> bool:
    """Segment-aware prefix match: ``1.`` matches ``1.0`` and ``1.2.3``, not ``10.0``."""

    stem = prefix.rstrip(".")
    if not stem:
        return True
    wanted = stem.split(".")
    return version.split(".")[: len(wanted)] == wanted


def pick_highest(candidates: Iterable[str], *, describe: str) -> str:
    """Return the maximum under :func:`version_key`.

    Raises ``not_found`` on an empty input and ``ambiguous_version`` when two
    distinct strings tie for the maximum (``1.0`` vs ``1.00``).
    """

    ranked = sorted(set(candidates), key=version_key)
    if not ranked:
        raise ResolutionError(f"No version matches {describe}", code=ResolutionErrorCode.NOT_FOUND)
    best = ranked[-1]
    ties = [version for version in ranked if version_key(version) == version_key(best)]
    if len(ties) > 1:
        raise ResolutionError(
            f"Versions {', '.join(sorted(ties))} are equally ranked for {describe}",
            code=ResolutionErrorCode.AMBIGUOUS_VERSION,
        )
    return best


def select_version(spec: VersionSpec, available: Iterable[str], *, describe: str = "request") -> str:
    """Pick the concrete version ``spec`` selects out of ``available``."""

    versions = list(available)
    if isinstance(spec, ExactVersion):
        if spec.version not in versions:
            raise ResolutionError(f"{describe}: version {spec.version} not found", code=ResolutionErrorCode.NOT_FOUND)
        return spec.version
    if isinstance(spec, LatestRelease):
        return pick_highest((v for v in versions if not is_prerelease(v)), describe=f"{describe} (latest release)")
    if isinstance(spec, RangePrefix):
        return pick_highest(
            (v for v in versions if matches_prefix(v, spec.prefix)),
            describe=f"{describe} (prefix {spec.prefix or '*'})",
        )
    raise TypeError(f"Unsupported version spec: {spec!r}")


__all__ = ["is_prerelease", "matches_prefix", "pick_highest", "select_version", "version_key"]
