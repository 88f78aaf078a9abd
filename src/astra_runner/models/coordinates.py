"""Package coordinates and version selectors."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import Field, model_validator

from astra_runner.models.base import RecordModel
from astra_runner.models.errors import ResolutionError, ResolutionErrorCode

LATEST_RELEASE_ALIASES = frozenset({"latest.release", "latest", "release"})
SENTINEL_TOKENS = frozenset({*LATEST_RELEASE_ALIASES, "latest.integration"})
WILDCARD_CHARS = frozenset("*+")
RANGE_CHARS = frozenset("[](),")


class Coordinate(RecordModel):
    """``namespace:name`` identity of a published package."""

    namespace: str = Field(min_length=1)
    name: str = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            namespace, sep, name = data.strip().partition(":")
            if not sep or ":" in name:
                raise ValueError(f"coordinate must be in format 'namespace:name', got {data!r}")
            return {"namespace": namespace, "name": name}
        return data

    @model_validator(mode="after")
    def _no_separators(self) -> "Coordinate":
        for part in (self.namespace, self.name):
            if ":" in part or part != part.strip() or any(ch.isspace() for ch in part):
                raise ValueError(f"invalid coordinate segment {part!r}")
        return self

    @classmethod
    def parse(cls, value: str) -> "Coordinate":
        return cls.model_validate(value)

    def __str__(self) -> str:
        return f"{self.namespace}:{self.name}"


class ExactVersion(RecordModel):
    kind: Literal["exact"] = "exact"
    version: str

    def __str__(self) -> str:
        return self.version


class LatestRelease(RecordModel):
    kind: Literal["latest_release"] = "latest_release"

    def __str__(self) -> str:
        return "latest.release"


class RangePrefix(RecordModel):
    """Any version whose dot-delimited segments start with ``prefix``."""

    kind: Literal["range_prefix"] = "range_prefix"
    prefix: str

    def __str__(self) -> str:
        return f"{self.prefix}+"


VersionSpec = Annotated[
    Union[ExactVersion, LatestRelease, RangePrefix],
    Field(discriminator="kind"),
]


def _invalid(message: str) -> ResolutionError:
    return ResolutionError(message, code=ResolutionErrorCode.INVALID_SPEC)


def parse_version_spec(text: str | None) -> ExactVersion | LatestRelease | RangePrefix:
    """Parse the textual version selector used by callers and job files.

    ``latest.release`` selects the newest release, a trailing ``+``/``*``/``.``
    selects the newest version under a prefix, anything else is exact.
    """

    if text is None:
        raise _invalid("version spec is missing")
    raw = str(text)
    value = raw.strip()
    if not value:
        raise _invalid("version spec is empty")
    if any(ch.isspace() for ch in value):
        raise _invalid(f"version spec must not contain whitespace: {raw!r}")
    if any(ch in RANGE_CHARS for ch in value):
        raise _invalid(f"version ranges are not supported: {raw!r}")

    if value.lower() in LATEST_RELEASE_ALIASES:
        return LatestRelease()

    if value[-1] in WILDCARD_CHARS:
        prefix = value[:-1]
        if any(ch in WILDCARD_CHARS for ch in prefix):
            raise _invalid(f"only a single trailing wildcard is allowed: {raw!r}")
        return RangePrefix(prefix=prefix)

    if value.endswith("."):
        return RangePrefix(prefix=value)

    validate_concrete_version(value)
    return ExactVersion(version=value)


def validate_concrete_version(version: str) -> str:
    """Reject versions that still carry wildcard or sentinel tokens."""

    if not version or not version.strip():
        raise _invalid("version is empty")
    if any(ch in WILDCARD_CHARS or ch in RANGE_CHARS or ch.isspace() for ch in version):
        raise _invalid(f"version {version!r} is not concrete")
    if version.lower() in SENTINEL_TOKENS:
        raise _invalid(f"version {version!r} is a sentinel, not a concrete version")
    return version


def coerce_version_spec(value: Any) -> Any:
    """Accept the textual form wherever a ``VersionSpec`` field is declared."""

    if isinstance(value, str):
        return parse_version_spec(value)
    return value


__all__ = [
    "Coordinate",
    "ExactVersion",
    "LatestRelease",
    "RangePrefix",
    "VersionSpec",
    "coerce_version_spec",
    "parse_version_spec",
    "validate_concrete_version",
]
