"""Resolved artifact record."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator

from astra_runner.models.base import RecordModel
from astra_runner.models.coordinates import Coordinate, validate_concrete_version
from astra_runner.models.errors import ResolutionError


class ResolvedArtifact(RecordModel):
    """A coordinate pinned to a concrete version with downloaded content.

    Created by the resolver, read-only afterwards. ``local_path`` lives inside
    the run's workspace and shares its lifetime.
    """

    coordinate: Coordinate
    concrete_version: str
    content_digest: str = Field(pattern=r"^[0-9a-f]{64}$")
    local_path: Path
    declared_dependencies: list[str] = Field(default_factory=list)

    @field_validator("concrete_version")
    @classmethod
    def _concrete(cls, value: str) -> str:
        try:
            return validate_concrete_version(value)
        except ResolutionError as exc:
            raise ValueError(str(exc)) from exc

    @property
    def file_name(self) -> str:
        return self.local_path.name


__all__ = ["ResolvedArtifact"]
