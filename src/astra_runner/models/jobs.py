"""Batch-scope records: job definitions, per-job outcomes, batch summary."""

from __future__ import annotations

import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from astra_runner.models.base import RecordModel
from astra_runner.models.coordinates import Coordinate, VersionSpec, coerce_version_spec
from astra_runner.models.execution import DEFAULT_TIMEOUT_SECONDS, duration_ms


class JobConfig(RecordModel):
    """One entry of a batch.

    Job files written for the JVM runner use ``groupArtifact``/``version``/``args``;
    both spellings are accepted.
    """

    coordinate: Coordinate = Field(validation_alias=AliasChoices("coordinate", "groupArtifact"))
    version_spec: VersionSpec = Field(validation_alias=AliasChoices("versionSpec", "version_spec", "version"))
    argv: list[str] = Field(default_factory=list, validation_alias=AliasChoices("argv", "args"))

    @field_validator("version_spec", mode="before")
    @classmethod
    def _parse_version_spec(cls, value: Any) -> Any:
        return coerce_version_spec(value)


class JobResult(RecordModel):
    job: JobConfig
    success: bool
    exit_code: int | None = None
    message: str = ""
    start: datetime
    end: datetime
    resolved_path: str | None = None

    @property
    def duration_ms(self) -> int:
        return duration_ms(self.start, self.end)

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["durationMs"] = self.duration_ms
        return payload


class SchedulingMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class BatchPolicy(RecordModel):
    mode: SchedulingMode = SchedulingMode.SEQUENTIAL
    max_concurrency: int = Field(default=3, ge=1)
    stop_on_failure: bool = False
    dry_run: bool = False
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    runtime: str = Field(default_factory=lambda: sys.executable)
    extra_runtime_args: list[str] = Field(default_factory=list)


class BatchSummary(RecordModel):
    start: datetime
    end: datetime
    total_duration_ms: int
    total_jobs: int
    successful_jobs: int
    failed_jobs: int
    workspace: Path
    results: list[JobResult] = Field(default_factory=list)

    @classmethod
    def from_results(
        cls,
        results: list[JobResult],
        *,
        start: datetime,
        end: datetime,
        workspace: Path,
    ) -> "BatchSummary":
        successful = sum(1 for result in results if result.success)
        return cls(
            start=start,
            end=end,
            total_duration_ms=duration_ms(start, end),
            total_jobs=len(results),
            successful_jobs=successful,
            failed_jobs=len(results) - successful,
            workspace=workspace,
            results=list(results),
        )

    @property
    def succeeded(self) -> bool:
        return self.failed_jobs == 0

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["results"] = [result.to_dict() for result in self.results]
        return payload


__all__ = [
    "BatchPolicy",
    "BatchSummary",
    "JobConfig",
    "JobResult",
    "SchedulingMode",
]
