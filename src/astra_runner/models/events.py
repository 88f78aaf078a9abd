"""Event payload schemas and schema registry for runner logging.

Payload models are strict:
- ``extra="forbid"`` to prevent accidental schema drift
- runtime validation uses ``model_validate(..., strict=True)``
"""

from __future__ import annotations

from typing import Annotated, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

RUNNER_NAMESPACE = "runner"

DEFAULT_EVENT = "log"  # fallback event for plain log lines

PayloadModel: TypeAlias = type[BaseModel] | None

NonNegativeInt = Annotated[int, Field(ge=0)]
NonNegativeFloat = Annotated[float, Field(ge=0)]


class StrictPayloadV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: Literal[1] = 1


class RunStartedPayloadV1(StrictPayloadV1):
    execution_id: str
    coordinate: str
    version_spec: str
    mode: str


class ArtifactResolvedPayloadV1(StrictPayloadV1):
    coordinate: str
    version: str
    digest: str
    path: str
    dependency_count: NonNegativeInt
    cached: bool = False


class ExecutionStartedPayloadV1(StrictPayloadV1):
    mode: str
    artifact: str
    timeout_seconds: NonNegativeFloat


class ExecutionFinishedPayloadV1(StrictPayloadV1):
    mode: str
    status: str
    exit_code: int | None = None
    duration_ms: NonNegativeInt
    output_file_count: NonNegativeInt


class ReportsWrittenPayloadV1(StrictPayloadV1):
    reports_dir: str
    written: list[str]
    failed: list[str]


class RunCompletedPayloadV1(StrictPayloadV1):
    execution_id: str
    status: str
    exit_code: int | None = None
    duration_ms: NonNegativeInt


class RunFailedPayloadV1(StrictPayloadV1):
    execution_id: str
    error_type: str
    error_code: str | None = None
    error_message: str


class BatchStartedPayloadV1(StrictPayloadV1):
    total_jobs: NonNegativeInt
    mode: str
    max_concurrency: NonNegativeInt
    dry_run: bool
    workspace: str


class JobCompletedPayloadV1(StrictPayloadV1):
    coordinate: str
    success: bool
    exit_code: int | None = None
    duration_ms: NonNegativeInt


class BatchCompletedPayloadV1(StrictPayloadV1):
    total_jobs: NonNegativeInt
    successful_jobs: NonNegativeInt
    failed_jobs: NonNegativeInt
    total_duration_ms: NonNegativeInt


RUNNER_EVENT_SCHEMAS: dict[str, PayloadModel] = {
    "runner.run.started": RunStartedPayloadV1,
    "runner.run.completed": RunCompletedPayloadV1,
    "runner.run.failed": RunFailedPayloadV1,
    "runner.artifact.resolved": ArtifactResolvedPayloadV1,
    "runner.execution.started": ExecutionStartedPayloadV1,
    "runner.execution.finished": ExecutionFinishedPayloadV1,
    "runner.reports.written": ReportsWrittenPayloadV1,
    "runner.batch.started": BatchStartedPayloadV1,
    "runner.batch.job_completed": JobCompletedPayloadV1,
    "runner.batch.completed": BatchCompletedPayloadV1,
}


__all__ = [
    "DEFAULT_EVENT",
    "RUNNER_EVENT_SCHEMAS",
    "RUNNER_NAMESPACE",
]
