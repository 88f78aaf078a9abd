"""Execution configuration and outcome records."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator

from astra_runner.models.base import RecordModel
from astra_runner.models.coordinates import Coordinate, VersionSpec, coerce_version_spec

DEFAULT_TIMEOUT_SECONDS = 300.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def duration_ms(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds() * 1000))


class ExecutionMode(str, Enum):
    """How a resolved artifact is run."""

    PROCESS = "process"
    PLUGIN = "plugin"


class ExecutionStatus(str, Enum):
    """Terminal outcome of one execution; always exactly one of these."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    SKIPPED = "SKIPPED"
    TIMEOUT = "TIMEOUT"


class ExecutionState(str, Enum):
    """Lifecycle of a single execution inside the executor."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def terminal(self) -> bool:
        return self in {ExecutionState.COMPLETED, ExecutionState.FAILED, ExecutionState.TIMED_OUT}


class ExecutionConfig(RecordModel):
    """Caller-supplied inputs for one run; immutable for its duration."""

    coordinate: Coordinate
    version_spec: VersionSpec
    mode: ExecutionMode = ExecutionMode.PROCESS
    arguments: dict[str, str] = Field(default_factory=dict)
    reports_dir: Path
    workspace_dir: Path
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    extra_runtime_args: list[str] = Field(default_factory=list)

    @field_validator("version_spec", mode="before")
    @classmethod
    def _parse_version_spec(cls, value: Any) -> Any:
        return coerce_version_spec(value)

    @field_validator("mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            normalized = value.strip().lower()
            # Names used by the JVM runner this format grew out of.
            return {"cli": "process", "spi": "plugin"}.get(normalized, normalized)
        return value


class ExecutionResult(RecordModel):
    """Outcome of executing one artifact, shared by both execution modes."""

    status: ExecutionStatus
    exit_code: int | None = None
    start_time: datetime = Field(default_factory=utc_now)
    end_time: datetime = Field(default_factory=utc_now)
    duration_ms: int = Field(default=0, ge=0)
    output_files: list[str] = Field(default_factory=list)
    metrics: dict[str, Any] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    message: str = ""

    @classmethod
    def success(cls, message: str = "Task completed successfully", **fields: Any) -> "ExecutionResult":
        return cls(status=ExecutionStatus.SUCCESS, message=message, **fields)

    @classmethod
    def failure(
        cls,
        message: str,
        *,
        exit_code: int | None = None,
        errors: list[str] | None = None,
        **fields: Any,
    ) -> "ExecutionResult":
        return cls(
            status=ExecutionStatus.FAILURE,
            message=message,
            exit_code=exit_code,
            errors=list(errors) if errors is not None else [message],
            **fields,
        )

    def with_timing(self, start: datetime, end: datetime) -> "ExecutionResult":
        return self.model_copy(
            update={"start_time": start, "end_time": end, "duration_ms": duration_ms(start, end)}
        )

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS


__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "ExecutionConfig",
    "ExecutionMode",
    "ExecutionResult",
    "ExecutionState",
    "ExecutionStatus",
    "duration_ms",
    "utc_now",
]
