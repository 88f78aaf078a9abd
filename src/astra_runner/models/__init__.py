from astra_runner.models.artifacts import ResolvedArtifact
from astra_runner.models.coordinates import (
    Coordinate,
    ExactVersion,
    LatestRelease,
    RangePrefix,
    VersionSpec,
    parse_version_spec,
)
from astra_runner.models.errors import (
    ArtifactNotFound,
    AstraError,
    ExecutionError,
    ExecutionErrorCode,
    ReportingError,
    ResolutionError,
    ResolutionErrorCode,
)
from astra_runner.models.execution import (
    ExecutionConfig,
    ExecutionMode,
    ExecutionResult,
    ExecutionState,
    ExecutionStatus,
)
from astra_runner.models.jobs import BatchPolicy, BatchSummary, JobConfig, JobResult, SchedulingMode
from astra_runner.models.run import RunSummary

__all__ = [
    "ArtifactNotFound",
    "AstraError",
    "BatchPolicy",
    "BatchSummary",
    "Coordinate",
    "ExactVersion",
    "ExecutionConfig",
    "ExecutionError",
    "ExecutionErrorCode",
    "ExecutionMode",
    "ExecutionResult",
    "ExecutionState",
    "ExecutionStatus",
    "JobConfig",
    "JobResult",
    "LatestRelease",
    "RangePrefix",
    "ReportingError",
    "ResolutionError",
    "ResolutionErrorCode",
    "ResolvedArtifact",
    "RunSummary",
    "SchedulingMode",
    "VersionSpec",
    "parse_version_spec",
]
