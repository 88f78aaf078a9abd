"""Runner error hierarchy."""

from __future__ import annotations

from enum import Enum


class ResolutionErrorCode(str, Enum):
    """Why a coordinate/version spec could not be pinned to an artifact."""

    NOT_FOUND = "not_found"
    AMBIGUOUS_VERSION = "ambiguous_version"
    TRANSPORT_ERROR = "transport_error"
    INVALID_SPEC = "invalid_spec"


class ExecutionErrorCode(str, Enum):
    """Categorization for execution failures surfaced to callers."""

    PROCESS_LAUNCH_FAILURE = "process_launch_failure"
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"
    NO_IMPLEMENTATION_FOUND = "no_implementation_found"
    ISOLATION_FAILURE = "isolation_failure"


class ReportingErrorCode(str, Enum):
    WRITE_FAILURE = "write_failure"


class AstraError(Exception):
    """Base class for runner-specific exceptions."""


class ResolutionError(AstraError):
    """Raised when a version spec cannot be resolved to a downloaded artifact."""

    def __init__(self, message: str, *, code: ResolutionErrorCode) -> None:
        super().__init__(message)
        self.code = code


class ExecutionError(AstraError):
    """Raised when an artifact cannot be executed at all."""

    def __init__(self, message: str, *, code: ExecutionErrorCode) -> None:
        super().__init__(message)
        self.code = code


class ReportingError(AstraError):
    """Raised (and logged, never propagated) when a report cannot be written."""

    def __init__(
        self,
        message: str,
        *,
        report: str | None = None,
        code: ReportingErrorCode = ReportingErrorCode.WRITE_FAILURE,
    ) -> None:
        super().__init__(message)
        self.report = report
        self.code = code


class ArtifactNotFound(AstraError):
    """Raised by an artifact store when a coordinate or version does not exist."""


__all__ = [
    "ArtifactNotFound",
    "AstraError",
    "ExecutionError",
    "ExecutionErrorCode",
    "ReportingError",
    "ReportingErrorCode",
    "ResolutionError",
    "ResolutionErrorCode",
]
