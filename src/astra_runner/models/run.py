"""Canonical persisted record of one execution."""

from __future__ import annotations

import uuid
from datetime import datetime
from pathlib import Path

from pydantic import Field

from astra_runner.models.artifacts import ResolvedArtifact
from astra_runner.models.base import RecordModel
from astra_runner.models.execution import ExecutionConfig, ExecutionResult, ExecutionStatus, utc_now


def new_execution_id() -> str:
    return str(uuid.uuid4())


class RunSummary(RecordModel):
    """Built up stage by stage by the orchestrator; never changed once returned."""

    execution_id: str = Field(default_factory=new_execution_id)
    timestamp: datetime = Field(default_factory=utc_now)
    config: ExecutionConfig
    resolved_artifact: ResolvedArtifact | None = None
    execution_result: ExecutionResult | None = None
    output_files: list[str] = Field(default_factory=list)
    summary_text: str = ""

    @property
    def status(self) -> ExecutionStatus | None:
        return self.execution_result.status if self.execution_result is not None else None

    def exit_code(self) -> int:
        """Process exit code for CLI callers.

        ``0`` on success, the underlying process exit code when it is a real
        non-zero code, ``1`` for everything else (timeouts report ``-1``).
        """

        result = self.execution_result
        if result is None:
            return 1
        if result.status is ExecutionStatus.SUCCESS:
            return 0
        code = result.exit_code
        if code is not None and 0 < code <= 255:
            return code
        return 1

    @classmethod
    def load(cls, path: Path) -> "RunSummary":
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))


__all__ = ["RunSummary", "new_execution_id"]
