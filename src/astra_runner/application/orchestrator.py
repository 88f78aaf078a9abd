from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from astra_runner.application.executor import TaskExecutor
from astra_runner.application.reporting import ReportAggregator, summary_text
from astra_runner.application.resolver import VersionResolver
from astra_runner.infrastructure.observability.logger import RunLogger, get_run_logger
from astra_runner.infrastructure.paths import execution_workspace
from astra_runner.models.execution import ExecutionConfig, ExecutionResult, utc_now
from astra_runner.models.run import RunSummary, new_execution_id


class Orchestrator:
    """High-level driver for a single run: resolve → execute → report."""

    def __init__(
        self,
        resolver: VersionResolver,
        executor: TaskExecutor,
        aggregator: ReportAggregator,
        *,
        logger: RunLogger | None = None,
    ) -> None:
        self.resolver = resolver
        self.executor = executor
        self.aggregator = aggregator
        self._logger = logger if logger is not None else get_run_logger()

    def execute(self, config: ExecutionConfig) -> RunSummary:
        """Run ``config`` end to end and return the persisted summary.

        Reports are written on every path. Resolution and execution errors are
        re-raised after a synthetic ``FAILURE`` summary has been reported.
        """

        execution_id = new_execution_id()
        log = self._logger.for_run(execution_id)
        summary = RunSummary(execution_id=execution_id, config=config)
        reports_dir = Path(config.reports_dir)

        log.event(
            "run.started",
            message=f"Starting {config.coordinate} ({config.version_spec}) in {config.mode.value} mode",
            execution_id=execution_id,
            coordinate=str(config.coordinate),
            version_spec=str(config.version_spec),
            mode=config.mode.value,
        )

        try:
            workspace = execution_workspace(Path(config.workspace_dir), execution_id)
            artifact = self.resolver.resolve(config.coordinate, config.version_spec, workspace, logger=log)
            summary = summary.model_copy(update={"resolved_artifact": artifact})

            reports_dir.mkdir(parents=True, exist_ok=True)
            result = self.executor.execute(artifact, config, output_dir=reports_dir, logger=log)
        except Exception as exc:
            self._report_failure(summary, exc, reports_dir, log)
            raise

        summary = summary.model_copy(
            update={"execution_result": result, "output_files": list(result.output_files)}
        )
        summary = summary.model_copy(update={"summary_text": summary_text(summary)})
        self.aggregator.generate(summary, result, reports_dir, logger=log)

        log.event(
            "run.completed",
            message=summary.summary_text,
            execution_id=execution_id,
            status=result.status.value,
            exit_code=result.exit_code,
            duration_ms=result.duration_ms,
        )
        return summary

    def _report_failure(self, summary: RunSummary, exc: Exception, reports_dir: Path, log: RunLogger) -> None:
        message = f"Execution failed: {exc}"
        failure = ExecutionResult.failure(message).with_timing(summary.timestamp, utc_now())
        failed = summary.model_copy(update={"execution_result": failure, "summary_text": message})

        code = getattr(exc, "code", None)
        log.event(
            "run.failed",
            message=message,
            level=logging.ERROR,
            exc=exc,
            execution_id=summary.execution_id,
            error_type=type(exc).__name__,
            error_code=code.value if isinstance(code, Enum) else None,
            error_message=str(exc),
        )
        self.aggregator.generate(failed, failure, reports_dir, logger=log)


__all__ = ["Orchestrator"]
