"""Batch fan-out: many jobs, sequentially or on a bounded worker pool.

Each job resolves through the shared resolver into its own workspace
subdirectory and runs as an external process with its logs alongside the
download. A job's failure is recorded in its :class:`JobResult`; it never
aborts sibling jobs (sequential ``stop_on_failure`` aside).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from astra_runner.application.executor import DEFAULT_STDERR_LIMIT, build_command, truncate_message
from astra_runner.application.resolver import VersionResolver
from astra_runner.infrastructure.observability.logger import RunLogger, get_run_logger
from astra_runner.infrastructure.paths import STDERR_LOG, STDOUT_LOG, job_workspace
from astra_runner.infrastructure.process import SubprocessRunner
from astra_runner.models.execution import utc_now
from astra_runner.models.jobs import BatchPolicy, BatchSummary, JobConfig, JobResult, SchedulingMode


class BatchRunner:
    def __init__(
        self,
        resolver: VersionResolver,
        *,
        runner: SubprocessRunner | None = None,
        stderr_limit: int = DEFAULT_STDERR_LIMIT,
        logger: RunLogger | None = None,
    ) -> None:
        self.resolver = resolver
        self.runner = runner or SubprocessRunner()
        self.stderr_limit = stderr_limit
        self._logger = logger if logger is not None else get_run_logger()

    def run(self, jobs: Sequence[JobConfig], policy: BatchPolicy, workspace: Path) -> BatchSummary:
        workspace = Path(workspace)
        workspace.mkdir(parents=True, exist_ok=True)
        log = self._logger
        start = utc_now()

        log.event(
            "batch.started",
            message=f"Starting batch of {len(jobs)} job(s) ({policy.mode.value})",
            total_jobs=len(jobs),
            mode=policy.mode.value,
            max_concurrency=policy.max_concurrency,
            dry_run=policy.dry_run,
            workspace=str(workspace),
        )

        if policy.mode is SchedulingMode.PARALLEL and jobs:
            workers = min(len(jobs), policy.max_concurrency)
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="astra-batch") as pool:
                futures = [
                    pool.submit(self._run_job, index, job, policy, workspace, log)
                    for index, job in enumerate(jobs, start=1)
                ]
                results = [future.result() for future in futures]
        else:
            results = []
            for index, job in enumerate(jobs, start=1):
                result = self._run_job(index, job, policy, workspace, log)
                results.append(result)
                if not result.success and policy.stop_on_failure:
                    skipped = len(jobs) - index
                    if skipped:
                        log.warning("Stopping batch after failed job %d; %d job(s) not run", index, skipped)
                    break

        summary = BatchSummary.from_results(results, start=start, end=utc_now(), workspace=workspace)
        log.event(
            "batch.completed",
            message=f"Batch finished: {summary.successful_jobs}/{summary.total_jobs} succeeded",
            total_jobs=summary.total_jobs,
            successful_jobs=summary.successful_jobs,
            failed_jobs=summary.failed_jobs,
            total_duration_ms=summary.total_duration_ms,
        )
        return summary

    def _run_job(
        self,
        index: int,
        job: JobConfig,
        policy: BatchPolicy,
        workspace: Path,
        log: RunLogger,
    ) -> JobResult:
        start = utc_now()
        resolved_path: str | None = None
        try:
            job_dir = job_workspace(workspace, index, str(job.coordinate))
            artifact = self.resolver.resolve(job.coordinate, job.version_spec, job_dir, logger=log)
            resolved_path = str(artifact.local_path)

            argv = build_command(policy.runtime, artifact.local_path, {}, extra_runtime_args=policy.extra_runtime_args)
            argv.extend(job.argv)

            if policy.dry_run:
                success, exit_code = True, 0
                message = f"Dry run - would execute: {' '.join(argv)}"
            else:
                job_dir.mkdir(parents=True, exist_ok=True)
                stderr_path = job_dir / STDERR_LOG
                outcome = self.runner.run(
                    argv,
                    cwd=job_dir,
                    stdout_path=job_dir / STDOUT_LOG,
                    stderr_path=stderr_path,
                    timeout_seconds=policy.timeout_seconds,
                )
                exit_code = outcome.exit_code
                success = exit_code == 0 and not outcome.timed_out
                if outcome.timed_out:
                    message = f"Job timed out after {policy.timeout_seconds:g} seconds"
                elif success:
                    message = "Job completed successfully"
                else:
                    message = f"Job failed with exit code {exit_code}"
                    stderr_text = stderr_path.read_text(encoding="utf-8", errors="replace").strip()
                    if stderr_text:
                        message += f": {truncate_message(stderr_text, self.stderr_limit)}"
        except Exception as exc:
            log.warning("Job %d (%s) failed: %s", index, job.coordinate, exc, exc_info=True)
            success, exit_code = False, -1
            message = f"Execution failed: {exc}"

        result = JobResult(
            job=job,
            success=success,
            exit_code=exit_code,
            message=message,
            start=start,
            end=utc_now(),
            resolved_path=resolved_path,
        )
        log.event(
            "batch.job_completed",
            message=f"Job {index} ({job.coordinate}): {message}",
            level=logging.INFO if success else logging.WARNING,
            coordinate=str(job.coordinate),
            success=success,
            exit_code=exit_code,
            duration_ms=result.duration_ms,
        )
        return result


__all__ = ["BatchRunner"]
