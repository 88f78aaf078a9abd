"""``astra-runner batch``: run a list of jobs from a JSON file."""

from __future__ import annotations

import json
import uuid
from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import TypeAdapter, ValidationError
from typer import BadParameter

from astra_runner.application.batch import BatchRunner
from astra_runner.infrastructure.observability.context import create_run_logger_context
from astra_runner.infrastructure.settings import Settings
from astra_runner.models.errors import ResolutionError
from astra_runner.models.jobs import BatchPolicy, BatchSummary, JobConfig, SchedulingMode

from .common import (
    DEBUG_OPTION,
    LOG_FILE_OPTION,
    LOG_FORMAT_OPTION,
    LOG_LEVEL_OPTION,
    QUIET_OPTION,
    RUNTIME_ARG_OPTION,
    STORE_ROOT_OPTION,
    TIMEOUT_OPTION,
    LogFormat,
    build_resolver,
    resolve_logging,
)

_JOBS = TypeAdapter(list[JobConfig])


class OutputFormat(str, Enum):
    human = "human"
    json = "json"


def load_jobs(path: Path) -> list[JobConfig]:
    """Parse a jobs file: a JSON list of ``{coordinate, version, args}`` objects."""

    try:
        jobs = _JOBS.validate_json(path.read_bytes())
    except (ValidationError, ResolutionError) as exc:
        raise BadParameter(f"Invalid jobs file {path}: {exc}", param_hint="jobs") from exc
    if not jobs:
        raise BadParameter(f"Jobs file {path} contains no jobs", param_hint="jobs")
    return jobs


def render_human(summary: BatchSummary) -> str:
    lines = []
    for index, result in enumerate(summary.results, start=1):
        mark = "OK  " if result.success else "FAIL"
        lines.append(
            f"[{mark}] {index}. {result.job.coordinate} ({result.job.version_spec}) "
            f"- {result.message} ({result.duration_ms} ms)"
        )
    lines.append(
        f"{summary.successful_jobs}/{summary.total_jobs} job(s) succeeded, "
        f"{summary.failed_jobs} failed in {summary.total_duration_ms} ms (workspace: {summary.workspace})"
    )
    return "\n".join(lines)


def batch_command(
    jobs_file: Path = typer.Option(
        ...,
        "--jobs",
        "-j",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
        help="JSON file with a list of jobs: `[{\"coordinate\": \"ns:name\", \"version\": \"1.+\", \"args\": [...]}]`.",
    ),
    parallel: bool = typer.Option(False, "--parallel", help="Run jobs concurrently on a bounded pool."),
    max_parallel: Optional[int] = typer.Option(
        None,
        "--max-parallel",
        min=1,
        help="Pool size for --parallel (default: 3).",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Resolve and download only; report what would run."),
    stop_on_failure: bool = typer.Option(
        False,
        "--stop-on-failure",
        help="Sequential mode only: skip the remaining jobs after the first failure.",
    ),
    output_format: OutputFormat = typer.Option(
        OutputFormat.human,
        "--format",
        case_sensitive=False,
        help="Summary output format.",
    ),
    workspace: Optional[Path] = typer.Option(
        None,
        "--workspace",
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
        help="Batch workspace (default: <workspace_dir>/batch-<id>).",
    ),
    runtime_arg: List[str] = RUNTIME_ARG_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
    store_root: Optional[Path] = STORE_ROOT_OPTION,
    log_file: Optional[Path] = LOG_FILE_OPTION,
    log_format: Optional[LogFormat] = LOG_FORMAT_OPTION,
    log_level: Optional[str] = LOG_LEVEL_OPTION,
    debug: bool = DEBUG_OPTION,
    quiet: bool = QUIET_OPTION,
) -> None:
    """Run every job in --jobs; exits 0 only when all of them succeed."""

    settings = Settings.load(store_root=store_root, timeout_seconds=timeout, max_concurrency=max_parallel)
    effective_format, effective_level = resolve_logging(
        log_format=log_format,
        log_level=log_level,
        debug=debug,
        quiet=quiet,
        settings=settings,
    )

    jobs = load_jobs(jobs_file)
    policy = BatchPolicy(
        mode=SchedulingMode.PARALLEL if parallel else SchedulingMode.SEQUENTIAL,
        max_concurrency=settings.max_concurrency,
        stop_on_failure=stop_on_failure,
        dry_run=dry_run,
        timeout_seconds=settings.timeout_seconds,
        runtime=settings.runtime,
        extra_runtime_args=list(runtime_arg),
    )
    batch_workspace = workspace or (Path(settings.workspace_dir) / f"batch-{uuid.uuid4().hex[:8]}")

    with create_run_logger_context(
        log_format=effective_format,
        log_level=effective_level,
        log_file=log_file,
    ) as ctx:
        runner = BatchRunner(
            build_resolver(settings, ctx.logger),
            stderr_limit=settings.stderr_limit,
            logger=ctx.logger,
        )
        summary = runner.run(jobs, policy, batch_workspace)

    if output_format is OutputFormat.json:
        typer.echo(json.dumps(summary.to_dict(), indent=2))
    else:
        typer.echo(render_human(summary))

    raise typer.Exit(code=0 if summary.succeeded else 1)


__all__ = ["batch_command", "load_jobs", "render_human"]
