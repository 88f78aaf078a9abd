"""``astra-runner run``: resolve, execute and report one package."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from typer import BadParameter

from astra_runner.infrastructure.observability.context import create_run_logger_context
from astra_runner.infrastructure.settings import Settings
from astra_runner.models.coordinates import Coordinate, parse_version_spec
from astra_runner.models.errors import AstraError, ResolutionError
from astra_runner.models.execution import ExecutionConfig, ExecutionMode

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
    build_orchestrator,
    parse_key_values,
    resolve_logging,
)


def run_command(
    coordinate: str = typer.Argument(..., help="Package coordinate, `namespace:name`."),
    version: str = typer.Option(
        "latest.release",
        "--version",
        help="Version spec: exact (`1.2.0`), `latest.release`, or a prefix (`1.+`, `1.*`, `1.`).",
    ),
    mode: ExecutionMode = typer.Option(
        ExecutionMode.PROCESS,
        "--mode",
        case_sensitive=False,
        help="Run as an external process or as an in-process plugin.",
    ),
    arg: List[str] = typer.Option(
        [],
        "--arg",
        "-a",
        help="Task argument as key=value (repeatable); passed as `--key value`.",
    ),
    runtime_arg: List[str] = RUNTIME_ARG_OPTION,
    reports_dir: Optional[Path] = typer.Option(
        None,
        "--reports-dir",
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
        help="Directory for reports and task output (default: ./reports).",
    ),
    workspace_dir: Optional[Path] = typer.Option(
        None,
        "--workspace-dir",
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
        help="Directory for per-execution downloads (default: ./workspace).",
    ),
    timeout: Optional[float] = TIMEOUT_OPTION,
    store_root: Optional[Path] = STORE_ROOT_OPTION,
    log_file: Optional[Path] = LOG_FILE_OPTION,
    log_format: Optional[LogFormat] = LOG_FORMAT_OPTION,
    log_level: Optional[str] = LOG_LEVEL_OPTION,
    debug: bool = DEBUG_OPTION,
    quiet: bool = QUIET_OPTION,
) -> None:
    """Resolve COORDINATE at --version, run it and write reports.

    Exits 0 on success, with the task's exit code when it failed with one, and 1 otherwise.
    """

    settings = Settings.load(
        store_root=store_root,
        workspace_dir=workspace_dir,
        reports_dir=reports_dir,
        timeout_seconds=timeout,
    )
    effective_format, effective_level = resolve_logging(
        log_format=log_format,
        log_level=log_level,
        debug=debug,
        quiet=quiet,
        settings=settings,
    )

    try:
        spec = parse_version_spec(version)
    except ResolutionError as exc:
        raise BadParameter(str(exc), param_hint="version") from exc

    try:
        config = ExecutionConfig(
            coordinate=Coordinate.parse(coordinate),
            version_spec=spec,
            mode=mode,
            arguments=parse_key_values(arg, param_hint="arg"),
            reports_dir=settings.reports_dir,
            workspace_dir=settings.workspace_dir,
            timeout_seconds=settings.timeout_seconds,
            extra_runtime_args=list(runtime_arg),
        )
    except ValidationError as exc:
        raise BadParameter(str(exc), param_hint="coordinate") from exc

    with create_run_logger_context(
        log_format=effective_format,
        log_level=effective_level,
        log_file=log_file,
    ) as ctx:
        orchestrator = build_orchestrator(settings, ctx.logger)
        try:
            summary = orchestrator.execute(config)
        except AstraError as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(code=1) from exc

    typer.echo(summary.summary_text)
    raise typer.Exit(code=summary.exit_code())


__all__ = ["run_command"]
