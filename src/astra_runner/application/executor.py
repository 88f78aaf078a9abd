"""Run a resolved artifact in process or plugin mode.

Both strategies produce an :class:`ExecutionResult` with timing, status and
the list of output files. Conditions that prevent execution from starting at
all (launch failure, no usable plugin) raise :class:`ExecutionError`; anything
the task itself does wrong is reported in the result.
"""

from __future__ import annotations

import sys
import threading
import traceback
import uuid
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError
from pydantic_core import to_jsonable_python

from astra_runner.infrastructure.isolation import IsolatedContext
from astra_runner.infrastructure.observability.logger import RunLogger, get_run_logger
from astra_runner.infrastructure.paths import RESERVED_REPORT_FILES, STDERR_LOG, STDOUT_LOG
from astra_runner.infrastructure.process import SubprocessRunner
from astra_runner.models.artifacts import ResolvedArtifact
from astra_runner.models.errors import ExecutionError, ExecutionErrorCode
from astra_runner.models.execution import (
    ExecutionConfig,
    ExecutionMode,
    ExecutionResult,
    ExecutionState,
    ExecutionStatus,
    utc_now,
)

DEFAULT_STDERR_LIMIT = 1000
TRUNCATION_SUFFIX = "... (truncated)"

StateListener = Callable[[ExecutionState], None]


def truncate_message(text: str, limit: int = DEFAULT_STDERR_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_SUFFIX


def discover_output_files(output_dir: Path) -> list[str]:
    """Files under ``output_dir`` (recursive) that are not runner-owned reports."""

    root = Path(output_dir)
    if not root.is_dir():
        return []
    found: list[str] = []
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        rel = path.relative_to(root)
        if len(rel.parts) == 1 and rel.name in RESERVED_REPORT_FILES:
            continue
        found.append(str(path))
    return found


def merge_output_files(output_dir: Path, *groups: Iterable[str]) -> list[str]:
    """Concatenate groups, anchoring relative entries at ``output_dir`` and dropping repeats."""

    seen: set[str] = set()
    merged: list[str] = []
    for group in groups:
        for entry in group:
            path = Path(entry)
            if not path.is_absolute():
                path = Path(output_dir) / path
            key = str(path.resolve())
            if key in seen:
                continue
            seen.add(key)
            merged.append(str(path))
    return merged


class ExecutionStrategy(Protocol):
    mode: ExecutionMode

    def run(
        self,
        artifact: ResolvedArtifact,
        config: ExecutionConfig,
        *,
        output_dir: Path,
        logger: RunLogger,
    ) -> ExecutionResult: ...


class ProcessStrategy:
    """Run the artifact as an external zipapp process."""

    mode = ExecutionMode.PROCESS

    def __init__(
        self,
        *,
        runner: SubprocessRunner | None = None,
        runtime: str | None = None,
        stderr_limit: int = DEFAULT_STDERR_LIMIT,
    ) -> None:
        self.runner = runner or SubprocessRunner()
        self.runtime = runtime or sys.executable
        self.stderr_limit = stderr_limit

    def build_command(self, artifact: ResolvedArtifact, config: ExecutionConfig) -> list[str]:
        return build_command(
            self.runtime,
            artifact.local_path,
            config.arguments,
            extra_runtime_args=config.extra_runtime_args,
        )

    def run(
        self,
        artifact: ResolvedArtifact,
        config: ExecutionConfig,
        *,
        output_dir: Path,
        logger: RunLogger,
    ) -> ExecutionResult:
        output_dir.mkdir(parents=True, exist_ok=True)
        stdout_path = output_dir / STDOUT_LOG
        stderr_path = output_dir / STDERR_LOG
        argv = self.build_command(artifact, config)

        logger.debug("Launching %s", " ".join(argv))
        try:
            outcome = self.runner.run(
                argv,
                cwd=output_dir,
                stdout_path=stdout_path,
                stderr_path=stderr_path,
                timeout_seconds=config.timeout_seconds,
            )
        except OSError as exc:
            raise ExecutionError(
                f"Failed to launch {argv[0]}: {exc}",
                code=ExecutionErrorCode.PROCESS_LAUNCH_FAILURE,
            ) from exc

        files = [str(stdout_path), str(stderr_path)]
        metrics: dict[str, Any] = {
            "command": argv,
            "durationSeconds": round(outcome.duration_seconds, 3),
        }

        if outcome.timed_out:
            message = f"Process timed out after {config.timeout_seconds:g} seconds"
            metrics["failureCode"] = ExecutionErrorCode.TIMEOUT.value
            return ExecutionResult(
                status=ExecutionStatus.TIMEOUT,
                exit_code=-1,
                message=message,
                errors=[message],
                output_files=files,
                metrics=metrics,
            )

        if outcome.exit_code == 0:
            return ExecutionResult.success(
                "Process completed successfully",
                exit_code=0,
                output_files=files,
                metrics=metrics,
            )

        stderr_text = _read_text(stderr_path).strip()
        message = (
            truncate_message(stderr_text, self.stderr_limit)
            if stderr_text
            else f"Process failed with exit code {outcome.exit_code}"
        )
        metrics["failureCode"] = ExecutionErrorCode.NON_ZERO_EXIT.value
        return ExecutionResult.failure(
            message,
            exit_code=outcome.exit_code,
            output_files=files,
            metrics=metrics,
        )


def build_command(
    runtime: str,
    artifact_path: Path,
    arguments: Mapping[str, str],
    *,
    extra_runtime_args: Iterable[str] = (),
) -> list[str]:
    """``[runtime, *extra_runtime_args, artifact, --k, v, ...]``.

    Runtime options must precede the artifact path; anything after it belongs
    to the artifact.
    """

    argv = [str(runtime), *[str(arg) for arg in extra_runtime_args], str(artifact_path)]
    for key, value in arguments.items():
        argv.extend((f"--{key}", str(value)))
    return argv


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return ""


class PluginStrategy:
    """Load the artifact's task in-process and run it against a deadline.

    A task still running at the deadline is abandoned, not stopped: its worker
    thread is a daemon and may keep running until it returns on its own.
    """

    mode = ExecutionMode.PLUGIN

    def run(
        self,
        artifact: ResolvedArtifact,
        config: ExecutionConfig,
        *,
        output_dir: Path,
        logger: RunLogger,
    ) -> ExecutionResult:
        output_dir.mkdir(parents=True, exist_ok=True)
        scratch = artifact.local_path.parent / f"plugin-{uuid.uuid4().hex[:8]}"

        with IsolatedContext(artifact.local_path, scratch) as ctx:
            assert ctx.task is not None and ctx.manifest is not None
            task = ctx.task
            plugin_name = ctx.manifest.name
            arguments = dict(config.arguments)
            outcome: dict[str, Any] = {}

            def _work() -> None:
                try:
                    outcome["value"] = task.execute(arguments, output_dir)
                except BaseException as exc:  # reported as the task's failure
                    outcome["error"] = exc
                    outcome["trace"] = traceback.format_exc()

            worker = threading.Thread(target=_work, name=f"astra-plugin-{plugin_name}", daemon=True)
            worker.start()
            worker.join(timeout=config.timeout_seconds)

            if worker.is_alive():
                message = f"Plugin {plugin_name} timed out after {config.timeout_seconds:g} seconds"
                logger.warning("%s; worker thread abandoned", message)
                return ExecutionResult(
                    status=ExecutionStatus.TIMEOUT,
                    exit_code=None,
                    message=message,
                    errors=[message],
                    metrics={"plugin": plugin_name, "failureCode": ExecutionErrorCode.TIMEOUT.value},
                )

        if "error" in outcome:
            exc = outcome["error"]
            message = f"Plugin {plugin_name} raised {type(exc).__name__}: {exc}"
            return ExecutionResult.failure(
                message,
                errors=[message, outcome["trace"]],
                metrics={"plugin": plugin_name},
            )

        return _coerce_plugin_result(outcome.get("value"), plugin_name)


def _coerce_plugin_result(value: Any, plugin_name: str) -> ExecutionResult:
    if isinstance(value, ExecutionResult):
        result = value
    elif isinstance(value, Mapping):
        try:
            result = ExecutionResult.model_validate(dict(value))
        except ValidationError as exc:
            return ExecutionResult.failure(
                f"Plugin {plugin_name} returned an invalid result: {exc.error_count()} validation error(s)",
                errors=[str(exc)],
                metrics={"plugin": plugin_name},
            )
    else:
        return ExecutionResult.failure(
            f"Plugin {plugin_name} returned unsupported result type {type(value).__name__}",
            metrics={"plugin": plugin_name},
        )
    # Reports serialize metrics as JSON.
    metrics = to_jsonable_python(result.metrics, fallback=str)
    return result.model_copy(update={"metrics": {**metrics, "plugin": plugin_name}})


_FINAL_STATE = {
    ExecutionStatus.SUCCESS: ExecutionState.COMPLETED,
    ExecutionStatus.TIMEOUT: ExecutionState.TIMED_OUT,
    ExecutionStatus.FAILURE: ExecutionState.FAILED,
    ExecutionStatus.SKIPPED: ExecutionState.COMPLETED,
}


class TaskExecutor:
    """Dispatch to the strategy selected by ``config.mode``."""

    def __init__(
        self,
        strategies: Iterable[ExecutionStrategy] | None = None,
        *,
        logger: RunLogger | None = None,
    ) -> None:
        chosen = list(strategies) if strategies is not None else [ProcessStrategy(), PluginStrategy()]
        self._strategies: dict[ExecutionMode, ExecutionStrategy] = {s.mode: s for s in chosen}
        self._logger = logger if logger is not None else get_run_logger()

    def strategy_for(self, mode: ExecutionMode) -> ExecutionStrategy:
        try:
            return self._strategies[mode]
        except KeyError:
            raise ExecutionError(
                f"No execution strategy registered for mode {mode.value!r}",
                code=ExecutionErrorCode.NO_IMPLEMENTATION_FOUND,
            ) from None

    def execute(
        self,
        artifact: ResolvedArtifact,
        config: ExecutionConfig,
        *,
        output_dir: Path,
        logger: RunLogger | None = None,
        on_state: StateListener | None = None,
    ) -> ExecutionResult:
        log = logger if logger is not None else self._logger
        notify = on_state or (lambda _state: None)
        output_dir = Path(output_dir)

        notify(ExecutionState.PENDING)
        strategy = self.strategy_for(config.mode)

        log.event(
            "execution.started",
            message=f"Executing {artifact.coordinate}:{artifact.concrete_version} ({config.mode.value})",
            mode=config.mode.value,
            artifact=str(artifact.local_path),
            timeout_seconds=float(config.timeout_seconds),
        )

        start = utc_now()
        notify(ExecutionState.RUNNING)
        try:
            result = strategy.run(artifact, config, output_dir=output_dir, logger=log)
        except BaseException:
            notify(ExecutionState.FAILED)
            raise
        end = utc_now()

        files = merge_output_files(output_dir, result.output_files, discover_output_files(output_dir))
        final_state = _FINAL_STATE[result.status]
        result = result.with_timing(start, end).model_copy(
            update={
                "output_files": files,
                "metrics": {**result.metrics, "mode": config.mode.value, "state": final_state.value},
            }
        )
        notify(final_state)

        log.event(
            "execution.finished",
            message=f"Execution finished with status {result.status.value}",
            mode=config.mode.value,
            status=result.status.value,
            exit_code=result.exit_code,
            duration_ms=result.duration_ms,
            output_file_count=len(result.output_files),
        )
        return result


__all__ = [
    "DEFAULT_STDERR_LIMIT",
    "ExecutionStrategy",
    "PluginStrategy",
    "ProcessStrategy",
    "TaskExecutor",
    "build_command",
    "discover_output_files",
    "merge_output_files",
    "truncate_message",
]
