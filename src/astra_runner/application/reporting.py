"""Multi-format execution reports.

Reporting is best-effort: a report that cannot be written is logged as a
``ReportingError`` and the remaining reports are still attempted. Nothing here
raises to the caller.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path

from jinja2 import Environment, PackageLoader, TemplateError, select_autoescape
from pydantic_core import PydanticSerializationError

from astra_runner.infrastructure.observability.logger import RunLogger, get_run_logger
from astra_runner.infrastructure.paths import (
    JUNIT_XML,
    RESULTS_JSON,
    RUN_SUMMARY_JSON,
    STDERR_LOG,
    STDOUT_LOG,
    SUMMARY_HTML,
)
from astra_runner.models.errors import ReportingError
from astra_runner.models.execution import ExecutionResult
from astra_runner.models.run import RunSummary


# Characters outside the XML 1.0 Char production.
_XML_INVALID_CHARS = re.compile("[^\x09\x0A\x0D\x20-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]")


def xml_safe(value: object) -> str:
    """Drop characters (ANSI escapes, NUL, ...) that make an XML document unparseable."""

    return _XML_INVALID_CHARS.sub("", "" if value is None else str(value))


def build_environment() -> Environment:
    env = Environment(
        loader=PackageLoader("astra_runner", "templates"),
        autoescape=select_autoescape(["html", "xml"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["xml_safe"] = xml_safe
    return env


def summary_text(summary: RunSummary) -> str:
    """One-line human summary stored on the ``RunSummary``."""

    config = summary.config
    artifact = summary.resolved_artifact
    result = summary.execution_result
    version = artifact.concrete_version if artifact is not None else str(config.version_spec)
    head = f"{config.coordinate}:{version} ({config.mode.value})"
    if result is None:
        return f"{head} not executed"
    text = f"{head} {result.status.value} in {result.duration_ms} ms"
    if result.exit_code is not None:
        text += f" (exit code {result.exit_code})"
    return text


class ReportAggregator:
    def __init__(self, *, logger: RunLogger | None = None, environment: Environment | None = None) -> None:
        self._logger = logger if logger is not None else get_run_logger()
        self._env = environment or build_environment()

    def generate(
        self,
        summary: RunSummary,
        result: ExecutionResult | None,
        reports_dir: Path,
        *,
        logger: RunLogger | None = None,
    ) -> None:
        log = logger if logger is not None else self._logger
        reports_dir = Path(reports_dir)
        written: list[str] = []
        failed: list[str] = []

        try:
            reports_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self._report_failure(log, ReportingError(f"Cannot create reports directory {reports_dir}: {exc}"))

        writers: list[tuple[str, Callable[[], str]]] = [
            (RUN_SUMMARY_JSON, summary.to_json),
            (JUNIT_XML, lambda: self.render_junit(summary, result)),
            (SUMMARY_HTML, lambda: self.render_html(summary, result)),
        ]
        if result is not None:
            writers.append((RESULTS_JSON, result.to_json))

        for name, render in writers:
            target = reports_dir / name
            try:
                target.write_text(render(), encoding="utf-8")
            except (OSError, TemplateError, PydanticSerializationError) as exc:
                failed.append(name)
                self._report_failure(log, ReportingError(f"Failed to write {target}: {exc}", report=name))
            else:
                written.append(name)

        for name in (STDOUT_LOG, STDERR_LOG):
            try:
                (reports_dir / name).touch(exist_ok=True)
            except OSError as exc:
                failed.append(name)
                self._report_failure(log, ReportingError(f"Failed to create {reports_dir / name}: {exc}", report=name))

        log.event(
            "reports.written",
            message=f"Wrote {len(written)} report(s) to {reports_dir}",
            reports_dir=str(reports_dir),
            written=written,
            failed=failed,
        )

    def render_junit(self, summary: RunSummary, result: ExecutionResult | None) -> str:
        coordinate = str(summary.config.coordinate)
        status = result.status.value if result is not None else "FAILURE"
        return self._env.get_template("junit.xml").render(
            suite_name=coordinate.replace(":", "."),
            case_name=coordinate,
            status=status,
            message=(result.message if result is not None else summary.summary_text) or status,
            errors=result.errors if result is not None else [summary.summary_text],
            failure_code=(result.metrics.get("failureCode") if result is not None else None),
            seconds=f"{(result.duration_ms if result is not None else 0) / 1000:.3f}",
            timestamp=summary.timestamp.isoformat(),
            execution_id=summary.execution_id,
            mode=summary.config.mode.value,
            version_spec=str(summary.config.version_spec),
            artifact=summary.resolved_artifact,
        )

    def render_html(self, summary: RunSummary, result: ExecutionResult | None) -> str:
        return self._env.get_template("summary.html").render(
            summary=summary,
            result=result,
            config=summary.config,
            artifact=summary.resolved_artifact,
            coordinate=str(summary.config.coordinate),
            status=result.status.value if result is not None else "UNKNOWN",
        )

    @staticmethod
    def _report_failure(log: RunLogger, error: ReportingError) -> None:
        log.warning("%s [%s]", error, error.code.value)


__all__ = ["ReportAggregator", "build_environment", "summary_text", "xml_safe"]
