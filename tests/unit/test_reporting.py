from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from pathlib import Path

from astra_runner.application.reporting import ReportAggregator, summary_text, xml_safe
from astra_runner.models import ExecutionConfig, ExecutionResult, ExecutionStatus, ResolvedArtifact, RunSummary

DIGEST = "d" * 64


def _summary(tmp_path: Path, result: ExecutionResult | None, **config_overrides) -> RunSummary:
    config = ExecutionConfig(
        coordinate="example:echo",
        version_spec="1.0.0",
        reports_dir=tmp_path / "reports",
        workspace_dir=tmp_path / "ws",
        **config_overrides,
    )
    artifact = ResolvedArtifact(
        coordinate="example:echo",
        concrete_version="1.0.0",
        content_digest=DIGEST,
        local_path=tmp_path / "ws" / "echo.pyz",
    )
    summary = RunSummary(config=config, resolved_artifact=artifact, execution_result=result)
    return summary.model_copy(update={"summary_text": summary_text(summary)})


def test_generate_writes_every_report(tmp_path: Path) -> None:
    reports = tmp_path / "reports"
    result = ExecutionResult.success(exit_code=0)

    ReportAggregator().generate(_summary(tmp_path, result), result, reports)

    for name in ("run-summary.json", "junit.xml", "summary.html", "results.json", "stdout.log", "stderr.log"):
        assert (reports / name).is_file(), name
    assert json.loads((reports / "run-summary.json").read_text())["executionResult"]["status"] == "SUCCESS"
    assert json.loads((reports / "results.json").read_text())["status"] == "SUCCESS"
    assert DIGEST in (reports / "summary.html").read_text()


def test_junit_failure_lists_each_error_and_escapes(tmp_path: Path) -> None:
    result = ExecutionResult.failure(
        'bad <input> & "quotes"',
        exit_code=2,
        errors=["first <error>", "second & last"],
    )

    xml = ReportAggregator().render_junit(_summary(tmp_path, result), result)
    root = ET.fromstring(xml)
    failure = root.find("./testcase/failure")

    assert root.tag == "testsuite"
    assert root.get("name") == "example.echo"
    assert root.get("failures") == "1"
    assert failure is not None
    assert failure.get("message") == 'bad <input> & "quotes"'
    assert "first <error>" in (failure.text or "")
    assert "second & last" in (failure.text or "")


def test_junit_timeout_is_an_error_and_skipped_is_skipped(tmp_path: Path) -> None:
    aggregator = ReportAggregator()
    timeout = ExecutionResult(status=ExecutionStatus.TIMEOUT, exit_code=-1, message="timed out")
    skipped = ExecutionResult(status=ExecutionStatus.SKIPPED, message="not run")

    timeout_root = ET.fromstring(aggregator.render_junit(_summary(tmp_path, timeout), timeout))
    skipped_root = ET.fromstring(aggregator.render_junit(_summary(tmp_path, skipped), skipped))

    assert timeout_root.find("./testcase/error") is not None
    assert timeout_root.get("errors") == "1"
    assert skipped_root.find("./testcase/skipped") is not None
    assert skipped_root.find("./testcase/failure") is None


def test_html_escapes_task_controlled_text(tmp_path: Path) -> None:
    result = ExecutionResult.failure("<script>alert(1)</script>")
    summary = _summary(tmp_path, result, arguments={"name": "<b>x</b>"})

    html = ReportAggregator().render_html(summary, result)

    assert "<script>alert(1)</script>" not in html
    assert "&lt;script&gt;" in html
    assert "&lt;b&gt;x&lt;/b&gt;" in html


def test_write_failures_are_logged_not_raised(tmp_path: Path, caplog) -> None:
    blocker = tmp_path / "reports"
    blocker.write_text("not a directory")
    result = ExecutionResult.success(exit_code=0)

    ReportAggregator().generate(_summary(tmp_path, result), result, blocker)

    assert blocker.read_text() == "not a directory"
    assert any("write_failure" in record.getMessage() for record in caplog.records)


class _Opaque:
    pass


def test_unserializable_result_is_logged_and_other_reports_written(tmp_path: Path, caplog) -> None:
    reports = tmp_path / "reports"
    result = ExecutionResult.success(exit_code=0).model_copy(update={"metrics": {"rows": _Opaque()}})

    ReportAggregator().generate(_summary(tmp_path, result), result, reports)

    assert not (reports / "run-summary.json").exists()
    assert not (reports / "results.json").exists()
    for name in ("junit.xml", "summary.html", "stdout.log", "stderr.log"):
        assert (reports / name).is_file(), name
    failures = [record.getMessage() for record in caplog.records if "write_failure" in record.getMessage()]
    assert len(failures) == 2


def test_junit_drops_control_characters(tmp_path: Path) -> None:
    result = ExecutionResult.failure("\x1b[31mboom\x1b[0m", exit_code=1, errors=["line\x00one", "\x07bell"])

    xml = ReportAggregator().render_junit(_summary(tmp_path, result), result)
    failure = ET.fromstring(xml).find("./testcase/failure")

    assert failure is not None
    assert failure.get("message") == "[31mboom[0m"
    assert "lineone" in (failure.text or "")
    assert "bell" in (failure.text or "")
    assert xml_safe("tab\tnew\nline☃") == "tab\tnew\nline☃"
