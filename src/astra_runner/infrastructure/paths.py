"""Workspace layout helpers.

- <workspace_dir>/<execution_id>/artifact-<id>/<file>.pyz   (single run)
- <batch workspace>/job-<index>-<coordinate>/              (batch job)
- <reports_dir>/{run-summary.json,junit.xml,summary.html,results.json,stdout.log,stderr.log}
"""

from __future__ import annotations

import uuid
from pathlib import Path

STDOUT_LOG = "stdout.log"
STDERR_LOG = "stderr.log"
RUN_SUMMARY_JSON = "run-summary.json"
JUNIT_XML = "junit.xml"
SUMMARY_HTML = "summary.html"
RESULTS_JSON = "results.json"

RESERVED_REPORT_FILES = frozenset(
    {STDOUT_LOG, STDERR_LOG, RUN_SUMMARY_JSON, JUNIT_XML, SUMMARY_HTML, RESULTS_JSON}
)


class UnsafePathError(ValueError):
    pass


def safe_join(base: Path, *parts: str) -> Path:
    """Join ``parts`` under ``base`` and refuse results that escape it."""

    base_resolved = base.resolve()
    candidate = (base_resolved.joinpath(*parts)).resolve()
    try:
        candidate.relative_to(base_resolved)
    except ValueError as exc:
        raise UnsafePathError(f"Unsafe path join: {candidate} is outside {base_resolved}") from exc
    return candidate


def safe_segment(value: str, *, fallback: str) -> str:
    cleaned = []
    for ch in value:
        if ch.isalnum() or ch in {"-", "_", "."}:
            cleaned.append(ch)
        else:
            cleaned.append("_")
    segment = "".join(cleaned).strip("_.")
    return segment or fallback


def execution_workspace(workspace_dir: Path, execution_id: str) -> Path:
    return safe_join(Path(workspace_dir), safe_segment(execution_id, fallback="run"))


def artifact_download_dir(workspace_root: Path) -> Path:
    """Fresh, not-yet-existing download directory under ``workspace_root``."""

    root = Path(workspace_root)
    while True:
        candidate = safe_join(root, f"artifact-{uuid.uuid4().hex[:12]}")
        if not candidate.exists():
            return candidate


def job_workspace(batch_workspace: Path, index: int, coordinate: str) -> Path:
    name = f"job-{index}-{safe_segment(coordinate, fallback='job')}"
    return safe_join(Path(batch_workspace), name)


__all__ = [
    "JUNIT_XML",
    "RESERVED_REPORT_FILES",
    "RESULTS_JSON",
    "RUN_SUMMARY_JSON",
    "STDERR_LOG",
    "STDOUT_LOG",
    "SUMMARY_HTML",
    "UnsafePathError",
    "artifact_download_dir",
    "execution_workspace",
    "job_workspace",
    "safe_join",
    "safe_segment",
]
