from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from astra_runner.application.executor import PluginStrategy, ProcessStrategy, TaskExecutor
from astra_runner.application.orchestrator import Orchestrator
from astra_runner.application.reporting import ReportAggregator
from astra_runner.application.resolver import VersionResolver
from astra_runner.models import ExecutionConfig


@pytest.fixture
def orchestrator(resolver: VersionResolver) -> Orchestrator:
    return Orchestrator(resolver, TaskExecutor([ProcessStrategy(), PluginStrategy()]), ReportAggregator())


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., ExecutionConfig]:
    def _make(coordinate: str = "example:echo", version_spec: str = "1.0.0", **fields) -> ExecutionConfig:
        fields.setdefault("reports_dir", tmp_path / "reports")
        fields.setdefault("workspace_dir", tmp_path / "workspace")
        return ExecutionConfig(coordinate=coordinate, version_spec=version_spec, **fields)

    return _make
