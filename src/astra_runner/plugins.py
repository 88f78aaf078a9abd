"""Capability contract for plugin-mode artifacts.

A plugin archive is a zip with an ``astra-plugin.toml`` at its root::

    schema_version = 1
    name = "hello-world"
    entry_points = ["hello_plugin.task:HelloWorldTask"]

Entry points are tried in order; the first one that yields an object with an
``execute(arguments, output_dir)`` method is used. ``execute`` returns an
:class:`~astra_runner.models.ExecutionResult` (or a mapping that validates
into one).

Plugin modules are evicted from ``sys.modules`` once loading finishes, so an
entry module must import everything it needs at import time.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from astra_runner.models.execution import ExecutionResult, ExecutionStatus

MANIFEST_NAME = "astra-plugin.toml"


@runtime_checkable
class Task(Protocol):
    def execute(self, arguments: Mapping[str, str], output_dir: Path) -> ExecutionResult | Mapping[str, Any]: ...


__all__ = ["MANIFEST_NAME", "ExecutionResult", "ExecutionStatus", "Task"]
