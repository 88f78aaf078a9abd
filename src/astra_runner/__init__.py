"""Public API for :mod:`astra_runner`."""

from importlib import metadata
from pathlib import Path
from typing import TYPE_CHECKING
import tomllib

if TYPE_CHECKING:
    from astra_runner.application.batch import BatchRunner
    from astra_runner.application.orchestrator import Orchestrator
    from astra_runner.infrastructure.settings import Settings
    from astra_runner.models import (
        Coordinate,
        ExecutionConfig,
        ExecutionMode,
        ExecutionResult,
        ExecutionStatus,
        RunSummary,
    )


def _pyproject_version() -> str | None:
    pyproject = Path(__file__).resolve().parents[2] / "pyproject.toml"
    try:
        parsed = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        version = parsed.get("project", {}).get("version")
        if isinstance(version, str) and version:
            return version
    except (FileNotFoundError, OSError, tomllib.TOMLDecodeError):
        return None
    return None


def _resolve_version() -> str:
    # Prefer the local pyproject when running from a source checkout/editable install.
    version = _pyproject_version()
    if version is not None:
        return version

    try:
        return metadata.version("astra-runner")
    except metadata.PackageNotFoundError:  # pragma: no cover
        return "unknown"


__version__ = _resolve_version()

_EXPORTS = {
    "BatchRunner": ("astra_runner.application.batch", "BatchRunner"),
    "Orchestrator": ("astra_runner.application.orchestrator", "Orchestrator"),
    "Settings": ("astra_runner.infrastructure.settings", "Settings"),
    "Coordinate": ("astra_runner.models", "Coordinate"),
    "ExecutionConfig": ("astra_runner.models", "ExecutionConfig"),
    "ExecutionMode": ("astra_runner.models", "ExecutionMode"),
    "ExecutionResult": ("astra_runner.models", "ExecutionResult"),
    "ExecutionStatus": ("astra_runner.models", "ExecutionStatus"),
    "RunSummary": ("astra_runner.models", "RunSummary"),
}


def __getattr__(name: str):
    target = _EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = target
    module = __import__(module_name, fromlist=[attr_name])
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


__all__ = ["__version__", *sorted(_EXPORTS)]
