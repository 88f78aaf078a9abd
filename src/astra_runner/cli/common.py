"""Shared helpers, options and service wiring for the runner CLI.

Command modules import from here; nothing in here imports a command module.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

import typer
from typer import BadParameter

from astra_runner.application.cache import ArtifactCache
from astra_runner.application.executor import PluginStrategy, ProcessStrategy, TaskExecutor
from astra_runner.application.orchestrator import Orchestrator
from astra_runner.application.reporting import ReportAggregator
from astra_runner.application.resolver import VersionResolver
from astra_runner.infrastructure.observability.logger import RunLogger
from astra_runner.infrastructure.settings import Settings
from astra_runner.infrastructure.store import FileSystemArtifactStore


class LogFormat(str, Enum):
    """Supported log output formats."""

    text = "text"
    ndjson = "ndjson"


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def resolve_log_level(log_level: Optional[str], default_level: int) -> int:
    """Resolve a string log level to a logging level constant."""
    if not log_level:
        return default_level

    mapping = logging.getLevelNamesMapping()
    resolved = mapping.get(str(log_level).upper())
    if isinstance(resolved, int):
        return resolved

    raise BadParameter(f"Invalid log level: {log_level}", param_hint="log_level")


def resolve_logging(
    *,
    log_format: Optional[LogFormat],
    log_level: Optional[str],
    debug: bool,
    quiet: bool,
    settings: Settings,
) -> tuple[str, int]:
    """Compute effective log format/level with explicit precedence.

    Precedence: --quiet > --debug > --log-level > settings.
    """
    effective_format = log_format.value if log_format else settings.log_format
    base_level = resolve_log_level(log_level, settings.log_level)

    if quiet:
        effective_level = logging.WARNING
    elif debug:
        effective_level = logging.DEBUG
    else:
        effective_level = base_level

    return effective_format, effective_level


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def parse_key_values(pairs: Iterable[str], *, param_hint: str) -> dict[str, str]:
    """``["name=Astra", "count=3"]`` → ``{"name": "Astra", "count": "3"}``; later keys win."""

    parsed: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        key = key.strip().lstrip("-")
        if not sep or not key:
            raise BadParameter(f"Expected key=value, got {pair!r}", param_hint=param_hint)
        parsed[key] = value
    return parsed


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_resolver(settings: Settings, logger: RunLogger) -> VersionResolver:
    store_root = Path(settings.store_root)
    if not store_root.is_dir():
        raise BadParameter(f"Artifact store not found: {store_root}", param_hint="store_root")
    return VersionResolver(FileSystemArtifactStore(store_root), cache=ArtifactCache(), logger=logger)


def build_orchestrator(settings: Settings, logger: RunLogger) -> Orchestrator:
    executor = TaskExecutor(
        [
            ProcessStrategy(runtime=settings.runtime, stderr_limit=settings.stderr_limit),
            PluginStrategy(),
        ],
        logger=logger,
    )
    return Orchestrator(
        build_resolver(settings, logger),
        executor,
        ReportAggregator(logger=logger),
        logger=logger,
    )


# ---------------------------------------------------------------------------
# Common reusable Typer options
# ---------------------------------------------------------------------------

STORE_ROOT_OPTION = typer.Option(
    None,
    "--store-root",
    file_okay=False,
    dir_okay=True,
    resolve_path=True,
    help="Root of the filesystem artifact store (or set ASTRA_STORE_ROOT / settings.toml).",
)

TIMEOUT_OPTION = typer.Option(
    None,
    "--timeout",
    min=0.001,
    help="Per-execution timeout in seconds (default: 300).",
)

RUNTIME_ARG_OPTION = typer.Option(
    [],
    "--runtime-arg",
    help="Argument for the runtime itself, placed before the artifact path (repeatable).",
)

LOG_FILE_OPTION = typer.Option(
    None,
    "--log-file",
    dir_okay=False,
    resolve_path=True,
    help="Also write runner logs to this file.",
)

LOG_FORMAT_OPTION = typer.Option(
    None,
    "--log-format",
    case_sensitive=False,
    help="Log output format.",
)

LOG_LEVEL_OPTION = typer.Option(
    None,
    "--log-level",
    case_sensitive=False,
    help="Log level (debug, info, warning, error, critical).",
)

DEBUG_OPTION = typer.Option(
    False,
    "--debug",
    help="Enable debug logging and verbose diagnostics.",
)

QUIET_OPTION = typer.Option(
    False,
    "--quiet",
    help="Reduce output to warnings and errors.",
)


__all__ = [
    "LogFormat",
    "build_orchestrator",
    "build_resolver",
    "parse_key_values",
    "resolve_logging",
    "DEBUG_OPTION",
    "LOG_FILE_OPTION",
    "LOG_FORMAT_OPTION",
    "LOG_LEVEL_OPTION",
    "QUIET_OPTION",
    "RUNTIME_ARG_OPTION",
    "STORE_ROOT_OPTION",
    "TIMEOUT_OPTION",
]
