"""Handler wiring for one CLI invocation.

The runner core only ever logs through ``astra_runner`` loggers; attaching
handlers is left to entrypoints, which use :func:`create_run_logger_context`.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

from astra_runner.infrastructure.observability.formatters import NdjsonFormatter, TextFormatter
from astra_runner.infrastructure.observability.logger import BASE_LOGGER_NAME, RunLogger
from astra_runner.models.events import RUNNER_NAMESPACE


@dataclass
class RunLogContext:
    logger: RunLogger
    _base_logger: logging.Logger
    _handlers: list[logging.Handler] = field(default_factory=list)
    _previous_level: int = logging.NOTSET
    _previous_propagate: bool = True

    def close(self) -> None:
        for h in list(self._handlers):
            self._base_logger.removeHandler(h)
            h.close()
        self._handlers.clear()
        self._base_logger.setLevel(self._previous_level)
        self._base_logger.propagate = self._previous_propagate

    def __enter__(self) -> "RunLogContext":
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> None:
        self.close()


def build_formatter(log_format: str) -> logging.Formatter:
    fmt = (log_format or "text").strip().lower()
    if fmt == "json":
        fmt = "ndjson"
    if fmt not in {"text", "ndjson"}:
        raise ValueError("log_format must be 'text' or 'ndjson' (or 'json')")
    return NdjsonFormatter() if fmt == "ndjson" else TextFormatter()


def create_run_logger_context(
    *,
    namespace: str = RUNNER_NAMESPACE,
    log_format: str = "text",
    log_level: int = logging.INFO,
    enable_console_logging: bool = True,
    log_file: Path | None = None,
) -> RunLogContext:
    formatter = build_formatter(log_format)
    handlers: list[logging.Handler] = []

    if enable_console_logging:
        h = logging.StreamHandler(sys.stderr)
        h.setLevel(log_level)
        h.setFormatter(formatter)
        handlers.append(h)

    if log_file is not None:
        # Keep INFO-level domain events (runner.run.completed) in the file even
        # when the console is quiet.
        file_level = min(log_level, logging.INFO)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(formatter)
        handlers.append(fh)

    base_logger = logging.getLogger(BASE_LOGGER_NAME)
    previous_level = base_logger.level
    previous_propagate = base_logger.propagate
    base_logger.setLevel(min((h.level for h in handlers), default=log_level))
    base_logger.propagate = False
    for h in handlers:
        base_logger.addHandler(h)

    logger = RunLogger(base_logger, namespace=namespace)
    return RunLogContext(
        logger=logger,
        _base_logger=base_logger,
        _handlers=handlers,
        _previous_level=previous_level,
        _previous_propagate=previous_propagate,
    )


__all__ = [
    "RunLogContext",
    "build_formatter",
    "create_run_logger_context",
]
