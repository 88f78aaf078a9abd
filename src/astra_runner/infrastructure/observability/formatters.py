from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from astra_runner.models.events import DEFAULT_EVENT, RUNNER_NAMESPACE


def _rfc3339_utc(created: float) -> str:
    return (
        datetime.fromtimestamp(created, tz=timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _truncate(value: Any, *, max_len: int = 120) -> str:
    text = str(value)
    return text if len(text) <= max_len else (text[: max_len - 1] + "…")


class _StructuredFormatter(logging.Formatter):
    def _to_event_record(self, record: logging.LogRecord) -> dict[str, Any]:
        # Injected by RunLogger.process; plain stdlib records fall back to defaults.
        event_id = getattr(record, "event_id", None) or uuid.uuid4().hex
        run_id = getattr(record, "run_id", None) or ""
        event = getattr(record, "event", None) or DEFAULT_EVENT
        data = getattr(record, "data", None)

        out: dict[str, Any] = {
            "event_id": str(event_id),
            "run_id": str(run_id),
            "timestamp": _rfc3339_utc(record.created),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": str(event),
            "message": record.getMessage(),
        }

        if isinstance(data, Mapping) and data:
            out["data"] = dict(data)

        if record.exc_info:
            exc_type, exc, _tb = record.exc_info
            out["error"] = {
                "type": getattr(exc_type, "__name__", str(exc_type)),
                "message": "" if exc is None else str(exc),
                "stack_trace": self.formatException(record.exc_info),
            }

        return out


class NdjsonFormatter(_StructuredFormatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload = self._to_event_record(record)
        try:
            return json.dumps(payload, ensure_ascii=False, default=str, separators=(",", ":"))
        except Exception as e:  # pragma: no cover
            fallback = {
                "event_id": payload.get("event_id") or uuid.uuid4().hex,
                "run_id": payload.get("run_id") or "",
                "timestamp": _rfc3339_utc(record.created),
                "level": "error",
                "event": f"{RUNNER_NAMESPACE}.logging.serialization_failed",
                "message": f"Failed to serialize log record: {e}",
            }
            return json.dumps(fallback, ensure_ascii=False, default=str, separators=(",", ":"))


class TextFormatter(_StructuredFormatter):
    """Single-line human output: ``[ts] LEVEL event run=<id8>: message (k=v, ...)``."""

    max_fields = 6

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload = self._to_event_record(record)
        parts = [f"[{payload['timestamp']}]", payload["level"].upper(), payload.get("event") or ""]
        run_id = payload.get("run_id")
        if run_id:
            parts.append(f"run={str(run_id)[:8]}")
        line = " ".join(parts)

        msg = payload["message"]
        if msg and msg != payload.get("event"):
            line += f": {msg}"

        data = payload.get("data")
        if isinstance(data, Mapping) and data:
            keys = sorted(data, key=str)
            rendered = [f"{key}={_truncate(data[key])}" for key in keys[: self.max_fields]]
            if len(keys) > self.max_fields:
                rendered.append(f"+{len(keys) - self.max_fields} more")
            line += " (" + ", ".join(rendered) + ")"

        err = payload.get("error")
        if isinstance(err, Mapping) and err.get("stack_trace"):
            line += "\n" + str(err["stack_trace"]).rstrip("\n")

        return line


__all__ = [
    "NdjsonFormatter",
    "TextFormatter",
]
