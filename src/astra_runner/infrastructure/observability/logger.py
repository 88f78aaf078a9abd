from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any, TypeAlias

from pydantic import BaseModel, ValidationError

from astra_runner.models.events import (
    DEFAULT_EVENT,
    RUNNER_EVENT_SCHEMAS,
    RUNNER_NAMESPACE,
)

EventData: TypeAlias = Mapping[str, Any]

BASE_LOGGER_NAME = "astra_runner"


def normalize_dotpath(value: str | None) -> str:
    return "" if not value else value.strip().strip(".")


def qualify_event_name(event_name: str, namespace: str) -> str:
    """
    Fully qualify `event_name` under `namespace`.

    - If already under namespace, keep it
    - If it starts with the same root (e.g. "runner.") graft it under namespace
    - Else prefix with namespace
    """
    name = normalize_dotpath(event_name)
    ns = normalize_dotpath(namespace)

    if not ns:
        return name or "invalid_event"
    if not name:
        return f"{ns}.invalid_event"
    if name == ns or name.startswith(f"{ns}."):
        return name

    root = ns.split(".", 1)[0]
    if root and name.startswith(f"{root}."):
        return f"{ns}.{name[len(root) + 1:]}"

    return f"{ns}.{name}"


def _is_runner_event(full_event: str) -> bool:
    return full_event == RUNNER_NAMESPACE or full_event.startswith(f"{RUNNER_NAMESPACE}.")


def _validate_payload(full_event: str, payload: dict[str, Any]) -> dict[str, Any]:
    """
    Validate/normalize payload based on policy.

    - Strict: runner.* must be registered
    - Open:  other namespaces (validate only if registered)
    """
    schema: type[BaseModel] | None
    if _is_runner_event(full_event):
        if full_event not in RUNNER_EVENT_SCHEMAS:
            raise ValueError(f"Unknown runner event '{full_event}' (add to RUNNER_EVENT_SCHEMAS)")
        schema = RUNNER_EVENT_SCHEMAS[full_event]
    else:
        schema = RUNNER_EVENT_SCHEMAS.get(full_event)

    if schema is None:
        return payload

    try:
        model = schema.model_validate(payload, strict=True)
    except ValidationError as e:
        raise ValueError(f"Invalid payload for event '{full_event}': {e}") from e

    return model.model_dump(mode="python")


class RunLogger(logging.LoggerAdapter):
    """
    LoggerAdapter that:
    - stamps each record with run_id + event_id
    - adds a default event for plain log lines
    - provides .event() for domain events (Pydantic validation for strict runner events)
    """

    def __init__(
        self,
        logger: logging.Logger,
        *,
        namespace: str = RUNNER_NAMESPACE,
        run_id: str | None = None,
    ) -> None:
        self._namespace = normalize_dotpath(namespace)
        self._run_id = run_id or uuid.uuid4().hex
        super().__init__(logger, {"namespace": self._namespace, "run_id": self._run_id})

    @property
    def namespace(self) -> str:
        return str((self.extra or {}).get("namespace", ""))

    @property
    def run_id(self) -> str:
        return self._run_id

    def for_run(self, run_id: str) -> "RunLogger":
        return RunLogger(self.logger, namespace=self._namespace, run_id=run_id)

    def process(self, msg: Any, kwargs: dict[str, Any]) -> tuple[Any, dict[str, Any]]:
        caller_extra = kwargs.pop("extra", None)
        extra = dict(self.extra or {})

        if caller_extra is not None:
            if not isinstance(caller_extra, Mapping):
                raise TypeError("logging 'extra' must be a mapping")
            extra.update(caller_extra)

        # Stable run id (caller can't override).
        extra["run_id"] = self._run_id

        ns = normalize_dotpath(str(extra.get("namespace") or ""))
        if ns:
            extra["namespace"] = ns
        else:
            extra.pop("namespace", None)

        extra["event_id"] = str(extra.get("event_id") or uuid.uuid4().hex)
        extra.setdefault("event", qualify_event_name(DEFAULT_EVENT, ns) if ns else DEFAULT_EVENT)

        data = extra.get("data")
        if data is not None and not isinstance(data, Mapping):
            extra["data"] = {"value": data}

        kwargs["extra"] = extra
        return msg, kwargs

    def event(
        self,
        name: str,
        *,
        message: str | None = None,
        level: int = logging.INFO,
        data: EventData | None = None,
        exc: BaseException | None = None,
        **fields: Any,
    ) -> None:
        if not self.isEnabledFor(level):
            return

        ns = self.namespace
        full_name = qualify_event_name(name, ns) if ns else normalize_dotpath(name) or "invalid_event"

        payload: dict[str, Any] = {}
        if data:
            payload.update(dict(data))
        if fields:
            payload.update(fields)

        payload = _validate_payload(full_name, payload)

        extra: dict[str, Any] = {"event": full_name}
        if payload:
            extra["data"] = payload

        exc_info = (type(exc), exc, exc.__traceback__) if exc is not None else None
        self.log(level, message or full_name, extra=extra, exc_info=exc_info)


def get_run_logger(run_id: str | None = None) -> RunLogger:
    """RunLogger over the package logger; handlers are the caller's business."""

    return RunLogger(logging.getLogger(BASE_LOGGER_NAME), run_id=run_id)


__all__ = [
    "BASE_LOGGER_NAME",
    "RunLogger",
    "get_run_logger",
    "normalize_dotpath",
    "qualify_event_name",
]
