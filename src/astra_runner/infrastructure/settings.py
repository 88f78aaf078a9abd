"""Settings for :mod:`astra_runner` (infrastructure).

Settings are defined in one place (this file) and loaded using `pydantic-settings`.

Supported sources (lowest → highest precedence):
1) `settings.toml` (current working directory)
2) `.env` (current working directory)
3) environment variables (prefix: `ASTRA_`)
4) explicit overrides (`Settings(...)` / CLI)

`settings.toml` is flat: keys map 1:1 to `Settings` fields.

Only entrypoints load settings. Core objects (resolver, executor, batch runner)
receive the values they need through their constructors.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource, TomlConfigSettingsSource

ENV_PREFIX = "ASTRA_"


def _coerce_log_level(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("log_level must be an int or a log level name")

    if isinstance(value, int):
        return value

    text = str(value).strip()
    if not text:
        return logging.INFO

    if text.isdigit():
        return int(text)

    mapped = logging.getLevelNamesMapping().get(text.upper())
    if isinstance(mapped, int):
        return mapped

    raise ValueError(f"Invalid log_level: {value!r}")


class Settings(BaseSettings):
    """Runtime settings for the runner CLI."""

    model_config = SettingsConfigDict(
        extra="ignore",
        env_prefix=ENV_PREFIX,
        env_file=".env",
    )

    # Artifact store / filesystem layout
    store_root: Path = Field(default=Path("artifacts"))
    workspace_dir: Path = Field(default=Path("workspace"))
    reports_dir: Path = Field(default=Path("reports"))

    # Execution
    runtime: str = Field(default_factory=lambda: sys.executable)
    timeout_seconds: float = Field(default=300.0, gt=0)
    max_concurrency: int = Field(default=3, ge=1)
    stderr_limit: int = Field(default=1000, ge=0)

    # Logging
    log_format: Literal["text", "ndjson"] = Field(default="text")
    log_level: int = Field(default=logging.INFO)

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: Any) -> int:
        return _coerce_log_level(value)

    @field_validator("log_format", mode="before")
    @classmethod
    def _validate_log_format(cls, value: Any) -> Any:
        if isinstance(value, str):
            normalized = value.strip().lower()
            return "ndjson" if normalized == "json" else normalized
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        toml_files = None
        if hasattr(init_settings, "init_kwargs"):
            toml_files = init_settings.init_kwargs.get("_astra_toml_files")  # type: ignore[attr-defined]

        if toml_files is None:
            toml_files = [Path.cwd() / "settings.toml"]

        toml_settings = TomlConfigSettingsSource(settings_cls, toml_file=toml_files)

        return (
            init_settings,
            env_settings,
            dotenv_settings,
            toml_settings,
            file_secret_settings,
        )

    @classmethod
    def load(cls, *, cwd: Path | None = None, **overrides: Any) -> "Settings":
        """Load settings relative to ``cwd`` (default: the process cwd).

        ``None`` overrides are dropped so unset CLI flags fall through to the
        file/env sources. Relative directories are anchored at ``cwd``.
        """

        cwd_path = (cwd or Path.cwd()).expanduser().resolve()
        overrides = {key: value for key, value in overrides.items() if value is not None}

        settings = cls(
            _astra_toml_files=[cwd_path / "settings.toml"],
            _env_file=cwd_path / ".env",
            **overrides,
        )

        anchored: dict[str, Path] = {}
        for key in ("store_root", "workspace_dir", "reports_dir"):
            value = getattr(settings, key)
            if value is not None and not value.is_absolute():
                anchored[key] = (cwd_path / value.expanduser()).resolve()
        return settings.model_copy(update=anchored) if anchored else settings


__all__ = ["ENV_PREFIX", "Settings"]
