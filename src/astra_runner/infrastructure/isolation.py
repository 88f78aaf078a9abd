"""Scoped loading of plugin archives.

An archive is imported straight from the zip (``zipimport``) with its path
temporarily prepended to ``sys.path``. ``sys.path`` and ``sys.modules`` are
process-global, so the whole import phase runs under ``_IMPORT_LOCK``; once the
task object exists the plugin's modules are moved out of ``sys.modules`` into
the context and any host modules they shadowed are put back.
"""

from __future__ import annotations

import importlib
import logging
import shutil
import sys
import threading
import tomllib
import zipfile
from pathlib import Path
from types import ModuleType
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from astra_runner.models.errors import ExecutionError, ExecutionErrorCode
from astra_runner.plugins import MANIFEST_NAME, Task

logger = logging.getLogger("astra_runner.isolation")

_IMPORT_LOCK = threading.RLock()


class PluginManifest(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    schema_version: Literal[1] = 1
    name: str = Field(min_length=1)
    entry_points: list[str] = Field(min_length=1)

    @field_validator("entry_points")
    @classmethod
    def _check_entry_points(cls, value: list[str]) -> list[str]:
        for entry in value:
            module, sep, attr = entry.partition(":")
            if not sep or not module or not attr:
                raise ValueError(f"entry point must be 'module:attr', got {entry!r}")
            if not all(part.isidentifier() for part in module.split(".")):
                raise ValueError(f"invalid module path in entry point {entry!r}")
            if not all(part.isidentifier() for part in attr.split(".")):
                raise ValueError(f"invalid attribute path in entry point {entry!r}")
        return value


def read_manifest(archive_path: Path) -> tuple[PluginManifest, frozenset[str]]:
    """Return the manifest and the archive's top-level importable names."""

    try:
        with zipfile.ZipFile(archive_path) as zf:
            names = zf.namelist()
            if MANIFEST_NAME not in names:
                raise ExecutionError(
                    f"{archive_path.name} has no {MANIFEST_NAME}; not a plugin artifact",
                    code=ExecutionErrorCode.NO_IMPLEMENTATION_FOUND,
                )
            raw = zf.read(MANIFEST_NAME).decode("utf-8")
    except (zipfile.BadZipFile, OSError, UnicodeDecodeError) as exc:
        raise ExecutionError(
            f"Cannot read plugin archive {archive_path}: {exc}",
            code=ExecutionErrorCode.ISOLATION_FAILURE,
        ) from exc

    try:
        manifest = PluginManifest.model_validate(tomllib.loads(raw))
    except (tomllib.TOMLDecodeError, ValidationError) as exc:
        raise ExecutionError(
            f"Invalid {MANIFEST_NAME} in {archive_path.name}: {exc}",
            code=ExecutionErrorCode.ISOLATION_FAILURE,
        ) from exc

    return manifest, _top_level_names(names)


def _top_level_names(names: list[str]) -> frozenset[str]:
    tops: set[str] = set()
    for name in names:
        head, sep, _rest = name.partition("/")
        if not sep:
            if not head.endswith(".py"):
                continue
            head = head[: -len(".py")]
        if head.isidentifier() and head != "__main__":
            tops.add(head)
    return frozenset(tops)


def _belongs_to(module_name: str, packages: frozenset[str]) -> bool:
    root = module_name.split(".", 1)[0]
    return root in packages


def _resolve_attr(module: ModuleType, attr_path: str) -> Any:
    obj: Any = module
    for part in attr_path.split("."):
        obj = getattr(obj, part)
    return obj


class IsolatedContext:
    """Load a plugin archive's task for the duration of a ``with`` block.

    ``task`` and ``manifest`` are available inside the block. The archive copy,
    the evicted modules and the import cache entry are released on exit no
    matter how the block ends.
    """

    def __init__(self, artifact_path: Path, scratch_dir: Path) -> None:
        self.artifact_path = Path(artifact_path)
        self.scratch_dir = Path(scratch_dir)
        self.manifest: PluginManifest | None = None
        self.task: Task | None = None
        self._modules: dict[str, ModuleType] = {}
        self._archive_copy: Path | None = None

    @property
    def module_names(self) -> list[str]:
        return sorted(self._modules)

    def __enter__(self) -> "IsolatedContext":
        try:
            self._load()
        except BaseException:
            self._release()
            raise
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> None:
        self._release()

    def _load(self) -> None:
        manifest, packages = read_manifest(self.artifact_path)
        self.manifest = manifest

        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        archive_copy = self.scratch_dir / self.artifact_path.name
        try:
            shutil.copyfile(self.artifact_path, archive_copy)
        except OSError as exc:
            raise ExecutionError(
                f"Cannot stage plugin archive in {self.scratch_dir}: {exc}",
                code=ExecutionErrorCode.ISOLATION_FAILURE,
            ) from exc
        self._archive_copy = archive_copy
        root = str(archive_copy)

        with _IMPORT_LOCK:
            stashed = {name: mod for name, mod in sys.modules.items() if _belongs_to(name, packages)}
            for name in stashed:
                del sys.modules[name]
            original_path = list(sys.path)
            sys.path.insert(0, root)
            importlib.invalidate_caches()
            try:
                self.task = self._instantiate(manifest)
            finally:
                sys.path[:] = original_path
                sys.path_importer_cache.pop(root, None)
                for name in [name for name in sys.modules if _belongs_to(name, packages)]:
                    self._modules[name] = sys.modules.pop(name)
                sys.modules.update(stashed)

        logger.debug(
            "Loaded plugin %s from %s (%d modules isolated)",
            manifest.name,
            self.artifact_path.name,
            len(self._modules),
        )

    def _instantiate(self, manifest: PluginManifest) -> Task:
        rejected: list[str] = []
        for entry in manifest.entry_points:
            module_name, _, attr_path = entry.partition(":")
            try:
                module = importlib.import_module(module_name)
                target = _resolve_attr(module, attr_path)
                candidate = target() if isinstance(target, type) else target
            except Exception as exc:
                raise ExecutionError(
                    f"Cannot load entry point {entry!r} from {self.artifact_path.name}: {exc}",
                    code=ExecutionErrorCode.ISOLATION_FAILURE,
                ) from exc

            if isinstance(candidate, Task):
                return candidate
            rejected.append(entry)

        raise ExecutionError(
            f"No entry point in {self.artifact_path.name} implements the task contract "
            f"(tried: {', '.join(rejected)})",
            code=ExecutionErrorCode.NO_IMPLEMENTATION_FOUND,
        )

    def _release(self) -> None:
        self.task = None
        self._modules.clear()
        if self._archive_copy is not None:
            sys.path_importer_cache.pop(str(self._archive_copy), None)
            self._archive_copy = None
        shutil.rmtree(self.scratch_dir, ignore_errors=True)


__all__ = ["IsolatedContext", "PluginManifest", "read_manifest"]
