from __future__ import annotations

import sys
from pathlib import Path

import pytest

from astra_runner.infrastructure.isolation import IsolatedContext, read_manifest
from astra_runner.models import ExecutionErrorCode
from astra_runner.models.errors import ExecutionError


def _write(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def test_loads_task_and_evicts_plugin_modules(tmp_path: Path, make_plugin_archive) -> None:
    archive = _write(tmp_path / "hello.zip", make_plugin_archive())
    scratch = tmp_path / "scratch"

    with IsolatedContext(archive, scratch) as ctx:
        assert ctx.task is not None
        assert ctx.manifest is not None and ctx.manifest.name == "hello-world"
        assert "hello_plugin.task" in ctx.module_names
        assert "hello_plugin" not in sys.modules
        assert "hello_plugin.task" not in sys.modules
        assert str(scratch / "hello.zip") not in sys.path
        result = ctx.task.execute({"name": "Astra"}, tmp_path)

    assert result.message == "Greeted Astra"
    assert (tmp_path / "greeting.txt").read_text() == "Hello, Astra!"
    assert ctx.task is None
    assert ctx.module_names == []
    assert not scratch.exists()


def test_shadowed_host_module_is_restored(tmp_path: Path, monkeypatch, make_plugin_archive) -> None:
    sentinel = type(sys)("hello_plugin")
    monkeypatch.setitem(sys.modules, "hello_plugin", sentinel)
    archive = _write(tmp_path / "hello.zip", make_plugin_archive())

    with IsolatedContext(archive, tmp_path / "scratch") as ctx:
        assert ctx.task is not None
        assert sys.modules["hello_plugin"] is sentinel

    assert sys.modules["hello_plugin"] is sentinel


def test_first_conforming_entry_point_wins(tmp_path: Path, make_plugin_archive) -> None:
    archive = _write(
        tmp_path / "multi.zip",
        make_plugin_archive(
            entry_points=["multi_plugin:NotATask", "multi_plugin:RealTask"],
            files={
                "multi_plugin.py": "\n".join(
                    [
                        "class NotATask:",
                        "    pass",
                        "",
                        "class RealTask:",
                        "    def execute(self, arguments, output_dir):",
                        "        return {'status': 'SUCCESS', 'message': 'real'}",
                        "",
                    ]
                )
            },
        ),
    )

    with IsolatedContext(archive, tmp_path / "scratch") as ctx:
        assert type(ctx.task).__name__ == "RealTask"


def test_no_conforming_entry_point(tmp_path: Path, make_plugin_archive) -> None:
    archive = _write(
        tmp_path / "bad.zip",
        make_plugin_archive(entry_points=["bad_plugin:Thing"], files={"bad_plugin.py": "class Thing:\n    pass\n"}),
    )
    scratch = tmp_path / "scratch"

    with pytest.raises(ExecutionError) as excinfo:
        with IsolatedContext(archive, scratch):
            pass

    assert excinfo.value.code is ExecutionErrorCode.NO_IMPLEMENTATION_FOUND
    assert "bad_plugin" not in sys.modules
    assert not scratch.exists()


def test_archive_without_manifest_has_no_implementation(tmp_path: Path, make_archive) -> None:
    archive = _write(tmp_path / "plain.pyz", make_archive({"__main__.py": "print('hi')\n"}))

    with pytest.raises(ExecutionError) as excinfo:
        read_manifest(archive)
    assert excinfo.value.code is ExecutionErrorCode.NO_IMPLEMENTATION_FOUND


def test_corrupt_archive_is_isolation_failure(tmp_path: Path) -> None:
    archive = _write(tmp_path / "broken.zip", b"definitely not a zip file")

    with pytest.raises(ExecutionError) as excinfo:
        read_manifest(archive)
    assert excinfo.value.code is ExecutionErrorCode.ISOLATION_FAILURE


def test_invalid_manifest_is_isolation_failure(tmp_path: Path, make_archive) -> None:
    archive = _write(
        tmp_path / "manifest.zip",
        make_archive({"astra-plugin.toml": 'schema_version = 1\nname = "x"\nentry_points = ["no-colon"]\n'}),
    )

    with pytest.raises(ExecutionError) as excinfo:
        read_manifest(archive)
    assert excinfo.value.code is ExecutionErrorCode.ISOLATION_FAILURE


def test_entry_point_import_error_is_isolation_failure(tmp_path: Path, make_plugin_archive) -> None:
    archive = _write(
        tmp_path / "raises.zip",
        make_plugin_archive(
            entry_points=["raising_plugin:Task"],
            files={"raising_plugin.py": "raise RuntimeError('broken at import')\n"},
        ),
    )

    with pytest.raises(ExecutionError) as excinfo:
        with IsolatedContext(archive, tmp_path / "scratch"):
            pass
    assert excinfo.value.code is ExecutionErrorCode.ISOLATION_FAILURE
    assert "raising_plugin" not in sys.modules
