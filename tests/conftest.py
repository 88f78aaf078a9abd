from __future__ import annotations

import hashlib
import io
import json
import zipfile
from collections.abc import Callable, Mapping
from pathlib import Path

import pytest

from astra_runner.application.resolver import VersionResolver
from astra_runner.infrastructure.store import FileSystemArtifactStore

ECHO_MAIN = """
import argparse
import pathlib
import sys
import time

parser = argparse.ArgumentParser()
parser.add_argument("--name", default="World")
parser.add_argument("--greeting", default="Hello")
parser.add_argument("--sleep", type=float, default=0.0)
parser.add_argument("--exit", type=int, default=0)
parser.add_argument("--stderr", default="")
parser.add_argument("--write", default="")
args, _unknown = parser.parse_known_args()

if args.sleep:
    time.sleep(args.sleep)

print(f"{args.greeting}, {args.name}!", flush=True)
if args.write:
    target = pathlib.Path(args.write)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(f"{args.greeting}, {args.name}!", encoding="utf-8")
if args.stderr:
    print(args.stderr, file=sys.stderr, flush=True)
sys.exit(args.exit)
"""

HELLO_TASK = """
import time
from pathlib import Path

from astra_runner.plugins import ExecutionResult


class HelloWorldTask:
    def execute(self, arguments, output_dir):
        name = arguments.get("name", "World")
        greeting = arguments.get("greeting", "Hello")
        if arguments.get("sleep"):
            time.sleep(float(arguments["sleep"]))
        if arguments.get("fail"):
            raise RuntimeError(arguments["fail"])
        target = Path(output_dir) / "greeting.txt"
        target.write_text(f"{greeting}, {name}!", encoding="utf-8")
        files = [str(target)]
        if arguments.get("createExtra"):
            extra = Path(output_dir) / "extra" / "notes.txt"
            extra.parent.mkdir(parents=True, exist_ok=True)
            extra.write_text("extra", encoding="utf-8")
        return ExecutionResult.success(f"Greeted {name}", output_files=files)
"""


def build_archive(files: Mapping[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, text in files.items():
            zf.writestr(name, text)
    return buffer.getvalue()


def build_plugin_archive(
    *,
    name: str = "hello-world",
    entry_points: list[str] | None = None,
    files: Mapping[str, str] | None = None,
) -> bytes:
    entries = entry_points if entry_points is not None else ["hello_plugin.task:HelloWorldTask"]
    manifest = "\n".join(
        [
            "schema_version = 1",
            f'name = "{name}"',
            "entry_points = [" + ", ".join(f'"{entry}"' for entry in entries) + "]",
            "",
        ]
    )
    contents = {"astra-plugin.toml": manifest}
    contents.update(
        files
        if files is not None
        else {"hello_plugin/__init__.py": "", "hello_plugin/task.py": HELLO_TASK}
    )
    return build_archive(contents)


@pytest.fixture
def echo_archive() -> bytes:
    return build_archive({"__main__.py": ECHO_MAIN})


@pytest.fixture
def plugin_archive() -> bytes:
    return build_plugin_archive()


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    root = tmp_path / "store"
    root.mkdir()
    return root


Publisher = Callable[..., Path]


@pytest.fixture
def publish(store_root: Path) -> Publisher:
    """Place an archive in the filesystem store layout and return its path."""

    def _publish(
        coordinate: str,
        version: str,
        archive: bytes,
        *,
        file_name: str | None = None,
        dependencies: list[str] | None = None,
        digest: str | None = None,
        write_digest: bool = True,
    ) -> Path:
        namespace, name = coordinate.split(":")
        version_dir = store_root / namespace / name / version
        version_dir.mkdir(parents=True, exist_ok=True)
        target = version_dir / (file_name or f"{name}-{version}.pyz")
        target.write_bytes(archive)
        if write_digest:
            sidecar = target.with_name(target.name + ".sha256")
            sidecar.write_text(f"{digest or hashlib.sha256(archive).hexdigest()}  {target.name}\n", encoding="utf-8")
        if dependencies is not None:
            (version_dir / "metadata.json").write_text(json.dumps({"dependencies": dependencies}), encoding="utf-8")
        return target

    return _publish


@pytest.fixture
def store(store_root: Path) -> FileSystemArtifactStore:
    return FileSystemArtifactStore(store_root)


@pytest.fixture
def resolver(store: FileSystemArtifactStore) -> VersionResolver:
    return VersionResolver(store)


@pytest.fixture
def published_echo(publish: Publisher, echo_archive: bytes) -> bytes:
    publish("example:echo", "1.0.0", echo_archive, dependencies=["example:lib:2.1.0"])
    return echo_archive


@pytest.fixture
def published_hello(publish: Publisher, plugin_archive: bytes) -> bytes:
    publish("example:hello", "1.0.0", plugin_archive, file_name="hello-1.0.0.zip")
    return plugin_archive


@pytest.fixture
def make_archive() -> Callable[[Mapping[str, str]], bytes]:
    return build_archive


@pytest.fixture
def make_plugin_archive() -> Callable[..., bytes]:
    return build_plugin_archive
