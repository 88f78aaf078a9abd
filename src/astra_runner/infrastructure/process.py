"""Run an external command with a wall-clock deadline.

The runner takes a fully-formed argv and knows nothing about how it was built.
stdout/stderr go straight to files so a chatty child can never block on a
full pipe. The child gets its own session so a timeout can take down the
whole process group, grandchildren included.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger("astra_runner.process")

POLL_INTERVAL_SECONDS = 0.05
REAP_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True, slots=True)
class SubprocessResult:
    exit_code: int
    timed_out: bool
    duration_seconds: float


class SubprocessRunner:
    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        stdout_path: Path,
        stderr_path: Path,
        timeout_seconds: float | None,
        env: Mapping[str, str] | None = None,
    ) -> SubprocessResult:
        """Run ``argv`` to completion or until the deadline passes.

        Raises ``OSError`` when the command cannot be spawned. On timeout the
        process group is killed and ``exit_code`` is ``-1``.
        """

        cmd = [str(part) for part in argv]
        stdout_path.parent.mkdir(parents=True, exist_ok=True)
        stderr_path.parent.mkdir(parents=True, exist_ok=True)

        start = time.monotonic()
        deadline = (start + float(timeout_seconds)) if timeout_seconds is not None else None
        timed_out = False

        logger.debug("Starting subprocess: %s (cwd=%s)", cmd, cwd)

        with stdout_path.open("wb") as out, stderr_path.open("wb") as err:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=out,
                stderr=err,
                cwd=str(cwd),
                env=dict(env) if env is not None else None,
                start_new_session=(os.name != "nt"),
            )

            while True:
                if proc.poll() is not None:
                    break
                if deadline is not None and time.monotonic() >= deadline:
                    timed_out = True
                    self._kill(proc)
                    break
                time.sleep(POLL_INTERVAL_SECONDS)

            try:
                proc.wait(timeout=REAP_TIMEOUT_SECONDS)
            except subprocess.TimeoutExpired:
                logger.warning("Subprocess %s did not exit after kill; abandoning", proc.pid)

        duration = max(0.0, time.monotonic() - start)
        exit_code = -1 if timed_out else int(proc.returncode if proc.returncode is not None else -1)

        logger.debug(
            "Subprocess finished: exit_code=%s timed_out=%s duration=%.3fs",
            exit_code,
            timed_out,
            duration,
        )
        return SubprocessResult(exit_code=exit_code, timed_out=timed_out, duration_seconds=duration)

    def _kill(self, proc: subprocess.Popen) -> None:
        if os.name != "nt":
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                return
            except PermissionError:
                proc.kill()
        else:
            proc.kill()


__all__ = ["SubprocessResult", "SubprocessRunner"]
