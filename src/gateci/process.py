# process.py
from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol

# Keep failure output readable in reports.
OUTPUT_TAIL = 4000


@dataclass(frozen=True)
class ProcessResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ProcessRunner(Protocol):
    """Narrow boundary around external programs: command in, exit status + output out."""

    def run(
        self,
        command: str,
        *,
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
    ) -> ProcessResult:
        ...


class SubprocessRunner:
    """
    Run shell commands on the host.

    `timeout` is a host-imposed limit per command (seconds). A command that
    runs past it is reported with exit code 124, like coreutils `timeout`.
    """

    TIMEOUT_EXIT_CODE = 124

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    def run(
        self,
        command: str,
        *,
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
    ) -> ProcessResult:
        full_env = os.environ.copy()
        full_env.update(env or {})

        # own session, so a timeout can kill the shell and everything it spawned
        proc = subprocess.Popen(
            command,
            shell=True,
            cwd=str(cwd),
            env=full_env,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
        try:
            stdout, stderr = proc.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            _kill_group(proc)
            stdout, _ = proc.communicate()
            return ProcessResult(
                exit_code=self.TIMEOUT_EXIT_CODE,
                stdout=_decode(stdout)[-OUTPUT_TAIL:],
                stderr=f"command timed out after {self.timeout}s",
            )

        return ProcessResult(
            exit_code=proc.returncode,
            stdout=stdout[-OUTPUT_TAIL:],
            stderr=stderr[-OUTPUT_TAIL:],
        )


def _kill_group(proc: subprocess.Popen) -> None:
    if hasattr(os, "killpg"):
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    else:
        proc.kill()


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
