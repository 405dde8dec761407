"""Shared fixtures: fake process runner, provisioner and checkout.

Nothing here touches cargo or the network; jobs run against fakes that
record what the coordinator asked of them.
"""

from __future__ import annotations

import io
import itertools
import subprocess
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from gateci.environment import Environment
from gateci.errors import CheckoutError, CIError, TOOL_HINTS
from gateci.model import Event, EventKind, Job
from gateci.process import ProcessResult
from gateci.ui.console import Console


SUBMODULE_PATH = "tests/openmetrics_testdata"


class FakeRunner:
    """Maps command text to an exit code (default 0) and records every call."""

    def __init__(
        self,
        exit_codes: Optional[Dict[str, int]] = None,
        hooks: Optional[Dict[str, Callable[[], None]]] = None,
        stderr: Optional[Dict[str, str]] = None,
    ):
        self.exit_codes = dict(exit_codes or {})
        self.stderr = dict(stderr or {})
        self.hooks = dict(hooks or {})
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def run(self, command, *, cwd, env=None):
        with self._lock:
            self.calls.append((command, Path(cwd), dict(env or {})))
        hook = self.hooks.get(command)
        if hook is not None:
            hook()
        code = self.exit_codes.get(command, 0)
        err = self.stderr.get(command, "boom" if code else "")
        return ProcessResult(exit_code=code, stdout=f"ran {command}", stderr=err)

    @property
    def commands(self) -> List[str]:
        return [c[0] for c in self.calls]


class FakeProvisioner:
    """Fresh directory per job under `root`; records provision/teardown order."""

    def __init__(self, root: Path, runner: FakeRunner, fail_for: tuple = ()):
        self.root = root
        self.runner = runner
        self.fail_for = set(fail_for)
        self.provisioned: List[str] = []
        self.torn_down: List[str] = []
        self.workspaces: Dict[str, Path] = {}
        self._counter = itertools.count()
        self._lock = threading.Lock()

    @contextmanager
    def provision(self, job: Job):
        if job.name in self.fail_for:
            raise RuntimeError(f"no machine available for {job.runs_on}")
        with self._lock:
            workspace = self.root / f"{job.name}-{next(self._counter)}"
            self.provisioned.append(job.name)
            self.workspaces[job.name] = workspace
        workspace.mkdir(parents=True)
        try:
            yield Environment(workspace, self.runner, label=f"fake:{job.runs_on}")
        finally:
            with self._lock:
                self.torn_down.append(job.name)


class FakeCheckout:
    """Writes a tiny crate; with recursive=True also fills the submodule."""

    def __init__(self, fail: bool = False, missing_git: bool = False):
        self.fail = fail
        self.missing_git = missing_git
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def fetch(self, event: Event, workspace: Path, *, recursive: bool) -> None:
        with self._lock:
            self.calls.append((event.checkout_ref, workspace, recursive))
        if self.missing_git:
            raise CIError(
                kind="missing_tool",
                job="",
                step=None,
                message="git is not installed",
                details={"hint": TOOL_HINTS["git"]},
            )
        if self.fail:
            raise CheckoutError("git clone failed: could not resolve host")
        (workspace / "Cargo.toml").write_text('[package]\nname = "demo"\n')
        (workspace / SUBMODULE_PATH).mkdir(parents=True)
        if recursive:
            (workspace / SUBMODULE_PATH / "data.txt").write_text("fixture\n")


def submodule_paths(cwd: Path) -> List[str]:
    """Paths of the submodules registered in .gitmodules (empty if none)."""
    gitmodules = Path(cwd) / ".gitmodules"
    if not gitmodules.exists():
        return []
    out = subprocess.run(
        ["git", "config", "--file", str(gitmodules), "--get-regexp", r"submodule\..*\.path"],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    ).stdout
    return [line.split(" ", 1)[1] for line in out.splitlines() if " " in line]


@pytest.fixture
def console() -> Console:
    """Console that writes into buffers instead of the terminal."""
    return Console(stream=io.StringIO(), err_stream=io.StringIO())


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def provisioner(tmp_path, runner) -> FakeProvisioner:
    return FakeProvisioner(tmp_path / "envs", runner)


@pytest.fixture
def fake_checkout() -> FakeCheckout:
    return FakeCheckout()


@pytest.fixture
def push_main() -> Event:
    return Event(kind=EventKind.PUSH, target_branch="main")
