# environment.py
from __future__ import annotations

import re
import shutil
import subprocess
import sys
import tempfile
import uuid
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, List, Mapping, Optional, Protocol

from .errors import CIError, TOOL_HINTS
from .model import Job
from .process import OUTPUT_TAIL, ProcessResult, ProcessRunner, SubprocessRunner
from .ui.console import get_console


class Environment:
    """
    An isolated place to run one job: a private workspace directory plus the
    process runner that executes commands "inside" it.
    """

    def __init__(self, workspace: Path, runner: ProcessRunner, label: str = "local"):
        self.workspace = workspace
        self.runner = runner
        self.label = label

    def run(
        self,
        command: str,
        *,
        cwd: str | None = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> ProcessResult:
        workdir = (self.workspace / (cwd or ".")).resolve()
        if not workdir.exists():
            raise FileNotFoundError(f"cwd not found in workspace: {workdir}")
        return self.runner.run(command, cwd=workdir, env=env)


class Provisioner(Protocol):
    def provision(self, job: Job):
        """Context manager yielding a fresh Environment, torn down on exit."""
        ...


def _fresh_workspace(job: Job, root: Optional[Path]) -> Path:
    if root is not None:
        root.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=f"gateci-{job.name}-", dir=root))


def _teardown(workspace: Path) -> List[str]:
    """Remove a job workspace. Returns the paths that could not be removed."""
    failures: List[str] = []

    def _record(func, path, exc):
        if not isinstance(exc, BaseException):
            exc = exc[1]
        failures.append(f"{path}: {exc}")

    if sys.version_info >= (3, 12):
        shutil.rmtree(workspace, onexc=_record)
    else:
        shutil.rmtree(workspace, onerror=_record)

    console = get_console()
    for failure in failures:
        console.print_debug(f"Could not remove {failure}")
    return failures


# ---------------------------------------------------------------------
# Local (host) environments
# ---------------------------------------------------------------------

class LocalProvisioner:
    """One temporary directory per job on the host machine."""

    def __init__(self, work_root: str | Path | None = None, runner: ProcessRunner | None = None):
        self.work_root = Path(work_root) if work_root is not None else None
        self.runner = runner or SubprocessRunner()

    @contextmanager
    def provision(self, job: Job) -> Iterator[Environment]:
        workspace = _fresh_workspace(job, self.work_root)
        try:
            yield Environment(workspace, self.runner, label=f"local:{job.runs_on}")
        finally:
            _teardown(workspace)


# ---------------------------------------------------------------------
# Docker environments
# ---------------------------------------------------------------------

# runs-on label -> image; unknown labels are used as image names directly
DEFAULT_IMAGES: Dict[str, str] = {
    "ubuntu-latest": "ubuntu:latest",
    "ubuntu-24.04": "ubuntu:24.04",
    "ubuntu-22.04": "ubuntu:22.04",
}

CONTAINER_WORKDIR = "/workspace"


def _check_docker_available() -> None:
    """Check if Docker is available, raise helpful error if not."""
    try:
        subprocess.run(
            ["docker", "--version"],
            capture_output=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        raise CIError(
            kind="docker_unavailable",
            job="",
            step=None,
            message="Docker is not available",
            details={"hint": TOOL_HINTS["docker"]},
        ) from None


def _container_name(prefix: str) -> str:
    # docker names: [a-zA-Z0-9][a-zA-Z0-9_.-]*
    safe = re.sub(r"[^a-zA-Z0-9_.-]", "-", prefix) or "job"
    return f"gateci-{safe}-{uuid.uuid4().hex[:12]}"


def _remove_container(name: str) -> bool:
    proc = subprocess.run(
        ["docker", "rm", "-f", name],
        capture_output=True,
        text=True,
    )
    return proc.returncode == 0


class DockerRunner:
    """
    Runs each command in a throwaway container with the workspace mounted.

    Containers are named `gateci-<job>-<id>` so a timed-out one can be
    removed; `--rm` only fires when the container's process exits.
    """

    def __init__(
        self,
        image: str,
        workspace: Path,
        *,
        job_name: str = "job",
        volumes: List[str] | None = None,
        user: str | None = None,
        timeout: float | None = None,
    ):
        self.image = image
        self.workspace = workspace.resolve()
        self.job_name = job_name
        self.volumes = list(volumes or [])
        self.user = user
        self.timeout = timeout
        self.leftover: List[str] = []

    def command_line(
        self,
        command: str,
        *,
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
        name: str | None = None,
    ) -> List[str]:
        rel = Path(cwd).resolve().relative_to(self.workspace)
        container_cwd = str(PurePosixPath(CONTAINER_WORKDIR, *rel.parts))

        cmd = ["docker", "run", "--rm"]
        if name:
            cmd.extend(["--name", name])
        cmd.extend(["-v", f"{self.workspace}:{CONTAINER_WORKDIR}"])
        for vol in self.volumes:
            cmd.extend(["-v", vol])
        cmd.extend(["-w", container_cwd])

        # only job env; the host environment stays on the host
        for key, value in (env or {}).items():
            cmd.extend(["-e", f"{key}={value}"])

        if self.user:
            cmd.extend(["--user", self.user])

        cmd.append(self.image)
        cmd.extend(["sh", "-c", command])
        return cmd

    def run(self, command: str, *, cwd: Path, env: Optional[Mapping[str, str]] = None) -> ProcessResult:
        name = _container_name(self.job_name)
        cmd = self.command_line(command, cwd=cwd, env=env, name=name)
        try:
            proc = subprocess.run(
                cmd,
                shell=False,
                text=True,
                capture_output=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            # killing the docker client leaves the container running
            if not _remove_container(name):
                self.leftover.append(name)
            return ProcessResult(
                exit_code=SubprocessRunner.TIMEOUT_EXIT_CODE,
                stderr=f"command timed out after {self.timeout}s",
            )
        return ProcessResult(
            exit_code=proc.returncode,
            stdout=proc.stdout[-OUTPUT_TAIL:],
            stderr=proc.stderr[-OUTPUT_TAIL:],
        )

    def cleanup(self) -> None:
        """Remove containers a timeout could not remove."""
        remaining = []
        for name in self.leftover:
            if not _remove_container(name):
                get_console().print_debug(f"Could not remove container {name}")
                remaining.append(name)
        self.leftover = remaining


class DockerProvisioner:
    """One temporary workspace per job, commands executed in `runs_on`'s image."""

    def __init__(
        self,
        images: Mapping[str, str] | None = None,
        *,
        work_root: str | Path | None = None,
        volumes: List[str] | None = None,
        user: str | None = None,
        timeout: float | None = None,
    ):
        self.images = dict(DEFAULT_IMAGES)
        self.images.update(images or {})
        self.work_root = Path(work_root) if work_root is not None else None
        self.volumes = volumes
        self.user = user
        self.timeout = timeout

    def image_for(self, job: Job) -> str:
        return self.images.get(job.runs_on, job.runs_on)

    @contextmanager
    def provision(self, job: Job) -> Iterator[Environment]:
        _check_docker_available()
        image = self.image_for(job)
        workspace = _fresh_workspace(job, self.work_root)
        runner = DockerRunner(
            image,
            workspace,
            job_name=job.name,
            volumes=self.volumes,
            user=self.user,
            timeout=self.timeout,
        )
        try:
            yield Environment(workspace, runner, label=f"docker:{image}")
        finally:
            runner.cleanup()
            _teardown(workspace)
