# model.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple


class EventKind(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"


class StepKind(str, Enum):
    CHECKOUT = "checkout"
    COMMAND = "command"


class Outcome(str, Enum):
    PASS = "pass"
    FAIL = "fail"


# ----------------------------------------------------------------------
# Triggers
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Event:
    """
    A repository change delivered by the host.

    `ref` is the snapshot to check out (commit SHA or ref name). When the host
    does not provide one, the target branch itself is checked out.
    """
    kind: EventKind
    target_branch: str
    ref: Optional[str] = None

    def __post_init__(self) -> None:
        # accept plain strings ("push") from callers and the CLI
        object.__setattr__(self, "kind", EventKind(self.kind))

    @property
    def checkout_ref(self) -> str:
        return self.ref or self.target_branch

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Event:
        """
        Build an Event from a GitHub-Actions-style environment.

        For pull requests the target branch is GITHUB_BASE_REF; for pushes it
        is the pushed branch (GITHUB_REF_NAME, or GITHUB_REF minus refs/heads/).
        """
        env = os.environ if environ is None else environ

        name = env.get("GITHUB_EVENT_NAME", "")
        try:
            kind = EventKind(name)
        except ValueError:
            raise ValueError(
                f"Unsupported GITHUB_EVENT_NAME: {name!r} "
                f"(expected one of {[k.value for k in EventKind]})"
            ) from None

        if kind is EventKind.PULL_REQUEST:
            branch = env.get("GITHUB_BASE_REF", "")
        else:
            branch = env.get("GITHUB_REF_NAME", "")
            if not branch:
                branch = env.get("GITHUB_REF", "").removeprefix("refs/heads/")

        if not branch:
            raise ValueError(f"Could not determine target branch for {kind.value} event")

        return cls(kind=kind, target_branch=branch, ref=env.get("GITHUB_SHA") or None)


@dataclass(frozen=True)
class TriggerRule:
    event_kind: EventKind
    branch_pattern: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "event_kind", EventKind(self.event_kind))


# ----------------------------------------------------------------------
# Job definitions
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class CheckoutOptions:
    recursive: bool = False


@dataclass(frozen=True)
class Step:
    """A single action inside a CI job: a source checkout or a shell command."""
    kind: StepKind
    name: str
    run: str | None = None
    cwd: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", StepKind(self.kind))
        if self.kind is StepKind.COMMAND and not (self.run or "").strip():
            raise ValueError(f"command step {self.name!r} has no command")
        if self.kind is StepKind.CHECKOUT and self.run is not None:
            raise ValueError(f"checkout step {self.name!r} cannot carry a command")


@dataclass(frozen=True)
class Job:
    """
    A CI job: an environment descriptor plus ordered steps.

    `runs_on` is opaque to the coordinator; provisioners interpret it
    (e.g. "ubuntu-latest").
    """
    name: str
    steps: Tuple[Step, ...]
    runs_on: str = "ubuntu-latest"
    checkout_options: CheckoutOptions = field(default_factory=CheckoutOptions)
    env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "env", dict(self.env))
        if not self.name:
            raise ValueError("job name must not be empty")
        if not self.steps:
            raise ValueError(f"Job '{self.name}' has no steps")

    def __hash__(self) -> int:
        return hash((self.name, self.steps, self.runs_on, self.checkout_options))


@dataclass(frozen=True)
class Pipeline:
    """Immutable load-time configuration: trigger rules + job set."""
    name: str
    triggers: Tuple[TriggerRule, ...]
    jobs: Tuple[Job, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "triggers", tuple(self.triggers))
        object.__setattr__(self, "jobs", tuple(self.jobs))
        check_unique_names(self.jobs)
        if not self.jobs:
            raise ValueError(f"Pipeline '{self.name}' has no jobs")

    @property
    def job_names(self) -> List[str]:
        return [j.name for j in self.jobs]

    def job(self, name: str) -> Job:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(name)


def check_unique_names(jobs: Iterable[Job]) -> None:
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate job names found: {dupes}")


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class JobResult:
    job_name: str
    outcome: Outcome
    first_failing_step: Optional[int] = None
    failing_step_name: Optional[str] = None
    reason: Optional[str] = None
    exit_code: Optional[int] = None
    output: str = ""
    duration: float = 0.0
    hint: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.outcome is Outcome.PASS


class IncompleteRunError(RuntimeError):
    """Raised when a pipeline result is requested before every job reported."""


@dataclass(frozen=True)
class PipelineResult:
    outcome: Outcome
    job_results: Tuple[JobResult, ...]

    @property
    def passed(self) -> bool:
        return self.outcome is Outcome.PASS

    @property
    def failed_jobs(self) -> List[JobResult]:
        return [r for r in self.job_results if not r.passed]

    def result_for(self, job_name: str) -> JobResult:
        for r in self.job_results:
            if r.job_name == job_name:
                return r
        raise KeyError(job_name)


def aggregate(jobs: Iterable[Job], results: Iterable[JobResult]) -> PipelineResult:
    """
    Gate a finished run: pass iff every job passed.

    Results are ordered by job definition order, so the outcome and the
    report never depend on which job finished first.
    """
    by_name: Dict[str, JobResult] = {}
    for r in results:
        if r.job_name in by_name:
            raise ValueError(f"Duplicate result for job '{r.job_name}'")
        by_name[r.job_name] = r

    jobs = list(jobs)
    missing = [j.name for j in jobs if j.name not in by_name]
    if missing:
        raise IncompleteRunError(f"No result yet for job(s): {missing}")

    unknown = sorted(set(by_name) - {j.name for j in jobs})
    if unknown:
        raise ValueError(f"Results for unknown job(s): {unknown}")

    ordered = tuple(by_name[j.name] for j in jobs)
    outcome = Outcome.PASS if all(r.passed for r in ordered) else Outcome.FAIL
    return PipelineResult(outcome=outcome, job_results=ordered)
