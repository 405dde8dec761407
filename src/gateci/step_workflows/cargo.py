# step_workflows/cargo.py
from __future__ import annotations

from ..dsl import job, on_pull_request, on_push, pipeline
from ..model import Pipeline, Step, StepKind
from .checkout import checkout


# ---------------------------------------------------------------------
# Cargo step helpers
# ---------------------------------------------------------------------
# Each helper renders a typed cargo invocation into a plain command step.
# The runner only ever sees the resulting command text; its exit status is
# the whole contract ("--locked" makes an out-of-date Cargo.lock fatal
# instead of silently upgraded).

def cargo_fmt_check(name: str = "cargo fmt") -> Step:
    """Verify formatting without rewriting files."""
    return Step(kind=StepKind.COMMAND, name=name, run="cargo fmt -- --check")


def cargo_clippy(
    name: str = "cargo clippy",
    *,
    all_targets: bool = True,
    locked: bool = True,
    deny_warnings: bool = True,
) -> Step:
    """Lint; with `deny_warnings` any warning fails the step."""
    cmd = ["cargo", "clippy"]
    if all_targets:
        cmd.append("--all-targets")
    if locked:
        cmd.append("--locked")
    if deny_warnings:
        cmd.extend(["--", "--deny=warnings"])
    return Step(kind=StepKind.COMMAND, name=name, run=" ".join(cmd))


def cargo_test(name: str = "cargo test", *, locked: bool = True) -> Step:
    cmd = "cargo test --locked" if locked else "cargo test"
    return Step(kind=StepKind.COMMAND, name=name, run=cmd)


# ---------------------------------------------------------------------
# The cargo pipeline
# ---------------------------------------------------------------------

def cargo_pipeline(branch: str = "main", runs_on: str = "ubuntu-latest") -> Pipeline:
    """
    Push / pull request on `branch` -> fmt, clippy and test, independently.

    Only `test` checks out submodules (its fixtures live in one).
    """
    return pipeline(
        "cargo",
        job("fmt", checkout(), cargo_fmt_check(), runs_on=runs_on),
        job("clippy", checkout(), cargo_clippy(), runs_on=runs_on),
        job("test", checkout(), cargo_test(), runs_on=runs_on, recursive=True),
        triggers=[on_push(branch), on_pull_request(branch)],
    )
