# dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from .model import (
    CheckoutOptions,
    EventKind,
    Job,
    Pipeline,
    Step,
    StepKind,
    TriggerRule,
)
from .step_workflows.checkout import checkout


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None) -> Step:
    """Create a shell step."""
    return Step(kind=StepKind.COMMAND, name=name, run=cmd, cwd=cwd)


# ---------------------------------------------------------------------
# Trigger helpers
# ---------------------------------------------------------------------

def on_push(*branches: str) -> List[TriggerRule]:
    return [TriggerRule(EventKind.PUSH, b) for b in branches]


def on_pull_request(*branches: str) -> List[TriggerRule]:
    return [TriggerRule(EventKind.PULL_REQUEST, b) for b in branches]


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", checkout(), sh(...))
    steps_list: Optional[List[Step]] = None,  # allow: job("x", steps_list=[...])
    runs_on: str = "ubuntu-latest",
    recursive: bool = False,
    env: Optional[Dict[str, str]] = None,
    cwd: str | None = None,  # default cwd applied to command steps missing cwd
) -> Job:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")

    if cwd is not None:
        steps_final = [
            replace(s, cwd=cwd) if s.kind is StepKind.COMMAND and s.cwd is None else s
            for s in steps_final
        ]

    return Job(
        name=name,
        steps=tuple(steps_final),
        runs_on=runs_on,
        checkout_options=CheckoutOptions(recursive=recursive),
        env={k: str(v) for k, v in (env or {}).items()},
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._steps: list[Step] = []
        self._runs_on: str = "ubuntu-latest"
        self._recursive: bool = False
        self._env: dict[str, str] = {}

    def runs_on(self, label: str):
        self._runs_on = label
        return self

    def checkout(self, name: str = "Checkout", *, recursive: bool = False):
        self._steps.append(checkout(name))
        self._recursive = self._recursive or recursive
        return self

    def define_step(self, name: str, run: str, cwd: str | None = None):
        self._steps.append(sh(name, run, cwd=cwd))
        return self

    def with_env(self, **env):
        # force values to str for env compatibility
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def build(self) -> Job:
        if not self._steps:
            raise ValueError(f"Job '{self.name}' has no steps")
        return job(
            self.name,
            steps_list=self._steps,
            runs_on=self._runs_on,
            recursive=self._recursive,
            env=self._env,
        )


def build(name: str) -> JobBuilder:
    """Convenience: build('test').checkout().define_step(...).build()"""
    return JobBuilder(name)


# ---------------------------------------------------------------------
# Pipeline helper (single-file story)
# ---------------------------------------------------------------------

def pipeline(
    name: str,
    *jobs: Job,
    triggers: Iterable[TriggerRule] | Iterable[Iterable[TriggerRule]] = (),
) -> Pipeline:
    """
    Pipeline definition helper.

    Users can write:
        from gateci import pipeline, job, sh, checkout, on_push, on_pull_request

        def workflow():
            return pipeline(
                "ci",
                job("lint", checkout(), sh("Lint", "make lint")),
                triggers=[on_push("main"), on_pull_request("main")],
            )

    Trigger lists returned by on_push()/on_pull_request() are flattened.
    """
    rules: List[TriggerRule] = []
    for t in triggers:
        if isinstance(t, TriggerRule):
            rules.append(t)
        else:
            rules.extend(t)
    return Pipeline(name=name, triggers=tuple(rules), jobs=tuple(jobs))
