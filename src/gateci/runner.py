# runner.py
from __future__ import annotations

import runpy
import time
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import Iterable, List, Optional

from .environment import Environment, LocalProvisioner, Provisioner
from .errors import CheckoutError, CIError, StepFailure, missing_tool
from .model import (
    Event,
    Job,
    JobResult,
    Outcome,
    Pipeline,
    PipelineResult,
    Step,
    StepKind,
    TriggerRule,
    aggregate,
    check_unique_names,
)
from .step_workflows.checkout import Checkout, GitCheckout
from .trigger import evaluate
from .ui.console import Console, get_console


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a python file path.

    The file must define either:
      - workflow() -> Pipeline
      - PIPELINE = Pipeline(...)
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"gateci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    result = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        result = globals_dict["workflow"]()
    elif "PIPELINE" in globals_dict:
        result = globals_dict["PIPELINE"]

    if not isinstance(result, Pipeline):
        raise TypeError(
            "Workflow must return/define a Pipeline. "
            "Define workflow() -> Pipeline or PIPELINE = pipeline(...)."
        )

    return result


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _run_step(
    job: Job,
    step: Step,
    index: int,
    env: Environment,
    checkout: Checkout,
    event: Event,
) -> None:
    if step.kind is StepKind.CHECKOUT:
        checkout.fetch(event, env.workspace, recursive=job.checkout_options.recursive)
        return

    proc = env.run(step.run, cwd=step.cwd, env=job.env)
    if proc.exit_code != 0:
        raise StepFailure(
            job=job.name,
            step=step.name,
            index=index,
            cmd=step.run,
            exit_code=proc.exit_code,
            stdout=proc.stdout,
            stderr=proc.stderr,
        )


def _failed(job: Job, started: float, exc: Exception, index: Optional[int] = None) -> JobResult:
    step_name = job.steps[index].name if index is not None else None
    exit_code = None
    output = ""
    hint = None
    if isinstance(exc, StepFailure):
        exit_code = exc.exit_code
        output = "\n".join(s for s in (exc.stdout, exc.stderr) if s)
        reason = str(exc)
        tool_error = missing_tool(exc)
        if tool_error is not None:
            reason = f"{tool_error.kind}: {tool_error.message}"
            hint = tool_error.details["hint"]
    elif isinstance(exc, CIError) and "hint" in exc.details:
        reason = f"{exc.kind}: {exc.message}"
        hint = exc.details["hint"]
    elif isinstance(exc, (CheckoutError, CIError)):
        reason = str(exc)
    else:
        reason = f"{type(exc).__name__}: {exc}"

    return JobResult(
        job_name=job.name,
        outcome=Outcome.FAIL,
        first_failing_step=index,
        failing_step_name=step_name,
        reason=reason,
        exit_code=exit_code,
        output=output,
        duration=time.monotonic() - started,
        hint=hint,
    )


def run_job(
    job: Job,
    *,
    provisioner: Provisioner,
    checkout: Checkout,
    event: Event,
    console: Console | None = None,
) -> JobResult:
    """
    Run one job in a freshly provisioned environment.

    Steps run in order and the first failing step ends the job. Never raises:
    every failure (provisioning included) becomes a failed JobResult, so a
    broken job cannot take its siblings down.
    """
    console = console or get_console()
    started = time.monotonic()
    console.print_job_start(job.name, job.runs_on)

    result: JobResult | None = None
    try:
        with provisioner.provision(job) as env:
            console.print_debug(f"[{job.name}] workspace {env.workspace} ({env.label})")
            for index, step in enumerate(job.steps):
                console.print_step(job.name, step.name)
                try:
                    _run_step(job, step, index, env, checkout, event)
                except Exception as e:
                    result = _failed(job, started, e, index)
                    break
    except Exception as e:
        # provisioning or teardown failed; keep a step failure if we had one
        if result is None:
            result = _failed(job, started, e)

    if result is None:
        result = JobResult(
            job_name=job.name,
            outcome=Outcome.PASS,
            duration=time.monotonic() - started,
        )

    console.print_job_finished(result)
    return result


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_pipeline(
    event: Event,
    rules: Iterable[TriggerRule],
    jobs: Iterable[Job],
    *,
    provisioner: Provisioner | None = None,
    checkout: Checkout | None = None,
    max_workers: int | None = None,
    console: Console | None = None,
    pipeline_name: str = "pipeline",
) -> Optional[PipelineResult]:
    """
    Trigger filter -> parallel fan-out -> join -> gate.

    Returns None when no trigger rule approves the event (nothing ran, which
    is not a failure). Otherwise every job runs to completion, failures do
    not cancel siblings, and the result is computed after all of them report.
    """
    console = console or get_console()
    jobs = list(jobs)
    check_unique_names(jobs)

    if not evaluate(event, rules):
        console.print_event_ignored(event)
        return None

    provisioner = provisioner or LocalProvisioner()
    checkout = checkout or GitCheckout(Path.cwd())

    console.print_run_started(pipeline_name, event, len(jobs))

    workers = max_workers or len(jobs)
    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        futures = [
            pool.submit(
                run_job,
                j,
                provisioner=provisioner,
                checkout=checkout,
                event=event,
                console=console,
            )
            for j in jobs
        ]
        # barrier: every dispatched job finishes before we aggregate
        wait(futures)

    results: List[JobResult] = [f.result() for f in futures]
    result = aggregate(jobs, results)
    console.print_results(result)
    return result


def run(event: Event, pipeline: Pipeline, **kwargs) -> Optional[PipelineResult]:
    """run_pipeline() for a loaded Pipeline bundle."""
    return run_pipeline(
        event,
        pipeline.triggers,
        pipeline.jobs,
        pipeline_name=pipeline.name,
        **kwargs,
    )
