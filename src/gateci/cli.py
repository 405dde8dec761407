# cli.py
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import click

from gateci import settings
from gateci.environment import DockerProvisioner, LocalProvisioner
from gateci.git_facts.git import get_current_ref, head_sha, repo_root
from gateci.model import Event, EventKind, Pipeline
from gateci.process import SubprocessRunner
from gateci.runner import load_workflow, run
from gateci.step_workflows.checkout import GitCheckout
from gateci.trigger import evaluate
from gateci.ui.console import Console, get_console, set_console


def find_workflow_files() -> list[Path]:
    """
    Find all workflow files in the current directory.

    Returns:
        List of Path objects for workflow files
    """
    workflow_files = []
    current_dir = Path(".")

    default_workflow = current_dir / settings.WORKFLOW
    if default_workflow.exists():
        workflow_files.append(default_workflow)

    for path in current_dir.glob("*_workflow.py"):
        if path.resolve() != default_workflow.resolve():
            workflow_files.append(path)

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  gateci run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=[
                "Looked for:",
                f"  {settings.WORKFLOW}",
                "  *_workflow.py",
            ],
            suggestion=f"Create a workflow file:\n  {settings.WORKFLOW}\n\nOr specify a workflow explicitly:\n  gateci run --workflow my_workflow.py",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  gateci run --workflow {settings.WORKFLOW}",
        )
        sys.exit(1)

    return workflow_files[0]


def build_event(
    event_kind: str,
    branch: str | None,
    ref: str | None,
    from_env: bool,
    source: str | None = None,
) -> Event:
    """
    Event from --from-env, or from --event/--branch/--ref (branch defaults to the current one).

    A pull request without --ref tests the HEAD commit of a local `source`:
    its --branch is the base branch, which is not the change under review.
    """
    if from_env:
        return Event.from_env()

    if ref is None and event_kind == EventKind.PULL_REQUEST.value and source is not None:
        try:
            ref = head_sha(cwd=source)
        except (subprocess.CalledProcessError, FileNotFoundError, NotADirectoryError):
            # remote source: GitCheckout rejects the ref-less pull request
            get_console().print_debug(f"Could not read HEAD of {source}")

    if not branch:
        try:
            branch = get_current_ref()
        except (subprocess.CalledProcessError, FileNotFoundError):
            get_console().print_error(
                "Could not determine branch",
                "No --branch specified and the current git branch is unknown.",
                suggestion="Specify the target branch explicitly:\n  gateci run --branch main",
            )
            sys.exit(1)

    return Event(kind=EventKind(event_kind), target_branch=branch, ref=ref)


def _load(workflow: str | None) -> Pipeline:
    workflow_path = discover_workflow(workflow)
    get_console().print_debug(f"Loading workflow {workflow_path}")
    return load_workflow(workflow_path)


def _default_source() -> str:
    try:
        return str(repo_root())
    except (subprocess.CalledProcessError, FileNotFoundError):
        return str(Path(".").resolve())


def event_options(fn):
    fn = click.option("--from-env", is_flag=True, default=False,
                      help="Read the event from GITHUB_EVENT_NAME / GITHUB_BASE_REF / GITHUB_REF_NAME")(fn)
    fn = click.option("--ref", default=None, help="Commit or ref to check out (defaults to the branch)")(fn)
    fn = click.option("--branch", default=None, help="Target branch (defaults to the current git branch)")(fn)
    fn = click.option(
        "--event",
        "event_kind",
        type=click.Choice([k.value for k in EventKind]),
        default=EventKind.PUSH.value,
        show_default=True,
        help="Event kind",
    )(fn)
    fn = click.option(
        "--workflow",
        default=None,
        help=f"Workflow file path (defaults to {settings.WORKFLOW} if present)",
    )(fn)
    return fn


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """gateci: trigger-gated, parallel verification jobs."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command("run")
@event_options
@click.option("--repo", default=None, help="Repository to check out (path or URL; defaults to this repo)")
@click.option(
    "--provisioner",
    type=click.Choice(["local", "docker"]),
    default="local",
    envvar=settings.PROVISIONER_ENV,
    show_default=True,
    help="Where jobs run",
)
@click.option(
    "--workers",
    default=None,
    type=click.IntRange(min=1),
    envvar=settings.WORKERS_ENV,
    help="Max parallel jobs (defaults to one per job)",
)
@click.option(
    "--timeout",
    default=None,
    type=click.FloatRange(min=0, min_open=True),
    envvar=settings.COMMAND_TIMEOUT_ENV,
    help="Per-command timeout in seconds",
)
@click.option("--work-root", default=None, help="Directory for job workspaces (defaults to the system temp dir)")
@click.pass_context
def run_cmd(ctx, workflow, event_kind, branch, ref, from_env, repo, provisioner, workers, timeout, work_root):
    """Run the pipeline for an event."""
    console = get_console()

    try:
        pipeline = _load(workflow)
        source = repo or _default_source()
        event = build_event(event_kind, branch, ref, from_env, source=source)

        if provisioner == "docker":
            prov = DockerProvisioner(work_root=work_root, timeout=timeout)
        else:
            prov = LocalProvisioner(work_root=work_root, runner=SubprocessRunner(timeout=timeout))

        result = run(
            event,
            pipeline,
            provisioner=prov,
            checkout=GitCheckout(source),
            max_workers=workers,
            console=console,
        )

        # ignored events are not failures
        if result is not None and not result.passed:
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@event_options
@click.pass_context
def plan(ctx, workflow, event_kind, branch, ref, from_env):
    """Show which jobs an event would dispatch, without running them."""
    console = get_console()
    try:
        pipeline = _load(workflow)
        event = build_event(event_kind, branch, ref, from_env)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    approved = evaluate(event, pipeline.triggers)
    console.print_plan(pipeline.name, event, pipeline.job_names, approved)


@cli.command()
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {settings.WORKFLOW} if present)")
@click.pass_context
def jobs(ctx, workflow):
    """List the pipeline's triggers and jobs."""
    console = get_console()
    try:
        pipeline = _load(workflow)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    console.print_header(f"Pipeline: {pipeline.name}")
    for rule in pipeline.triggers:
        console.print_info(f"on {rule.event_kind.value}: {rule.branch_pattern}")
    for j in pipeline.jobs:
        flags = " (recursive checkout)" if j.checkout_options.recursive else ""
        console.print_info(f"\n{j.name} [{j.runs_on}]{flags}")
        for i, step in enumerate(j.steps):
            detail = step.run if step.run is not None else step.kind.value
            console.print_info(f"  {i}. {step.name}: {detail}")


if __name__ == "__main__":
    cli()
