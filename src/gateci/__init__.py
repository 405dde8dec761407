from .dsl import job, sh, checkout, on_push, on_pull_request, pipeline, JobBuilder, build
from .model import Event, EventKind, TriggerRule, Job, Step, Pipeline, JobResult, PipelineResult, Outcome
from .runner import run, run_job, run_pipeline, load_workflow
from .trigger import evaluate

__all__ = [
    "job", "sh", "checkout", "on_push", "on_pull_request", "pipeline", "JobBuilder", "build",
    "Event", "EventKind", "TriggerRule", "Job", "Step", "Pipeline", "JobResult", "PipelineResult", "Outcome",
    "run", "run_job", "run_pipeline", "load_workflow", "evaluate",
]
