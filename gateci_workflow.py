# gateci_workflow.py
# cargo pipeline: fmt, clippy and test on every push / pull request to main.
from __future__ import annotations

from gateci.dsl import job, pipeline, on_push, on_pull_request
from gateci.step_workflows.checkout import checkout
from gateci.step_workflows.cargo import cargo_fmt_check, cargo_clippy, cargo_test


def workflow():
    return pipeline(
        "cargo",
        # Formatting - fails if `cargo fmt` would change anything
        job("fmt", checkout(), cargo_fmt_check()),

        # Lint - every warning is an error, Cargo.lock must be up to date
        job("clippy", checkout(), cargo_clippy(all_targets=True, locked=True, deny_warnings=True)),

        # Tests - test data lives in a submodule, so check out recursively
        job("test", checkout(), cargo_test(locked=True), recursive=True),

        triggers=[on_push("main"), on_pull_request("main")],
    )
