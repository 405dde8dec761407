# step_workflows/checkout.py
from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Protocol

from ..errors import CheckoutError, CIError, TOOL_HINTS
from ..git_facts import git
from ..model import Event, EventKind, Step, StepKind


# ---------------------------------------------------------------------
# Checkout step helper
# ---------------------------------------------------------------------

def checkout(name: str = "Checkout") -> Step:
    """
    Create a checkout step.

    Whether submodules are fetched is a job-level setting
    (`job(..., recursive=True)`), not a property of the step.
    """
    return Step(kind=StepKind.CHECKOUT, name=name)


# ---------------------------------------------------------------------
# Checkout execution
# ---------------------------------------------------------------------

class Checkout(Protocol):
    def fetch(self, event: Event, workspace: Path, *, recursive: bool) -> None:
        """Populate `workspace` with the snapshot for `event`. Raise CheckoutError on failure."""
        ...


class GitCheckout:
    """
    Fetch the triggering snapshot with git.

    `source` is anything `git clone` accepts: a URL or a local repository path.
    """

    def __init__(self, source: str | Path):
        self.source = str(source)

    @property
    def is_local(self) -> bool:
        return "://" not in self.source and Path(self.source).exists()

    def fetch(self, event: Event, workspace: Path, *, recursive: bool) -> None:
        # a pull request's target branch is the base, not the change under review
        if event.kind is EventKind.PULL_REQUEST and not event.ref:
            raise CheckoutError(
                f"pull_request event for '{event.target_branch}' has no ref; "
                "pass the head commit of the pull request (--ref)"
            )
        ref = event.checkout_ref
        try:
            git.clone(self.source, workspace)
            git.checkout(ref, cwd=workspace)
            if recursive:
                git.submodule_update(
                    workspace,
                    recursive=True,
                    allow_file_protocol=self.is_local,
                )
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip() or str(e)
            cmd = " ".join(e.cmd) if isinstance(e.cmd, list) else str(e.cmd)
            raise CheckoutError(f"{cmd} failed: {detail}") from e
        except FileNotFoundError as e:
            raise CIError(
                kind="missing_tool",
                job="",
                step=None,
                message="git is not installed",
                details={"hint": TOOL_HINTS["git"]},
            ) from e
