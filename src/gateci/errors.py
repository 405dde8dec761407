# errors.py
from __future__ import annotations

import os
import re
import shlex
from dataclasses import dataclass, field


@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - reporting a failed job without a full traceback
    """
    kind: str
    job: str
    step: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.job:
            lines.append(f"job={self.job}")
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class StepFailure(Exception):
    job: str
    step: str
    index: int
    cmd: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        return f"[{self.job}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"


class CheckoutError(RuntimeError):
    """Source could not be fetched (clone, ref or submodule failure)."""


TOOL_HINTS = {
    "git": "Install Git or fix PATH.",
    "cargo": "Install the Rust toolchain (https://rustup.rs) or fix PATH.",
    "rustfmt": "Install rustfmt: rustup component add rustfmt",
    "cargo-clippy": "Install clippy: rustup component add clippy",
    "docker": "Install Docker and ensure the daemon is running.",
}

# shell "command not found"
MISSING_COMMAND_EXIT_CODE = 127

_CARGO_SUBCOMMANDS = {
    "fmt": "rustfmt",
    "cargo-fmt": "rustfmt",
    "clippy": "cargo-clippy",
    "cargo-clippy": "cargo-clippy",
}

_MISSING_SUBCOMMAND = [
    re.compile(r"no such (?:sub)?command:? `?([\w-]+)`?"),
    re.compile(r"'(cargo-[\w-]+)' is not installed"),
]


def missing_tool(failure: StepFailure) -> CIError | None:
    """
    Recognise a step that failed because its tool is not installed.

    Exit 127 names the command's program; cargo reports a missing
    component (rustfmt, clippy) on stderr instead.
    """
    tool = None
    for pattern in _MISSING_SUBCOMMAND:
        m = pattern.search(failure.stderr)
        if m:
            tool = _CARGO_SUBCOMMANDS.get(m.group(1), m.group(1))
            break

    if tool is None and failure.exit_code == MISSING_COMMAND_EXIT_CODE:
        try:
            words = shlex.split(failure.cmd)
        except ValueError:
            words = failure.cmd.split()
        if words:
            tool = os.path.basename(words[0])

    if tool is None:
        return None

    return CIError(
        kind="missing_tool",
        job=failure.job,
        step=failure.step,
        message=f"{tool} is not installed",
        details={"hint": TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")},
    )
