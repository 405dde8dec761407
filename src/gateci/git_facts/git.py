# git.py
# Small, focused wrapper around the Git CLI.
# This module centralizes all Git interactions so the rest of the codebase
# never needs to call subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    This is the single low-level entry point for all Git operations in this file.
    Every other function builds on top of this to ensure:
    - consistent invocation of git
    - consistent text output (not bytes)
    - minimal parsing logic duplicated elsewhere

    Args:
        args: List of git arguments (e.g. ["status", "--porcelain"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited non-zero (stderr is captured
            on the exception).
        FileNotFoundError: git is not installed.
    """
    out = subprocess.run(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        text=True,
        capture_output=True,
        check=True,
    )
    return out.stdout.strip()


def repo_root(cwd: Optional[str | Path] = None) -> Path:
    """Return the absolute path to the root of the current Git repository."""
    return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))


def head_sha(cwd: Optional[str | Path] = None) -> str:
    """Return the full SHA hash of the current HEAD commit."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def get_current_ref(cwd: Optional[str | Path] = None) -> str:
    """
    Return the current branch name, or the HEAD SHA when detached.

    `git rev-parse --abbrev-ref HEAD` prints the literal "HEAD" in detached
    state, which is useless as a branch name.
    """
    ref = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    if ref == "HEAD":
        return head_sha(cwd=cwd)
    return ref


def get_remote_url(remote: str = "origin", cwd: Optional[str | Path] = None) -> str:
    return _git(["remote", "get-url", remote], cwd=cwd)


def clone(source: str, dest: Path) -> None:
    """
    Clone `source` (URL or local path) into `dest`.

    `dest` may already exist as an empty directory (a freshly provisioned
    workspace).
    """
    _git(["clone", "--no-checkout", source, str(dest)])


def checkout(ref: str, cwd: Path) -> None:
    """
    Check out `ref` in detached mode.

    Branch names that only exist on the remote are resolved through
    origin/<ref> so a fresh clone can check out any pushed branch.
    """
    try:
        _git(["checkout", "--detach", ref], cwd=cwd)
    except subprocess.CalledProcessError:
        _git(["checkout", "--detach", f"origin/{ref}"], cwd=cwd)


def submodule_update(cwd: Path, recursive: bool = True, allow_file_protocol: bool = False) -> None:
    """
    Initialise and fetch submodules (nested ones too when `recursive`).

    Git refuses file:// submodule transports by default; `allow_file_protocol`
    lifts that for repositories checked out from a local path.
    """
    args = ["-c", "protocol.file.allow=always"] if allow_file_protocol else []
    args += ["submodule", "update", "--init"]
    if recursive:
        args.append("--recursive")
    _git(args, cwd=cwd)
