"""Console output formatting utilities for gateci."""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from gateci.model import Event, JobResult, PipelineResult


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, stream=None, err_stream=None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            stream: Output stream (defaults to sys.stdout at write time)
            err_stream: Error stream (defaults to sys.stderr at write time)
        """
        self.debug = debug
        self._stream = stream
        self._err_stream = err_stream
        # jobs report from worker threads
        self._lock = threading.Lock()

    def _out(self, *lines: str) -> None:
        stream = self._stream or sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def _err(self, *lines: str) -> None:
        stream = self._err_stream or sys.stderr
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._out(f"\n{title}", "-" * len(title))

    def print_run_started(
        self,
        pipeline: str,
        event: Event,
        job_count: int,
    ) -> None:
        """Print run start information."""
        self._out(
            "\nRUN STARTED",
            f"Pipeline: {pipeline}",
            f"Event: {event.kind.value} -> {event.target_branch}",
            f"Ref: {event.checkout_ref}",
            f"Jobs: {job_count}",
            "",
        )

    def print_event_ignored(self, event: Event) -> None:
        self._out(
            f"\nEVENT IGNORED: {event.kind.value} -> {event.target_branch}",
            "No trigger rule matched; nothing to run.",
        )

    def print_job_start(self, name: str, environment: str) -> None:
        """Print job start message."""
        self._out(f"\nJOB STARTED: {name} ({environment})")

    def print_step(self, job: str, name: str) -> None:
        """Print step start message."""
        self._out(f"[{job}] STEP: {name}")

    def print_job_finished(self, result: JobResult) -> None:
        if result.passed:
            self._out(f"[{result.job_name}] STATUS: success ({result.duration:.1f}s)")
        else:
            self.print_failure(
                result.job_name,
                result.reason or "unknown error",
                step=result.failing_step_name,
                index=result.first_failing_step,
                exit_code=result.exit_code,
                output=result.output,
                hint=result.hint,
            )

    def print_failure(
        self,
        job: str,
        reason: str,
        step: Optional[str] = None,
        index: Optional[int] = None,
        exit_code: Optional[int] = None,
        output: str = "",
        hint: Optional[str] = None,
    ) -> None:
        """
        Print failure message.

        Args:
            job: Job name
            reason: Failure reason/error message
            step: Name of the failing step, if any
            index: 0-based index of the failing step
            exit_code: Optional exit code
            output: Captured command output (shown in debug mode)
            hint: Optional fix suggestion
        """
        lines = []
        if step is not None:
            lines.append(f"[{job}] STEP FAILED: #{index} {step}")
        lines.append(f"[{job}] JOB FAILED")
        if exit_code is not None:
            lines.append(f"Exit code: {exit_code}")
        if self.debug:
            lines.append(f"Error details: {reason}")
            if output:
                lines.append(output)
        else:
            # first line only outside debug mode
            lines.append(f"Error: {reason.splitlines()[0] if reason else 'Unknown error'}")
        if hint:
            lines.append(f"Hint: {hint}")
        self._out(*lines)

    def print_plan(self, pipeline: str, event: Event, job_names: list[str], approved: bool) -> None:
        """Print which jobs an event would dispatch."""
        lines = [f"\nPLAN: {pipeline} ({event.kind.value} -> {event.target_branch})"]
        if not approved:
            lines.append("  no trigger matched; 0 jobs")
        else:
            lines.extend(f"  {name}" for name in job_names)
        self._out(*lines)

    def print_results(self, result: PipelineResult) -> None:
        """Print final results summary."""
        lines = ["\n" + "=" * 40, "RESULTS", "=" * 40]
        for r in result.job_results:
            status_display = "SUCCESS" if r.passed else "FAILED"
            lines.append(f"  {r.job_name}: {status_display}")
        lines.append(f"PIPELINE: {'PASSED' if result.passed else 'FAILED'}")
        for r in result.failed_jobs:
            where = (
                f"step #{r.first_failing_step} ({r.failing_step_name})"
                if r.first_failing_step is not None
                else "before first step"
            )
            lines.append(f"  failed: {r.job_name} at {where}")
        self._out(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._err(*lines)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            self._err("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
        else:
            self._err(f"Error: {exc}")

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._err(f"[DEBUG] {message}")


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
