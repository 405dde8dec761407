"""Tests for cli.py, driven through click's CliRunner."""

from __future__ import annotations

import shutil
import subprocess
import sys
from pathlib import Path

import pytest
from click.testing import CliRunner

from gateci.cli import build_event, cli
from gateci.model import EventKind

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX shell commands")

WORKFLOW = """
from gateci import pipeline, job, sh, on_push, on_pull_request

def workflow():
    return pipeline(
        "demo",
        job("ok", sh("pass", "true")),
        job("lint", sh("{lint_name}", "{lint_cmd}")),
        triggers=[on_push("main"), on_pull_request("main")],
    )
"""


def _write_workflow(tmp_path: Path, lint_cmd: str = "true", lint_name: str = "lint") -> Path:
    path = tmp_path / "demo_workflow.py"
    path.write_text(WORKFLOW.format(lint_cmd=lint_cmd, lint_name=lint_name))
    return path


@pytest.fixture
def cli_runner():
    return CliRunner()


class TestPlan:
    def test_approved_event_lists_jobs(self, cli_runner, tmp_path):
        wf = _write_workflow(tmp_path)
        result = cli_runner.invoke(cli, ["plan", "--workflow", str(wf), "--branch", "main"])
        assert result.exit_code == 0, result.output
        assert "PLAN: demo (push -> main)" in result.output
        assert "  ok" in result.output
        assert "  lint" in result.output

    def test_ignored_event(self, cli_runner, tmp_path):
        wf = _write_workflow(tmp_path)
        result = cli_runner.invoke(
            cli, ["plan", "--workflow", str(wf), "--event", "pull_request", "--branch", "feature/x"]
        )
        assert result.exit_code == 0
        assert "0 jobs" in result.output

    def test_event_from_env(self, cli_runner, tmp_path):
        wf = _write_workflow(tmp_path)
        result = cli_runner.invoke(
            cli,
            ["plan", "--workflow", str(wf), "--from-env"],
            env={"GITHUB_EVENT_NAME": "pull_request", "GITHUB_BASE_REF": "main"},
        )
        assert result.exit_code == 0, result.output
        assert "pull_request -> main" in result.output


@posix_only
class TestRun:
    def test_passing_pipeline_exits_zero(self, cli_runner, tmp_path):
        wf = _write_workflow(tmp_path)
        result = cli_runner.invoke(
            cli,
            ["run", "--workflow", str(wf), "--branch", "main", "--repo", str(tmp_path),
             "--work-root", str(tmp_path / "envs")],
        )
        assert result.exit_code == 0, result.output
        assert "PIPELINE: PASSED" in result.output

    def test_failing_job_exits_one(self, cli_runner, tmp_path):
        wf = _write_workflow(tmp_path, lint_cmd="exit 1", lint_name="strict lint")
        result = cli_runner.invoke(
            cli,
            ["run", "--workflow", str(wf), "--branch", "main", "--repo", str(tmp_path),
             "--work-root", str(tmp_path / "envs")],
        )
        assert result.exit_code == 1
        assert "ok: SUCCESS" in result.output
        assert "lint: FAILED" in result.output
        assert "failed: lint at step #0 (strict lint)" in result.output

    def test_ignored_event_is_not_a_failure(self, cli_runner, tmp_path):
        wf = _write_workflow(tmp_path, lint_cmd="exit 1")
        result = cli_runner.invoke(
            cli, ["run", "--workflow", str(wf), "--branch", "develop", "--repo", str(tmp_path)]
        )
        assert result.exit_code == 0
        assert "EVENT IGNORED" in result.output
        assert "RESULTS" not in result.output

    def test_missing_workflow(self, cli_runner, tmp_path):
        result = cli_runner.invoke(cli, ["run", "--workflow", str(tmp_path / "nope.py"), "--branch", "main"])
        assert result.exit_code == 1


class TestJobs:
    def test_lists_cargo_jobs(self, cli_runner):
        wf = Path(__file__).resolve().parent.parent / "gateci_workflow.py"
        result = cli_runner.invoke(cli, ["jobs", "--workflow", str(wf)])
        assert result.exit_code == 0, result.output
        assert "on push: main" in result.output
        assert "on pull_request: main" in result.output
        assert "test [ubuntu-latest] (recursive checkout)" in result.output
        assert "cargo clippy --all-targets --locked -- --deny=warnings" in result.output

    def test_discovers_single_workflow(self, cli_runner, tmp_path, monkeypatch):
        _write_workflow(tmp_path)
        monkeypatch.chdir(tmp_path)
        result = cli_runner.invoke(cli, ["jobs"])
        assert result.exit_code == 0, result.output
        assert "Pipeline: demo" in result.output

    def test_no_workflow_found(self, cli_runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        result = cli_runner.invoke(cli, ["jobs"])
        assert result.exit_code == 1


@posix_only
class TestRunSettings:
    def _invoke(self, cli_runner, tmp_path, env):
        wf = _write_workflow(tmp_path)
        return cli_runner.invoke(
            cli,
            ["run", "--workflow", str(wf), "--branch", "main", "--repo", str(tmp_path),
             "--work-root", str(tmp_path / "envs")],
            env=env,
        )

    def test_workers_from_env(self, cli_runner, tmp_path):
        result = self._invoke(cli_runner, tmp_path, {"GATECI_WORKERS": "1"})
        assert result.exit_code == 0, result.output
        assert "PIPELINE: PASSED" in result.output

    @pytest.mark.parametrize(
        "env",
        [
            {"GATECI_WORKERS": "many"},
            {"GATECI_WORKERS": "0"},
            {"GATECI_COMMAND_TIMEOUT": "abc"},
            {"GATECI_COMMAND_TIMEOUT": "-5"},
        ],
    )
    def test_bad_env_value_is_a_usage_error(self, cli_runner, tmp_path, env):
        result = self._invoke(cli_runner, tmp_path, env)
        assert result.exit_code == 2
        assert "Invalid value" in result.output


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


@pytest.fixture
def feature_checkout(tmp_path, monkeypatch):
    """A clone sitting on feature/x, one commit ahead of main."""
    for var, value in {
        "GIT_AUTHOR_NAME": "ci", "GIT_AUTHOR_EMAIL": "ci@example.com",
        "GIT_COMMITTER_NAME": "ci", "GIT_COMMITTER_EMAIL": "ci@example.com",
    }.items():
        monkeypatch.setenv(var, value)

    repo = tmp_path / "repo"
    repo.mkdir()

    def git(*args):
        return subprocess.run(
            ["git", *args], cwd=repo, check=True, capture_output=True, text=True
        ).stdout.strip()

    git("init", "-q", "-b", "main")
    (repo / "f").write_text("base\n")
    git("add", ".")
    git("commit", "-q", "-m", "base")
    git("checkout", "-q", "-b", "feature/x")
    (repo / "f").write_text("pr change\n")
    git("commit", "-q", "-am", "change")
    return repo, git("rev-parse", "HEAD")


@requires_git
class TestBuildEvent:
    def test_pull_request_defaults_to_source_head(self, feature_checkout):
        repo, head = feature_checkout
        event = build_event("pull_request", "main", None, False, source=str(repo))
        assert event.kind is EventKind.PULL_REQUEST
        assert event.target_branch == "main"
        assert event.checkout_ref == head

    def test_explicit_ref_wins(self, feature_checkout):
        repo, _ = feature_checkout
        event = build_event("pull_request", "main", "abc123", False, source=str(repo))
        assert event.ref == "abc123"

    def test_push_keeps_branch(self, feature_checkout):
        repo, _ = feature_checkout
        event = build_event("push", "main", None, False, source=str(repo))
        assert event.ref is None
        assert event.checkout_ref == "main"

    def test_source_without_git_history(self, tmp_path):
        event = build_event("pull_request", "main", None, False, source=str(tmp_path / "missing"))
        assert event.ref is None

    def test_run_tests_pull_request_head(self, cli_runner, feature_checkout, tmp_path):
        repo, _ = feature_checkout
        wf = tmp_path / "pr_workflow.py"
        wf.write_text(
            "from gateci import pipeline, job, sh, on_pull_request\n"
            "from gateci.step_workflows.checkout import checkout\n\n"
            "def workflow():\n"
            "    return pipeline(\n"
            '        "pr",\n'
            '        job("check", checkout(), sh("is pr head", "grep -q \'pr change\' f")),\n'
            '        triggers=[on_pull_request("main")],\n'
            "    )\n"
        )
        result = cli_runner.invoke(
            cli,
            ["run", "--workflow", str(wf), "--event", "pull_request", "--branch", "main",
             "--repo", str(repo), "--work-root", str(tmp_path / "envs")],
        )
        assert result.exit_code == 0, result.output
        assert "PIPELINE: PASSED" in result.output
