"""Shared fixtures for autom8 tests."""

import json
import shutil
import subprocess
from pathlib import Path

import pytest

from autom8.claude.spec_gen import GeneratedSpec
from autom8.claude.types import (
    ClaudeErrorInfo,
    ClaudeOutcome,
    ClaudeRunResult,
    ClaudeUsage,
    CommitOutcome,
    CommitStatus,
    CorrectorOutcome,
    CorrectorResult,
    ReviewOutcome,
    ReviewResult,
)
from autom8.spec import Spec


def make_plan(count: int = 3, passes: bool = False, branch: str = "autom8/demo") -> dict:
    return {
        "project": "demo",
        "branchName": branch,
        "description": "Add a demo feature.\nWith more detail on the second line.",
        "userStories": [
            {
                "id": f"US-{i:03d}",
                "title": f"Story {i}",
                "description": f"Do thing {i}",
                "acceptanceCriteria": [f"Thing {i} works"],
                "priority": i,
                "passes": passes,
                "notes": "",
            }
            for i in range(1, count + 1)
        ],
    }


def write_plan(path: Path, plan: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(plan, indent=2))
    return path


def mark_passed(plan_path: Path, story_ids) -> None:
    """Flip passes on disk, the way the assistant does."""
    data = json.loads(plan_path.read_text())
    for story in data["userStories"]:
        if story["id"] in story_ids:
            story["passes"] = True
    plan_path.write_text(json.dumps(data, indent=2))


@pytest.fixture
def config_root(tmp_path, monkeypatch):
    """Isolated autom8 config root."""
    root = tmp_path / "config"
    monkeypatch.setenv("AUTOM8_CONFIG_DIR", str(root))
    return root


@pytest.fixture
def workdir(tmp_path):
    """A working directory that is not a git repository."""
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def plan_file(tmp_path):
    return write_plan(tmp_path / "plans" / "demo.json", make_plan())


def git_cmd(cwd: Path, *args: str) -> None:
    subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def git_repo(tmp_path):
    """A repository with one commit on main."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    repo = tmp_path / "repo"
    repo.mkdir()
    git_cmd(repo, "init", "-q")
    git_cmd(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    (repo / "README.md").write_text("# repo\n")
    git_cmd(repo, "add", "README.md")
    git_cmd(repo, "commit", "-q", "-m", "Initial commit")
    return repo


class FakeAgent:
    """Stands in for ClaudeAgent; edits the plan file like the assistant would.

    implement_hook(agent, spec, story) may return a ClaudeRunResult to override
    the default behavior of passing the story.
    """

    def __init__(self, plan_path: Path | None = None):
        self.plan_path = plan_path
        self.implement_calls: list[str] = []
        self.review_calls: list[int] = []
        self.correct_calls: list[int] = []
        self.commit_calls = 0
        self.generate_calls = 0
        self.implement_hook = None
        self.review_results: list[ReviewResult] = []
        self.commit_status = CommitStatus.SUCCESS
        self.generated_plan: dict | None = None
        self.usage = ClaudeUsage(input_tokens=10, output_tokens=5)

    def generate_spec(self, spec_content, output_path, on_output=None):
        self.generate_calls += 1
        plan = self.generated_plan or make_plan()
        write_plan(Path(output_path), plan)
        self.plan_path = Path(output_path)
        return GeneratedSpec(Spec.from_dict(plan), ClaudeUsage(input_tokens=100, output_tokens=50))

    def implement(self, spec, story, spec_path, previous_iterations=(), knowledge=None, on_output=None):
        self.implement_calls.append(story.id)
        if on_output:
            on_output(f"Working on {story.id}\n")
        if self.implement_hook is not None:
            result = self.implement_hook(self, spec, story)
            if result is not None:
                return result
        mark_passed(Path(spec_path), {story.id})
        return ClaudeRunResult(
            outcome=ClaudeOutcome.ITERATION_COMPLETE,
            output=f"done <work-summary>Implemented {story.id}</work-summary>",
            work_summary=f"Implemented {story.id}",
            usage=ClaudeUsage(input_tokens=self.usage.input_tokens, output_tokens=self.usage.output_tokens),
        )

    def review(self, spec, iteration, on_output=None):
        self.review_calls.append(iteration)
        result = self.review_results.pop(0) if self.review_results else ReviewResult.PASS
        return ReviewOutcome(result, usage=ClaudeUsage(input_tokens=1, output_tokens=1))

    def correct(self, spec, iteration, on_output=None):
        self.correct_calls.append(iteration)
        return CorrectorOutcome(CorrectorResult.COMPLETE)

    def commit(self, spec, on_output=None):
        self.commit_calls += 1
        if self.commit_status == CommitStatus.ERROR:
            return CommitOutcome(CommitStatus.ERROR, error=ClaudeErrorInfo("commit exploded"))
        commit_hash = "abc1234" if self.commit_status == CommitStatus.SUCCESS else None
        return CommitOutcome(self.commit_status, commit_hash=commit_hash)


def failing_result(message: str = "Claude exited with status: 1") -> ClaudeRunResult:
    return ClaudeRunResult(
        outcome=ClaudeOutcome.ERROR,
        output="partial output",
        error=ClaudeErrorInfo(message, exit_code=1),
    )


@pytest.fixture
def fake_agent(plan_file):
    return FakeAgent(plan_file)
