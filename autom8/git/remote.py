"""Git remote operations."""

from dataclasses import dataclass
from pathlib import Path

from autom8.git.runner import run_git

PUSH_TIMEOUT = 120


@dataclass
class PushResult:
    """Outcome of pushing a branch to origin."""
    status: str  # "success", "up_to_date", "error"
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status != "error"


def has_remote(repo: Path) -> bool:
    """Check if repo has any remotes configured."""
    result = run_git(["remote"], repo)
    return bool(result.stdout.strip())


def push_branch(worktree: Path, branch: str, remote: str = "origin") -> PushResult:
    """Push branch and set upstream tracking."""
    result = run_git(["push", "-u", remote, branch], worktree, timeout=PUSH_TIMEOUT)
    if not result.success:
        return PushResult("error", result.error)

    # git reports "Everything up-to-date" on stderr
    if "up-to-date" in result.stderr or "up to date" in result.stderr:
        return PushResult("up_to_date")
    return PushResult("success")
