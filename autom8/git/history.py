"""Branch history relative to the base branch."""

from dataclasses import dataclass
from pathlib import Path

from autom8.git.remote import has_remote
from autom8.git.runner import run_git

FIELD_SEP = "\x1f"


@dataclass
class CommitInfo:
    short_hash: str
    full_hash: str
    message: str
    author: str
    date: str


@dataclass
class DiffEntry:
    path: str
    additions: int
    deletions: int


def detect_base_branch(repo: Path) -> str:
    """origin's HEAD when there is a remote, else main or master; "main" if neither exists."""
    if has_remote(repo):
        result = run_git(["symbolic-ref", "refs/remotes/origin/HEAD"], repo)
        if result.success and result.stdout.strip():
            # refs/remotes/origin/main -> main
            return result.stdout.strip().split("/")[-1]

    for branch in ("main", "master"):
        if run_git(["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"], repo).success:
            return branch
    return "main"


def get_merge_base(repo: Path, base: str) -> str | None:
    result = run_git(["merge-base", base, "HEAD"], repo)
    if result.success:
        return result.stdout.strip() or None
    return None


def get_branch_commits(repo: Path, base: str) -> list[CommitInfo]:
    """Commits on HEAD that base doesn't have, newest first. Empty on error."""
    fmt = FIELD_SEP.join(["%h", "%H", "%s", "%an", "%ad"])
    result = run_git(["log", f"--format={fmt}", "--date=short", f"{base}..HEAD"], repo)
    if not result.success:
        return []

    commits = []
    for line in result.stdout.splitlines():
        parts = line.split(FIELD_SEP)
        if len(parts) == 5:
            commits.append(CommitInfo(*parts))
    return commits


def get_diff_entries(repo: Path, since: str) -> list[DiffEntry]:
    """Per-file line counts between since and the working tree. Binary files count 0."""
    result = run_git(["diff", "--numstat", since], repo)
    if not result.success:
        return []

    entries = []
    for line in result.stdout.splitlines():
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        added = int(parts[0]) if parts[0] != "-" else 0
        deleted = int(parts[1]) if parts[1] != "-" else 0
        entries.append(DiffEntry(parts[-1], added, deleted))
    return entries
