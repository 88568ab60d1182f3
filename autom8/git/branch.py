"""Git branch and commit queries."""

from pathlib import Path

from autom8.git.runner import run_git
from autom8.lib.errors import GitError


def is_git_repo(path: Path) -> bool:
    """Check if path is inside a git work tree."""
    result = run_git(["rev-parse", "--git-dir"], path)
    return result.success


def get_current_branch(worktree: Path) -> str | None:
    """Get the current branch name, or None if detached HEAD."""
    result = run_git(["rev-parse", "--abbrev-ref", "HEAD"], worktree)
    if result.success:
        branch = result.stdout.strip()
        return None if branch in ("", "HEAD") else branch
    return None


def branch_exists(repo: Path, branch: str) -> bool:
    """Check if a branch exists locally or on origin."""
    if run_git(["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"], repo).success:
        return True
    return run_git(["show-ref", "--verify", "--quiet", f"refs/remotes/origin/{branch}"], repo).success


def ensure_branch(worktree: Path, branch: str) -> None:
    """Check out branch, creating it from HEAD if it doesn't exist.

    Raises:
        GitError: If checkout or creation fails
    """
    if get_current_branch(worktree) == branch:
        return

    if branch_exists(worktree, branch):
        result = run_git(["checkout", branch], worktree)
        if not result.success:
            raise GitError(f"Failed to checkout branch '{branch}': {result.error}")
    else:
        result = run_git(["checkout", "-b", branch], worktree)
        if not result.success:
            raise GitError(f"Failed to create branch '{branch}': {result.error}")


def is_clean(worktree: Path) -> bool:
    """Check if working directory has no uncommitted changes.

    Raises:
        GitError: If git status fails
    """
    result = run_git(["status", "--porcelain"], worktree)
    if not result.success:
        raise GitError(result.error)
    return not result.stdout.strip()


def get_commit_sha(worktree: Path, ref: str = "HEAD") -> str | None:
    """Get the SHA of a ref."""
    result = run_git(["rev-parse", ref], worktree)
    if result.success:
        return result.stdout.strip()
    return None


def latest_commit_short(worktree: Path) -> str | None:
    """Short hash of HEAD, or None outside a repo / before the first commit."""
    result = run_git(["rev-parse", "--short", "HEAD"], worktree)
    if result.success:
        return result.stdout.strip() or None
    return None


def get_changed_files_since(worktree: Path, base: str) -> list[tuple[str, str]]:
    """
    List files changed since a commit, including untracked files.

    Returns:
        (status, path) tuples where status is "A", "M" or "D". Empty on error.
    """
    changes: list[tuple[str, str]] = []
    result = run_git(["diff", "--name-status", base], worktree)
    if not result.success:
        return changes

    for line in result.stdout.splitlines():
        parts = line.split("\t")
        if len(parts) < 2:
            continue
        status = parts[0][:1]
        # Renames report old and new path; track the new one as added
        if status == "R":
            changes.append(("D", parts[1]))
            changes.append(("A", parts[-1]))
        elif status in ("A", "M", "D"):
            changes.append((status, parts[1]))

    untracked = run_git(["ls-files", "--others", "--exclude-standard"], worktree)
    if untracked.success:
        changes.extend(("A", path) for path in untracked.stdout.splitlines() if path)

    return changes
