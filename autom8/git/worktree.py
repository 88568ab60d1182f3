"""
Git worktree operations.

Each autom8 session owns one working directory: the main checkout or a
linked worktree. Git refuses to check out the same branch in two worktrees;
the session registry builds the branch-exclusion checks on top of the
listing parsed here.
"""

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

from autom8.git.branch import branch_exists
from autom8.git.runner import run_git
from autom8.lib.constants import MAIN_SESSION_ID, SESSION_ID_LEN
from autom8.lib.errors import WorktreeError

logger = logging.getLogger(__name__)


@dataclass
class WorktreeInfo:
    """One entry of `git worktree list --porcelain`."""
    path: Path
    branch: str | None  # None for detached HEAD
    commit: str
    is_main: bool = False
    is_bare: bool = False
    is_locked: bool = False
    is_prunable: bool = False


def _parse_block(lines: list[str]) -> WorktreeInfo | None:
    path = None
    commit = None
    branch = None
    is_bare = is_locked = is_prunable = False

    for line in lines:
        if line.startswith("worktree "):
            path = Path(line[len("worktree "):])
        elif line.startswith("HEAD "):
            commit = line[len("HEAD "):]
        elif line.startswith("branch "):
            ref = line[len("branch "):]
            branch = ref.removeprefix("refs/heads/")
        elif line == "bare":
            is_bare = True
        elif line.startswith("locked"):
            is_locked = True
        elif line.startswith("prunable"):
            is_prunable = True

    # Bare repositories have no HEAD line
    if path is None or (commit is None and not is_bare):
        return None
    return WorktreeInfo(
        path=path,
        branch=branch,
        commit=commit or "",
        is_bare=is_bare,
        is_locked=is_locked,
        is_prunable=is_prunable,
    )


def parse_worktree_list_porcelain(output: str) -> list[WorktreeInfo]:
    """Parse porcelain output; blocks are separated by blank lines, first one is main."""
    worktrees: list[WorktreeInfo] = []
    block: list[str] = []

    for line in output.splitlines() + [""]:
        if line.strip():
            block.append(line)
            continue
        if block:
            info = _parse_block(block)
            if info is not None:
                info.is_main = not worktrees
                worktrees.append(info)
            block = []

    return worktrees


def list_worktrees(repo: Path) -> list[WorktreeInfo]:
    """List all worktrees of the repository containing repo.

    Raises:
        WorktreeError: If not in a git repository
    """
    result = run_git(["worktree", "list", "--porcelain"], repo)
    if not result.success:
        raise WorktreeError(f"Failed to list worktrees: {result.error}")
    return parse_worktree_list_porcelain(result.stdout)


def find_worktree_for_branch(worktrees: list[WorktreeInfo], branch: str) -> WorktreeInfo | None:
    for wt in worktrees:
        if wt.branch == branch:
            return wt
    return None


def create_worktree(repo: Path, path: Path, branch: str) -> None:
    """
    Create a worktree at path for branch.

    An existing branch is checked out; a new one is created from HEAD.

    Raises:
        WorktreeError: If git refuses (e.g. branch checked out elsewhere)
    """
    if branch_exists(repo, branch):
        args = ["worktree", "add", str(path), branch]
    else:
        args = ["worktree", "add", "-b", branch, str(path)]

    logger.info(f"Creating worktree {path} for branch {branch}")
    result = run_git(args, repo, timeout=120)
    if not result.success:
        raise WorktreeError(f"Failed to create worktree at '{path}': {result.error}")


def remove_worktree(repo: Path, path: Path, force: bool = False) -> None:
    """
    Remove the worktree at path.

    Raises:
        WorktreeError: If removal fails (e.g. uncommitted changes without force)
    """
    args = ["worktree", "remove"]
    if force:
        args.append("--force")
    args.append(str(path))

    result = run_git(args, repo)
    if not result.success:
        raise WorktreeError(f"Failed to remove worktree at '{path}': {result.error}")


def _rev_parse_path(cwd: Path, flag: str) -> Path:
    result = run_git(["rev-parse", flag], cwd)
    if not result.success:
        raise WorktreeError(f"Failed to run git rev-parse {flag}: {result.error}")
    value = Path(result.stdout.strip())
    if not value.is_absolute():
        value = Path(cwd) / value
    return value.resolve()


def is_linked_worktree(cwd: Path) -> bool:
    """True when cwd is inside a linked worktree rather than the main checkout.

    Raises:
        WorktreeError: If cwd is not in a git repository
    """
    git_dir = _rev_parse_path(cwd, "--git-dir")
    common_dir = _rev_parse_path(cwd, "--git-common-dir")
    return git_dir != common_dir


def get_worktree_root(cwd: Path) -> Path | None:
    """Root of the linked worktree containing cwd, or None in the main checkout."""
    if not is_linked_worktree(cwd):
        return None
    result = run_git(["rev-parse", "--show-toplevel"], cwd)
    if not result.success:
        raise WorktreeError(f"Failed to get worktree root: {result.error}")
    return Path(result.stdout.strip()).resolve()


def get_main_repo_root(cwd: Path) -> Path:
    """Main repository root, wherever in the repository cwd is."""
    return _rev_parse_path(cwd, "--git-common-dir").parent


def get_repo_name(cwd: Path) -> str | None:
    """Name of the main repository directory, or None outside git."""
    try:
        return get_main_repo_root(cwd).name
    except WorktreeError:
        return None


def generate_session_id(worktree_path: Path) -> str:
    """Deterministic 8 hex-character id derived from the worktree path."""
    digest = hashlib.sha256(str(worktree_path).encode()).hexdigest()
    return digest[:SESSION_ID_LEN]


def get_session_id_for_path(path: Path) -> str:
    """Session id for a checkout path: "main" for the main repository."""
    path = Path(path).resolve()
    main_root = get_main_repo_root(path)
    if path == main_root.resolve():
        return MAIN_SESSION_ID
    return generate_session_id(path)


def get_current_session_id(cwd: Path) -> str:
    root = get_worktree_root(cwd)
    if root is None:
        return MAIN_SESSION_ID
    return generate_session_id(root)


def worktree_path_for_branch(main_root: Path, branch: str) -> Path:
    """Sibling directory for a branch's worktree: <parent>/<repo>-wt-<branch>."""
    slug = branch.replace("/", "-")
    return main_root.parent / f"{main_root.name}-wt-{slug}"
