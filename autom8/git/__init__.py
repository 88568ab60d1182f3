"""Git operations for autom8.

Return type conventions:
- Functions returning GitResult/PushResult: caller checks the result before using output.
- Functions returning bool: True on success/condition met, False otherwise.
- Functions returning parsed values: None/empty on failure.
- Functions that change the checkout (ensure_branch, create_worktree, ...) raise
  GitError / WorktreeError, since the engine can't continue without them.
"""

from autom8.git.runner import GitResult, run_git
from autom8.git.branch import (
    is_git_repo,
    get_current_branch,
    branch_exists,
    ensure_branch,
    is_clean,
    get_commit_sha,
    latest_commit_short,
    get_changed_files_since,
)
from autom8.git.remote import PushResult, has_remote, push_branch
from autom8.git.history import (
    CommitInfo,
    DiffEntry,
    detect_base_branch,
    get_merge_base,
    get_branch_commits,
    get_diff_entries,
)
from autom8.git.worktree import (
    WorktreeInfo,
    list_worktrees,
    parse_worktree_list_porcelain,
    find_worktree_for_branch,
    create_worktree,
    remove_worktree,
    is_linked_worktree,
    get_worktree_root,
    get_main_repo_root,
    get_repo_name,
    generate_session_id,
    get_session_id_for_path,
    get_current_session_id,
    worktree_path_for_branch,
)

__all__ = [
    # runner
    "GitResult",
    "run_git",
    # branch
    "is_git_repo",
    "get_current_branch",
    "branch_exists",
    "ensure_branch",
    "is_clean",
    "get_commit_sha",
    "latest_commit_short",
    "get_changed_files_since",
    # remote
    "PushResult",
    "has_remote",
    "push_branch",
    # history
    "CommitInfo",
    "DiffEntry",
    "detect_base_branch",
    "get_merge_base",
    "get_branch_commits",
    "get_diff_entries",
    # worktree
    "WorktreeInfo",
    "list_worktrees",
    "parse_worktree_list_porcelain",
    "find_worktree_for_branch",
    "create_worktree",
    "remove_worktree",
    "is_linked_worktree",
    "get_worktree_root",
    "get_main_repo_root",
    "get_repo_name",
    "generate_session_id",
    "get_session_id_for_path",
    "get_current_session_id",
    "worktree_path_for_branch",
]
