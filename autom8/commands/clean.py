"""
autom8 clean - Remove finished and stale sessions, with their worktrees.
"""

import logging
from pathlib import Path

from autom8.commands.common import resolve_project
from autom8.git import get_main_repo_root, is_git_repo, remove_worktree
from autom8.lib.constants import MAIN_SESSION_ID
from autom8.lib.errors import WorktreeError
from autom8.runner.sessions import SessionStatus, list_sessions_with_status
from autom8.runner.state import RunStatus
from autom8.runner.store import StateManager

logger = logging.getLogger(__name__)


def is_active(status: SessionStatus) -> bool:
    """A live session with a run that is running right now."""
    if status.is_stale:
        return False
    return status.metadata.is_running or (
        status.state is not None and status.state.status == RunStatus.RUNNING
    )


def is_finished(status: SessionStatus) -> bool:
    return status.is_stale or status.state is None


def clean_session(project: str, status: SessionStatus, main_root: Path | None, force: bool) -> bool:
    """Remove the session's worktree (if linked) and its state. Returns True if removed."""
    store = StateManager(project, status.session_id)
    worktree = Path(status.metadata.worktree_path)

    if status.session_id != MAIN_SESSION_ID and main_root is not None and worktree.exists():
        try:
            remove_worktree(main_root, worktree, force=force)
        except WorktreeError as e:
            print(f"  [WARN] Kept {status.session_id}: {e.reason}")
            print("         Use --force to remove worktrees with uncommitted changes")
            return False
        print(f"  Removed worktree {worktree}")

    # An unfinished run is kept in the archive so its history survives
    if status.state is not None and status.state.status != RunStatus.COMPLETED:
        store.archive(status.state)
    store.delete_session()
    print(f"  Removed session {status.session_id}")
    return True


def cmd_clean(args) -> int:
    cwd = Path.cwd()
    project = resolve_project(cwd)
    main_root = get_main_repo_root(cwd) if is_git_repo(cwd) else None
    statuses = list_sessions_with_status(project, cwd)

    if args.session:
        targets = [s for s in statuses if s.session_id == args.session]
        if not targets:
            print(f"ERROR: Session '{args.session}' not found")
            return 1
    elif args.all:
        targets = statuses
    else:
        targets = [s for s in statuses if is_finished(s)]

    removed = 0
    for status in targets:
        if is_active(status) and not args.force:
            print(f"  Skipping {status.session_id}: run in progress (use --force to remove anyway)")
            continue
        if clean_session(project, status, main_root, args.force):
            removed += 1

    if not removed:
        print("Nothing to clean")
    else:
        print(f"Cleaned {removed} session(s)")
    return 0
