"""
Session registry: every working directory of a project and what it's doing.

A session is stale when its recorded working directory no longer exists
(the linked worktree was removed behind our back). Stale sessions never
hold a branch and are never offered for resume.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from autom8.git import (
    create_worktree,
    find_worktree_for_branch,
    generate_session_id,
    get_current_session_id,
    get_session_id_for_path,
    is_git_repo,
    list_worktrees,
    worktree_path_for_branch,
)
from autom8.lib.constants import MAIN_SESSION_ID
from autom8.lib.errors import BranchConflict, StateError, WorktreeError
from autom8.runner.state import MachineState, RunState, SessionMetadata
from autom8.runner.store import StateManager

logger = logging.getLogger(__name__)

NOT_RESUMABLE = (MachineState.COMPLETED, MachineState.IDLE)


@dataclass
class SessionStatus:
    metadata: SessionMetadata
    state: RunState | None
    is_current: bool
    is_stale: bool

    @property
    def session_id(self) -> str:
        return self.metadata.session_id

    @property
    def resumable(self) -> bool:
        return (
            self.state is not None
            and self.state.machine_state not in NOT_RESUMABLE
            and not self.is_stale
        )


def _is_stale(metadata: SessionMetadata) -> bool:
    return not Path(metadata.worktree_path).exists()


def _current_session_id(cwd: Path) -> str | None:
    if not is_git_repo(cwd):
        return None
    try:
        return get_current_session_id(cwd)
    except WorktreeError:
        return None


def list_sessions_with_status(project: str, cwd: Path) -> list[SessionStatus]:
    """All sessions of a project: the one for cwd first, then by last activity."""
    store = StateManager(project)
    current_id = _current_session_id(Path(cwd))

    statuses = []
    for metadata in store.list_sessions():
        try:
            state = store.for_session(metadata.session_id).load_current()
        except StateError as e:
            logger.warning(f"Session {metadata.session_id}: {e.reason}")
            state = None
        statuses.append(SessionStatus(
            metadata=metadata,
            state=state,
            is_current=metadata.session_id == current_id,
            is_stale=_is_stale(metadata),
        ))

    # list_sessions is already newest first; the sort is stable
    statuses.sort(key=lambda s: not s.is_current)
    return statuses


def resumable_sessions(project: str, cwd: Path) -> list[SessionStatus]:
    return [s for s in list_sessions_with_status(project, cwd) if s.resumable]


def check_branch_conflict(project: str, branch: str, own_session_id: str) -> None:
    """
    Raises:
        BranchConflict: If another live session is running on branch
    """
    store = StateManager(project)
    for metadata in store.list_sessions():
        if metadata.session_id == own_session_id:
            continue
        if metadata.branch_name != branch or not metadata.is_running:
            continue
        if _is_stale(metadata):
            logger.debug(f"Ignoring stale session {metadata.session_id} on {branch}")
            continue
        raise BranchConflict(branch, metadata.session_id, Path(metadata.worktree_path))


def ensure_session_worktree(
    project: str,
    main_root: Path,
    branch: str,
    own_session_id: str | None = None,
) -> tuple[Path, str]:
    """
    Find or create the linked worktree that owns branch.

    own_session_id is the session asking; a running session that already
    owns the worktree is a conflict unless it is the caller.

    Returns:
        (worktree path, session id)

    Raises:
        BranchConflict: If a running session already holds branch
        WorktreeError: If git can't create the worktree
    """
    main_root = Path(main_root).resolve()
    existing = find_worktree_for_branch(list_worktrees(main_root), branch)

    if existing is not None:
        path = existing.path.resolve()
        session_id = get_session_id_for_path(path)
        check_branch_conflict(project, branch, own_session_id or session_id)
        logger.info(f"Reusing worktree {path} for {branch}")
        return path, session_id

    path = worktree_path_for_branch(main_root, branch).resolve()
    check_branch_conflict(project, branch, generate_session_id(path))
    create_worktree(main_root, path, branch)
    return path, generate_session_id(path)


def select_resume_session(project: str, cwd: Path) -> tuple[SessionStatus | None, list[SessionStatus]]:
    """
    Pick the session `autom8 resume` should continue.

    Returns:
        (chosen, candidates): chosen is None when the caller must ask the
        user to pick from candidates (or there is nothing to resume)
    """
    statuses = list_sessions_with_status(project, cwd)
    candidates = [s for s in statuses if s.resumable]

    current = next((s for s in statuses if s.is_current), None)
    if current is not None and current.session_id != MAIN_SESSION_ID and current.resumable:
        return current, candidates

    if len(candidates) == 1:
        return candidates[0], candidates
    return None, candidates
