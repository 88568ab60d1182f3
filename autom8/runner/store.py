"""
Persistent state for one project + session.

    <config root>/<project>/
        spec/                       plans and markdown specs
        runs/<stamp>_<id8>.json     archived run states
        sessions/<session-id>/
            state.json              current run (the checkpoint)
            metadata.json           session identity
            live.json               recent output for the monitor

Each session directory has a single writer (the engine running in that
working directory), so writes are atomic renames and nothing is locked.
"""

import json
import logging
import shutil
from pathlib import Path

from autom8.lib import config as cfg
from autom8.lib.constants import LIVE_FILE, MAIN_SESSION_ID, METADATA_FILE, STATE_FILE
from autom8.lib.errors import StateError
from autom8.lib.fileio import atomic_write_json
from autom8.lib.validate import ValidationError, validate, validate_before_write
from autom8.runner.state import LiveState, RunState, RunStatus, SessionMetadata

logger = logging.getLogger(__name__)


def _read_json(path: Path, schema_name: str) -> dict:
    """
    Raises:
        StateError: On unreadable JSON or schema mismatch
    """
    try:
        data = json.loads(path.read_text())
        validate(data, schema_name)
    except (OSError, json.JSONDecodeError) as e:
        raise StateError(f"Failed to read {path}: {e}") from None
    except ValidationError as e:
        raise StateError(f"Corrupt {path.name}: {e}") from None
    return data


class StateManager:
    """Reads and writes the state files of one session."""

    def __init__(self, project: str, session_id: str = MAIN_SESSION_ID):
        self.project = project
        self.session_id = session_id
        self.project_dir = cfg.project_config_dir(project)
        self.session_dir = cfg.sessions_dir(project) / session_id
        self.runs_dir = cfg.runs_dir(project)
        self.spec_dir = cfg.spec_dir(project)

    @property
    def state_file(self) -> Path:
        return self.session_dir / STATE_FILE

    @property
    def metadata_file(self) -> Path:
        return self.session_dir / METADATA_FILE

    @property
    def live_file(self) -> Path:
        return self.session_dir / LIVE_FILE

    # --- Current run ---

    def load_current(self) -> RunState | None:
        """
        Returns:
            The current run, or None when there is none

        Raises:
            StateError: If state.json exists but is corrupt
        """
        if not self.state_file.exists():
            return None
        return RunState.from_dict(_read_json(self.state_file, "run_state"))

    def save(self, state: RunState) -> None:
        """Checkpoint the run and refresh this session's metadata."""
        data = state.to_dict()
        validate_before_write(data, "run_state", self.state_file)
        atomic_write_json(self.state_file, data)
        self._touch_metadata(state)

    def clear_current(self) -> None:
        self.state_file.unlink(missing_ok=True)

    def has_active_run(self) -> bool:
        """True when the current run is running or interrupted."""
        try:
            state = self.load_current()
        except StateError:
            return False
        return state is not None and state.status in (RunStatus.RUNNING, RunStatus.INTERRUPTED)

    # --- Archive ---

    def archive(self, state: RunState) -> Path:
        """Write a copy of the run into runs/. Returns the archive path."""
        stamp = state.started_at.strftime("%Y%m%d_%H%M%S")
        path = self.runs_dir / f"{stamp}_{state.run_id[:8]}.json"
        atomic_write_json(path, state.to_dict())
        logger.info(f"Archived run {state.run_id} to {path}")
        return path

    def list_archived(self) -> list[RunState]:
        """Archived runs, newest first. Unreadable files are skipped."""
        if not self.runs_dir.exists():
            return []
        runs = []
        for path in self.runs_dir.glob("*.json"):
            try:
                runs.append(RunState.from_dict(_read_json(path, "run_state")))
            except (StateError, KeyError, ValueError) as e:
                logger.debug(f"Skipping unreadable archive {path}: {e}")
        runs.sort(key=lambda r: r.started_at, reverse=True)
        return runs

    # --- Session metadata ---

    def load_metadata(self) -> SessionMetadata | None:
        if not self.metadata_file.exists():
            return None
        return SessionMetadata.from_dict(_read_json(self.metadata_file, "session_metadata"))

    def save_metadata(self, metadata: SessionMetadata) -> None:
        data = metadata.to_dict()
        validate_before_write(data, "session_metadata", self.metadata_file)
        atomic_write_json(self.metadata_file, data)

    def _touch_metadata(self, state: RunState) -> None:
        try:
            metadata = self.load_metadata()
        except StateError as e:
            logger.warning(f"Rewriting corrupt session metadata: {e}")
            metadata = None
        if metadata is None:
            metadata = SessionMetadata(
                session_id=self.session_id,
                worktree_path=str(Path.cwd()),
                branch_name=state.branch,
            )
        metadata.branch_name = state.branch
        metadata.is_running = state.status == RunStatus.RUNNING
        metadata.spec_json_path = state.spec_json_path
        metadata.touch()
        self.save_metadata(metadata)

    def ensure_metadata(self, worktree_path: Path, branch: str) -> SessionMetadata:
        """Create metadata for this session on first use, or refresh it."""
        metadata = self.load_metadata()
        if metadata is None:
            metadata = SessionMetadata(
                session_id=self.session_id,
                worktree_path=str(worktree_path),
                branch_name=branch,
            )
        else:
            metadata.branch_name = branch or metadata.branch_name
            metadata.touch()
        self.save_metadata(metadata)
        return metadata

    def release(self) -> None:
        """Drop this session's run after it moved to another session."""
        self.clear_current()
        self.clear_live()
        metadata = self.load_metadata()
        if metadata is not None and metadata.is_running:
            metadata.is_running = False
            metadata.touch()
            self.save_metadata(metadata)

    def request_pause(self) -> bool:
        """Ask the running engine to stop at the next state boundary."""
        metadata = self.load_metadata()
        if metadata is None or not metadata.is_running:
            return False
        metadata.pause_requested = True
        self.save_metadata(metadata)
        return True

    def take_pause_request(self) -> bool:
        """Consume a pending pause request."""
        try:
            metadata = self.load_metadata()
        except StateError:
            return False
        if metadata is None or not metadata.pause_requested:
            return False
        metadata.pause_requested = False
        self.save_metadata(metadata)
        return True

    # --- Live output ---

    def save_live(self, live: LiveState) -> None:
        atomic_write_json(self.live_file, live.to_dict())

    def load_live(self) -> LiveState | None:
        """Live output, or None when absent or mid-rewrite garbage."""
        if not self.live_file.exists():
            return None
        try:
            return LiveState.from_dict(_read_json(self.live_file, "live_state"))
        except (StateError, KeyError, ValueError):
            return None

    def clear_live(self) -> None:
        self.live_file.unlink(missing_ok=True)

    # --- Project-wide listings ---

    def list_specs(self) -> list[Path]:
        """JSON plans in spec/, newest first."""
        if not self.spec_dir.exists():
            return []
        return sorted(self.spec_dir.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True)

    def list_sessions(self) -> list[SessionMetadata]:
        """Metadata of every session of the project, most recently active first."""
        root = cfg.sessions_dir(self.project)
        if not root.exists():
            return []
        sessions = []
        for path in root.iterdir():
            meta_file = path / METADATA_FILE
            if not meta_file.exists():
                continue
            try:
                sessions.append(SessionMetadata.from_dict(_read_json(meta_file, "session_metadata")))
            except StateError as e:
                logger.debug(f"Skipping session {path.name}: {e}")
        sessions.sort(key=lambda m: m.last_active_at, reverse=True)
        return sessions

    def for_session(self, session_id: str) -> "StateManager":
        return StateManager(self.project, session_id)

    def delete_session(self) -> bool:
        """Remove this session's directory. Returns False if it didn't exist."""
        if not self.session_dir.exists():
            return False
        shutil.rmtree(self.session_dir)
        logger.info(f"Deleted session {self.session_id} of {self.project}")
        return True
