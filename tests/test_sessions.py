"""Tests for the session registry and branch exclusion."""

import pytest

from autom8.lib.errors import BranchConflict
from autom8.runner.sessions import (
    check_branch_conflict,
    ensure_session_worktree,
    list_sessions_with_status,
    resumable_sessions,
    select_resume_session,
)
from autom8.runner.state import MachineState, RunState, RunStatus, SessionMetadata
from autom8.runner.store import StateManager

S = MachineState


def add_session(session_id, path, branch, running=False, machine_state=None, status=RunStatus.INTERRUPTED):
    """Write metadata (and optionally a run) for a session of project demo."""
    store = StateManager("demo", session_id)
    store.save_metadata(SessionMetadata(session_id, str(path), branch, is_running=running))
    if machine_state is not None:
        state = RunState.new("/p/plan.json", branch, session_id=session_id)
        state.machine_state = machine_state
        state.status = status
        store.save(state)
        # save() refreshes is_running from the run status; restore what the test asked for
        meta = store.load_metadata()
        meta.is_running = running
        store.save_metadata(meta)
    return store


class TestBranchConflict:
    def test_running_session_on_branch_conflicts(self, config_root, tmp_path):
        wt = tmp_path / "repo-wt-feature-x"
        wt.mkdir()
        add_session("abc12345", wt, "feature/x", running=True)

        with pytest.raises(BranchConflict) as exc:
            check_branch_conflict("demo", "feature/x", "main")

        err = exc.value
        assert err.session_id == "abc12345"
        assert err.path == wt
        rendered = err.render()
        assert "abc12345" in rendered
        assert str(wt) in rendered
        for step in ("1. Wait", "2. Use a different branch", "3. Resume", "4. Clean"):
            assert step in rendered

    def test_own_session_is_ignored(self, config_root, tmp_path):
        add_session("abc12345", tmp_path, "feature/x", running=True)
        check_branch_conflict("demo", "feature/x", "abc12345")

    def test_other_branch_or_idle_session(self, config_root, tmp_path):
        add_session("aaaa1111", tmp_path, "feature/y", running=True)
        add_session("bbbb2222", tmp_path, "feature/x", running=False)
        check_branch_conflict("demo", "feature/x", "main")

    def test_stale_session_is_ignored(self, config_root, tmp_path):
        add_session("abc12345", tmp_path / "gone", "feature/x", running=True)
        check_branch_conflict("demo", "feature/x", "main")


class TestSessionStatus:
    def test_lists_with_state_and_staleness(self, config_root, tmp_path, workdir):
        add_session("main", workdir, "feature/a", machine_state=S.RUNNING_CLAUDE)
        add_session("deadbeef", tmp_path / "missing", "feature/b", machine_state=S.REVIEWING)

        statuses = {s.session_id: s for s in list_sessions_with_status("demo", workdir)}

        assert statuses["main"].state.machine_state == S.RUNNING_CLAUDE
        assert not statuses["main"].is_stale
        assert statuses["deadbeef"].is_stale
        assert not statuses["deadbeef"].resumable

    def test_corrupt_state_is_reported_as_none(self, config_root, workdir):
        store = add_session("main", workdir, "feature/a")
        store.state_file.write_text("{bad")

        status = list_sessions_with_status("demo", workdir)[0]
        assert status.state is None
        assert not status.resumable

    @pytest.mark.parametrize("machine_state,resumable", [
        (S.RUNNING_CLAUDE, True),
        (S.FAILED, True),
        (S.COMPLETED, False),
        (S.IDLE, False),
    ])
    def test_resumable_states(self, config_root, workdir, machine_state, resumable):
        add_session("main", workdir, "feature/a", machine_state=machine_state)
        assert bool(resumable_sessions("demo", workdir)) is resumable

    def test_current_session_listed_first(self, config_root, git_repo, tmp_path):
        other = tmp_path / "elsewhere"
        other.mkdir()
        add_session("main", git_repo, "main")
        # Newer activity, but not the current directory
        add_session("abc12345", other, "feature/x")

        statuses = list_sessions_with_status("demo", git_repo)
        assert statuses[0].session_id == "main"
        assert statuses[0].is_current


class TestSelectResumeSession:
    def test_single_candidate_is_chosen(self, config_root, tmp_path, workdir):
        add_session("abc12345", workdir, "feature/x", machine_state=S.PICKING_STORY)
        add_session("def67890", workdir, "feature/y", machine_state=S.COMPLETED, status=RunStatus.COMPLETED)

        chosen, candidates = select_resume_session("demo", workdir)
        assert chosen.session_id == "abc12345"
        assert len(candidates) == 1

    def test_several_candidates_need_a_pick(self, config_root, workdir):
        add_session("abc12345", workdir, "feature/x", machine_state=S.PICKING_STORY)
        add_session("def67890", workdir, "feature/y", machine_state=S.REVIEWING)

        chosen, candidates = select_resume_session("demo", workdir)
        assert chosen is None
        assert sorted(c.session_id for c in candidates) == ["abc12345", "def67890"]

    def test_nothing_to_resume(self, config_root, workdir):
        assert select_resume_session("demo", workdir) == (None, [])


class TestEnsureSessionWorktree:
    def test_creates_then_reuses(self, config_root, git_repo):
        path, session_id = ensure_session_worktree("demo", git_repo, "feature/x")

        assert path == (git_repo.parent / "repo-wt-feature-x").resolve()
        assert path.is_dir()
        assert len(session_id) == 8

        again = ensure_session_worktree("demo", git_repo, "feature/x")
        assert again == (path, session_id)

    def test_conflict_with_running_session(self, config_root, git_repo):
        path, session_id = ensure_session_worktree("demo", git_repo, "feature/x")
        add_session(session_id, path, "feature/x", running=True)

        # Another session asking for the same branch through the main checkout
        with pytest.raises(BranchConflict):
            check_branch_conflict("demo", "feature/x", "main")
        with pytest.raises(BranchConflict) as exc:
            ensure_session_worktree("demo", git_repo, "feature/x", own_session_id="main")
        assert exc.value.session_id == session_id
        assert exc.value.path == path
        # The owning session itself may re-enter it
        assert ensure_session_worktree("demo", git_repo, "feature/x") == (path, session_id)
