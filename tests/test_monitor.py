"""Tests for the monitor's rendering helpers.

Rendered strings are rich markup; parsing them catches stray brackets in
branch names or error messages being read as style tags.
"""

from datetime import timedelta

from rich.text import Text

from autom8.commands.monitor import render_run, render_sessions
from autom8.lib.timestamps import utcnow
from autom8.runner.sessions import SessionStatus
from autom8.runner.state import LiveState, MachineState, RunState, RunStatus, SessionMetadata

from conftest import make_plan, write_plan


def status_for(session_id="main", branch="feature/x", state=None, running=False, stale=False, current=False):
    meta = SessionMetadata(session_id, "/work/repo", branch, is_running=running)
    return SessionStatus(meta, state, is_current=current, is_stale=stale)


class TestRenderSessions:
    def test_empty(self):
        assert render_sessions([], 0) == "[dim]No sessions[/dim]"

    def test_marks_selected_current_and_running(self):
        state = RunState.new("/p/plan.json", "feature/x", session_id="main")
        state.machine_state = MachineState.REVIEWING
        sessions = [
            status_for("main", state=state, running=True, current=True),
            status_for("abc12345", branch="[wip]", stale=True),
        ]

        result = render_sessions(sessions, 1)

        plain = Text.from_markup(result).plain
        assert "  main *" in plain
        assert "> abc12345" in plain
        assert "[wip]" in plain
        assert MachineState.REVIEWING.label in plain
        assert "idle" in plain


class TestRenderRun:
    def test_nothing_selected(self):
        assert "Select a session" in render_run(None, None)

    def test_session_without_run(self):
        plain = Text.from_markup(render_run(status_for(), None)).plain
        assert "/work/repo" in plain
        assert "No run in this session" in plain

    def test_run_with_progress_error_and_heartbeat(self, tmp_path):
        plan = write_plan(tmp_path / "plan.json", make_plan(count=2))
        state = RunState.new(str(plan), "feature/x", session_id="main")
        state.current_story = "US-001"
        state.error = "Failed to push branch: [rejected]"
        live = LiveState(machine_state=MachineState.RUNNING_CLAUDE)
        live.heartbeat()

        plain = Text.from_markup(render_run(status_for(state=state), live)).plain

        assert f"Run {state.run_id[:8]}: running" in plain
        assert "Story: US-001" in plain
        assert "Progress: 0/2 stories" in plain
        assert "[rejected]" in plain
        assert "heartbeat ok" in plain

    def test_missing_plan_and_stale_heartbeat(self):
        state = RunState.new("/nowhere/plan.json", "feature/x", session_id="main")
        state.status = RunStatus.INTERRUPTED
        live = LiveState(machine_state=MachineState.RUNNING_CLAUDE)
        live.last_heartbeat = utcnow() - timedelta(minutes=5)

        plain = Text.from_markup(render_run(status_for(state=state), live)).plain

        assert "Plan not available" in plain
        assert "heartbeat stale" in plain
