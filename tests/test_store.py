"""Tests for StateManager persistence."""

import json
import os

import pytest

from autom8.lib.errors import StateError
from autom8.runner.state import LiveState, MachineState, RunState, RunStatus
from autom8.runner.store import StateManager


@pytest.fixture
def store(config_root, workdir):
    store = StateManager("demo", "main")
    store.ensure_metadata(workdir, "feature")
    return store


def new_state(status=RunStatus.RUNNING):
    state = RunState.new("/p/plan.json", "feature", session_id="main")
    state.status = status
    return state


class TestCurrentRun:
    def test_layout(self, store, config_root):
        assert store.state_file == config_root / "demo" / "sessions" / "main" / "state.json"
        assert store.runs_dir == config_root / "demo" / "runs"

    def test_save_and_load(self, store):
        state = new_state()
        store.save(state)
        assert store.load_current() == state

    def test_no_current(self, store):
        assert store.load_current() is None
        assert not store.has_active_run()

    def test_corrupt_state(self, store):
        store.state_file.parent.mkdir(parents=True, exist_ok=True)
        store.state_file.write_text("{garbage")
        with pytest.raises(StateError):
            store.load_current()
        assert not store.has_active_run()

    def test_schema_mismatch(self, store):
        store.state_file.write_text(json.dumps({"run_id": "x"}))
        with pytest.raises(StateError, match="Corrupt state.json"):
            store.load_current()

    @pytest.mark.parametrize("status,active", [
        (RunStatus.RUNNING, True),
        (RunStatus.INTERRUPTED, True),
        (RunStatus.FAILED, False),
        (RunStatus.COMPLETED, False),
    ])
    def test_has_active_run(self, store, status, active):
        store.save(new_state(status))
        assert store.has_active_run() is active

    def test_no_temp_files_left(self, store):
        store.save(new_state())
        leftovers = [n for n in os.listdir(store.session_dir) if n.endswith(".tmp")]
        assert leftovers == []

    def test_clear_current(self, store):
        store.save(new_state())
        store.clear_current()
        store.clear_current()
        assert store.load_current() is None


class TestMetadata:
    def test_save_tracks_running(self, store, workdir):
        store.save(new_state())
        meta = store.load_metadata()
        assert meta.is_running is True
        assert meta.worktree_path == str(workdir)
        assert meta.spec_json_path == "/p/plan.json"

        store.save(new_state(RunStatus.INTERRUPTED))
        assert store.load_metadata().is_running is False

    def test_ensure_metadata_keeps_created_at(self, store, workdir):
        created = store.load_metadata().created_at
        meta = store.ensure_metadata(workdir, "other")
        assert meta.created_at == created
        assert meta.branch_name == "other"

    def test_pause_request_only_when_running(self, store):
        assert store.request_pause() is False

        store.save(new_state())
        assert store.request_pause() is True
        assert store.take_pause_request() is True
        assert store.take_pause_request() is False

    def test_save_keeps_pause_request(self, store):
        store.save(new_state())
        store.request_pause()
        store.save(new_state())
        assert store.load_metadata().pause_requested is True

    def test_release(self, store):
        store.save(new_state())
        store.save_live(LiveState(machine_state=MachineState.RUNNING_CLAUDE))

        store.release()

        assert store.load_current() is None
        assert store.load_live() is None
        assert store.load_metadata().is_running is False


class TestArchive:
    def test_archive_name(self, store):
        state = new_state()
        path = store.archive(state)
        stamp = state.started_at.strftime("%Y%m%d_%H%M%S")
        assert path.name == f"{stamp}_{state.run_id[:8]}.json"

    def test_list_archived_newest_first_skipping_corrupt(self, store):
        older = new_state(RunStatus.COMPLETED)
        newer = new_state(RunStatus.FAILED)
        newer.started_at = older.started_at.replace(year=older.started_at.year + 1)
        store.archive(older)
        store.archive(newer)
        (store.runs_dir / "broken.json").write_text("not json")

        runs = store.list_archived()
        assert [r.run_id for r in runs] == [newer.run_id, older.run_id]

    def test_empty_archive(self, config_root):
        assert StateManager("nothing").list_archived() == []


class TestLive:
    def test_round_trip(self, store):
        live = LiveState(machine_state=MachineState.RUNNING_CLAUDE)
        live.append_output("hi\n")
        store.save_live(live)
        assert store.load_live() == live

    def test_garbage_is_none(self, store):
        store.live_file.write_text("{half")
        assert store.load_live() is None


class TestListings:
    def test_list_sessions(self, config_root, workdir, store):
        other = store.for_session("abc12345")
        other.ensure_metadata(workdir / "wt", "feature/x")
        bad = store.for_session("broken")
        bad.session_dir.mkdir(parents=True)
        bad.metadata_file.write_text("{}")

        ids = [m.session_id for m in store.list_sessions()]
        assert sorted(ids) == ["abc12345", "main"]

    def test_list_specs(self, store):
        store.spec_dir.mkdir(parents=True)
        (store.spec_dir / "a.json").write_text("{}")
        (store.spec_dir / "notes.md").write_text("# x")
        assert [p.name for p in store.list_specs()] == ["a.json"]

    def test_delete_session(self, store):
        assert store.delete_session() is True
        assert not store.session_dir.exists()
        assert store.delete_session() is False
