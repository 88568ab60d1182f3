"""Tests for the run state machine."""

import pytest

from autom8.runner.state import MachineState, RunState, RunStatus
from autom8.workflow.fsm import TRIGGER_FOR, InvalidTransition, RunFSM

S = MachineState


def make_fsm(start=S.IDLE, calls=None):
    state = RunState.new("/tmp/plan.json", "feature")
    state.machine_state = start
    callback = (lambda f, t, trig: calls.append((f, t, trig))) if calls is not None else None
    return state, RunFSM(state, on_transition=callback)


class TestTransitions:
    def test_starts_in_recorded_state(self):
        _, fsm = make_fsm(S.REVIEWING)
        assert fsm.current == S.REVIEWING

    def test_plan_path(self):
        calls = []
        state, fsm = make_fsm(calls=calls)

        for dest in (S.INITIALIZING, S.PICKING_STORY, S.RUNNING_CLAUDE, S.PICKING_STORY, S.REVIEWING,
                     S.CORRECTING, S.REVIEWING, S.COMMITTING, S.CREATING_PR, S.COMPLETED):
            fsm.transition_to(dest)

        assert fsm.current == S.COMPLETED
        assert state.machine_state == S.COMPLETED
        assert state.status == RunStatus.COMPLETED
        assert state.finished_at is not None
        assert calls[0] == ("idle", "initializing", "load_plan")
        assert calls[-1] == ("creating-pr", "completed", "finish")

    def test_markdown_path(self):
        _, fsm = make_fsm()
        fsm.transition_to(S.LOADING_SPEC)
        fsm.transition_to(S.GENERATING_SPEC)
        fsm.transition_to(S.INITIALIZING)
        assert fsm.current == S.INITIALIZING

    def test_completion_marker_skips_picker(self):
        _, fsm = make_fsm(S.RUNNING_CLAUDE)
        fsm.transition_to(S.REVIEWING)
        assert fsm.current == S.REVIEWING

    def test_invalid_transition(self):
        state, fsm = make_fsm(S.PICKING_STORY)
        with pytest.raises(InvalidTransition) as exc:
            fsm.transition_to(S.CREATING_PR)
        assert exc.value.source == "picking-story"
        assert fsm.current == S.PICKING_STORY
        assert state.machine_state == S.PICKING_STORY

    def test_terminal_states_are_final_except_retry(self):
        _, fsm = make_fsm(S.COMPLETED)
        assert fsm.get_available_triggers() == []

        _, fsm = make_fsm(S.FAILED)
        assert sorted(fsm.get_available_triggers()) == ["regenerate", "retry"]


class TestFailure:
    @pytest.mark.parametrize("start", [s for s in MachineState if s not in (S.COMPLETED, S.FAILED)])
    def test_fail_from_any_working_state(self, start):
        state, fsm = make_fsm(start)
        fsm.transition_to(S.FAILED)
        assert state.status == RunStatus.FAILED

    def test_retry_and_regenerate(self):
        _, fsm = make_fsm(S.FAILED)
        assert fsm.can("retry")
        fsm.transition_to(S.INITIALIZING)
        assert fsm.current == S.INITIALIZING

        _, fsm = make_fsm(S.FAILED)
        fsm.transition_to(S.LOADING_SPEC)
        assert fsm.current == S.LOADING_SPEC


class TestTriggerLookup:
    def test_every_pair_has_one_trigger(self):
        assert TRIGGER_FOR[("reviewing", "correcting")] == "issues_found"
        assert TRIGGER_FOR[("failed", "initializing")] == "retry"
        assert ("completed", "failed") not in TRIGGER_FOR
