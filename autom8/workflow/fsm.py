"""Run state machine using the transitions library.

The engine asks for destinations (`fsm.transition_to(MachineState.REVIEWING)`);
the FSM maps each (source, dest) pair to its named trigger and rejects
anything not in TRANSITIONS. Every transition is mirrored into the RunState
and checkpointed through the on_transition callback before the engine runs
the next state's side effects.
"""

import logging
from typing import Callable

from transitions import Machine, MachineError

from autom8.lib.errors import StateError
from autom8.runner.state import MachineState, RunState

logger = logging.getLogger(__name__)

S = MachineState

STATES = [s.value for s in MachineState]

# Each trigger becomes a method on the FSM
TRANSITIONS = [
    # Entry
    {"trigger": "load_spec", "source": S.IDLE.value, "dest": S.LOADING_SPEC.value},
    {"trigger": "load_plan", "source": S.IDLE.value, "dest": S.INITIALIZING.value},
    {"trigger": "generate_spec", "source": S.LOADING_SPEC.value, "dest": S.GENERATING_SPEC.value},
    {"trigger": "spec_generated", "source": S.GENERATING_SPEC.value, "dest": S.INITIALIZING.value},
    {"trigger": "initialized", "source": S.INITIALIZING.value, "dest": S.PICKING_STORY.value},

    # Story loop
    {"trigger": "start_story", "source": S.PICKING_STORY.value, "dest": S.RUNNING_CLAUDE.value},
    {"trigger": "story_done", "source": S.RUNNING_CLAUDE.value, "dest": S.PICKING_STORY.value},

    # All stories pass (from the picker, or by completion marker)
    {"trigger": "start_review", "source": S.PICKING_STORY.value, "dest": S.REVIEWING.value},
    {"trigger": "start_review", "source": S.RUNNING_CLAUDE.value, "dest": S.REVIEWING.value},
    {"trigger": "start_commit", "source": S.PICKING_STORY.value, "dest": S.COMMITTING.value},
    {"trigger": "start_commit", "source": S.RUNNING_CLAUDE.value, "dest": S.COMMITTING.value},

    # Review loop
    {"trigger": "issues_found", "source": S.REVIEWING.value, "dest": S.CORRECTING.value},
    {"trigger": "corrected", "source": S.CORRECTING.value, "dest": S.REVIEWING.value},
    {"trigger": "review_passed", "source": S.REVIEWING.value, "dest": S.COMMITTING.value},

    # Commit and PR
    {"trigger": "committed", "source": S.COMMITTING.value, "dest": S.CREATING_PR.value},
    {"trigger": "finish", "source": S.CREATING_PR.value, "dest": S.COMPLETED.value},
    {"trigger": "finish", "source": S.COMMITTING.value, "dest": S.COMPLETED.value},
    {"trigger": "finish", "source": S.REVIEWING.value, "dest": S.COMPLETED.value},
    {"trigger": "finish", "source": S.PICKING_STORY.value, "dest": S.COMPLETED.value},
    {"trigger": "finish", "source": S.RUNNING_CLAUDE.value, "dest": S.COMPLETED.value},

    # Failure from any working state
    *[
        {"trigger": "fail", "source": s.value, "dest": S.FAILED.value}
        for s in MachineState
        if s not in (S.COMPLETED, S.FAILED)
    ],

    # Resuming a failed run re-checks the checkout, or regenerates a missing plan
    {"trigger": "retry", "source": S.FAILED.value, "dest": S.INITIALIZING.value},
    {"trigger": "regenerate", "source": S.FAILED.value, "dest": S.LOADING_SPEC.value},
]


# (source, dest) -> trigger; first trigger wins for a given pair
def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        key = (t["source"], t["dest"])
        if key not in lookup:
            lookup[key] = t["trigger"]
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


class InvalidTransition(StateError):
    def __init__(self, source: str, dest: str):
        self.source = source
        self.dest = dest
        super().__init__(f"Invalid transition {source} -> {dest}")


class RunFSM:
    """State machine for one run.

    Starts in the RunState's recorded machine_state, so a resumed run
    re-enters where it stopped.
    """

    def __init__(
        self,
        run_state: RunState,
        on_transition: Callable[[str, str, str], None] | None = None,
    ):
        """
        Args:
            run_state: Mutated on every transition
            on_transition: callback(from_state, to_state, trigger), called after
                run_state has been updated; the engine persists here
        """
        self.run_state = run_state
        self.on_transition = on_transition

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=run_state.machine_state.value,
            auto_transitions=False,  # Only explicit transitions
            send_event=True,  # Pass EventData to callbacks
            after_state_change="on_state_change",
        )

    @property
    def current(self) -> MachineState:
        return MachineState(self.state)

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.info(f"[FSM] {self.run_state.run_id[:8]}: {from_state} -> {to_state} ({trigger})")

        self.run_state.transition_to(MachineState(to_state))

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def transition_to(self, dest: MachineState) -> None:
        """
        Raises:
            InvalidTransition: If dest isn't reachable from the current state
        """
        trigger = TRIGGER_FOR.get((self.state, dest.value))
        if trigger is None:
            raise InvalidTransition(self.state, dest.value)
        try:
            self.trigger(trigger)
        except MachineError:
            raise InvalidTransition(self.state, dest.value) from None

    def can(self, trigger: str) -> bool:
        return trigger in self.machine.get_triggers(self.state)

    def get_available_triggers(self) -> list[str]:
        return self.machine.get_triggers(self.state)
