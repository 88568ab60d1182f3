"""
Run engine: drives one run through the state machine.

Each loop tick runs the side effects of the current state and then asks the
FSM for the next one. Every transition checkpoints the RunState before the
next state's side effects start, so an interrupted run resumes in the state
it stopped in.

The engine never prints. It publishes EngineEvents; the CLI printer and the
live-output writer are subscribers.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from autom8.agents.claude import ClaudeAgent
from autom8.claude.types import ClaudeOutcome, CommitStatus, CorrectorResult, ReviewResult
from autom8.claude.utils import extract_decisions, extract_files_context, extract_patterns
from autom8.git import (
    ensure_branch,
    get_changed_files_since,
    get_commit_sha,
    get_current_session_id,
    get_main_repo_root,
    is_git_repo,
)
from autom8.lib import config as cfg
from autom8.lib.config import Config
from autom8.lib.constants import (
    MAIN_SESSION_ID,
    MAX_REVIEW_ITERATIONS,
    PHASE_FINAL_REVIEW,
    PHASE_PLANNING,
    PHASE_PR_AND_COMMIT,
    REVIEW_FILE,
)
from autom8.lib.errors import (
    Autom8Error,
    ClaudeError,
    Interrupted,
    InvalidSpec,
    MaxReviewIterationsReached,
    NoActiveRun,
    RunInProgress,
    SpecNotFound,
)
from autom8.lib.github import PRResult, create_pull_request
from autom8.lib.knowledge import StoryChanges
from autom8.runner.sessions import check_branch_conflict, ensure_session_worktree
from autom8.runner.signals import SignalHandler
from autom8.runner.state import (
    TERMINAL_STATES,
    IterationStatus,
    LiveState,
    MachineState,
    RunState,
    RunStatus,
)
from autom8.runner.store import StateManager
from autom8.spec import Spec
from autom8.workflow.fsm import RunFSM

logger = logging.getLogger(__name__)

S = MachineState

LIVE_FLUSH_INTERVAL = 0.5


class EventKind(str, Enum):
    PHASE = "phase"
    OUTPUT = "output"
    TRANSITION = "transition"
    ITERATION = "iteration"


@dataclass
class EngineEvent:
    kind: EventKind
    text: str = ""
    from_state: MachineState | None = None
    to_state: MachineState | None = None
    story_id: str | None = None
    iteration: int | None = None


Subscriber = Callable[[EngineEvent], None]


class LiveWriter:
    """Mirrors assistant output into live.json, with a heartbeat per write."""

    def __init__(self, store: StateManager, min_interval: float = LIVE_FLUSH_INTERVAL):
        self.store = store
        self.min_interval = min_interval
        self.live = LiveState(machine_state=S.IDLE)
        self._last_flush = 0.0

    def __call__(self, event: EngineEvent) -> None:
        if event.kind == EventKind.OUTPUT:
            self.live.append_output(event.text)
            force = False
        elif event.kind == EventKind.TRANSITION:
            self.live.machine_state = event.to_state
            force = True
        else:
            return

        self.live.heartbeat()
        now = time.monotonic()
        if force or now - self._last_flush >= self.min_interval:
            self.flush()
            self._last_flush = now

    def flush(self) -> None:
        try:
            self.store.save_live(self.live)
        except OSError as e:
            logger.warning(f"Failed to write live output: {e}")


def session_id_for(cwd: Path) -> str:
    if not is_git_repo(cwd):
        return MAIN_SESSION_ID
    return get_current_session_id(cwd)


class Runner:
    """
    One run of one plan in one session.

    Args:
        project: Project name (config directory key)
        cwd: Working directory the assistant runs in
        store: State store; defaults to the session owning cwd
        agent_factory: cwd -> agent; called again when the run moves to a worktree
        pr_creator: (spec, cwd, commits_were_made) -> PRResult
        signal_handler: Shutdown flag polled between states
        config: Toggles for a new run; defaults to the effective config
        live: Write live.json for the monitor
    """

    def __init__(
        self,
        project: str,
        cwd: Path,
        store: StateManager | None = None,
        agent_factory: Callable[[Path], object] = ClaudeAgent,
        pr_creator: Callable[[Spec, Path, bool], PRResult] = create_pull_request,
        signal_handler: SignalHandler | None = None,
        config: Config | None = None,
        live: bool = True,
    ):
        self.project = project
        self.cwd = Path(cwd).resolve()
        self.in_git = is_git_repo(self.cwd)
        self.store = store or StateManager(project, session_id_for(self.cwd))
        self.agent_factory = agent_factory
        self.agent = agent_factory(self.cwd)
        self.pr_creator = pr_creator
        self.signals = signal_handler or SignalHandler()
        self.config = config

        self.state: RunState | None = None
        self.fsm: RunFSM | None = None
        self._subscribers: list[Subscriber] = []
        self._spec_content: str | None = None
        self._commits_made: bool | None = None

        self._live = LiveWriter(self.store) if live else None
        if self._live:
            self.subscribe(self._live)

    @property
    def session_id(self) -> str:
        return self.store.session_id

    # --- Events ---

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    def _emit(self, kind: EventKind, **kwargs) -> None:
        event = EngineEvent(kind, **kwargs)
        for callback in self._subscribers:
            callback(event)

    def _phase(self, text: str) -> None:
        logger.info(f"[engine] {text}")
        self._emit(EventKind.PHASE, text=text)

    def _on_output(self, text: str) -> None:
        self._emit(EventKind.OUTPUT, text=text)

    def _on_transition(self, from_state: str, to_state: str, trigger: str) -> None:
        self.store.save(self.state)
        self._emit(EventKind.TRANSITION, from_state=S(from_state), to_state=S(to_state), text=trigger)

    # --- Entry points ---

    def _check_no_active_run(self) -> None:
        if self.store.has_active_run():
            current = self.store.load_current()
            raise RunInProgress(current.run_id, self.session_id)

    def _effective_config(self) -> Config:
        return self.config or cfg.get_effective_config(self.project)

    def start_from_plan(self, json_path: Path) -> RunState:
        """
        Run an existing JSON plan.

        Raises:
            SpecNotFound: If json_path doesn't exist
            RunInProgress: If this session already has an unfinished run
        """
        json_path = Path(json_path).resolve()
        if not json_path.exists():
            raise SpecNotFound(json_path)
        self._check_no_active_run()

        state = RunState.new(str(json_path), branch="", session_id=self.session_id, config=self._effective_config())
        return self._run(state)

    def start_from_markdown(self, md_path: Path) -> RunState:
        """
        Generate a plan from a markdown spec, then run it.

        The plan is written next to the other plans as spec/<stem>.json.

        Raises:
            SpecNotFound: If md_path doesn't exist
            RunInProgress: If this session already has an unfinished run
        """
        md_path = Path(md_path).resolve()
        if not md_path.exists():
            raise SpecNotFound(md_path)
        self._check_no_active_run()

        plan_dir = cfg.spec_dir(self.project)
        plan_dir.mkdir(parents=True, exist_ok=True)
        json_path = plan_dir / f"{md_path.stem}.json"

        state = RunState.from_spec(
            str(md_path), str(json_path), session_id=self.session_id, config=self._effective_config()
        )
        return self._run(state)

    def resume(self, state: RunState | None = None) -> RunState:
        """
        Continue an interrupted or failed run in the state it stopped in.

        Raises:
            NoActiveRun: If there's nothing to resume
        """
        state = state or self.store.load_current()
        if state is None or state.status == RunStatus.COMPLETED:
            raise NoActiveRun()

        logger.info(f"[engine] Resuming run {state.run_id[:8]} at {state.machine_state.value}")
        state.resume()
        state.session_id = state.session_id or self.session_id
        self._attach(state)

        if self.fsm.current == S.FAILED:
            plan_exists = Path(state.spec_json_path).exists()
            self.fsm.transition_to(S.INITIALIZING if plan_exists or not state.spec_md_path else S.LOADING_SPEC)
        else:
            self.store.save(state)

        return self._drive()

    def _attach(self, state: RunState) -> None:
        self.state = state
        self.fsm = RunFSM(state, on_transition=self._on_transition)

    def _run(self, state: RunState) -> RunState:
        self._attach(state)
        self.store.ensure_metadata(self.cwd, state.branch)
        return self._drive()

    # --- Loop ---

    def _drive(self) -> RunState:
        self.signals.install()
        try:
            return self._loop()
        finally:
            self.signals.restore()

    def _loop(self) -> RunState:
        handlers = {
            S.IDLE: self._start,
            S.LOADING_SPEC: self._load_spec,
            S.GENERATING_SPEC: self._generate_spec,
            S.INITIALIZING: self._initialize,
            S.PICKING_STORY: self._pick_story,
            S.RUNNING_CLAUDE: self._run_story,
            S.REVIEWING: self._review,
            S.CORRECTING: self._correct,
            S.COMMITTING: self._commit,
            S.CREATING_PR: self._create_pr,
        }

        while self.fsm.current not in TERMINAL_STATES:
            if self._stop_requested():
                self._interrupt()
            try:
                handlers[self.fsm.current]()
            except Interrupted:
                raise
            except Exception as e:
                self._fail(e)
                raise

        self._finish()
        return self.state

    def _stop_requested(self) -> bool:
        return self.signals.is_shutdown_requested() or self.store.take_pause_request()

    def _interrupt(self) -> None:
        """Persist as Interrupted with machine_state unchanged, then stop."""
        self.state.mark_interrupted()
        self.store.save(self.state)
        self._phase(f"Interrupted in {self.fsm.current.label}")
        raise Interrupted(self.state.run_id)

    def _fail(self, error: Exception) -> None:
        state = self.state
        last = state.last_iteration()
        if last is not None and last.status == IterationStatus.RUNNING:
            state.finish_iteration(IterationStatus.FAILED)
        state.error = error.message if isinstance(error, Autom8Error) else str(error)
        logger.error(f"[engine] Run {state.run_id[:8]} failed in {self.fsm.current.value}: {state.error}")

        self.fsm.transition_to(S.FAILED)
        self.store.archive(state)
        self._phase(f"Failed: {state.error}")

    def _finish(self) -> None:
        state = self.state
        if state.machine_state != S.COMPLETED:
            return
        self.store.archive(state)
        self.store.clear_current()
        self.store.clear_live()
        self._phase("Run complete")

    @property
    def _run_config(self) -> Config:
        return self.state.config or Config()

    # --- State handlers ---

    def _start(self) -> None:
        if self.state.spec_md_path:
            self.fsm.transition_to(S.LOADING_SPEC)
        else:
            self.fsm.transition_to(S.INITIALIZING)

    def _load_spec(self) -> None:
        md_path = Path(self.state.spec_md_path)
        if not md_path.exists():
            raise SpecNotFound(md_path)
        content = md_path.read_text()
        if not content.strip():
            raise InvalidSpec(f"spec file is empty: {md_path}")
        self._spec_content = content
        self.fsm.transition_to(S.GENERATING_SPEC)

    def _generate_spec(self) -> None:
        content = self._spec_content
        if content is None:
            content = Path(self.state.spec_md_path).read_text()

        self._phase(f"Generating plan from {Path(self.state.spec_md_path).name}")
        generated = self.agent.generate_spec(content, Path(self.state.spec_json_path), on_output=self._on_output)
        self.state.capture_usage(PHASE_PLANNING, generated.usage)
        self.state.branch = generated.spec.branch_name
        self._phase(f"Plan written to {self.state.spec_json_path}")
        self.fsm.transition_to(S.INITIALIZING)

    def _initialize(self) -> None:
        state = self.state
        spec = Spec.load(Path(state.spec_json_path))
        state.branch = spec.branch_name

        if self.in_git:
            if self._run_config.worktree:
                self._enter_worktree(spec.branch_name)
            else:
                check_branch_conflict(self.project, spec.branch_name, self.session_id)
                ensure_branch(self.cwd, spec.branch_name)
            if state.knowledge.baseline_commit is None:
                state.knowledge.baseline_commit = get_commit_sha(self.cwd)

        self.store.ensure_metadata(self.cwd, state.branch)
        done, total = spec.progress()
        self._phase(f"{spec.project}: {done}/{total} stories complete on {spec.branch_name}")
        self.fsm.transition_to(S.PICKING_STORY)

    def _enter_worktree(self, branch: str) -> None:
        """Move the run into the linked worktree that owns branch."""
        path, session_id = ensure_session_worktree(
            self.project, get_main_repo_root(self.cwd), branch, own_session_id=self.session_id
        )
        if session_id == self.session_id:
            return

        target = self.store.for_session(session_id)
        if target.has_active_run():
            raise RunInProgress(target.load_current().run_id, session_id)

        logger.info(f"[engine] Moving run {self.state.run_id[:8]} to session {session_id} at {path}")
        self.store.release()
        self.store = target
        if self._live:
            self._live.store = target
        self.cwd = path
        self.state.session_id = session_id
        self.agent = self.agent_factory(path)
        self.store.ensure_metadata(path, branch)
        self.store.save(self.state)
        self._phase(f"Working in {path}")

    def _pick_story(self) -> None:
        spec = Spec.load(Path(self.state.spec_json_path))
        story = spec.next_incomplete_story()
        if story is None:
            self._after_all_complete()
            return
        self.state.current_story = story.id
        self.fsm.transition_to(S.RUNNING_CLAUDE)

    def _run_story(self) -> None:
        state = self.state
        # The assistant edits the plan between iterations; never trust a cached copy
        spec = Spec.load(Path(state.spec_json_path))
        story = spec.next_incomplete_story()
        if story is None:
            self._after_all_complete()
            return

        state.pre_story_commit = get_commit_sha(self.cwd) if self.in_git else None
        record = state.start_iteration(story.id)
        self.store.save(state)
        self._emit(EventKind.ITERATION, text=story.title, story_id=story.id, iteration=record.number)

        previous = [it for it in state.iterations[:-1] if it.status == IterationStatus.SUCCESS]
        result = self.agent.implement(
            spec,
            story,
            Path(state.spec_json_path),
            previous_iterations=previous,
            knowledge=state.knowledge,
            on_output=self._on_output,
        )
        state.capture_usage(story.id, result.usage)

        # Ctrl-C reached the assistant too; leave the record Running for resume to close
        if self._stop_requested():
            self._interrupt()

        if result.outcome == ClaudeOutcome.ERROR:
            state.finish_iteration(IterationStatus.FAILED, result.output, usage=result.usage)
            raise ClaudeError(result.error.message if result.error else "unknown error")

        state.finish_iteration(IterationStatus.SUCCESS, result.output, result.work_summary, result.usage)
        self._update_knowledge(story.id, result.output)

        if result.outcome == ClaudeOutcome.ALL_STORIES_COMPLETE:
            self._phase("Completion marker received")
            self._after_all_complete()
        else:
            self.fsm.transition_to(S.PICKING_STORY)

    def _update_knowledge(self, story_id: str, output: str) -> None:
        knowledge = self.state.knowledge
        knowledge.merge_context(
            story_id,
            extract_files_context(output),
            extract_decisions(output),
            extract_patterns(output),
        )
        if self.in_git and self.state.pre_story_commit:
            changes = get_changed_files_since(self.cwd, self.state.pre_story_commit)
            knowledge.record_story_changes(StoryChanges.from_git_changes(story_id, changes))

    def _after_all_complete(self) -> None:
        self.state.current_story = None
        if self._run_config.review:
            self.state.review_iteration = 0
            self.fsm.transition_to(S.REVIEWING)
        elif self._run_config.commit:
            self.fsm.transition_to(S.COMMITTING)
        else:
            self.fsm.transition_to(S.COMPLETED)

    def _review(self) -> None:
        state = self.state
        # Three corrections ran and the issues remain
        if state.review_iteration >= MAX_REVIEW_ITERATIONS:
            raise MaxReviewIterationsReached()

        spec = Spec.load(Path(state.spec_json_path))
        review_pass = state.review_iteration + 1

        self._phase(f"Reviewing (pass {review_pass}/{MAX_REVIEW_ITERATIONS})")
        outcome = self.agent.review(spec, review_pass, on_output=self._on_output)
        state.capture_usage(PHASE_FINAL_REVIEW, outcome.usage)

        if outcome.result == ReviewResult.ERROR:
            raise ClaudeError(outcome.error.message if outcome.error else "review failed")

        if outcome.result == ReviewResult.PASS:
            (Path(self.cwd) / REVIEW_FILE).unlink(missing_ok=True)
            self._phase("Review passed")
            self.fsm.transition_to(S.COMMITTING if self._run_config.commit else S.COMPLETED)
            return

        state.review_iteration = review_pass
        self._phase("Review found issues")
        self.fsm.transition_to(S.CORRECTING)

    def _correct(self) -> None:
        state = self.state
        spec = Spec.load(Path(state.spec_json_path))

        self._phase(f"Correcting review issues (pass {state.review_iteration})")
        outcome = self.agent.correct(spec, state.review_iteration, on_output=self._on_output)
        state.capture_usage(PHASE_FINAL_REVIEW, outcome.usage)

        if outcome.result == CorrectorResult.ERROR:
            raise ClaudeError(outcome.error.message if outcome.error else "correction failed")
        self.fsm.transition_to(S.REVIEWING)

    def _commit(self) -> None:
        state = self.state
        spec = Spec.load(Path(state.spec_json_path))

        self._phase("Committing changes")
        outcome = self.agent.commit(spec, on_output=self._on_output)
        state.capture_usage(PHASE_PR_AND_COMMIT, outcome.usage)

        if outcome.status == CommitStatus.ERROR:
            raise ClaudeError(outcome.error.message if outcome.error else "commit failed")

        self._commits_made = outcome.status == CommitStatus.SUCCESS
        if self._commits_made:
            self._phase(f"Committed {outcome.commit_hash}")
        else:
            self._phase("Nothing to commit")
        self.fsm.transition_to(S.CREATING_PR if self._run_config.pull_request else S.COMPLETED)

    def _create_pr(self) -> None:
        spec = Spec.load(Path(self.state.spec_json_path))
        # A resumed run doesn't know whether the commit phase committed anything
        commits_made = True if self._commits_made is None else self._commits_made

        self._phase("Creating pull request")
        result = self.pr_creator(spec, self.cwd, commits_made)
        if result.is_error:
            logger.warning(f"[engine] PR creation failed: {result.detail}")
            self.state.error = result.detail
            self._phase(f"PR creation failed: {result.detail}")
        else:
            self._phase(f"Pull request {result.status.value}: {result.detail}")
        self.fsm.transition_to(S.COMPLETED)
