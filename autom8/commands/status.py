"""
autom8 status - Show the current run, or every project with --all.
"""

from pathlib import Path

from autom8.commands.common import resolve_project, short_date
from autom8.lib import config as cfg
from autom8.lib.constants import HEARTBEAT_STALE_THRESHOLD_SECS
from autom8.lib.errors import Autom8Error
from autom8.runner.engine import session_id_for
from autom8.runner.sessions import list_sessions_with_status
from autom8.runner.state import RunState
from autom8.runner.store import StateManager
from autom8.spec import Spec


def _print_progress(state: RunState) -> None:
    try:
        spec = Spec.load(Path(state.spec_json_path))
    except Autom8Error as e:
        print(f"Plan:           unreadable ({e.message})")
        return

    done, total = spec.progress()
    next_story = spec.next_incomplete_story()
    print(f"Plan Progress:  {done}/{total} stories")
    for story in spec.user_stories:
        marker = "[x]" if story.passes else "[ ]"
        arrow = "  <-- NEXT" if story is next_story else ""
        print(f"  {marker} {story.id}: {story.title}{arrow}")


def print_run(state: RunState, store: StateManager) -> None:
    print(f"Run:            {state.run_id}")
    print("=" * 60)
    print()
    print(f"Status:         {state.status.value}")
    print(f"State:          {state.machine_state.label}")
    print(f"Branch:         {state.branch or '-'}")
    print(f"Plan:           {state.spec_json_path}")
    if state.spec_md_path:
        print(f"Spec:           {state.spec_md_path}")
    print(f"Started:        {state.started_at:%Y-%m-%d %H:%M:%S}")
    if state.current_story:
        print(f"Current story:  {state.current_story}")
    print(f"Iterations:     {state.iteration}")
    if state.review_iteration:
        print(f"Review passes:  {state.review_iteration}")
    if state.error:
        print(f"Error:          {state.error}")
    print()

    _print_progress(state)

    if state.iterations:
        print()
        print("Iterations")
        print("-" * 60)
        for record in state.iterations:
            summary = f"  {record.work_summary[:60]}" if record.work_summary else ""
            print(f"  #{record.number:<3} {record.story_id:<10} {record.status.value:<8}{summary}")

    if state.total_usage:
        print()
        usage = state.total_usage
        print(f"Tokens:         {usage.input_tokens} in / {usage.output_tokens} out")
        for phase, phase_usage in state.phase_usage.items():
            print(f"  {phase:<14} {phase_usage.input_tokens} in / {phase_usage.output_tokens} out")

    live = store.load_live()
    if live is not None and live.last_heartbeat is not None:
        alive = live.is_alive(HEARTBEAT_STALE_THRESHOLD_SECS)
        print()
        print(f"Heartbeat:      {live.last_heartbeat:%H:%M:%S} ({'alive' if alive else 'stale'})")


def _status_all() -> int:
    projects = cfg.list_projects()
    if not projects:
        print("No projects found")
        return 0

    for project in projects:
        print(project)
        print("-" * 60)
        statuses = list_sessions_with_status(project, Path.cwd())
        if not statuses:
            print("  no sessions")
        for status in statuses:
            state = status.state
            label = f"{state.status.value}/{state.machine_state.label}" if state else "idle"
            stale = " [stale]" if status.is_stale else ""
            print(
                f"  {status.session_id:<10} {status.metadata.branch_name or '-':<28} "
                f"{label:<26} {short_date(status.metadata.last_active_at)}{stale}"
            )
        print()
    return 0


def cmd_status(args) -> int:
    if args.all:
        return _status_all()

    cwd = Path.cwd()
    project = resolve_project(cwd)
    store = StateManager(project, session_id_for(cwd))
    state = store.load_current()
    if state is None:
        print(f"No active run in session '{store.session_id}' of {project}")
        archived = store.list_archived()
        if archived:
            last = archived[0]
            print(f"Last run: {last.run_id[:8]} {last.status.value} on {short_date(last.started_at)}")
        return 0

    print_run(state, store)
    return 0
