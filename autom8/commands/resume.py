"""
autom8 resume - Continue an interrupted or failed run.
"""

import os
from pathlib import Path

from autom8.commands.common import choose, resolve_project, short_date
from autom8.commands.run import agent_factory_for, execute
from autom8.lib.errors import NoActiveRun
from autom8.runner.engine import Runner
from autom8.runner.sessions import SessionStatus, list_sessions_with_status, select_resume_session
from autom8.runner.store import StateManager


def describe_session(status: SessionStatus) -> str:
    meta = status.metadata
    state = status.state
    where = state.machine_state.label if state else "no run"
    marker = " (current)" if status.is_current else ""
    return f"{meta.session_id}{marker}  {meta.branch_name or '-'}  {where}  {meta.worktree_path}  {short_date(meta.last_active_at)}"


def cmd_resume(args) -> int:
    cwd = Path.cwd()
    project = resolve_project(cwd)

    if args.list:
        candidates = [s for s in list_sessions_with_status(project, cwd) if s.resumable]
        if not candidates:
            print("No resumable sessions")
            return 0
        print("Resumable sessions")
        print("-" * 60)
        for status in candidates:
            print(f"  {describe_session(status)}")
        return 0

    if args.session:
        statuses = list_sessions_with_status(project, cwd)
        chosen = next((s for s in statuses if s.session_id == args.session), None)
        if chosen is None:
            print(f"ERROR: Session '{args.session}' not found")
            print("  List sessions with: autom8 resume --list")
            return 1
        if chosen.is_stale:
            print(f"ERROR: Working directory of session '{args.session}' no longer exists")
            print(f"  Remove it with: autom8 clean --session {args.session}")
            return 1
    else:
        chosen, candidates = select_resume_session(project, cwd)
        if chosen is None:
            if not candidates:
                raise NoActiveRun()
            print("Several sessions can be resumed:")
            index = choose([describe_session(s) for s in candidates], "Resume which session?")
            if index is None:
                print("ERROR: No session selected")
                return 1
            chosen = candidates[index]

    if chosen.state is None:
        raise NoActiveRun()

    worktree = Path(chosen.metadata.worktree_path)
    os.chdir(worktree)
    print(f"Resuming run {chosen.state.run_id[:8]} in {worktree} at {chosen.state.machine_state.label}")

    runner = Runner(
        project,
        worktree,
        store=StateManager(project, chosen.session_id),
        agent_factory=agent_factory_for(args),
    )
    return execute(runner, lambda: runner.resume(chosen.state), verbose=args.verbose)
