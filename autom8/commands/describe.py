"""
autom8 describe - Specs, sessions and past runs of a project.
"""

from pathlib import Path

from autom8.commands.common import short_date
from autom8.lib import config as cfg
from autom8.lib.errors import Autom8Error
from autom8.runner.sessions import list_sessions_with_status
from autom8.runner.store import StateManager
from autom8.spec import Spec

ARCHIVE_DISPLAY_COUNT = 10


def cmd_describe(args) -> int:
    project = args.project or cfg.current_project_name()
    if not cfg.project_exists(project):
        print(f"ERROR: Project '{project}' not found")
        print("  List known projects with: autom8 projects")
        return 1

    store = StateManager(project)
    print(f"Project: {project}")
    print(f"Config:  {cfg.project_config_dir(project)}")
    print("=" * 60)

    print()
    specs = store.list_specs()
    print(f"Specs ({len(specs)})")
    print("-" * 60)
    for path in specs:
        try:
            spec = Spec.load(path)
        except Autom8Error as e:
            print(f"  {path.name}: {e.message}")
            continue
        done, total = spec.progress()
        print(f"  {path.name}  {done}/{total}  branch {spec.branch_name}")
        print(f"    {spec.description.splitlines()[0] if spec.description else ''}")
        for story in spec.user_stories:
            marker = "[x]" if story.passes else "[ ]"
            print(f"    {marker} {story.id}: {story.title} (priority {story.priority})")

    print()
    sessions = list_sessions_with_status(project, Path.cwd())
    print(f"Sessions ({len(sessions)})")
    print("-" * 60)
    for status in sessions:
        meta = status.metadata
        state = status.state
        run = f"{state.status.value} at {state.machine_state.label}" if state else "no run"
        flags = []
        if status.is_current:
            flags.append("current")
        if status.is_stale:
            flags.append("stale")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"  {meta.session_id:<10} {meta.branch_name or '-':<28} {run}{suffix}")
        print(f"    {meta.worktree_path}")

    print()
    archived = store.list_archived()
    print(f"Runs ({len(archived)})")
    print("-" * 60)
    for run in archived[:ARCHIVE_DISPLAY_COUNT]:
        plan = Path(run.spec_json_path).name
        print(f"  {short_date(run.started_at)}  {run.run_id[:8]}  {run.status.value:<11} {plan}  {run.iteration} iterations")
    if len(archived) > ARCHIVE_DISPLAY_COUNT:
        print(f"  ... {len(archived) - ARCHIVE_DISPLAY_COUNT} more")
    return 0
