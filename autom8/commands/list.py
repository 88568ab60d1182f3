"""
autom8 list - Tree of projects and their specs.
"""

from pathlib import Path

from autom8.commands.common import short_date
from autom8.lib import config as cfg
from autom8.lib.errors import Autom8Error
from autom8.runner.sessions import SessionStatus, list_sessions_with_status
from autom8.runner.state import RunStatus
from autom8.runner.store import StateManager
from autom8.spec import Spec


def _load_plans(store: StateManager) -> list[tuple[Path, Spec | None]]:
    plans = []
    for path in store.list_specs():
        try:
            plans.append((path, Spec.load(path)))
        except Autom8Error:
            plans.append((path, None))
    return plans


def project_status(plans: list[tuple[Path, Spec | None]], sessions: list[SessionStatus]) -> str:
    """One of running / failed / incomplete / complete / empty."""
    states = [s.state for s in sessions if s.state is not None and not s.is_stale]
    if any(st.status == RunStatus.RUNNING for st in states):
        return "running"
    if any(st.status == RunStatus.FAILED for st in states):
        return "failed"
    if not plans:
        return "empty"
    if all(spec is not None and spec.all_complete() for _, spec in plans):
        return "complete"
    return "incomplete"


def cmd_list(args) -> int:
    projects = cfg.list_projects()
    root = cfg.config_dir()
    if not projects:
        print(f"No projects in {root}")
        print("  Create one with: autom8 init")
        return 0

    print(root)
    for i, project in enumerate(projects):
        last_project = i == len(projects) - 1
        branch = "└── " if last_project else "├── "
        indent = "    " if last_project else "│   "

        store = StateManager(project)
        plans = _load_plans(store)
        sessions = list_sessions_with_status(project, Path.cwd())
        archived = store.list_archived()
        last_run = archived[0].started_at if archived else None

        status = project_status(plans, sessions)
        print(
            f"{branch}{project}  [{status}]  {len(plans)} specs, {len(sessions)} sessions, "
            f"last run {short_date(last_run)}"
        )
        for j, (path, spec) in enumerate(plans):
            leaf = "└── " if j == len(plans) - 1 else "├── "
            if spec is None:
                progress = "invalid"
            else:
                done, total = spec.progress()
                progress = f"{done}/{total}"
            print(f"{indent}{leaf}{path.name}  {progress}")
    return 0
