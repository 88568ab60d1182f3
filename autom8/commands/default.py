"""
autom8 (no subcommand) - Write a spec with the assistant, then run it.
"""

from pathlib import Path

from autom8.agents.claude import ClaudeAgent
from autom8.commands.common import choose, resolve_project
from autom8.commands.run import apply_overrides, run_spec_file
from autom8.lib import config as cfg
from autom8.lib.errors import RunInProgress
from autom8.lib.snapshot import SpecSnapshot
from autom8.runner.engine import session_id_for
from autom8.runner.store import StateManager


def pick_new_spec(new_files: list[Path]) -> Path | None:
    """The spec to run: the only new file, or the user's pick among several."""
    if not new_files:
        return None
    if len(new_files) == 1:
        return new_files[0]
    print("Several new spec files were written:")
    index = choose([str(p) for p in new_files], "Run which spec?")
    return new_files[index] if index is not None else None


def cmd_default(args) -> int:
    cwd = Path.cwd()
    project = resolve_project(cwd)

    store = StateManager(project, session_id_for(cwd))
    if store.has_active_run():
        current = store.load_current()
        raise RunInProgress(current.run_id, store.session_id)

    spec_dir = cfg.spec_dir(project)
    watched = [spec_dir, cwd]
    snapshot = SpecSnapshot.capture(watched)

    print("Starting an interactive session to write your spec.")
    print(f"Save it as a markdown file in {spec_dir}, then exit the session.")
    ClaudeAgent(cwd).author_spec(spec_dir)

    spec_path = pick_new_spec(snapshot.detect_new(watched))
    if spec_path is None:
        print("ERROR: No new spec file found")
        print(f"  Save the spec as a .md file in {spec_dir} and run:")
        print("  autom8 run <path-to-spec.md>")
        return 1

    print(f"Running {spec_path}")
    config = apply_overrides(cfg.get_effective_config(project), args)
    return run_spec_file(project, cwd, spec_path, config, args)
