"""
autom8 run - Implement a spec story by story.
"""

import logging
from functools import partial
from pathlib import Path
from typing import Callable

from autom8.agents.claude import ClaudeAgent
from autom8.commands.common import ConsolePrinter, resolve_project
from autom8.lib import config as cfg
from autom8.lib.config import Config
from autom8.lib.errors import Interrupted, SpecNotFound
from autom8.runner.engine import Runner
from autom8.runner.state import MachineState, RunState

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130


def apply_overrides(config: Config, args) -> Config:
    """Command-line flags win over config files for this run only."""
    if getattr(args, "skip_review", False):
        config.review = False
    worktree = getattr(args, "worktree", None)
    if worktree is not None:
        config.worktree = worktree
    cfg.validate_config(config)
    return config


def agent_factory_for(args) -> Callable[[Path], ClaudeAgent]:
    """ClaudeAgent builder honoring --all-permissions."""
    return partial(ClaudeAgent, all_permissions=getattr(args, "all_permissions", False))


def execute(runner: Runner, start: Callable[[], RunState], verbose: bool = False) -> int:
    """Drive a run to a terminal state and map it to an exit code.

    Errors other than an interrupt propagate to the CLI, which prints them.
    """
    runner.subscribe(ConsolePrinter(show_transitions=verbose))
    try:
        state = start()
    except Interrupted as e:
        print()
        print(f"Interrupted. Run {e.run_id[:8]} saved in session '{runner.session_id}'.")
        print("  Continue with: autom8 resume")
        return EXIT_INTERRUPTED

    print()
    if state.machine_state == MachineState.COMPLETED:
        print(f"Run {state.run_id[:8]} completed ({state.iteration} iterations)")
        if state.total_usage:
            usage = state.total_usage
            print(f"Tokens: {usage.input_tokens} in / {usage.output_tokens} out")
        if state.error:
            print(f"WARNING: {state.error}")
        return 0
    return 1


def run_spec_file(project: str, cwd: Path, spec_path: Path, config: Config, args) -> int:
    """Move the spec into the project's spec/ dir if needed and run it."""
    spec_path, moved = cfg.move_to_config_dir(spec_path, project)
    if moved:
        print(f"Moved spec to {spec_path}")

    runner = Runner(project, cwd, config=config, agent_factory=agent_factory_for(args))
    if spec_path.suffix == ".json":
        start = lambda: runner.start_from_plan(spec_path)
    else:
        start = lambda: runner.start_from_markdown(spec_path)
    return execute(runner, start, args.verbose)


def cmd_run(args) -> int:
    """Run a markdown spec or a JSON plan."""
    cwd = Path.cwd()
    spec_path = Path(args.spec).expanduser()
    if not spec_path.exists():
        raise SpecNotFound(spec_path)

    project = resolve_project(cwd)
    config = apply_overrides(cfg.get_effective_config(project), args)
    return run_spec_file(project, cwd, spec_path, config, args)
