#!/usr/bin/env python3
"""autom8 CLI entrypoint."""

import argparse
import logging
import os
import sys

from autom8 import __version__
from autom8.commands import clean as cmd_clean_module
from autom8.commands import config as cmd_config_module
from autom8.commands import default as cmd_default_module
from autom8.commands import describe as cmd_describe_module
from autom8.commands import improve as cmd_improve_module
from autom8.commands import init as cmd_init_module
from autom8.commands import list as cmd_list_module
from autom8.commands import monitor as cmd_monitor_module
from autom8.commands import pr_review as cmd_pr_review_module
from autom8.commands import projects as cmd_projects_module
from autom8.commands import resume as cmd_resume_module
from autom8.commands import run as cmd_run_module
from autom8.commands import status as cmd_status_module
from autom8.lib.errors import Autom8Error, ConfigError, Interrupted

LOG_LEVEL_ENV = "AUTOM8_LOG_LEVEL"

EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def configure_logging(verbose: bool) -> None:
    if verbose:
        level = logging.DEBUG
    else:
        name = os.environ.get(LOG_LEVEL_ENV, "WARNING").upper()
        level = getattr(logging, name, None)
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def print_error(error: Autom8Error) -> None:
    print(f"ERROR: {error.render()}", file=sys.stderr)


def _add_worktree_flags(parser: argparse.ArgumentParser, default=None) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument('--worktree', dest='worktree', action='store_true', default=default,
                       help='Run in a linked worktree for the spec branch')
    group.add_argument('--no-worktree', dest='worktree', action='store_false', default=default,
                       help='Run in the current checkout')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='autom8',
        description='Implement a feature spec story by story with Claude',
    )
    parser.add_argument('--version', action='version', version=f'autom8 {__version__}')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging and state transitions')
    parser.add_argument('--skip-review', action='store_true', help='Skip the review loop')
    parser.add_argument('--all-permissions', action='store_true',
                        help='Let Claude use every tool without asking (--dangerously-skip-permissions)')
    _add_worktree_flags(parser)
    parser.set_defaults(func=cmd_default_module.cmd_default)
    subparsers = parser.add_subparsers(dest='command')

    # autom8 run
    p_run = subparsers.add_parser('run', help='Run a markdown spec or JSON plan')
    p_run.add_argument('spec', help='Path to spec .md or plan .json')
    # SUPPRESS keeps a flag given before the subcommand from being reset
    p_run.add_argument('--skip-review', action='store_true', default=argparse.SUPPRESS, help='Skip the review loop')
    p_run.add_argument('--all-permissions', action='store_true', default=argparse.SUPPRESS,
                       help='Let Claude use every tool without asking')
    _add_worktree_flags(p_run, default=argparse.SUPPRESS)
    p_run.set_defaults(func=cmd_run_module.cmd_run)

    # autom8 resume
    p_resume = subparsers.add_parser('resume', help='Resume an interrupted or failed run')
    p_resume.add_argument('--session', '-s', help='Session id to resume')
    p_resume.add_argument('--list', '-l', action='store_true', help='List resumable sessions')
    p_resume.add_argument('--all-permissions', action='store_true', default=argparse.SUPPRESS,
                          help='Let Claude use every tool without asking')
    p_resume.set_defaults(func=cmd_resume_module.cmd_resume)

    # autom8 status
    p_status = subparsers.add_parser('status', help='Show the current run')
    p_status.add_argument('--all', '-a', action='store_true', help='Show every project')
    p_status.set_defaults(func=cmd_status_module.cmd_status)

    # autom8 list
    p_list = subparsers.add_parser('list', help='Tree of projects and specs')
    p_list.set_defaults(func=cmd_list_module.cmd_list)

    # autom8 describe
    p_describe = subparsers.add_parser('describe', help='Describe a project')
    p_describe.add_argument('project', nargs='?', help='Project name (default: current)')
    p_describe.set_defaults(func=cmd_describe_module.cmd_describe)

    # autom8 clean
    p_clean = subparsers.add_parser('clean', help='Remove finished and stale sessions')
    p_clean.add_argument('--session', '-s', help='Only this session')
    p_clean.add_argument('--all', '-a', action='store_true', help='Every session that is not running')
    p_clean.add_argument('--force', '-f', action='store_true',
                         help='Also remove running sessions and worktrees with uncommitted changes')
    p_clean.set_defaults(func=cmd_clean_module.cmd_clean)

    # autom8 init
    p_init = subparsers.add_parser('init', help='Create config directories for this project')
    p_init.set_defaults(func=cmd_init_module.cmd_init)

    # autom8 projects
    p_projects = subparsers.add_parser('projects', help='List projects')
    p_projects.set_defaults(func=cmd_projects_module.cmd_projects)

    # autom8 pr-review
    p_pr_review = subparsers.add_parser('pr-review', help='Address review comments on the open PR')
    p_pr_review.set_defaults(func=cmd_pr_review_module.cmd_pr_review)

    # autom8 improve
    p_improve = subparsers.add_parser('improve', help='Interactive follow-up session on the current branch')
    p_improve.set_defaults(func=cmd_improve_module.cmd_improve)

    # autom8 monitor
    p_monitor = subparsers.add_parser('monitor', help='Dashboard of all sessions')
    p_monitor.set_defaults(func=cmd_monitor_module.cmd_monitor)

    # autom8 config
    p_config = subparsers.add_parser('config', help='Show or set config toggles')
    p_config.add_argument('key', nargs='?', help='review, commit, pull_request or worktree')
    p_config.add_argument('value', nargs='?', help='true or false')
    p_config.add_argument('--global', dest='use_global', action='store_true', help='Use the global config file')
    p_config.set_defaults(func=cmd_config_module.cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        return args.func(args)
    except Interrupted as e:
        print_error(e)
        return EXIT_INTERRUPTED
    except ConfigError as e:
        print_error(e)
        return EXIT_USAGE
    except Autom8Error as e:
        print_error(e)
        return EXIT_ERROR
    except KeyboardInterrupt:
        print()
        return EXIT_INTERRUPTED


if __name__ == '__main__':
    sys.exit(main())
