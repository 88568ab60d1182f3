"""Commit phase: the assistant stages and commits the finished feature."""

import logging
from pathlib import Path

from autom8.claude.driver import OutputCallback, run_claude_process
from autom8.claude.types import CommitOutcome, CommitStatus
from autom8.git import latest_commit_short
from autom8.lib.prompts import render_prompt
from autom8.spec import Spec

logger = logging.getLogger(__name__)

COMMIT_ARGS = ["--dangerously-skip-permissions"]
NOTHING_TO_COMMIT = "nothing to commit"


def format_stories_summary(spec: Spec) -> str:
    return "\n".join(f"- {s.id}: {s.title}" for s in spec.user_stories)


def build_commit_prompt(spec: Spec) -> str:
    return render_prompt(
        "commit",
        project=spec.project,
        feature_description=spec.description,
        stories_summary=format_stories_summary(spec),
    )


def run_commit(spec: Spec, cwd: Path, on_output: OutputCallback | None = None) -> CommitOutcome:
    out = run_claude_process(build_commit_prompt(spec), cwd=cwd, on_output=on_output, args=COMMIT_ARGS)
    if not out.success:
        return CommitOutcome(CommitStatus.ERROR, usage=out.usage, error=out.error_info())

    if NOTHING_TO_COMMIT in out.text.lower():
        logger.info("Assistant reported nothing to commit")
        return CommitOutcome(CommitStatus.NOTHING_TO_COMMIT, usage=out.usage)

    commit_hash = latest_commit_short(cwd) or "unknown"
    logger.info(f"Committed feature at {commit_hash}")
    return CommitOutcome(CommitStatus.SUCCESS, commit_hash=commit_hash, usage=out.usage)
