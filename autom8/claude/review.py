"""Final review and correction passes."""

import logging
from pathlib import Path

from autom8.claude.driver import OutputCallback, run_claude_process
from autom8.claude.types import (
    ClaudeErrorInfo,
    CorrectorOutcome,
    CorrectorResult,
    ReviewOutcome,
    ReviewResult,
)
from autom8.lib.constants import MAX_REVIEW_ITERATIONS, REVIEW_FILE
from autom8.lib.prompts import render_prompt
from autom8.spec import Spec

logger = logging.getLogger(__name__)

REVIEW_ARGS = ["--dangerously-skip-permissions"]

# Each correction pass narrows what gets fixed, so the loop converges
CORRECTION_FOCUS = {
    1: "Fix every issue listed in the review.",
    2: (
        "Focus on correctness and acceptance criteria. Fix issues that make the "
        "feature wrong or leave a criterion unmet; leave style nits alone."
    ),
    3: (
        "This is the last pass. Fix only blocking issues: crashes, failing tests, "
        "unmet acceptance criteria. Ignore everything else."
    ),
}


def format_stories_context(spec: Spec) -> str:
    blocks = []
    for story in spec.user_stories:
        criteria = "\n".join(f"  - {c}" for c in story.acceptance_criteria)
        blocks.append(
            f"### {story.id}: {story.title}\n{story.description}\n\n"
            f"**Acceptance Criteria:**\n{criteria}"
        )
    return "\n\n".join(blocks)


def build_review_prompt(spec: Spec, iteration: int, max_iterations: int = MAX_REVIEW_ITERATIONS) -> str:
    return render_prompt(
        "review",
        project=spec.project,
        feature_description=spec.description,
        stories_context=format_stories_context(spec),
        iteration=iteration,
        max_iterations=max_iterations,
    )


def build_correct_prompt(spec: Spec, iteration: int, max_iterations: int = MAX_REVIEW_ITERATIONS) -> str:
    focus = CORRECTION_FOCUS.get(iteration, CORRECTION_FOCUS[max(CORRECTION_FOCUS)])
    return render_prompt(
        "correct",
        project=spec.project,
        feature_description=spec.description,
        stories_context=format_stories_context(spec),
        iteration=iteration,
        max_iterations=max_iterations,
        focus=focus,
    )


def read_review_result(cwd: Path) -> ReviewOutcome:
    """IssuesFound iff the review file exists with non-blank content."""
    path = Path(cwd) / REVIEW_FILE
    if not path.exists():
        return ReviewOutcome(ReviewResult.PASS)
    try:
        content = path.read_text()
    except OSError as e:
        return ReviewOutcome(
            ReviewResult.ERROR,
            error=ClaudeErrorInfo(f"Failed to read review file: {e}"),
        )
    if content.strip():
        return ReviewOutcome(ReviewResult.ISSUES_FOUND)
    return ReviewOutcome(ReviewResult.PASS)


def run_reviewer(
    spec: Spec,
    iteration: int,
    cwd: Path,
    on_output: OutputCallback | None = None,
) -> ReviewOutcome:
    prompt = build_review_prompt(spec, iteration)
    logger.info(f"Review pass {iteration}/{MAX_REVIEW_ITERATIONS}")
    out = run_claude_process(prompt, cwd=cwd, on_output=on_output, args=REVIEW_ARGS)
    if not out.success:
        return ReviewOutcome(ReviewResult.ERROR, usage=out.usage, error=out.error_info())
    outcome = read_review_result(cwd)
    outcome.usage = out.usage
    return outcome


def run_corrector(
    spec: Spec,
    iteration: int,
    cwd: Path,
    on_output: OutputCallback | None = None,
) -> CorrectorOutcome:
    prompt = build_correct_prompt(spec, iteration)
    logger.info(f"Correction pass {iteration}/{MAX_REVIEW_ITERATIONS}")
    out = run_claude_process(prompt, cwd=cwd, on_output=on_output, args=REVIEW_ARGS)
    if not out.success:
        return CorrectorOutcome(CorrectorResult.ERROR, usage=out.usage, error=out.error_info())
    return CorrectorOutcome(CorrectorResult.COMPLETE, usage=out.usage)
