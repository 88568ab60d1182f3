"""Implementation phase: one assistant run per story."""

import logging
from pathlib import Path

from autom8.claude.control import PermissionHandler
from autom8.claude.driver import OutputCallback, run_claude_process
from autom8.claude.permissions import build_permission_args
from autom8.claude.types import ClaudeErrorInfo, ClaudeOutcome, ClaudeRunResult
from autom8.claude.utils import build_previous_context, extract_work_summary
from autom8.lib.constants import COMPLETION_SIGNAL
from autom8.lib.knowledge import ProjectKnowledge, build_knowledge_context
from autom8.lib.prompts import build_section, render_prompt
from autom8.spec import Spec, UserStory

logger = logging.getLogger(__name__)


def build_implement_prompt(
    spec: Spec,
    story: UserStory,
    spec_path: Path,
    previous_iterations=(),
    knowledge: ProjectKnowledge | None = None,
) -> str:
    criteria = "\n".join(f"- {c}" for c in story.acceptance_criteria)
    knowledge_section = build_section(
        build_knowledge_context(knowledge) if knowledge else None,
        "\n## Project Knowledge",
    )
    previous = build_previous_context(previous_iterations)
    previous_work_section = build_section(
        f"The following user stories have already been completed:\n\n{previous}" if previous else None,
        "\n## Previous Work",
    )
    return render_prompt(
        "implement",
        project=spec.project,
        story_id=story.id,
        story_title=story.title,
        story_description=story.description,
        acceptance_criteria=criteria,
        spec_path=spec_path,
        spec_description=spec.description,
        knowledge_section=knowledge_section,
        previous_work_section=previous_work_section,
        notes=story.notes or "None",
    )


def run_story(
    spec: Spec,
    story: UserStory,
    spec_path: Path,
    cwd: Path,
    previous_iterations=(),
    knowledge: ProjectKnowledge | None = None,
    on_output: OutputCallback | None = None,
    all_permissions: bool = False,
    permission_handler: PermissionHandler | None = None,
) -> ClaudeRunResult:
    """
    Ask the assistant to implement one story.

    The completion marker is searched for over the whole output, so it
    counts even when it isn't in the final message.
    """
    prompt = build_implement_prompt(spec, story, spec_path, previous_iterations, knowledge)
    logger.info(f"Implementing {story.id}: {story.title}")
    out = run_claude_process(
        prompt,
        cwd=cwd,
        on_output=on_output,
        args=build_permission_args(cwd, all_permissions),
        permission_handler=permission_handler,
    )

    if out.denied_tools:
        return ClaudeRunResult(
            outcome=ClaudeOutcome.ERROR,
            output=out.text,
            usage=out.usage,
            error=ClaudeErrorInfo(f"Permission denied for tool {out.denied_tools[0]}", exit_code=out.exit_code),
        )

    if not out.success:
        return ClaudeRunResult(
            outcome=ClaudeOutcome.ERROR,
            output=out.text,
            usage=out.usage,
            error=out.error_info(),
        )

    outcome = (
        ClaudeOutcome.ALL_STORIES_COMPLETE
        if COMPLETION_SIGNAL in out.text
        else ClaudeOutcome.ITERATION_COMPLETE
    )
    return ClaudeRunResult(
        outcome=outcome,
        output=out.text,
        work_summary=extract_work_summary(out.text),
        usage=out.usage,
    )
