"""
Claude agent: the one object the engine talks to for assistant work.

Each method runs one assistant phase in the agent's working directory.
Tests swap in a fake with the same methods.
"""

from pathlib import Path

from autom8.claude.commit import run_commit
from autom8.claude.control import PermissionHandler, ask_on_terminal
from autom8.claude.driver import OutputCallback, run_claude_process, run_interactive
from autom8.claude.review import run_corrector, run_reviewer
from autom8.claude.runner import run_story
from autom8.claude.spec_gen import GeneratedSpec, generate_spec
from autom8.claude.types import (
    ClaudeRunResult,
    CommitOutcome,
    CorrectorOutcome,
    ReviewOutcome,
    StreamOutput,
)
from autom8.lib.knowledge import ProjectKnowledge
from autom8.lib.prompts import render_prompt
from autom8.spec import Spec, UserStory


class ClaudeAgent:
    """
    Implementation runs are permission-mediated unless all_permissions is
    set: tools outside the allowlist are put to the user on the terminal.
    """

    def __init__(
        self,
        cwd: Path,
        all_permissions: bool = False,
        permission_handler: PermissionHandler | None = None,
    ):
        self.cwd = Path(cwd)
        self.all_permissions = all_permissions
        if permission_handler is None and not all_permissions:
            permission_handler = PermissionHandler(ask_on_terminal)
        self.permission_handler = permission_handler

    def generate_spec(self, spec_content: str, output_path: Path, on_output: OutputCallback | None = None) -> GeneratedSpec:
        return generate_spec(spec_content, output_path, self.cwd, on_output)

    def implement(
        self,
        spec: Spec,
        story: UserStory,
        spec_path: Path,
        previous_iterations=(),
        knowledge: ProjectKnowledge | None = None,
        on_output: OutputCallback | None = None,
    ) -> ClaudeRunResult:
        return run_story(
            spec,
            story,
            spec_path,
            self.cwd,
            previous_iterations=previous_iterations,
            knowledge=knowledge,
            on_output=on_output,
            all_permissions=self.all_permissions,
            permission_handler=self.permission_handler,
        )

    def review(self, spec: Spec, iteration: int, on_output: OutputCallback | None = None) -> ReviewOutcome:
        return run_reviewer(spec, iteration, self.cwd, on_output)

    def correct(self, spec: Spec, iteration: int, on_output: OutputCallback | None = None) -> CorrectorOutcome:
        return run_corrector(spec, iteration, self.cwd, on_output)

    def commit(self, spec: Spec, on_output: OutputCallback | None = None) -> CommitOutcome:
        return run_commit(spec, self.cwd, on_output)

    def address_pr_comments(
        self,
        pr_number: int,
        pr_title: str,
        branch: str,
        comments: str,
        on_output: OutputCallback | None = None,
    ) -> StreamOutput:
        prompt = render_prompt(
            "pr_review",
            pr_number=pr_number,
            pr_title=pr_title,
            branch=branch,
            comments=comments,
        )
        return run_claude_process(prompt, cwd=self.cwd, on_output=on_output, args=["--dangerously-skip-permissions"])

    def author_spec(self, spec_dir: Path) -> int:
        """Interactive spec-writing session on the user's terminal."""
        return run_interactive(render_prompt("spec_skill", spec_dir=spec_dir), cwd=self.cwd)

    def follow_up(self, prompt: str) -> int:
        """Interactive session opened with prompt, for work after a run."""
        return run_interactive(prompt, cwd=self.cwd)
