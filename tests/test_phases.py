"""Tests for the implement, review, correct and commit phases."""

from unittest.mock import patch

import pytest

from autom8.claude.commit import build_commit_prompt, run_commit
from autom8.claude.control import PermissionHandler
from autom8.claude.review import (
    build_correct_prompt,
    build_review_prompt,
    read_review_result,
    run_corrector,
    run_reviewer,
)
from autom8.claude.runner import build_implement_prompt, run_story
from autom8.claude.types import (
    ClaudeOutcome,
    ClaudeUsage,
    CommitStatus,
    CorrectorResult,
    ReviewResult,
    StreamOutput,
)
from autom8.lib.knowledge import FileContextEntry, ProjectKnowledge
from autom8.runner.state import IterationRecord
from autom8.lib.timestamps import utcnow
from autom8.spec import Spec

from conftest import make_plan


@pytest.fixture
def spec():
    return Spec.from_dict(make_plan())


def process_returning(text="", exit_code=0, stderr="", on_call=None):
    prompts = []

    def fake(prompt, cwd, on_output=None, args=None, **kwargs):
        prompts.append(prompt)
        if on_call:
            on_call(cwd)
        return StreamOutput(text=text, usage=ClaudeUsage(input_tokens=7), exit_code=exit_code, stderr=stderr)

    fake.prompts = prompts
    return fake


class TestImplementPrompt:
    def test_story_fields(self, spec, tmp_path):
        story = spec.user_stories[0]
        prompt = build_implement_prompt(spec, story, tmp_path / "demo.json")

        assert "US-001" in prompt
        assert "Story 1" in prompt
        assert "- Thing 1 works" in prompt
        assert str(tmp_path / "demo.json") in prompt
        assert "## Previous Work" not in prompt
        assert "## Project Knowledge" not in prompt

    def test_previous_work_and_knowledge(self, spec, tmp_path):
        knowledge = ProjectKnowledge()
        knowledge.merge_context("US-001", [FileContextEntry("src/models.py", "Data models")], [], [])
        previous = [IterationRecord(1, "US-001", utcnow(), work_summary="Added models")]

        prompt = build_implement_prompt(spec, spec.user_stories[1], tmp_path / "p.json", previous, knowledge)

        assert "## Previous Work" in prompt
        assert "US-001: Added models" in prompt
        assert "## Project Knowledge" in prompt
        assert "s/models.py" in prompt


class TestRunStory:
    def test_iteration_complete(self, spec, tmp_path):
        fake = process_returning("Did it.\n<work-summary>Built story 1</work-summary>")
        with patch("autom8.claude.runner.run_claude_process", fake):
            result = run_story(spec, spec.user_stories[0], tmp_path / "p.json", tmp_path)

        assert result.outcome == ClaudeOutcome.ITERATION_COMPLETE
        assert result.work_summary == "Built story 1"
        assert result.usage.input_tokens == 7

    def test_completion_marker_anywhere_in_output(self, spec, tmp_path):
        fake = process_returning("All done <promise>COMPLETE</promise>\nbye")
        with patch("autom8.claude.runner.run_claude_process", fake):
            result = run_story(spec, spec.user_stories[0], tmp_path / "p.json", tmp_path)

        assert result.outcome == ClaudeOutcome.ALL_STORIES_COMPLETE

    def test_failure(self, spec, tmp_path):
        fake = process_returning("partial", exit_code=1)
        with patch("autom8.claude.runner.run_claude_process", fake):
            result = run_story(spec, spec.user_stories[0], tmp_path / "p.json", tmp_path)

        assert result.outcome == ClaudeOutcome.ERROR
        assert result.output == "partial"
        assert result.error.message == "Claude exited with status: 1"

    def test_denied_tool_fails_the_iteration(self, spec, tmp_path):
        def fake(prompt, cwd, on_output=None, args=None, **kwargs):
            return StreamOutput(text="trying", exit_code=-9, denied_tools=["Bash"])

        with patch("autom8.claude.runner.run_claude_process", fake):
            result = run_story(spec, spec.user_stories[0], tmp_path / "p.json", tmp_path)

        assert result.outcome == ClaudeOutcome.ERROR
        assert result.error.message == "Permission denied for tool Bash"

    def test_mediated_mode_passes_allowlist_and_handler(self, spec, tmp_path):
        calls = []

        def fake(prompt, cwd, on_output=None, args=None, permission_handler=None, **kwargs):
            calls.append((args, permission_handler))
            return StreamOutput(text="ok")

        handler = PermissionHandler()
        with patch("autom8.claude.runner.run_claude_process", fake):
            run_story(spec, spec.user_stories[0], tmp_path / "p.json", tmp_path, permission_handler=handler)

        args, passed = calls[0]
        assert args[0] == "--allowedTools"
        assert "--dangerously-skip-permissions" not in args
        assert passed is handler


class TestReview:
    def test_prompt_mentions_pass_number(self, spec):
        prompt = build_review_prompt(spec, 2)
        assert "US-003: Story 3" in prompt
        assert "2" in prompt

    def test_correction_focus_narrows(self, spec):
        assert "Fix every issue" in build_correct_prompt(spec, 1)
        assert "last pass" in build_correct_prompt(spec, 3)

    def test_no_review_file_passes(self, tmp_path):
        assert read_review_result(tmp_path).result == ReviewResult.PASS

    def test_blank_review_file_passes(self, tmp_path):
        (tmp_path / "autom8_review.md").write_text("  \n")
        assert read_review_result(tmp_path).result == ReviewResult.PASS

    def test_review_file_with_issues(self, tmp_path):
        (tmp_path / "autom8_review.md").write_text("- Missing test for parser\n")
        assert read_review_result(tmp_path).result == ReviewResult.ISSUES_FOUND

    def test_reviewer_reads_file_after_run(self, spec, tmp_path):
        def write_issues(cwd):
            (cwd / "autom8_review.md").write_text("- bug\n")

        with patch("autom8.claude.review.run_claude_process", process_returning(on_call=write_issues)):
            outcome = run_reviewer(spec, 1, tmp_path)

        assert outcome.result == ReviewResult.ISSUES_FOUND
        assert outcome.usage.input_tokens == 7

    def test_reviewer_process_error(self, spec, tmp_path):
        with patch("autom8.claude.review.run_claude_process", process_returning(exit_code=3)):
            outcome = run_reviewer(spec, 1, tmp_path)

        assert outcome.result == ReviewResult.ERROR
        assert outcome.error.exit_code == 3

    def test_corrector(self, spec, tmp_path):
        with patch("autom8.claude.review.run_claude_process", process_returning("fixed")):
            assert run_corrector(spec, 1, tmp_path).result == CorrectorResult.COMPLETE
        with patch("autom8.claude.review.run_claude_process", process_returning(exit_code=1)):
            assert run_corrector(spec, 1, tmp_path).result == CorrectorResult.ERROR


class TestCommit:
    def test_prompt_lists_stories(self, spec):
        prompt = build_commit_prompt(spec)
        assert "- US-001: Story 1" in prompt
        assert "- US-003: Story 3" in prompt

    def test_success_reads_head(self, spec, tmp_path):
        with patch("autom8.claude.commit.run_claude_process", process_returning("Committed.")), \
                patch("autom8.claude.commit.latest_commit_short", return_value="1a2b3c4"):
            outcome = run_commit(spec, tmp_path)

        assert outcome.status == CommitStatus.SUCCESS
        assert outcome.commit_hash == "1a2b3c4"

    def test_nothing_to_commit(self, spec, tmp_path):
        with patch("autom8.claude.commit.run_claude_process", process_returning("Nothing to commit, tree clean")):
            outcome = run_commit(spec, tmp_path)

        assert outcome.status == CommitStatus.NOTHING_TO_COMMIT
        assert outcome.commit_hash is None

    def test_error(self, spec, tmp_path):
        with patch("autom8.claude.commit.run_claude_process", process_returning(exit_code=1, stderr="denied")):
            outcome = run_commit(spec, tmp_path)

        assert outcome.status == CommitStatus.ERROR
        assert "denied" in outcome.error.message
