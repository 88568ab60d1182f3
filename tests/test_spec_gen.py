"""Tests for markdown -> plan generation and its retry ladder."""

import json
from unittest.mock import patch

import pytest

from autom8.claude.spec_gen import generate_spec
from autom8.claude.types import ClaudeUsage, StreamOutput
from autom8.lib.errors import InvalidGeneratedSpec, SpecGenerationFailed
from autom8.spec import Spec

from conftest import make_plan

SPEC_MD = "# Demo\n\nBuild a demo feature.\n"


def responses(*texts, exit_code=0):
    """Stand-in for run_claude_process returning each text in turn."""
    queue = list(texts)
    prompts = []

    def fake(prompt, cwd, on_output=None, args=None, **kwargs):
        prompts.append(prompt)
        text = queue.pop(0)
        if on_output:
            on_output(text)
        return StreamOutput(text=text, usage=ClaudeUsage(input_tokens=5, output_tokens=2), exit_code=exit_code)

    fake.prompts = prompts
    return fake


class TestGenerateSpec:
    def test_valid_json_on_first_try(self, tmp_path):
        plan = make_plan(count=2)
        fake = responses(f"Here is the plan:\n```json\n{json.dumps(plan)}\n```\n")
        output = tmp_path / "spec" / "demo.json"

        with patch("autom8.claude.spec_gen.run_claude_process", fake):
            generated = generate_spec(SPEC_MD, output, tmp_path)

        assert len(fake.prompts) == 1
        assert "Build a demo feature." in fake.prompts[0]
        assert generated.spec.project == "demo"
        assert len(generated.spec.user_stories) == 2
        assert generated.usage.input_tokens == 5
        assert Spec.load(output).branch_name == "autom8/demo"

    def test_retries_with_correction_prompt(self, tmp_path):
        plan = make_plan(count=1)
        fake = responses(
            '{"project": "demo", "description": }',
            json.dumps(plan),
        )
        output = tmp_path / "demo.json"

        with patch("autom8.claude.spec_gen.run_claude_process", fake):
            generated = generate_spec(SPEC_MD, output, tmp_path)

        assert len(fake.prompts) == 2
        assert '{"project": "demo", "description": }' in fake.prompts[1]
        assert generated.spec.user_stories[0].id == "US-001"
        assert generated.usage.input_tokens == 10

    def test_programmatic_fix_after_three_failures(self, tmp_path):
        fixable = (
            '{project: "demo", description: "d", '
            'userStories: [{id: "US-001", title: "t", description: "d", priority: 1,}],}'
        )
        fake = responses("{bad}", "{still bad}", fixable)
        seen = []

        with patch("autom8.claude.spec_gen.run_claude_process", fake):
            generated = generate_spec(SPEC_MD, tmp_path / "demo.json", tmp_path, on_output=seen.append)

        assert len(fake.prompts) == 3
        assert generated.spec.project == "demo"
        text = "".join(seen)
        assert "Attempting programmatic JSON fix..." in text
        assert "Programmatic fix succeeded!" in text

    def test_missing_outer_brace_fails_with_both_errors(self, tmp_path):
        # The third answer lacks its braces; the mechanical repair can't add them
        fake = responses(
            '{"project": "demo", "description": }',
            '{"project": "demo" "description": "d"}',
            '"project": "demo", "description": "d"',
        )

        with patch("autom8.claude.spec_gen.run_claude_process", fake):
            with pytest.raises(SpecGenerationFailed) as exc:
                generate_spec(SPEC_MD, tmp_path / "demo.json", tmp_path)

        assert isinstance(exc.value, InvalidGeneratedSpec)
        message = exc.value.message
        assert "failed after 3 agentic attempts and programmatic fallback" in message
        assert "Agent error: JSON parse error" in message
        assert "Fallback error: JSON parse error" in message
        assert 'Malformed JSON preview:\n"project": "demo"' in message
        assert not (tmp_path / "demo.json").exists()

    def test_no_json_reads_file_written_by_assistant(self, tmp_path):
        output = tmp_path / "demo.json"
        output.write_text(json.dumps(make_plan(count=1)))
        fake = responses("I wrote the plan to disk.")

        with patch("autom8.claude.spec_gen.run_claude_process", fake):
            generated = generate_spec(SPEC_MD, output, tmp_path)

        assert generated.spec.project == "demo"

    def test_no_json_and_no_file(self, tmp_path):
        fake = responses("Sorry, I can't help with that.")

        with patch("autom8.claude.spec_gen.run_claude_process", fake):
            with pytest.raises(InvalidGeneratedSpec, match="No valid JSON found"):
                generate_spec(SPEC_MD, tmp_path / "demo.json", tmp_path)

    def test_process_failure(self, tmp_path):
        fake = responses("", exit_code=1)

        with patch("autom8.claude.spec_gen.run_claude_process", fake):
            with pytest.raises(SpecGenerationFailed, match="Claude exited with status: 1"):
                generate_spec(SPEC_MD, tmp_path / "demo.json", tmp_path)
