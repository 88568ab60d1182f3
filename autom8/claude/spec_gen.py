"""
Markdown spec -> JSON plan, with a retry ladder.

The assistant sometimes returns JSON that doesn't parse. We ask it to fix
its own output up to MAX_JSON_RETRY_ATTEMPTS times, then try one
conservative mechanical repair before giving up.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from autom8.claude.driver import OutputCallback, run_claude_process
from autom8.claude.types import ClaudeUsage
from autom8.claude.utils import extract_json, fix_json_syntax, truncate_json_preview
from autom8.lib.constants import JSON_PREVIEW_CHARS, MAX_JSON_RETRY_ATTEMPTS, SPEC_PREVIEW_CHARS
from autom8.lib.errors import InvalidGeneratedSpec, InvalidSpec, SpecGenerationFailed
from autom8.lib.prompts import render_prompt
from autom8.spec import Spec

logger = logging.getLogger(__name__)

SPEC_GEN_ARGS = ["--dangerously-skip-permissions"]


@dataclass
class GeneratedSpec:
    spec: Spec
    usage: ClaudeUsage | None = None


def _noop(_text: str) -> None:
    pass


def _parse(text: str) -> Spec:
    """
    Raises:
        InvalidSpec: On bad JSON or a plan that fails validation
    """
    return Spec.from_json(text)


def _call(prompt: str, cwd: Path, on_output: OutputCallback, usage: ClaudeUsage) -> str:
    out = run_claude_process(prompt, cwd=cwd, on_output=on_output, args=SPEC_GEN_ARGS)
    if out.usage:
        usage.add(out.usage)
    if not out.success:
        raise SpecGenerationFailed(out.error_info().message)
    return out.text


def generate_spec(
    spec_content: str,
    output_path: Path,
    cwd: Path,
    on_output: OutputCallback | None = None,
) -> GeneratedSpec:
    """
    Convert markdown to a plan and save it to output_path.

    Raises:
        SpecGenerationFailed: If an assistant run fails
        InvalidGeneratedSpec: If no JSON can be obtained, even after repair
    """
    on_output = on_output or _noop
    output_path = Path(output_path)
    usage = ClaudeUsage()

    prompt = render_prompt("spec_json", spec_content=spec_content, output_path=output_path)
    response = _call(prompt, cwd, on_output, usage)

    json_text = extract_json(response)
    if json_text is None:
        if output_path.exists():
            # The assistant may have written the file with its own tools
            json_text = output_path.read_text()
        else:
            preview = response[:SPEC_PREVIEW_CHARS] + ("..." if len(response) > SPEC_PREVIEW_CHARS else "")
            raise InvalidGeneratedSpec(f"No valid JSON found in response. Response preview: {preview!r}")

    last_error = None
    for attempt in range(1, MAX_JSON_RETRY_ATTEMPTS + 1):
        try:
            spec = _parse(json_text)
        except InvalidSpec as e:
            last_error = e.reason
            logger.info(f"Plan JSON attempt {attempt} failed: {last_error}")
        else:
            spec.save(output_path)
            return GeneratedSpec(spec, usage)

        if attempt == MAX_JSON_RETRY_ATTEMPTS:
            break

        on_output(f"\nJSON malformed, retrying (attempt {attempt + 1}/{MAX_JSON_RETRY_ATTEMPTS})...\n")
        prompt = render_prompt(
            "spec_json_correction",
            spec_content=spec_content,
            malformed_json=json_text,
            error_message=last_error,
            attempt=attempt + 1,
            max_attempts=MAX_JSON_RETRY_ATTEMPTS,
        )
        response = _call(prompt, cwd, on_output, usage)
        json_text = extract_json(response) or response

    on_output("\nAttempting programmatic JSON fix...\n")
    try:
        spec = _parse(fix_json_syntax(json_text))
    except InvalidSpec as e:
        raise InvalidGeneratedSpec(
            f"JSON generation failed after {MAX_JSON_RETRY_ATTEMPTS} agentic attempts "
            f"and programmatic fallback.\n\n"
            f"Agent error: {last_error}\n\n"
            f"Fallback error: {e.reason}\n\n"
            f"Malformed JSON preview:\n{truncate_json_preview(json_text, JSON_PREVIEW_CHARS)}"
        ) from None

    on_output("Programmatic fix succeeded!\n")
    spec.save(output_path)
    return GeneratedSpec(spec, usage)
