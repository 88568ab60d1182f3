"""
Text helpers for assistant output: JSON extraction and repair, and the
tagged blocks an implementation iteration may emit.
"""

import re

from autom8.lib.constants import WORK_SUMMARY_MAX_CHARS
from autom8.lib.knowledge import Decision, FileContextEntry, Pattern

WORK_SUMMARY_TAG = "work-summary"
FILES_CONTEXT_TAG = "files-context"
DECISIONS_TAG = "decisions"
PATTERNS_TAG = "patterns"

_OUTER_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```\s*$", re.DOTALL)
_INLINE_FENCE_RE = re.compile(r"```(?:json)?\s*\n(.*?)\n```", re.DOTALL)
_UNQUOTED_KEY_RE = re.compile(r"([{,]\s*)([a-zA-Z_][a-zA-Z0-9_]*)(\s*:)")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


# --- JSON ---

def extract_json(response: str) -> str | None:
    """Pull a JSON object out of a response.

    Tries a ```json fence, then any fence, then the span from the first
    '{' to the last '}'.
    """
    text = response.strip()

    start = text.find("```json")
    if start != -1:
        content_start = start + len("```json")
        end = text.find("```", content_start)
        if end != -1:
            return text[content_start:end].strip()

    start = text.find("```")
    if start != -1:
        content_start = start + 3
        newline = text.find("\n", content_start)
        if newline != -1:
            content_start = newline + 1
        end = text.find("```", content_start)
        if end != -1:
            return text[content_start:end].strip()

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start:end + 1]

    return None


def fix_json_syntax(text: str) -> str:
    """Conservative repair of common LLM JSON mistakes.

    Strips a wrapping fence, quotes bare identifier keys and drops trailing
    commas. Applying it twice gives the same result as applying it once.
    """
    result = text
    match = _OUTER_FENCE_RE.match(result)
    if match:
        result = match.group(1)
    match = _INLINE_FENCE_RE.search(result)
    if match:
        result = match.group(1)
    result = _UNQUOTED_KEY_RE.sub(r'\1"\2"\3', result)
    result = _TRAILING_COMMA_RE.sub(r"\1", result)
    return result.strip()


def truncate_json_preview(text: str, max_len: int) -> str:
    text = text.strip()
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


# --- Tagged blocks ---

def _tag_content(output: str, tag: str) -> str | None:
    open_tag, close_tag = f"<{tag}>", f"</{tag}>"
    start = output.find(open_tag)
    if start == -1:
        return None
    content_start = start + len(open_tag)
    end = output.find(close_tag, content_start)
    if end == -1:
        return None
    return output[content_start:end].strip()


def _content_lines(output: str, tag: str) -> list[str]:
    content = _tag_content(output, tag)
    if not content:
        return []
    return [line.strip() for line in content.splitlines() if line.strip()]


def extract_work_summary(output: str) -> str | None:
    """Text of the first <work-summary> block, bounded to 500 chars."""
    summary = _tag_content(output, WORK_SUMMARY_TAG)
    if not summary:
        return None
    if len(summary) <= WORK_SUMMARY_MAX_CHARS:
        return summary
    cut = summary[:WORK_SUMMARY_MAX_CHARS - 1]
    space = cut.rfind(" ")
    if space > 0:
        cut = cut[:space]
    return cut.rstrip() + "…"


def _parse_symbol_list(text: str) -> list[str]:
    text = text.strip()
    if text.startswith("[") and text.endswith("]"):
        text = text[1:-1]
    return [s.strip() for s in text.split(",") if s.strip()]


def extract_files_context(output: str) -> list[FileContextEntry]:
    """Lines of `path | purpose | [sym, ...]`; lines with fewer than 2 parts are dropped."""
    entries = []
    for line in _content_lines(output, FILES_CONTEXT_TAG):
        parts = line.split("|", 2)
        if len(parts) < 2:
            continue
        entries.append(FileContextEntry(
            path=parts[0].strip(),
            purpose=parts[1].strip(),
            key_symbols=_parse_symbol_list(parts[2]) if len(parts) == 3 else [],
        ))
    return entries


def extract_decisions(output: str) -> list[Decision]:
    decisions = []
    for line in _content_lines(output, DECISIONS_TAG):
        parts = line.split("|", 2)
        if len(parts) < 3:
            continue
        decisions.append(Decision(
            topic=parts[0].strip(),
            choice=parts[1].strip(),
            rationale=parts[2].strip(),
        ))
    return decisions


def extract_patterns(output: str) -> list[Pattern]:
    return [Pattern(description=line) for line in _content_lines(output, PATTERNS_TAG)]


def build_previous_context(iterations) -> str | None:
    """`US-001: summary` lines for iterations that reported a summary."""
    lines = [f"{it.story_id}: {it.work_summary}" for it in iterations if it.work_summary]
    return "\n".join(lines) if lines else None
