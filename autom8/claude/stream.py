"""
Parsing of `claude --output-format stream-json` lines.

Each stdout line is one JSON event. Only a handful of types matter here;
anything else (system, tool use, unknown future types) is ignored, as is
any line that isn't valid JSON.
"""

import json

from autom8.claude.types import ClaudeUsage


def parse_line(line: str) -> dict | None:
    line = line.strip()
    if not line:
        return None
    try:
        event = json.loads(line)
    except json.JSONDecodeError:
        return None
    return event if isinstance(event, dict) else None


def extract_text(event: dict) -> str | None:
    """Assistant text carried by an event, if any."""
    kind = event.get("type")

    if kind == "stream_event":
        inner = event.get("event") or {}
        if inner.get("type") == "content_block_delta":
            delta = inner.get("delta") or {}
            text = delta.get("text")
            return text if isinstance(text, str) else None
        return None

    if kind == "assistant":
        content = (event.get("message") or {}).get("content") or []
        texts = [
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        return "".join(texts) or None

    if kind == "result":
        result = event.get("result")
        return result if isinstance(result, str) else None

    return None


def extract_text_from_stream_line(line: str) -> str | None:
    event = parse_line(line)
    if event is None:
        return None
    return extract_text(event)


def extract_usage(event: dict) -> ClaudeUsage | None:
    """Usage counters from a result event."""
    if event.get("type") != "result":
        return None
    usage = event.get("usage")
    if not isinstance(usage, dict):
        return None
    model = None
    model_usage = event.get("modelUsage")
    if isinstance(model_usage, dict) and model_usage:
        model = next(iter(model_usage))
    return ClaudeUsage(
        input_tokens=usage.get("input_tokens", 0) or 0,
        output_tokens=usage.get("output_tokens", 0) or 0,
        cache_read_tokens=usage.get("cache_read_input_tokens", 0) or 0,
        cache_creation_tokens=usage.get("cache_creation_input_tokens", 0) or 0,
        model=model or event.get("model"),
    )


def extract_usage_from_result_line(line: str) -> ClaudeUsage | None:
    event = parse_line(line)
    if event is None:
        return None
    return extract_usage(event)


def is_result(event: dict) -> bool:
    return event.get("type") == "result"


def is_control_request(event: dict) -> bool:
    return event.get("type") == "control_request"
