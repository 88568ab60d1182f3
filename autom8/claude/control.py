"""
Permission prompts over stdio.

With `--permission-prompt-tool stdio` the assistant asks before using a
tool by emitting a `control_request` line; we answer with a
`control_response` line on its stdin.
"""

import json
import logging
import sys
from dataclasses import dataclass, field
from typing import Callable, TextIO

logger = logging.getLogger(__name__)


@dataclass
class ControlRequest:
    request_id: str
    subtype: str
    tool_name: str = ""
    tool_input: dict = field(default_factory=dict)

    @classmethod
    def from_event(cls, event: dict) -> "ControlRequest | None":
        request = event.get("request") or {}
        request_id = event.get("request_id")
        if not request_id or not isinstance(request, dict):
            return None
        return cls(
            request_id=request_id,
            subtype=request.get("subtype", ""),
            tool_name=request.get("tool_name", ""),
            tool_input=request.get("input") or {},
        )


@dataclass
class PermissionDecision:
    allow: bool
    message: str = ""
    updated_input: dict | None = None


def allow_response(request: ControlRequest, updated_input: dict | None = None) -> dict:
    return {
        "type": "control_response",
        "response": {
            "subtype": "success",
            "request_id": request.request_id,
            "response": {
                "behavior": "allow",
                "updatedInput": updated_input if updated_input is not None else request.tool_input,
            },
        },
    }


def deny_response(request: ControlRequest, message: str) -> dict:
    return {
        "type": "control_response",
        "response": {
            "subtype": "success",
            "request_id": request.request_id,
            "response": {"behavior": "deny", "message": message},
        },
    }


class PermissionHandler:
    """Decides can_use_tool requests.

    `decide` is any callable taking (tool_name, tool_input) and returning a
    PermissionDecision. Without one, everything is allowed.
    """

    def __init__(self, decide: Callable[[str, dict], PermissionDecision] | None = None):
        self.decide = decide
        self.denied: list[str] = []

    def respond(self, request: ControlRequest) -> dict:
        if request.subtype != "can_use_tool":
            return allow_response(request)
        decision = self.decide(request.tool_name, request.tool_input) if self.decide else PermissionDecision(True)
        if decision.allow:
            return allow_response(request, decision.updated_input)
        logger.info(f"Denied tool {request.tool_name}: {decision.message}")
        self.denied.append(request.tool_name)
        return deny_response(request, decision.message or "Permission denied")

    def respond_line(self, request: ControlRequest) -> str:
        return json.dumps(self.respond(request)) + "\n"


def describe_tool_input(tool_input: dict, limit: int = 200) -> str:
    """One line saying what the tool is about to touch."""
    for key in ("command", "file_path", "path", "url", "pattern"):
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value[:limit]
    return json.dumps(tool_input)[:limit] if tool_input else ""


def ask_on_terminal(tool_name: str, tool_input: dict, stream: TextIO | None = None) -> PermissionDecision:
    """Ask the user whether the assistant may use a tool. No answer means no."""
    stream = stream or sys.stderr
    print(f"\nClaude wants to use {tool_name}", file=stream)
    summary = describe_tool_input(tool_input)
    if summary:
        print(f"  {summary}", file=stream)
    try:
        answer = input("Allow? [y/N] ").strip().lower()
    except EOFError:
        answer = ""
    if answer in ("y", "yes"):
        return PermissionDecision(True)
    return PermissionDecision(False, f"User denied {tool_name}")
