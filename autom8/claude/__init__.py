"""Driving the Claude CLI: spawn, stream, classify."""

from autom8.claude.types import (
    ClaudeErrorInfo,
    ClaudeOutcome,
    ClaudeRunResult,
    ClaudeUsage,
    CommitOutcome,
    CommitStatus,
    CorrectorOutcome,
    CorrectorResult,
    ReviewOutcome,
    ReviewResult,
    StreamOutput,
)
from autom8.claude.driver import run_claude_process, run_interactive

__all__ = [
    "ClaudeErrorInfo",
    "ClaudeOutcome",
    "ClaudeRunResult",
    "ClaudeUsage",
    "CommitOutcome",
    "CommitStatus",
    "CorrectorOutcome",
    "CorrectorResult",
    "ReviewOutcome",
    "ReviewResult",
    "StreamOutput",
    "run_claude_process",
    "run_interactive",
]
