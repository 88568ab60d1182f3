"""Result types shared by the assistant driver and its callers."""

from dataclasses import dataclass, field
from enum import Enum


@dataclass
class ClaudeUsage:
    """Token counters reported by a result event."""
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0
    model: str | None = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, other: "ClaudeUsage") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cache_read_tokens += other.cache_read_tokens
        self.cache_creation_tokens += other.cache_creation_tokens
        if other.model:
            self.model = other.model

    @classmethod
    def from_dict(cls, data: dict | None) -> "ClaudeUsage | None":
        if not data:
            return None
        return cls(
            input_tokens=data.get("input_tokens", 0),
            output_tokens=data.get("output_tokens", 0),
            cache_read_tokens=data.get("cache_read_tokens", 0),
            cache_creation_tokens=data.get("cache_creation_tokens", 0),
            model=data.get("model"),
        )

    def to_dict(self) -> dict:
        data = {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cache_read_tokens": self.cache_read_tokens,
            "cache_creation_tokens": self.cache_creation_tokens,
        }
        if self.model:
            data["model"] = self.model
        return data


@dataclass
class ClaudeErrorInfo:
    """Why an assistant process failed. A value, never raised."""
    message: str
    exit_code: int | None = None
    stderr: str | None = None

    @classmethod
    def from_process_failure(cls, exit_code: int, stderr: str | None) -> "ClaudeErrorInfo":
        stderr = (stderr or "").strip() or None
        if stderr:
            message = f"Claude exited with status {exit_code}: {stderr}"
        else:
            message = f"Claude exited with status: {exit_code}"
        return cls(message=message, exit_code=exit_code, stderr=stderr)

    def __str__(self) -> str:
        return self.message


@dataclass
class StreamOutput:
    """Everything harvested from one assistant process."""
    text: str = ""
    final_result: str | None = None
    usage: ClaudeUsage | None = None
    exit_code: int = 0
    stderr: str = ""
    denied_tools: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def error_info(self) -> ClaudeErrorInfo:
        return ClaudeErrorInfo.from_process_failure(self.exit_code, self.stderr)


class ClaudeOutcome(Enum):
    """How an implementation iteration ended."""
    ITERATION_COMPLETE = "iteration_complete"
    ALL_STORIES_COMPLETE = "all_stories_complete"
    ERROR = "error"


@dataclass
class ClaudeRunResult:
    outcome: ClaudeOutcome
    output: str = ""
    work_summary: str | None = None
    usage: ClaudeUsage | None = None
    error: ClaudeErrorInfo | None = None


class ReviewResult(Enum):
    PASS = "pass"
    ISSUES_FOUND = "issues_found"
    ERROR = "error"


@dataclass
class ReviewOutcome:
    result: ReviewResult
    usage: ClaudeUsage | None = None
    error: ClaudeErrorInfo | None = None


class CorrectorResult(Enum):
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class CorrectorOutcome:
    result: CorrectorResult
    usage: ClaudeUsage | None = None
    error: ClaudeErrorInfo | None = None


class CommitStatus(Enum):
    SUCCESS = "success"
    NOTHING_TO_COMMIT = "nothing_to_commit"
    ERROR = "error"


@dataclass
class CommitOutcome:
    status: CommitStatus
    commit_hash: str | None = None
    usage: ClaudeUsage | None = None
    error: ClaudeErrorInfo | None = None
