"""
Run state: the checkpoint written at every state transition.

The JSON written here is the on-disk contract with earlier versions. Fields
added after the first release are optional with defaults so older state
files still load.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from autom8.claude.types import ClaudeUsage
from autom8.lib.config import Config
from autom8.lib.constants import LIVE_MAX_LINES, OUTPUT_SNIPPET_CHARS
from autom8.lib.knowledge import ProjectKnowledge
from autom8.lib.timestamps import format_ts, parse_ts, utcnow


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


class MachineState(str, Enum):
    IDLE = "idle"
    LOADING_SPEC = "loading-spec"
    GENERATING_SPEC = "generating-spec"
    INITIALIZING = "initializing"
    PICKING_STORY = "picking-story"
    RUNNING_CLAUDE = "running-claude"
    REVIEWING = "reviewing"
    CORRECTING = "correcting"
    COMMITTING = "committing"
    CREATING_PR = "creating-pr"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def label(self) -> str:
        return self.value.replace("-", " ").title()


TERMINAL_STATES = (MachineState.COMPLETED, MachineState.FAILED)


class IterationStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


def _snippet(output: str) -> str:
    """Tail of the output, bounded for the state file."""
    return output[-OUTPUT_SNIPPET_CHARS:]


@dataclass
class IterationRecord:
    number: int
    story_id: str
    started_at: datetime
    status: IterationStatus = IterationStatus.RUNNING
    finished_at: datetime | None = None
    output_snippet: str = ""
    work_summary: str | None = None
    usage: ClaudeUsage | None = None

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "story_id": self.story_id,
            "started_at": format_ts(self.started_at),
            "finished_at": format_ts(self.finished_at),
            "status": self.status.value,
            "output_snippet": self.output_snippet,
            "work_summary": self.work_summary,
            "usage": self.usage.to_dict() if self.usage else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IterationRecord":
        return cls(
            number=data["number"],
            story_id=data["story_id"],
            started_at=parse_ts(data["started_at"]),
            finished_at=parse_ts(data.get("finished_at")),
            status=IterationStatus(data["status"]),
            output_snippet=data.get("output_snippet", ""),
            work_summary=data.get("work_summary"),
            usage=ClaudeUsage.from_dict(data.get("usage")),
        )


@dataclass
class RunState:
    run_id: str
    spec_json_path: str
    branch: str
    status: RunStatus = RunStatus.RUNNING
    machine_state: MachineState = MachineState.IDLE
    spec_md_path: str | None = None
    current_story: str | None = None
    iteration: int = 0
    review_iteration: int = 0
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    iterations: list[IterationRecord] = field(default_factory=list)
    config: Config | None = None
    knowledge: ProjectKnowledge = field(default_factory=ProjectKnowledge)
    pre_story_commit: str | None = None
    session_id: str | None = None
    total_usage: ClaudeUsage | None = None
    phase_usage: dict[str, ClaudeUsage] = field(default_factory=dict)
    error: str | None = None

    @classmethod
    def new(
        cls,
        spec_json_path: str,
        branch: str,
        session_id: str | None = None,
        config: Config | None = None,
    ) -> "RunState":
        """State for a run that starts from an existing plan."""
        return cls(
            run_id=str(uuid.uuid4()),
            spec_json_path=str(spec_json_path),
            branch=branch,
            session_id=session_id,
            config=config,
        )

    @classmethod
    def from_spec(
        cls,
        spec_md_path: str,
        spec_json_path: str,
        session_id: str | None = None,
        config: Config | None = None,
    ) -> "RunState":
        """State for a run that starts from a markdown spec. Branch is adopted once the plan exists."""
        state = cls.new(spec_json_path, branch="", session_id=session_id, config=config)
        state.spec_md_path = str(spec_md_path)
        return state

    # --- Transitions ---

    def transition_to(self, machine_state: MachineState) -> None:
        self.machine_state = machine_state
        if machine_state == MachineState.COMPLETED:
            self.status = RunStatus.COMPLETED
            self.finished_at = utcnow()
        elif machine_state == MachineState.FAILED:
            self.status = RunStatus.FAILED
            self.finished_at = utcnow()

    def mark_interrupted(self) -> None:
        """Stop without touching machine_state, so resume re-enters the same state."""
        self.status = RunStatus.INTERRUPTED
        self.finished_at = utcnow()

    def resume(self) -> None:
        """Reopen an interrupted or failed run.

        A Running iteration record left behind by the interruption is closed
        as Failed so a fresh iteration can be appended after it.
        """
        self.status = RunStatus.RUNNING
        self.finished_at = None
        self.error = None
        last = self.last_iteration()
        if last is not None and last.status == IterationStatus.RUNNING:
            last.status = IterationStatus.FAILED
            last.finished_at = utcnow()

    # --- Iterations ---

    def start_iteration(self, story_id: str) -> IterationRecord:
        self.iteration += 1
        self.current_story = story_id
        record = IterationRecord(
            number=self.iteration,
            story_id=story_id,
            started_at=utcnow(),
        )
        self.iterations.append(record)
        return record

    def finish_iteration(
        self,
        status: IterationStatus,
        output: str = "",
        work_summary: str | None = None,
        usage: ClaudeUsage | None = None,
    ) -> None:
        """Close the last iteration record. Earlier records are never touched."""
        last = self.last_iteration()
        if last is None:
            return
        last.status = status
        last.finished_at = utcnow()
        last.output_snippet = _snippet(output)
        last.work_summary = work_summary
        last.usage = usage

    def last_iteration(self) -> IterationRecord | None:
        return self.iterations[-1] if self.iterations else None

    def capture_usage(self, phase: str, usage: ClaudeUsage | None) -> None:
        """Add usage to the phase bucket and the run total."""
        if usage is None:
            return
        bucket = self.phase_usage.setdefault(phase, ClaudeUsage())
        bucket.add(usage)
        if self.total_usage is None:
            self.total_usage = ClaudeUsage()
        self.total_usage.add(usage)

    # --- Serialization ---

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "machine_state": self.machine_state.value,
            "spec_json_path": self.spec_json_path,
            "spec_md_path": self.spec_md_path,
            "branch": self.branch,
            "current_story": self.current_story,
            "iteration": self.iteration,
            "review_iteration": self.review_iteration,
            "started_at": format_ts(self.started_at),
            "finished_at": format_ts(self.finished_at),
            "iterations": [r.to_dict() for r in self.iterations],
            "config": self.config.to_dict() if self.config else None,
            "knowledge": self.knowledge.to_dict(),
            "pre_story_commit": self.pre_story_commit,
            "session_id": self.session_id,
            "total_usage": self.total_usage.to_dict() if self.total_usage else None,
            "phase_usage": {k: v.to_dict() for k, v in self.phase_usage.items()},
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RunState":
        return cls(
            run_id=data["run_id"],
            status=RunStatus(data["status"]),
            machine_state=MachineState(data["machine_state"]),
            spec_json_path=data["spec_json_path"],
            spec_md_path=data.get("spec_md_path"),
            branch=data["branch"],
            current_story=data.get("current_story"),
            iteration=data["iteration"],
            review_iteration=data.get("review_iteration", 0),
            started_at=parse_ts(data["started_at"]),
            finished_at=parse_ts(data.get("finished_at")),
            iterations=[IterationRecord.from_dict(r) for r in data["iterations"]],
            config=Config.from_dict(data["config"]) if data.get("config") else None,
            knowledge=ProjectKnowledge.from_dict(data.get("knowledge")),
            pre_story_commit=data.get("pre_story_commit"),
            session_id=data.get("session_id"),
            total_usage=ClaudeUsage.from_dict(data.get("total_usage")),
            phase_usage={
                k: ClaudeUsage.from_dict(v) or ClaudeUsage()
                for k, v in (data.get("phase_usage") or {}).items()
            },
            error=data.get("error"),
        )


@dataclass
class SessionMetadata:
    """Identity of a working directory and whether a run owns it."""
    session_id: str
    worktree_path: str
    branch_name: str
    created_at: datetime = field(default_factory=utcnow)
    last_active_at: datetime = field(default_factory=utcnow)
    is_running: bool = False
    pause_requested: bool = False
    spec_json_path: str | None = None

    def touch(self) -> None:
        self.last_active_at = utcnow()

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "worktreePath": self.worktree_path,
            "branchName": self.branch_name,
            "createdAt": format_ts(self.created_at),
            "lastActiveAt": format_ts(self.last_active_at),
            "isRunning": self.is_running,
            "pauseRequested": self.pause_requested,
            "specJsonPath": self.spec_json_path,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionMetadata":
        return cls(
            session_id=data["sessionId"],
            worktree_path=data["worktreePath"],
            branch_name=data["branchName"],
            created_at=parse_ts(data["createdAt"]),
            last_active_at=parse_ts(data["lastActiveAt"]),
            is_running=data.get("isRunning", False),
            pause_requested=data.get("pauseRequested", data.get("pausedRequested", False)),
            spec_json_path=data.get("specJsonPath"),
        )


@dataclass
class LiveState:
    """Recent assistant output, for the monitor. Not part of the checkpoint."""
    machine_state: MachineState
    output_lines: list[str] = field(default_factory=list)
    updated_at: datetime = field(default_factory=utcnow)
    last_heartbeat: datetime | None = None

    def append_output(self, text: str) -> None:
        if not text:
            return
        if self.output_lines and not self.output_lines[-1].endswith("\n"):
            text = self.output_lines.pop() + text
        self.output_lines.extend(text.splitlines(keepends=True))
        del self.output_lines[:-LIVE_MAX_LINES]
        self.updated_at = utcnow()

    def heartbeat(self) -> None:
        self.last_heartbeat = utcnow()
        self.updated_at = self.last_heartbeat

    def is_alive(self, threshold_secs: int, now: datetime | None = None) -> bool:
        if self.last_heartbeat is None:
            return False
        now = now or utcnow()
        return (now - self.last_heartbeat).total_seconds() < threshold_secs

    def to_dict(self) -> dict:
        return {
            "output_lines": self.output_lines,
            "updated_at": format_ts(self.updated_at),
            "machine_state": self.machine_state.value,
            "last_heartbeat": format_ts(self.last_heartbeat),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LiveState":
        return cls(
            machine_state=MachineState(data["machine_state"]),
            output_lines=list(data.get("output_lines", [])),
            updated_at=parse_ts(data["updated_at"]),
            last_heartbeat=parse_ts(data.get("last_heartbeat")),
        )
