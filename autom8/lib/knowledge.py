"""
Project knowledge accumulated across the iterations of a run.

Each implementation iteration may report context tags (files, decisions,
patterns); the engine also records which files each story changed. The
rendered summary goes into the next iteration's prompt so later stories
build on earlier ones instead of rediscovering them.
"""

from dataclasses import dataclass, field


@dataclass
class FileContextEntry:
    """One line of a <files-context> tag."""
    path: str
    purpose: str
    key_symbols: list[str] = field(default_factory=list)


@dataclass
class FileInfo:
    purpose: str = ""
    key_symbols: list[str] = field(default_factory=list)
    touched_by: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"purpose": self.purpose, "keySymbols": self.key_symbols, "touchedBy": self.touched_by}

    @classmethod
    def from_dict(cls, data: dict) -> "FileInfo":
        return cls(
            purpose=data.get("purpose", ""),
            key_symbols=list(data.get("keySymbols", [])),
            touched_by=list(data.get("touchedBy", [])),
        )


@dataclass
class Decision:
    topic: str
    choice: str
    rationale: str
    story_id: str = ""

    def to_dict(self) -> dict:
        return {"storyId": self.story_id, "topic": self.topic, "choice": self.choice, "rationale": self.rationale}

    @classmethod
    def from_dict(cls, data: dict) -> "Decision":
        return cls(
            topic=data.get("topic", ""),
            choice=data.get("choice", ""),
            rationale=data.get("rationale", ""),
            story_id=data.get("storyId", ""),
        )


@dataclass
class Pattern:
    description: str
    story_id: str = ""

    def to_dict(self) -> dict:
        return {"storyId": self.story_id, "description": self.description}

    @classmethod
    def from_dict(cls, data: dict) -> "Pattern":
        return cls(description=data.get("description", ""), story_id=data.get("storyId", ""))


@dataclass
class StoryChanges:
    story_id: str
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    files_deleted: list[str] = field(default_factory=list)
    commit_hash: str | None = None

    def to_dict(self) -> dict:
        return {
            "storyId": self.story_id,
            "filesCreated": self.files_created,
            "filesModified": self.files_modified,
            "filesDeleted": self.files_deleted,
            "commitHash": self.commit_hash,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StoryChanges":
        return cls(
            story_id=data.get("storyId", ""),
            files_created=list(data.get("filesCreated", [])),
            files_modified=list(data.get("filesModified", [])),
            files_deleted=list(data.get("filesDeleted", [])),
            commit_hash=data.get("commitHash"),
        )

    @classmethod
    def from_git_changes(cls, story_id: str, changes: list[tuple[str, str]]) -> "StoryChanges":
        """Build from (status, path) pairs as returned by git.get_changed_files_since."""
        sc = cls(story_id=story_id)
        for status, path in changes:
            if status == "A":
                sc.files_created.append(path)
            elif status == "D":
                sc.files_deleted.append(path)
            else:
                sc.files_modified.append(path)
        return sc


@dataclass
class ProjectKnowledge:
    files: dict[str, FileInfo] = field(default_factory=dict)
    decisions: list[Decision] = field(default_factory=list)
    patterns: list[Pattern] = field(default_factory=list)
    story_changes: list[StoryChanges] = field(default_factory=list)
    baseline_commit: str | None = None

    def is_empty(self) -> bool:
        return not (self.files or self.decisions or self.patterns or self.story_changes)

    def merge_context(
        self,
        story_id: str,
        files: list[FileContextEntry],
        decisions: list[Decision],
        patterns: list[Pattern],
    ) -> None:
        """Fold one iteration's context tags into the run's knowledge."""
        for entry in files:
            info = self.files.setdefault(entry.path, FileInfo())
            if entry.purpose:
                info.purpose = entry.purpose
            for sym in entry.key_symbols:
                if sym not in info.key_symbols:
                    info.key_symbols.append(sym)
            if story_id not in info.touched_by:
                info.touched_by.append(story_id)

        for decision in decisions:
            decision.story_id = decision.story_id or story_id
            self.decisions.append(decision)

        for pattern in patterns:
            pattern.story_id = pattern.story_id or story_id
            self.patterns.append(pattern)

    def record_story_changes(self, changes: StoryChanges) -> None:
        """Replace any earlier record for the same story (a retried story re-reports)."""
        self.story_changes = [c for c in self.story_changes if c.story_id != changes.story_id]
        self.story_changes.append(changes)
        for path in changes.files_created + changes.files_modified:
            info = self.files.setdefault(path, FileInfo())
            if changes.story_id not in info.touched_by:
                info.touched_by.append(changes.story_id)

    def to_dict(self) -> dict:
        return {
            "files": {path: info.to_dict() for path, info in self.files.items()},
            "decisions": [d.to_dict() for d in self.decisions],
            "patterns": [p.to_dict() for p in self.patterns],
            "storyChanges": [c.to_dict() for c in self.story_changes],
            "baselineCommit": self.baseline_commit,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "ProjectKnowledge":
        if not data:
            return cls()
        return cls(
            files={path: FileInfo.from_dict(info) for path, info in data.get("files", {}).items()},
            decisions=[Decision.from_dict(d) for d in data.get("decisions", [])],
            patterns=[Pattern.from_dict(p) for p in data.get("patterns", [])],
            story_changes=[StoryChanges.from_dict(c) for c in data.get("storyChanges", [])],
            baseline_commit=data.get("baselineCommit"),
        )


def _truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + "..."


def _abbreviate_path(path: str) -> str:
    return "s/" + path[4:] if path.startswith("src/") else path


def build_knowledge_context(knowledge: ProjectKnowledge) -> str | None:
    """Render knowledge as markdown for the implementation prompt. None when empty."""
    if knowledge.is_empty():
        return None

    sections = []

    if knowledge.files:
        lines = [
            "## Files Modified in This Run",
            "",
            "| Path | Purpose | Key Symbols | Stories |",
            "|------|---------|-------------|---------|",
        ]
        for path in sorted(knowledge.files):
            info = knowledge.files[path]
            symbols = _truncate(", ".join(info.key_symbols), 30) if info.key_symbols else "-"
            stories = ", ".join(info.touched_by) or "-"
            lines.append(
                f"| {_abbreviate_path(path)} | {_truncate(info.purpose, 40)} | {symbols} | {stories} |"
            )
        sections.append("\n".join(lines) + "\n")

    if knowledge.decisions:
        lines = ["## Architectural Decisions", ""]
        for d in knowledge.decisions:
            lines.append(f"- **{d.topic}**: {d.choice} ({_truncate(d.rationale, 60)})")
        sections.append("\n".join(lines) + "\n")

    if knowledge.patterns:
        lines = ["## Patterns to Follow", ""]
        lines.extend(f"- {p.description}" for p in knowledge.patterns)
        sections.append("\n".join(lines) + "\n")

    if knowledge.story_changes:
        lines = ["## Recent Work", ""]
        for sc in knowledge.story_changes:
            files = (
                [f"+{_abbreviate_path(p)}" for p in sc.files_created]
                + [f"~{_abbreviate_path(p)}" for p in sc.files_modified]
                + [f"-{_abbreviate_path(p)}" for p in sc.files_deleted]
            )
            summary = _truncate(", ".join(files), 80) if files else "no file changes"
            lines.append(f"- **{sc.story_id}**: {summary}")
        sections.append("\n".join(lines) + "\n")

    return "\n".join(sections)
