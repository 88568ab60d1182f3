"""
Plan model: the structured form of a feature spec.

The JSON file (camelCase keys) is shared with the assistant, which flips
`passes` to true as it finishes stories. The engine only ever reads it.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from autom8.lib.constants import DEFAULT_BRANCH_NAME
from autom8.lib.errors import InvalidSpec, SpecNotFound
from autom8.lib.fileio import atomic_write_json
from autom8.lib.validate import ValidationError, validate

logger = logging.getLogger(__name__)


@dataclass
class UserStory:
    id: str
    title: str
    description: str
    acceptance_criteria: list[str] = field(default_factory=list)
    priority: int = 1
    passes: bool = False
    notes: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "UserStory":
        return cls(
            id=data["id"],
            title=data["title"],
            description=data["description"],
            acceptance_criteria=list(data.get("acceptanceCriteria", [])),
            priority=data["priority"],
            passes=data.get("passes", False),
            notes=data.get("notes", ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "acceptanceCriteria": list(self.acceptance_criteria),
            "priority": self.priority,
            "passes": self.passes,
            "notes": self.notes,
        }


@dataclass
class Spec:
    project: str
    description: str
    user_stories: list[UserStory]
    branch_name: str = DEFAULT_BRANCH_NAME

    @classmethod
    def from_dict(cls, data: dict) -> "Spec":
        """Build from decoded JSON.

        Raises:
            InvalidSpec: If the data doesn't match the plan schema
        """
        try:
            validate(data, "spec")
        except ValidationError as e:
            raise InvalidSpec(str(e)) from None
        return cls(
            project=data["project"],
            branch_name=data.get("branchName", DEFAULT_BRANCH_NAME),
            description=data["description"],
            user_stories=[UserStory.from_dict(s) for s in data["userStories"]],
        )

    @classmethod
    def from_json(cls, text: str) -> "Spec":
        """Parse and validate JSON text.

        Raises:
            InvalidSpec: On malformed JSON, schema mismatch or failed validation
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidSpec(f"JSON parse error: {e}") from None
        spec = cls.from_dict(data)
        spec.validate()
        return spec

    @classmethod
    def load(cls, path: Path) -> "Spec":
        """
        Raises:
            SpecNotFound: If path doesn't exist
            InvalidSpec: If the file isn't a valid plan
        """
        path = Path(path)
        if not path.exists():
            raise SpecNotFound(path)
        return cls.from_json(path.read_text())

    def to_dict(self) -> dict:
        return {
            "project": self.project,
            "branchName": self.branch_name,
            "description": self.description,
            "userStories": [s.to_dict() for s in self.user_stories],
        }

    def save(self, path: Path) -> None:
        atomic_write_json(Path(path), self.to_dict())

    def validate(self) -> None:
        """
        Raises:
            InvalidSpec: If project is empty, there are no stories, or a story id is empty
        """
        if not self.project.strip():
            raise InvalidSpec("project name is required")
        if not self.user_stories:
            raise InvalidSpec("at least one user story is required")
        for story in self.user_stories:
            if not story.id.strip():
                raise InvalidSpec("story id is required")

    # --- Progress ---

    def next_incomplete_story(self) -> UserStory | None:
        """Incomplete story with the lowest priority number; document order breaks ties."""
        best = None
        for story in self.user_stories:
            if story.passes:
                continue
            if best is None or story.priority < best.priority:
                best = story
        return best

    def incomplete_stories(self) -> list[UserStory]:
        return [s for s in self.user_stories if not s.passes]

    def completed_count(self) -> int:
        return sum(1 for s in self.user_stories if s.passes)

    def total_count(self) -> int:
        return len(self.user_stories)

    def all_complete(self) -> bool:
        return all(s.passes for s in self.user_stories)

    def progress(self) -> tuple[int, int]:
        return self.completed_count(), self.total_count()

    def get_story(self, story_id: str) -> UserStory | None:
        for story in self.user_stories:
            if story.id == story_id:
                return story
        return None

    def mark_story_complete(self, story_id: str) -> None:
        """Set passes on a story. Unknown ids are ignored."""
        story = self.get_story(story_id)
        if story is not None:
            story.passes = True
