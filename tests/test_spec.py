"""Tests for the plan model."""

import json

import pytest

from autom8.lib.errors import InvalidSpec, SpecNotFound
from autom8.spec import Spec

from conftest import make_plan, write_plan


class TestParsing:
    def test_from_json(self):
        spec = Spec.from_json(json.dumps(make_plan()))
        assert spec.project == "demo"
        assert spec.branch_name == "autom8/demo"
        assert [s.id for s in spec.user_stories] == ["US-001", "US-002", "US-003"]
        assert spec.user_stories[0].acceptance_criteria == ["Thing 1 works"]

    def test_optional_fields_default(self):
        data = {
            "project": "demo",
            "description": "d",
            "userStories": [{"id": "US-001", "title": "t", "description": "d", "priority": 1}],
        }
        spec = Spec.from_dict(data)
        assert spec.branch_name == "autom8/feature"
        story = spec.user_stories[0]
        assert story.passes is False
        assert story.notes == ""
        assert story.acceptance_criteria == []

    def test_json_parse_error(self):
        with pytest.raises(InvalidSpec, match="JSON parse error"):
            Spec.from_json("{not json")

    def test_schema_mismatch(self):
        data = make_plan()
        del data["userStories"][0]["priority"]
        with pytest.raises(InvalidSpec):
            Spec.from_dict(data)

    def test_negative_priority_rejected(self):
        data = make_plan()
        data["userStories"][0]["priority"] = -1
        with pytest.raises(InvalidSpec):
            Spec.from_dict(data)

    def test_empty_project(self):
        data = make_plan()
        data["project"] = "  "
        with pytest.raises(InvalidSpec, match="project name is required"):
            Spec.from_json(json.dumps(data))

    def test_no_stories(self):
        data = make_plan()
        data["userStories"] = []
        with pytest.raises(InvalidSpec, match="at least one user story"):
            Spec.from_json(json.dumps(data))

    def test_empty_story_id(self):
        data = make_plan()
        data["userStories"][1]["id"] = ""
        with pytest.raises(InvalidSpec, match="story id is required"):
            Spec.from_json(json.dumps(data))

    def test_load_missing(self, tmp_path):
        with pytest.raises(SpecNotFound):
            Spec.load(tmp_path / "missing.json")

    def test_save_and_load(self, tmp_path):
        spec = Spec.from_dict(make_plan())
        spec.mark_story_complete("US-002")
        spec.save(tmp_path / "out.json")

        loaded = Spec.load(tmp_path / "out.json")
        assert loaded == spec
        assert json.loads((tmp_path / "out.json").read_text())["userStories"][1]["passes"] is True


class TestProgress:
    def test_next_story_lowest_priority(self):
        data = make_plan()
        data["userStories"][0]["priority"] = 5
        spec = Spec.from_dict(data)
        assert spec.next_incomplete_story().id == "US-002"

    def test_ties_go_to_document_order(self):
        data = make_plan()
        for story in data["userStories"]:
            story["priority"] = 1
        spec = Spec.from_dict(data)
        assert spec.next_incomplete_story().id == "US-001"

    def test_skips_passed(self, tmp_path):
        data = make_plan()
        data["userStories"][0]["passes"] = True
        spec = Spec.load(write_plan(tmp_path / "p.json", data))
        assert spec.next_incomplete_story().id == "US-002"
        assert spec.progress() == (1, 3)
        assert [s.id for s in spec.incomplete_stories()] == ["US-002", "US-003"]

    def test_all_complete(self):
        spec = Spec.from_dict(make_plan(passes=True))
        assert spec.all_complete()
        assert spec.next_incomplete_story() is None

    def test_mark_complete_is_idempotent(self):
        spec = Spec.from_dict(make_plan())
        spec.mark_story_complete("US-002")
        once = spec.to_dict()

        spec.mark_story_complete("US-002")

        assert spec.to_dict() == once
        assert spec.completed_count() == 1
        assert spec.get_story("US-002").passes

    def test_mark_unknown_story_ignored(self):
        spec = Spec.from_dict(make_plan())
        spec.mark_story_complete("US-999")
        assert spec.completed_count() == 0
        assert spec.get_story("US-999") is None
