"""Tests for PR formatting and the gh-driven PR flow (gh mocked)."""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from autom8.lib.github import (
    PRResult,
    PRStatus,
    PullRequestInfo,
    create_pull_request,
    fetch_pr_feedback,
    format_pr_description,
    format_pr_title,
    get_pr_for_branch,
)
from autom8.spec import Spec

from conftest import make_plan


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=["gh"], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def spec():
    return Spec.from_dict(make_plan())


class TestFormatTitle:
    def test_uses_first_line(self, spec):
        assert format_pr_title(spec) == "[demo] Add a demo feature."

    def test_first_sentence_when_single_line(self, spec):
        spec.description = "Make it fast. Then make it pretty."
        assert format_pr_title(spec) == "[demo] Make it fast."

    def test_truncates_on_word_boundary(self, spec):
        spec.description = "word " * 40
        title = format_pr_title(spec)
        assert len(title) <= 72
        assert title.endswith("word...")


class TestFormatDescription:
    def test_nothing_completed_lists_changes(self, spec):
        body = format_pr_description(spec)
        assert body.startswith("## Summary\n\nAdd a demo feature.")
        assert "## Changes" in body
        assert "### US-001: Story 1" in body
        assert "- [ ] Thing 1 works" in body
        assert "## Completed" not in body

    def test_completed_and_remaining(self, spec):
        spec.user_stories[0].passes = True
        body = format_pr_description(spec)
        assert body.index("## Completed") < body.index("## Remaining")
        assert "- [x] Thing 1 works" in body
        assert "- [ ] Thing 2 works" in body

    def test_notes_section(self, spec):
        spec.user_stories[0].notes = "Careful with migrations"
        assert "**Notes:**\n\nCareful with migrations" in format_pr_description(spec)


class TestPRResult:
    def test_helpers(self):
        assert PRResult.skipped("why").status == PRStatus.SKIPPED
        assert PRResult.error("boom").is_error
        assert not PRResult(PRStatus.UPDATED, "url").is_error


class TestCreatePullRequest:
    def test_skips_without_commits(self, spec, tmp_path):
        result = create_pull_request(spec, tmp_path, commits_were_made=False)
        assert result.status == PRStatus.SKIPPED
        assert "No commits" in result.detail

    def test_skips_outside_git(self, spec, workdir):
        assert create_pull_request(spec, workdir, True).status == PRStatus.SKIPPED

    @patch("autom8.lib.github.is_git_repo", return_value=True)
    @patch("autom8.lib.github.is_gh_installed", return_value=False)
    def test_skips_without_gh(self, _installed, _git, spec, tmp_path):
        result = create_pull_request(spec, tmp_path, True)
        assert result.status == PRStatus.SKIPPED
        assert "gh" in result.detail

    @patch("autom8.lib.github.is_git_repo", return_value=True)
    @patch("autom8.lib.github.is_gh_installed", return_value=True)
    @patch("autom8.lib.github.is_gh_authenticated", return_value=True)
    @patch("autom8.lib.github.get_current_branch", return_value="main")
    def test_skips_protected_branch(self, _branch, _auth, _installed, _git, spec, tmp_path):
        result = create_pull_request(spec, tmp_path, True)
        assert result.status == PRStatus.SKIPPED
        assert "main" in result.detail


@patch("autom8.lib.github.is_git_repo", return_value=True)
@patch("autom8.lib.github.is_gh_installed", return_value=True)
@patch("autom8.lib.github.is_gh_authenticated", return_value=True)
@patch("autom8.lib.github.get_current_branch", return_value="autom8/demo")
class TestCreatePullRequestFlow:
    @patch("autom8.lib.github._gh")
    @patch("autom8.lib.github.push_branch")
    @patch("autom8.lib.github.get_pr_for_branch", return_value=None)
    def test_pushes_and_creates(self, _existing, mock_push, mock_gh, *_):
        plan = Spec.from_dict(make_plan())
        mock_push.return_value = MagicMock(ok=True)
        mock_gh.return_value = completed(stdout="https://github.com/acme/demo/pull/7\n")

        result = create_pull_request(plan, "/repo", True, draft=True)

        assert result == PRResult(PRStatus.SUCCESS, "https://github.com/acme/demo/pull/7")
        args = mock_gh.call_args[0][0]
        assert args[:4] == ["pr", "create", "--title", "[demo] Add a demo feature."]
        assert args[-1] == "--draft"

    @patch("autom8.lib.github._gh")
    @patch("autom8.lib.github.push_branch")
    @patch("autom8.lib.github.get_pr_for_branch", return_value=None)
    def test_push_failure_is_an_error(self, _existing, mock_push, mock_gh, *_):
        mock_push.return_value = MagicMock(ok=False, message="rejected")

        result = create_pull_request(Spec.from_dict(make_plan()), "/repo", True)

        assert result.is_error
        assert "rejected" in result.detail
        mock_gh.assert_not_called()

    @patch("autom8.lib.github._gh")
    @patch("autom8.lib.github.get_pr_for_branch")
    def test_existing_pr_is_updated(self, mock_existing, mock_gh, *_):
        mock_existing.return_value = PullRequestInfo(12, "title", "https://github.com/acme/demo/pull/12")
        mock_gh.side_effect = [
            completed(),
            completed(stdout=json.dumps({"url": "https://github.com/acme/demo/pull/12"})),
        ]

        result = create_pull_request(Spec.from_dict(make_plan()), "/repo", True)

        assert result == PRResult(PRStatus.UPDATED, "https://github.com/acme/demo/pull/12")
        assert mock_gh.call_args_list[0][0][0][:3] == ["pr", "edit", "12"]

    @patch("autom8.lib.github._gh")
    @patch("autom8.lib.github.push_branch")
    @patch("autom8.lib.github.get_pr_for_branch", return_value=None)
    def test_gh_timeout_is_an_error(self, _existing, mock_push, mock_gh, *_):
        mock_push.return_value = MagicMock(ok=True)
        mock_gh.side_effect = subprocess.TimeoutExpired(cmd="gh", timeout=30)

        result = create_pull_request(Spec.from_dict(make_plan()), "/repo", True)

        assert result == PRResult.error("GitHub operation timed out")


class TestExistingPR:
    @patch("autom8.lib.github._gh")
    def test_found(self, mock_gh):
        mock_gh.return_value = completed(stdout=json.dumps([
            {"number": 3, "title": "T", "url": "https://x/3", "headRefName": "autom8/demo"}
        ]))
        assert get_pr_for_branch("autom8/demo", "/repo") == PullRequestInfo(3, "T", "https://x/3", "autom8/demo")

    @patch("autom8.lib.github._gh")
    def test_none(self, mock_gh):
        mock_gh.return_value = completed(stdout="[]")
        assert get_pr_for_branch("autom8/demo", "/repo") is None

    @patch("autom8.lib.github._gh", side_effect=FileNotFoundError("gh"))
    def test_gh_missing(self, _gh):
        assert get_pr_for_branch("autom8/demo", "/repo") is None


class TestFetchFeedback:
    @patch("autom8.lib.github._gh")
    def test_collects_reviews_comments_and_line_comments(self, mock_gh):
        mock_gh.side_effect = [
            completed(stdout=json.dumps({
                "reviews": [
                    {"body": "Please rename", "state": "CHANGES_REQUESTED", "author": {"login": "ana"}},
                    {"body": "LGTM", "state": "APPROVED", "author": {"login": "bo"}},
                ],
                "comments": [{"body": "And add docs", "author": {"login": "cy"}}],
            })),
            completed(stdout=json.dumps({"path": "app.py", "line": 4, "body": "typo", "user": "ana"}) + "\n"),
        ]

        feedback = fetch_pr_feedback(5, "/repo")

        assert feedback.error is None
        assert [i.kind for i in feedback.items] == ["review", "comment", "line_comment"]
        assert "- **ana** (app.py:4): typo" in feedback.render()

    @patch("autom8.lib.github._gh")
    def test_view_failure(self, mock_gh):
        mock_gh.return_value = completed(returncode=1, stderr="no pull requests found\n")
        feedback = fetch_pr_feedback(5, "/repo")
        assert feedback.error == "no pull requests found"
        assert feedback.items == []
