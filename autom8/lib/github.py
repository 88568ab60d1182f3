"""
GitHub integration via the gh CLI.

PR creation is best-effort: a missing gh, missing auth or a protected
branch skips it, and a failed `gh pr create` is reported, never raised.
"""

import json
import logging
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from autom8.git import get_current_branch, is_git_repo, push_branch
from autom8.lib.constants import PROTECTED_BRANCHES
from autom8.spec import Spec, UserStory

logger = logging.getLogger(__name__)


# Timeout for GitHub CLI operations (seconds)
GH_TIMEOUT_SECONDS = 30

PR_TITLE_MAX_LENGTH = 72


class PRStatus(Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    ALREADY_EXISTS = "already_exists"
    UPDATED = "updated"
    ERROR = "error"


@dataclass
class PRResult:
    """Outcome of create_pull_request. `detail` is a URL, or the reason for skip/error."""
    status: PRStatus
    detail: str

    @classmethod
    def skipped(cls, reason: str) -> "PRResult":
        return cls(PRStatus.SKIPPED, reason)

    @classmethod
    def error(cls, message: str) -> "PRResult":
        return cls(PRStatus.ERROR, message)

    @property
    def is_error(self) -> bool:
        return self.status == PRStatus.ERROR


def _gh(args: list[str], cwd: Path, timeout: int = GH_TIMEOUT_SECONDS) -> subprocess.CompletedProcess:
    return subprocess.run(
        ["gh", *args],
        capture_output=True,
        text=True,
        cwd=str(cwd),
        timeout=timeout,
    )


def is_gh_installed() -> bool:
    try:
        result = subprocess.run(["gh", "--version"], capture_output=True, timeout=5)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return False
    return result.returncode == 0


def is_gh_authenticated() -> bool:
    try:
        result = subprocess.run(
            ["gh", "auth", "status"],
            capture_output=True,
            text=True,
            timeout=GH_TIMEOUT_SECONDS,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired, subprocess.SubprocessError):
        return False
    return result.returncode == 0


# --- Formatting ---

def _first_line_or_sentence(text: str) -> str:
    newline = text.find("\n")
    if newline != -1:
        first = text[:newline].strip()
        if first:
            return first
    for i, ch in enumerate(text):
        if ch in ".!?" and (i + 1 >= len(text) or text[i + 1] == " "):
            sentence = text[:i + 1].strip()
            if sentence:
                return sentence
    return text.strip()


def _truncate_with_ellipsis(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    target = max_len - 3
    cut = text[:target].rfind(" ")
    if cut == -1:
        cut = target
    return text[:cut].rstrip() + "..."


def format_pr_title(spec: Spec) -> str:
    """`[project] first line or sentence`, at most 72 chars."""
    first = _first_line_or_sentence(spec.description)
    title = f"[{spec.project}] {first}" if spec.project else first
    return _truncate_with_ellipsis(title, PR_TITLE_MAX_LENGTH)


def _format_story(story: UserStory) -> list[str]:
    lines = [f"### {story.id}: {story.title}", "", story.description, ""]
    if story.acceptance_criteria:
        box = "[x]" if story.passes else "[ ]"
        lines.append("**Acceptance Criteria:**")
        lines.append("")
        lines.extend(f"- {box} {c}" for c in story.acceptance_criteria)
        lines.append("")
    if story.notes:
        lines.extend(["**Notes:**", "", story.notes, ""])
    return lines


def format_pr_description(spec: Spec) -> str:
    lines = ["## Summary", "", spec.description, ""]
    completed = [s for s in spec.user_stories if s.passes]
    remaining = [s for s in spec.user_stories if not s.passes]

    if not completed:
        lines.extend(["## Changes", ""])
        for story in spec.user_stories:
            lines.extend(_format_story(story))
    else:
        lines.extend(["## Completed", ""])
        for story in completed:
            lines.extend(_format_story(story))
        if remaining:
            lines.extend(["## Remaining", ""])
            for story in remaining:
                lines.extend(_format_story(story))

    return "\n".join(lines).rstrip()


# --- Existing PRs ---

@dataclass
class PullRequestInfo:
    number: int
    title: str
    url: str
    head_branch: str = ""


def get_pr_for_branch(branch: str, cwd: Path) -> PullRequestInfo | None:
    """The open PR whose head is branch, if any."""
    try:
        result = _gh(["pr", "list", "--head", branch, "--json", "number,title,url,headRefName"], cwd)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        logger.debug(f"gh pr list failed: {result.stderr.strip()}")
        return None
    try:
        prs = json.loads(result.stdout or "[]")
    except json.JSONDecodeError:
        return None
    if not prs:
        return None
    pr = prs[0]
    return PullRequestInfo(
        number=pr.get("number") or 0,
        title=pr.get("title", ""),
        url=pr.get("url", ""),
        head_branch=pr.get("headRefName", branch),
    )


def update_pr_description(spec: Spec, pr_number: int, cwd: Path) -> PRResult:
    body = format_pr_description(spec)
    result = _gh(["pr", "edit", str(pr_number), "--body", body], cwd)
    if result.returncode != 0:
        return PRResult.error(f"Failed to update PR: {result.stderr.strip()}")

    view = _gh(["pr", "view", str(pr_number), "--json", "url"], cwd)
    if view.returncode == 0:
        try:
            url = json.loads(view.stdout.strip()).get("url")
        except json.JSONDecodeError:
            url = None
        if url:
            return PRResult(PRStatus.UPDATED, url)
    return PRResult(PRStatus.UPDATED, f"PR #{pr_number}")


def create_pull_request(spec: Spec, cwd: Path, commits_were_made: bool, draft: bool = False) -> PRResult:
    """Open a PR for the current branch, or refresh the existing one."""
    if not commits_were_made:
        return PRResult.skipped("No commits were made in this session")
    if not is_git_repo(cwd):
        return PRResult.skipped("Not in a git repository")
    if not is_gh_installed():
        return PRResult.skipped("GitHub CLI (gh) not installed. Install from https://cli.github.com")
    if not is_gh_authenticated():
        return PRResult.skipped("Not authenticated with GitHub CLI. Run 'gh auth login' first")

    branch = get_current_branch(cwd)
    if branch is None:
        return PRResult.error("Failed to get current branch")
    if branch in PROTECTED_BRANCHES:
        return PRResult.skipped(f"Cannot create PR from {branch} branch")

    try:
        existing = get_pr_for_branch(branch, cwd)
        if existing is not None:
            if existing.number:
                return update_pr_description(spec, existing.number, cwd)
            return PRResult(PRStatus.ALREADY_EXISTS, existing.url or f"PR exists for {branch}")

        push = push_branch(cwd, branch)
        if not push.ok:
            return PRResult.error(f"Failed to push branch: {push.message}")

        args = ["pr", "create", "--title", format_pr_title(spec), "--body", format_pr_description(spec)]
        if draft:
            args.append("--draft")
        result = _gh(args, cwd)
    except subprocess.TimeoutExpired:
        return PRResult.error("GitHub operation timed out")
    except (FileNotFoundError, subprocess.SubprocessError) as e:
        return PRResult.error(f"GitHub operation failed: {e}")

    if result.returncode != 0:
        return PRResult.error(f"Failed to create PR: {result.stderr.strip()}")
    return PRResult(PRStatus.SUCCESS, result.stdout.strip())


# --- Review feedback ---

@dataclass
class PRComment:
    body: str
    author: str = "reviewer"
    kind: str = "review"
    path: str | None = None
    line: int | None = None

    def render(self) -> str:
        where = f" ({self.path}:{self.line})" if self.path else ""
        return f"- **{self.author}**{where}: {self.body}"


@dataclass
class PRFeedback:
    pr_number: int
    items: list[PRComment] = field(default_factory=list)
    error: str | None = None

    def render(self) -> str:
        return "\n".join(item.render() for item in self.items)


def fetch_pr_feedback(pr_number: int, cwd: Path) -> PRFeedback:
    """Review bodies and line comments of a PR. Sets error instead of raising."""
    items = []
    try:
        result = _gh(["pr", "view", str(pr_number), "--json", "reviews,comments"], cwd)
        if result.returncode != 0:
            return PRFeedback(pr_number, error=result.stderr.strip())
        data = json.loads(result.stdout)

        for review in data.get("reviews", []):
            body = (review.get("body") or "").strip()
            if body and review.get("state") in ("CHANGES_REQUESTED", "COMMENTED"):
                items.append(PRComment(body=body, author=(review.get("author") or {}).get("login", "reviewer")))

        for comment in data.get("comments", []):
            body = (comment.get("body") or "").strip()
            if body:
                items.append(PRComment(
                    body=body,
                    author=(comment.get("author") or {}).get("login", "reviewer"),
                    kind="comment",
                ))

        line_result = _gh(
            ["api", f"repos/{{owner}}/{{repo}}/pulls/{pr_number}/comments",
             "--jq", ".[] | {path, line, body, user: .user.login}"],
            cwd,
        )
        if line_result.returncode != 0:
            logger.warning(f"Failed to fetch line comments for PR #{pr_number}: {line_result.stderr.strip()}")
        else:
            for line in line_result.stdout.splitlines():
                if not line.strip():
                    continue
                try:
                    comment = json.loads(line)
                except json.JSONDecodeError:
                    continue
                items.append(PRComment(
                    body=comment.get("body", ""),
                    author=comment.get("user") or "reviewer",
                    kind="line_comment",
                    path=comment.get("path"),
                    line=comment.get("line"),
                ))
    except subprocess.TimeoutExpired:
        return PRFeedback(pr_number, error="GitHub API timeout")
    except json.JSONDecodeError:
        return PRFeedback(pr_number, error="Invalid response from GitHub")
    except FileNotFoundError:
        return PRFeedback(pr_number, error="GitHub CLI (gh) not installed")

    return PRFeedback(pr_number, items=items)
