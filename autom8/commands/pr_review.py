"""
autom8 pr-review - Address review comments on the current branch's PR.
"""

import sys
from pathlib import Path

from autom8.agents.claude import ClaudeAgent
from autom8.git import get_current_branch, is_clean, is_git_repo, push_branch
from autom8.lib.errors import ClaudeError
from autom8.lib.github import fetch_pr_feedback, get_pr_for_branch, is_gh_authenticated, is_gh_installed


def _stream(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def cmd_pr_review(args) -> int:
    cwd = Path.cwd()
    if not is_git_repo(cwd):
        print("ERROR: Not in a git repository")
        return 1
    if not is_gh_installed():
        print("ERROR: GitHub CLI (gh) not installed")
        print("  Install from https://cli.github.com")
        return 1
    if not is_gh_authenticated():
        print("ERROR: Not authenticated with GitHub CLI")
        print("  Run: gh auth login")
        return 1

    branch = get_current_branch(cwd)
    if branch is None:
        print("ERROR: Detached HEAD; check out the PR branch first")
        return 1

    pr = get_pr_for_branch(branch, cwd)
    if pr is None:
        print(f"ERROR: No open pull request for branch '{branch}'")
        return 1

    feedback = fetch_pr_feedback(pr.number, cwd)
    if feedback.error:
        print(f"ERROR: Failed to fetch comments for PR #{pr.number}: {feedback.error}")
        return 1
    if not feedback.items:
        print(f"No review comments on PR #{pr.number}")
        return 0

    print(f"Addressing {len(feedback.items)} comment(s) on PR #{pr.number}: {pr.title}")
    out = ClaudeAgent(cwd).address_pr_comments(pr.number, pr.title, branch, feedback.render(), on_output=_stream)
    print()
    if not out.success:
        raise ClaudeError(out.error_info().message)

    if not is_clean(cwd):
        print("WARNING: Uncommitted changes remain; review and commit them before pushing")
        return 1

    push = push_branch(cwd, branch)
    if not push.ok:
        print(f"ERROR: Failed to push {branch}: {push.message}")
        return 1
    print(f"Pushed {branch} ({push.status})")
    return 0
