"""
autom8 improve - Interactive follow-up session on the current branch.

Gathers what autom8 knows about the branch (git history against the base
branch, the plan it was built from, the session's knowledge and work
summaries), prints a summary and opens `claude` on the terminal with that
context as the opening prompt.
"""

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from autom8.agents.claude import ClaudeAgent
from autom8.commands.common import resolve_project
from autom8.git import (
    CommitInfo,
    DiffEntry,
    detect_base_branch,
    get_branch_commits,
    get_current_branch,
    get_diff_entries,
    get_merge_base,
    is_git_repo,
)
from autom8.lib.constants import PROTECTED_BRANCHES
from autom8.lib.errors import Autom8Error
from autom8.lib.knowledge import ProjectKnowledge
from autom8.runner.state import RunState
from autom8.runner.store import StateManager
from autom8.spec import Spec

logger = logging.getLogger(__name__)

MAX_DECISIONS = 5
MAX_FILES = 8
MAX_SUMMARIES = 5
SUMMARY_WIDTH = 100


@dataclass
class GitContext:
    branch: str
    base_branch: str
    commits: list[CommitInfo] = field(default_factory=list)
    diff_entries: list[DiffEntry] = field(default_factory=list)
    merge_base: str | None = None

    @property
    def is_feature_branch(self) -> bool:
        return self.branch not in PROTECTED_BRANCHES

    @property
    def additions(self) -> int:
        return sum(e.additions for e in self.diff_entries)

    @property
    def deletions(self) -> int:
        return sum(e.deletions for e in self.diff_entries)


@dataclass
class FollowUpContext:
    git: GitContext
    spec: Spec | None = None
    spec_path: Path | None = None
    knowledge: ProjectKnowledge | None = None
    work_summaries: list[str] = field(default_factory=list)
    session_id: str | None = None


def gather_git_context(cwd: Path) -> GitContext:
    branch = get_current_branch(cwd) or "HEAD"
    base = detect_base_branch(cwd)
    merge_base = get_merge_base(cwd, base)
    return GitContext(
        branch=branch,
        base_branch=base,
        commits=get_branch_commits(cwd, base),
        diff_entries=get_diff_entries(cwd, merge_base or base),
        merge_base=merge_base,
    )


def _latest_run_for_branch(store: StateManager, branch: str) -> RunState | None:
    """The session's current run, else its newest archived run on branch."""
    try:
        current = store.load_current()
    except Autom8Error as e:
        logger.warning(f"Session {store.session_id}: {e.message}")
        current = None
    if current is not None:
        return current
    return next((r for r in store.list_archived() if r.branch == branch), None)


def _load_spec(path: Path) -> Spec | None:
    try:
        return Spec.load(path)
    except Autom8Error as e:
        logger.debug(f"Ignoring plan {path}: {e.message}")
        return None


def find_spec_for_branch(store: StateManager, branch: str) -> tuple[Spec, Path] | None:
    """Newest plan in the project's spec/ directory that targets branch."""
    for path in store.list_specs():
        spec = _load_spec(path)
        if spec is not None and spec.branch_name == branch:
            return spec, path
    return None


def load_follow_up_context(project: str, cwd: Path) -> FollowUpContext:
    context = FollowUpContext(git=gather_git_context(cwd))
    branch = context.git.branch
    store = StateManager(project)

    session = next((m for m in store.list_sessions() if m.branch_name == branch), None)
    if session is not None:
        context.session_id = session.session_id
        run = _latest_run_for_branch(store.for_session(session.session_id), branch)
        if run is not None:
            context.knowledge = run.knowledge
            context.work_summaries = [it.work_summary for it in run.iterations if it.work_summary]
            plan = Path(run.spec_json_path)
            if plan.exists():
                context.spec = _load_spec(plan)
                context.spec_path = plan if context.spec else None

    if context.spec is None:
        found = find_spec_for_branch(store, branch)
        if found is not None:
            context.spec, context.spec_path = found
    return context


def _opening(context: FollowUpContext) -> str:
    loaded = []
    if context.spec is not None:
        loaded.append("the spec")
    if context.knowledge is not None:
        loaded.append("session knowledge")
    loaded.append("git history")
    if len(loaded) == 3:
        what = "the spec, session knowledge, and git history"
    else:
        what = " and ".join(loaded)
    return f"You're on branch `{context.git.branch}`. I've loaded {what}."


def _files_summary(knowledge: ProjectKnowledge) -> str | None:
    created: set[str] = set()
    modified: set[str] = set()
    for changes in knowledge.story_changes:
        created.update(changes.files_created)
    for changes in knowledge.story_changes:
        modified.update(p for p in changes.files_modified if p not in created)
    if not created and not modified:
        return None

    lines = ["**Files touched:**"]
    for title, paths in (("Created:", created), ("Modified:", modified)):
        if not paths:
            continue
        ordered = sorted(paths)
        lines.append(title)
        lines.extend(f"- {p}" for p in ordered[:MAX_FILES])
        if len(ordered) > MAX_FILES:
            lines.append(f"- ...and {len(ordered) - MAX_FILES} more")
    return "\n".join(lines)


def build_improve_prompt(context: FollowUpContext) -> str:
    sections = [_opening(context)]

    if context.spec is not None:
        done, total = context.spec.progress()
        status = "all complete" if context.spec.all_complete() else f"{done}/{total} stories complete"
        sections.append(f"**Feature:** {context.spec.project} ({status})")

    knowledge = context.knowledge
    if knowledge is not None and knowledge.decisions:
        lines = ["**Key decisions:**"]
        lines.extend(f"- {d.topic}: {d.choice}" for d in knowledge.decisions[:MAX_DECISIONS])
        if len(knowledge.decisions) > MAX_DECISIONS:
            lines.append(f"- ...and {len(knowledge.decisions) - MAX_DECISIONS} more")
        sections.append("\n".join(lines))

    if knowledge is not None:
        files = _files_summary(knowledge)
        if files:
            sections.append(files)

    if context.work_summaries:
        lines = ["**Work completed:**"]
        for summary in context.work_summaries[:MAX_SUMMARIES]:
            if len(summary) > SUMMARY_WIDTH:
                summary = summary[:SUMMARY_WIDTH - 3] + "..."
            lines.append(f"- {summary}")
        if len(context.work_summaries) > MAX_SUMMARIES:
            lines.append(f"- ...and {len(context.work_summaries) - MAX_SUMMARIES} more iterations")
        sections.append("\n".join(lines))

    sections.append("What would you like to work on?")
    return "\n\n".join(sections)


def print_context_summary(context: FollowUpContext, stream: TextIO | None = None) -> None:
    out = stream or sys.stdout
    git = context.git
    print("Follow-up context", file=out)
    print("-" * 40, file=out)
    print(f"Branch:   {git.branch}", file=out)
    if not git.is_feature_branch:
        print(f"WARNING: on {git.branch}; changes will land directly on it", file=out)

    if not git.commits and git.is_feature_branch:
        print(f"Commits:  none yet since {git.base_branch}", file=out)
    else:
        print(f"Commits:  {len(git.commits)} since {git.base_branch}", file=out)
        for commit in git.commits[:3]:
            print(f"  {commit.short_hash} {commit.message}", file=out)
    print(f"Files:    {len(git.diff_entries)} changed (+{git.additions} -{git.deletions})", file=out)

    if context.spec is not None:
        done, total = context.spec.progress()
        name = context.spec_path.name if context.spec_path else "spec.json"
        print(f"Spec:     {name} ({done}/{total} stories)", file=out)
    if context.knowledge is not None:
        k = context.knowledge
        print(f"Knowledge: {len(k.decisions)} decisions, {len(k.patterns)} patterns", file=out)
    if context.spec is None and context.knowledge is None and git.is_feature_branch:
        print("No autom8 run found for this branch; using git history only", file=out)
    print(file=out)
    print("Starting Claude...", file=out)


def cmd_improve(args) -> int:
    cwd = Path.cwd()
    if not is_git_repo(cwd):
        print("ERROR: Not in a git repository")
        print("  autom8 improve works on the current branch of a git checkout")
        return 1

    project = resolve_project(cwd)
    context = load_follow_up_context(project, cwd)
    print_context_summary(context)
    return ClaudeAgent(cwd).follow_up(build_improve_prompt(context))
