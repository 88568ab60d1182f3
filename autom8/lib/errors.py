"""
Error taxonomy for autom8.

Every failure the engine can surface is one subclass of Autom8Error.
Errors that a user must act on carry remediation lines, rendered under
the message by the CLI.
"""

from pathlib import Path


class Autom8Error(Exception):
    """Base class for all autom8 errors."""

    def __init__(self, message: str, remediation: list[str] | None = None):
        self.message = message
        self.remediation = remediation or []
        super().__init__(message)

    def render(self) -> str:
        """Message plus indented remediation lines."""
        if not self.remediation:
            return self.message
        lines = [self.message, ""]
        lines.extend(f"  {line}" for line in self.remediation)
        return "\n".join(lines)


class SpecNotFound(Autom8Error):
    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(
            f"Spec file not found: {self.path}",
            remediation=[
                "Check the path and try again, or list known specs with:",
                "  autom8 describe",
                "Create a new spec interactively by running `autom8` with no arguments.",
            ],
        )


class InvalidSpec(Autom8Error):
    def __init__(self, message: str):
        super().__init__(f"Invalid spec format: {message}")
        self.reason = message


class NoIncompleteStories(Autom8Error):
    def __init__(self):
        super().__init__("No incomplete stories found in spec")


class ClaudeError(Autom8Error):
    def __init__(self, message: str):
        super().__init__(f"Claude process failed: {message}")
        self.reason = message


class ClaudeTimeout(Autom8Error):
    def __init__(self, seconds: int):
        self.seconds = seconds
        super().__init__(f"Claude process timed out after {seconds} seconds")


class StateError(Autom8Error):
    def __init__(self, message: str):
        super().__init__(f"State file error: {message}")
        self.reason = message


class NoActiveRun(Autom8Error):
    def __init__(self):
        super().__init__("No active run to resume")


class RunInProgress(Autom8Error):
    def __init__(self, run_id: str, session_id: str):
        self.run_id = run_id
        self.session_id = session_id
        super().__init__(
            f"Run already in progress: {run_id} (session {session_id})",
            remediation=[
                "1. Resume it:            autom8 resume",
                "2. Inspect it:           autom8 status",
                f"3. Discard it:           autom8 clean --session {session_id} --force",
            ],
        )


class BranchConflict(Autom8Error):
    """A branch is already checked out by another session."""

    def __init__(self, branch: str, session_id: str, path: Path):
        self.branch = branch
        self.session_id = session_id
        self.path = Path(path)
        super().__init__(
            f"Branch '{branch}' is already in use by session '{session_id}' at {self.path}",
            remediation=[
                "1. Wait for that session to finish",
                "2. Use a different branch name in your spec (branchName)",
                f"3. Resume that session:  autom8 resume --session {session_id}",
                f"4. Clean that session:   autom8 clean --session {session_id}",
            ],
        )


class WorktreeError(Autom8Error):
    def __init__(self, message: str):
        super().__init__(f"Worktree error: {message}")
        self.reason = message


class GitError(Autom8Error):
    def __init__(self, message: str):
        super().__init__(f"Git error: {message}")
        self.reason = message


class ConfigError(Autom8Error):
    def __init__(self, message: str):
        super().__init__(f"Configuration error: {message}")
        self.reason = message


class MaxReviewIterationsReached(Autom8Error):
    def __init__(self):
        super().__init__(
            "Review failed after 3 iterations. "
            "Please manually review autom8_review.md for remaining issues."
        )


class Interrupted(Autom8Error):
    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(
            f"Run {run_id} interrupted",
            remediation=["Pick up where it stopped with: autom8 resume"],
        )


class SpecGenerationFailed(Autom8Error):
    def __init__(self, message: str):
        super().__init__(f"Spec generation failed: {message}")
        self.reason = message


class InvalidGeneratedSpec(SpecGenerationFailed):
    """Generated output stayed unparseable, even after mechanical repair."""

    def __init__(self, message: str):
        Autom8Error.__init__(self, f"Invalid generated spec: {message}")
        self.reason = message
