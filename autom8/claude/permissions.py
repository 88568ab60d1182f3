"""Command-line permission arguments for the assistant."""

from pathlib import Path

from autom8.lib.config import config_dir

DEFAULT_ALLOWED_TOOLS = ["Bash", "Read", "Glob", "Grep", "LSP", "WebFetch", "WebSearch"]

DISALLOWED_TOOLS = [
    "Bash(rm -rf *)",
    "Bash(sudo *)",
    "Bash(chmod 777 *)",
    "Bash(git push --force *)",
    "Bash(curl * | sh)",
    "Bash(curl * | bash)",
    "Bash(wget * | sh)",
    "Bash(wget * | bash)",
]


def _scoped(tool: str, directory: Path) -> str:
    return f"{tool}({directory}/**)"


def build_permission_args(project_dir: Path, all_permissions: bool = False) -> list[str]:
    """Flags granting tool access.

    Edits are confined to the project, its parent (sibling worktrees) and
    the autom8 config root (plans live there).
    """
    if all_permissions:
        return ["--dangerously-skip-permissions"]

    project_dir = Path(project_dir).resolve()
    allowed = list(DEFAULT_ALLOWED_TOOLS)
    for directory in (project_dir, project_dir.parent, config_dir()):
        allowed.append(_scoped("Edit", directory))
        allowed.append(_scoped("Write", directory))

    return [
        "--allowedTools", ",".join(allowed),
        "--disallowedTools", ",".join(DISALLOWED_TOOLS),
    ]
