"""
Configuration and directory layout for autom8.

Everything autom8 persists lives under one per-user root:

    ~/.config/autom8/
        config.yaml                 global toggles
        <project>/
            config.yaml             per-project toggles (optional)
            spec/                   markdown specs and JSON plans
            runs/                   archived run states
            sessions/<id>/          state.json, metadata.json, live.json

AUTOM8_CONFIG_DIR relocates the root (used by tests).
"""

import logging
import os
import shutil
from dataclasses import asdict, dataclass, fields
from pathlib import Path

import yaml

from autom8.git.worktree import get_repo_name
from autom8.lib.constants import (
    CONFIG_DIR_ENV,
    CONFIG_DIR_NAME,
    CONFIG_FILENAME,
    RUNS_SUBDIR,
    SESSIONS_SUBDIR,
    SPEC_SUBDIR,
)
from autom8.lib.errors import ConfigError

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_YAML = """\
# autom8 configuration
# Controls which states of the run state machine are executed.

# Review state: code review before committing
review: true

# Commit state: let the assistant create git commits once all stories pass
commit: true

# Pull request state: open (or update) a PR after committing.
# Requires commit: true
pull_request: true

# Worktree mode: run each spec in a dedicated linked worktree so several
# sessions can work on the same repository in parallel
worktree: false
"""


@dataclass
class Config:
    """State machine toggles from config.yaml."""
    review: bool = True
    commit: bool = True
    pull_request: bool = True
    worktree: bool = False

    @classmethod
    def from_dict(cls, data: dict | None, source: str = "config") -> "Config":
        """Build from a decoded mapping; missing keys take defaults."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown keys in {source}: {', '.join(unknown)}")
        values = {}
        for key in known & set(data):
            if not isinstance(data[key], bool):
                raise ConfigError(f"'{key}' must be true or false in {source}")
            values[key] = data[key]
        return cls(**values)

    def to_dict(self) -> dict:
        return asdict(self)


def validate_config(config: Config) -> None:
    """
    Raises:
        ConfigError: If toggles are inconsistent
    """
    if config.pull_request and not config.commit:
        raise ConfigError(
            "Cannot create pull request without commits. "
            "Either set `commit: true` or set `pull_request: false`"
        )


# --- Directory layout ---

def config_dir() -> Path:
    """Root of all autom8 state."""
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override)
    return Path.home() / ".config" / CONFIG_DIR_NAME


def current_project_name(cwd: Path | None = None) -> str:
    """Main repository name inside git, else the basename of cwd."""
    cwd = Path(cwd or Path.cwd())
    name = get_repo_name(cwd)
    if name:
        return name
    if not cwd.resolve().name:
        raise ConfigError("Could not determine project name from path")
    return cwd.resolve().name


def project_config_dir(project: str) -> Path:
    return config_dir() / project


def spec_dir(project: str) -> Path:
    return project_config_dir(project) / SPEC_SUBDIR


def runs_dir(project: str) -> Path:
    return project_config_dir(project) / RUNS_SUBDIR


def sessions_dir(project: str) -> Path:
    return project_config_dir(project) / SESSIONS_SUBDIR


def ensure_project_config_dir(project: str) -> tuple[Path, bool]:
    """Create the project directory tree. Returns (dir, created)."""
    project_dir = project_config_dir(project)
    created = not project_dir.exists()
    for sub in (SPEC_SUBDIR, RUNS_SUBDIR, SESSIONS_SUBDIR):
        (project_dir / sub).mkdir(parents=True, exist_ok=True)
    return project_dir, created


def list_projects() -> list[str]:
    """Sorted project directory names under the config root."""
    root = config_dir()
    if not root.exists():
        return []
    return sorted(p.name for p in root.iterdir() if p.is_dir())


def project_exists(project: str) -> bool:
    return project_config_dir(project).is_dir()


# --- Config files ---

def global_config_path() -> Path:
    return config_dir() / CONFIG_FILENAME


def project_config_path(project: str) -> Path:
    return project_config_dir(project) / CONFIG_FILENAME


def _load_config_file(path: Path) -> Config:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config file at {path}: {e}") from None
    if data is not None and not isinstance(data, dict):
        raise ConfigError(f"Config file at {path} must be a mapping")
    return Config.from_dict(data, source=str(path))


def load_global_config() -> Config:
    """Load the global config, writing the commented default file on first use."""
    path = global_config_path()
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(DEFAULT_CONFIG_YAML)
        return Config()
    return _load_config_file(path)


def load_project_config(project: str) -> Config | None:
    path = project_config_path(project)
    if not path.exists():
        return None
    return _load_config_file(path)


def _write_config(path: Path, config: Config) -> None:
    validate_config(config)
    path.parent.mkdir(parents=True, exist_ok=True)
    header = "# autom8 configuration\n"
    path.write_text(header + yaml.safe_dump(config.to_dict(), sort_keys=False))


def save_global_config(config: Config) -> None:
    _write_config(global_config_path(), config)


def save_project_config(project: str, config: Config) -> None:
    _write_config(project_config_path(project), config)


def get_effective_config(project: str) -> Config:
    """Project config if present, else global config. Validated."""
    config = load_project_config(project) or load_global_config()
    validate_config(config)
    return config


# --- Spec file placement ---

def is_in_config_dir(file_path: Path, project: str) -> bool:
    target = Path(file_path).resolve()
    root = project_config_dir(project).resolve()
    return target.is_relative_to(root)


def move_to_config_dir(file_path: Path, project: str) -> tuple[Path, bool]:
    """
    Move a spec file into the project's spec/ directory.

    Returns:
        (destination path, whether the file was moved)
    """
    file_path = Path(file_path)
    if is_in_config_dir(file_path, project):
        return file_path.resolve(), False

    dest_dir = spec_dir(project)
    dest_dir.mkdir(parents=True, exist_ok=True)
    dest = dest_dir / file_path.name
    # shutil.move falls back to copy+delete across filesystems
    shutil.move(str(file_path), str(dest))
    logger.info(f"Moved {file_path} -> {dest}")
    return dest, True
