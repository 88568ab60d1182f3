"""
autom8 config - Show or change the run toggles.
"""

from dataclasses import fields
from pathlib import Path

from autom8.lib import config as cfg
from autom8.lib.config import Config
from autom8.lib.errors import ConfigError

TRUE_VALUES = ("true", "yes", "on", "1")
FALSE_VALUES = ("false", "no", "off", "0")


def parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ConfigError(f"Expected true or false, got '{value}'")


def cmd_config(args) -> int:
    project = cfg.current_project_name(Path.cwd())

    if args.key is None:
        if args.use_global:
            source, config = cfg.global_config_path(), cfg.load_global_config()
        else:
            project_config = cfg.load_project_config(project)
            if project_config is not None:
                source, config = cfg.project_config_path(project), project_config
            else:
                source, config = cfg.global_config_path(), cfg.load_global_config()
        print(f"# {source}")
        for key, value in config.to_dict().items():
            print(f"{key}: {str(value).lower()}")
        return 0

    known = [f.name for f in fields(Config)]
    if args.key not in known:
        raise ConfigError(f"Unknown key '{args.key}'. Known keys: {', '.join(known)}")
    if args.value is None:
        raise ConfigError(f"Missing value for '{args.key}'")

    if args.use_global:
        config = cfg.load_global_config()
    else:
        config = cfg.load_project_config(project) or cfg.load_global_config()
    setattr(config, args.key, parse_bool(args.value))

    if args.use_global:
        cfg.save_global_config(config)
        print(f"Set {args.key} = {str(getattr(config, args.key)).lower()} in {cfg.global_config_path()}")
    else:
        cfg.ensure_project_config_dir(project)
        cfg.save_project_config(project, config)
        print(f"Set {args.key} = {str(getattr(config, args.key)).lower()} in {cfg.project_config_path(project)}")
    return 0
