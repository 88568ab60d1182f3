"""
autom8 init - Create the config directory for this project.
"""

from pathlib import Path

from autom8.lib import config as cfg


def cmd_init(args) -> int:
    project = cfg.current_project_name(Path.cwd())
    global_path = cfg.global_config_path()
    had_global = global_path.exists()

    cfg.load_global_config()
    project_dir, created = cfg.ensure_project_config_dir(project)

    if not had_global:
        print(f"Created {global_path}")
    if created:
        print(f"Created {project_dir}")
    else:
        print(f"Project '{project}' already initialized at {project_dir}")
    print(f"Specs go in {cfg.spec_dir(project)}")
    return 0
