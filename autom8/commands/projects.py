"""
autom8 projects - List project names.
"""

from autom8.lib import config as cfg


def cmd_projects(args) -> int:
    projects = cfg.list_projects()
    if not projects:
        print("No projects found")
        return 0
    for project in projects:
        print(project)
    return 0
