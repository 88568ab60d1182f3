"""Helpers shared by autom8 commands."""

import sys
from pathlib import Path
from typing import TextIO

from autom8.lib import config as cfg
from autom8.runner.engine import EngineEvent, EventKind


def resolve_project(cwd: Path | None = None) -> str:
    """Project for cwd, with its config directories created."""
    project = cfg.current_project_name(cwd)
    cfg.ensure_project_config_dir(project)
    return project


def choose(options: list[str], prompt: str, stream: TextIO | None = None) -> int | None:
    """
    Numbered menu on stdin. Returns the chosen index, or None on EOF/invalid input.
    """
    out = stream or sys.stdout
    for i, option in enumerate(options, 1):
        print(f"  {i}. {option}", file=out)
    try:
        answer = input(f"{prompt} [1-{len(options)}]: ").strip()
    except EOFError:
        return None
    if not answer.isdigit():
        return None
    index = int(answer) - 1
    if 0 <= index < len(options):
        return index
    return None


def short_date(value) -> str:
    if value is None:
        return "never"
    return value.strftime("%Y-%m-%d")


class ConsolePrinter:
    """Engine subscriber that streams assistant output and phase lines to the terminal."""

    def __init__(self, stream: TextIO | None = None, show_transitions: bool = False):
        self.stream = stream or sys.stdout
        self.show_transitions = show_transitions
        self._at_line_start = True

    def _line(self, text: str) -> None:
        if not self._at_line_start:
            self.stream.write("\n")
        self.stream.write(text + "\n")
        self.stream.flush()
        self._at_line_start = True

    def __call__(self, event: EngineEvent) -> None:
        if event.kind == EventKind.OUTPUT:
            if event.text:
                self.stream.write(event.text)
                self.stream.flush()
                self._at_line_start = event.text.endswith("\n")
        elif event.kind == EventKind.PHASE:
            self._line(f"==> {event.text}")
        elif event.kind == EventKind.ITERATION:
            self._line(f"\n--- Iteration {event.iteration}: {event.story_id} {event.text} ---")
        elif event.kind == EventKind.TRANSITION and self.show_transitions:
            self._line(f"[{event.from_state.label} -> {event.to_state.label}]")
