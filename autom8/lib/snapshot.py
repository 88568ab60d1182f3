"""
Detect markdown specs written during an interactive session.

Before the interactive assistant starts, the modification times of every
.md file directly inside the watched directories are recorded. Afterwards
a re-scan reports files that are new or were modified since.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path


def _md_files(directory: Path) -> dict[Path, float]:
    if not directory.is_dir():
        return {}
    found = {}
    for path in directory.iterdir():
        if path.suffix != ".md" or not path.is_file():
            continue
        try:
            resolved = path.resolve()
            found[resolved] = resolved.stat().st_mtime
        except OSError:
            continue
    return found


@dataclass
class SpecSnapshot:
    taken_at: float
    files: dict[Path, float] = field(default_factory=dict)

    @classmethod
    def capture(cls, dirs: list[Path]) -> "SpecSnapshot":
        taken_at = datetime.now().timestamp()
        files = {}
        for directory in dirs:
            files.update(_md_files(Path(directory)))
        return cls(taken_at=taken_at, files=files)

    def detect_new(self, dirs: list[Path]) -> list[Path]:
        """Files absent at capture, or modified after it. Sorted."""
        changed = set()
        for directory in dirs:
            for path, mtime in _md_files(Path(directory)).items():
                old = self.files.get(path)
                if old is None or (mtime > self.taken_at and mtime != old):
                    changed.add(path)
        return sorted(changed)
