"""Rotation counters exposed to dashboards and the CLI."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field


@dataclass
class RotationStats:
    rotations: int = 0
    deletions: int = 0
    errors: int = 0
    passes: int = 0
    watched_files: set[str] = field(default_factory=set)
    start_time: float = field(default_factory=time.time)

    def watch(self, path: str) -> None:
        self.watched_files.add(path)

    @property
    def files_count(self) -> int:
        return len(self.watched_files)

    @property
    def uptime(self) -> float:
        return max(time.time() - self.start_time, 0.0)

    def global_logs_size(self) -> int:
        """Current total size in bytes of every watched file still on disk."""
        total = 0
        for path in self.watched_files:
            try:
                total += os.path.getsize(path)
            except OSError:
                continue
        return total

    def as_dict(self) -> dict:
        return {
            "rotations": self.rotations,
            "deletions": self.deletions,
            "errors": self.errors,
            "passes": self.passes,
            "files_count": self.files_count,
            "global_logs_size": self.global_logs_size(),
        }


def format_bytes(b: float) -> str:
    """Format bytes as human-readable."""
    for unit in ["B", "K", "M", "G", "T"]:
        if abs(b) < 1024:
            return f"{b:.0f}{unit}" if unit == "B" else f"{b:.1f}{unit}"
        b /= 1024
    return f"{b:.1f}P"
