"""Error notifications: log, count, and append to an alerts.jsonl file."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from svlogrotate.stats import RotationStats

logger = logging.getLogger(__name__)


class Notifier:
    """Alert channel for rotation-breaking errors."""

    def __init__(
        self,
        alerts_path: Path | None = None,
        stats: RotationStats | None = None,
    ) -> None:
        self.alerts_path = alerts_path
        self.stats = stats

    def error(self, message: str, exc: BaseException | None = None, path: str | None = None) -> None:
        if exc is not None:
            logger.error("%s: %s", message, exc)
        else:
            logger.error("%s", message)
        if self.stats is not None:
            self.stats.errors += 1
        if self.alerts_path is not None:
            self._append(message, exc, path)

    def _append(self, message: str, exc: BaseException | None, path: str | None) -> None:
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": "error",
            "message": message,
            "path": path,
            "error": f"{type(exc).__name__}: {exc}" if exc is not None else None,
        }
        try:
            self.alerts_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.alerts_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(event) + "\n")
        except OSError as write_exc:
            logger.warning("Could not write alert to %s: %s", self.alerts_path, write_exc)
