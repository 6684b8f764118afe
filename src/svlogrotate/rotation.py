"""Copy-and-truncate rotation of a single log file.

The live file keeps its path and inode: its bytes are streamed into a
timestamped archive (gzip when compression is on) and the file is then
truncated in place, so the owning process can keep its descriptor open.
Truncation only happens after the archive has been fully written.
"""

from __future__ import annotations

import asyncio
import gzip
import logging
import os
import shutil
import zlib
from datetime import datetime
from pathlib import Path
from typing import Callable

from svlogrotate.alerts import Notifier
from svlogrotate.config import RotateConfig
from svlogrotate.naming import archive_name, current_time, format_timestamp
from svlogrotate.retention import prune
from svlogrotate.stats import RotationStats

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def should_rotate(size: int, max_size: int, force: bool) -> bool:
    """Empty files never rotate, even when forced."""
    return size > 0 and (size >= max_size or force)


def copy_to_archive(src: str, dst: str, compress: bool) -> None:
    """Stream ``src`` into ``dst`` (created or truncated), gzip level 9 if ``compress``.

    Resources are released compressor first, then the reader, then the writer.
    """
    with open(dst, "wb") as writer:
        with open(src, "rb") as reader:
            if compress:
                with gzip.GzipFile(
                    filename=os.path.basename(src), mode="wb", compresslevel=9, fileobj=writer
                ) as compressor:
                    shutil.copyfileobj(reader, compressor, CHUNK_SIZE)
            else:
                shutil.copyfileobj(reader, writer, CHUNK_SIZE)


class Rotator:
    """Evaluates log files and rotates those that need it."""

    def __init__(
        self,
        config: RotateConfig,
        notifier: Notifier | None = None,
        stats: RotationStats | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.stats = stats or RotationStats()
        self.notifier = notifier or Notifier(
            Path(config.alerts_path) if config.alerts_path else None, self.stats
        )
        self._clock = clock or (lambda: current_time(config.tz))
        self._in_flight: set[str] = set()

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    def archive_path(self, path: str) -> str:
        timestamp = format_timestamp(self.config.date_format, self._clock())
        return archive_name(path, timestamp, self.config.compress)

    async def evaluate(self, path: str, force: bool = False) -> bool:
        """Rotate ``path`` if it is over the size limit (or ``force``). Returns True if rotated."""
        # Marked before the first await so the size check and the rotation
        # see the same file state.
        if path in self._in_flight:
            logger.debug("Skipping %s: already being evaluated", path)
            return False
        self._in_flight.add(path)
        try:
            return await self._evaluate(path, force)
        finally:
            self._in_flight.discard(path)

    async def _evaluate(self, path: str, force: bool) -> bool:
        if not await asyncio.to_thread(os.path.exists, path):
            return False
        self.stats.watch(path)

        try:
            st = await asyncio.to_thread(os.stat, path)
        except OSError as exc:
            logger.error("Could not stat %s: %s", path, exc)
            return False

        if not should_rotate(st.st_size, self.config.max_size, force):
            return False

        logger.info("Rotating %s, forced: %s", path, force)
        return await self._rotate(path)

    async def _rotate(self, path: str) -> bool:
        final_name = self.archive_path(path)

        try:
            await asyncio.to_thread(copy_to_archive, path, final_name, self.config.compress)
        except (OSError, zlib.error) as exc:
            self.notifier.error(f"Could not write archive {final_name}", exc, path=path)
            await self._discard_partial(final_name)
            return False

        try:
            await asyncio.to_thread(os.truncate, path, 0)
        except OSError as exc:
            self.notifier.error(f"Could not empty {path}", exc, path=path)
            return False

        logger.info('"%s" has been created', final_name)
        logger.info('"%s" has been emptied', path)
        self.stats.rotations += 1

        if self.config.retain is not None:
            await prune(path, self.config.retain, self.notifier, self.stats)
        return True

    async def _discard_partial(self, final_name: str) -> None:
        try:
            await asyncio.to_thread(os.unlink, final_name)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove partial archive %s: %s", final_name, exc)
