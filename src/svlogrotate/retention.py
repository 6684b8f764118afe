"""Delete all but the newest N archives of a log file."""

from __future__ import annotations

import asyncio
import logging
import os

from svlogrotate.alerts import Notifier
from svlogrotate.naming import DEV_NULL, base_name
from svlogrotate.stats import RotationStats

logger = logging.getLogger(__name__)


def select_expired(names: list[str], prefix: str, retain: int) -> list[str]:
    """Names starting with ``prefix``, minus the ``retain`` lexically greatest.

    Archive timestamps are zero padded, so descending lexical order is
    newest first.
    """
    archives = sorted((n for n in names if n.startswith(prefix)), reverse=True)
    return archives[retain:]


async def prune(
    path: str,
    retain: int,
    notifier: Notifier | None = None,
    stats: RotationStats | None = None,
) -> list[str]:
    """Delete expired archives of ``path``. Returns the deleted paths.

    Each deletion is independent: one failure is logged and the rest
    still proceed.
    """
    if path == DEV_NULL:
        return []

    dir_name = os.path.dirname(path) or "."
    prefix = os.path.basename(base_name(path))

    try:
        names = await asyncio.to_thread(os.listdir, dir_name)
    except OSError as exc:
        if notifier is not None:
            notifier.error(f"Could not list {dir_name}", exc, path=path)
        else:
            logger.error("Could not list %s: %s", dir_name, exc)
        return []

    deleted: list[str] = []
    for name in select_expired(names, prefix, retain):
        target = os.path.join(dir_name, name)
        try:
            await asyncio.to_thread(os.unlink, target)
        except OSError as exc:
            logger.error("Could not delete %s: %s", target, exc)
            continue
        logger.info('"%s" has been deleted', name)
        deleted.append(target)
        if stats is not None:
            stats.deletions += 1
    return deleted
