"""Collect the log files of supervised processes for one trigger pass."""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

from svlogrotate.supervisor import ManagedProcess

logger = logging.getLogger(__name__)


class ProcessSource(Protocol):
    async def connect(self) -> None: ...

    async def list_processes(self) -> list[ManagedProcess]: ...


def collect_log_paths(processes: Iterable[ManagedProcess], rotate_module: bool = True) -> list[str]:
    """Log paths to evaluate, in process-table order.

    Clustered instances of one process that share all three log paths are
    queued once: an instance is skipped when the previous record with the
    same name has identical paths.
    """
    last_seen: dict[str, ManagedProcess] = {}
    paths: list[str] = []
    for proc in processes:
        if proc.is_module and not rotate_module:
            continue
        if proc.instances > 1 and proc.same_logs(last_seen.get(proc.name)):
            continue
        last_seen[proc.name] = proc
        paths.extend(proc.log_paths())
    return paths


async def discover(source: ProcessSource, rotate_module: bool = True) -> list[str]:
    """Fetch the process table and return the log paths to evaluate.

    SupervisorError from the source propagates; the caller aborts the pass.
    """
    processes = await source.list_processes()
    logger.info("apps: %s", [p.name for p in processes])
    return collect_log_paths(processes, rotate_module)
