"""Trigger engine: size polling on a fixed interval, forced rotation on a cron schedule."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from datetime import datetime

from croniter import croniter

from svlogrotate.config import ConfigError, RotateConfig
from svlogrotate.discovery import ProcessSource, discover
from svlogrotate.naming import resolve_timezone
from svlogrotate.rotation import Rotator
from svlogrotate.supervisor import SupervisorError, resolve_supervisor_home, supervisor_log_paths

logger = logging.getLogger(__name__)


def next_cron_fire(expr: str, tz: str | None = None, now: datetime | None = None) -> datetime:
    """Next firing time of ``expr`` in the configured zone (local time if unset)."""
    if now is None:
        zone = resolve_timezone(tz)
        now = datetime.now(zone) if zone is not None else datetime.now()
    return croniter(expr, now).get_next(datetime)


def seconds_until(fire_at: datetime, now: datetime) -> float:
    """Real time between two instants, never negative.

    Compared as POSIX timestamps: subtracting aware datetimes that share a
    zone ignores a DST change between them.
    """
    return max(fire_at.timestamp() - now.timestamp(), 0.0)


class RotationService:
    """Runs the interval and cron triggers against a supervisor."""

    def __init__(
        self,
        config: RotateConfig,
        client: ProcessSource,
        rotator: Rotator | None = None,
        supervisor_home: str | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.rotator = rotator or Rotator(config)
        if supervisor_home is None:
            supervisor_home = config.supervisor_home or resolve_supervisor_home()
        self.supervisor_home = supervisor_home
        self._triggers: list[asyncio.Task] = []
        self._passes: set[asyncio.Task] = set()

    @property
    def stats(self):
        return self.rotator.stats

    def log_config(self) -> None:
        for key, value in asdict(self.config).items():
            logger.info("%s: %s", key.upper(), value)
        logger.info("SUPERVISOR_HOME: %s", self.supervisor_home)

    async def run_pass(self, force: bool, trigger: str = "manual") -> list[str]:
        """Evaluate every managed log plus the supervisor's own logs. Returns rotated paths."""
        logger.info("%s triggered", trigger)
        self.stats.passes += 1

        paths: list[str] = []
        try:
            paths = await discover(self.client, self.config.rotate_module)
        except SupervisorError as exc:
            logger.error("Could not list processes, skipping managed logs: %s", exc)

        if self.supervisor_home:
            paths.extend(supervisor_log_paths(self.supervisor_home))

        results = await asyncio.gather(
            *(self.rotator.evaluate(path, force) for path in paths),
            return_exceptions=True,
        )
        rotated = []
        for path, result in zip(paths, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.error("Evaluation of %s failed: %s", path, result)
            elif result:
                rotated.append(path)
        return rotated

    def _spawn(self, force: bool, trigger: str) -> asyncio.Task:
        task = asyncio.create_task(self.run_pass(force, trigger))
        self._passes.add(task)
        task.add_done_callback(self._passes.discard)
        return task

    async def _interval_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.worker_interval)
            self._spawn(False, "interval")

    async def _cron_loop(self) -> None:
        zone = resolve_timezone(self.config.tz)
        while True:
            now = datetime.now(zone) if zone is not None else datetime.now()
            fire_at = croniter(self.config.rotate_interval, now).get_next(datetime)
            await asyncio.sleep(seconds_until(fire_at, now))
            self._spawn(True, "cron")

    async def start(self) -> None:
        """Validate the schedule, connect, and start both triggers.

        Raises ConfigError for a bad cron expression and SupervisorError if the
        supervisor is unreachable, before anything is scheduled.
        """
        if not croniter.is_valid(self.config.rotate_interval):
            raise ConfigError([f"rotate_interval: invalid cron expression {self.config.rotate_interval!r}"])
        await self.client.connect()
        self._triggers = [
            asyncio.create_task(self._interval_loop(), name="interval-trigger"),
            asyncio.create_task(self._cron_loop(), name="cron-trigger"),
        ]

    async def run(self) -> None:
        await self.start()
        try:
            await asyncio.gather(*self._triggers)
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Cancel both triggers and any pass still in flight."""
        tasks = [*self._triggers, *self._passes]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._triggers = []
