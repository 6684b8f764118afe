"""Process supervisor control channel (PM2-compatible).

The supervisor is driven through its command line: ``pm2 ping`` opens the
session and ``pm2 jlist`` returns the process table as JSON.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import os
from dataclasses import dataclass
from typing import Mapping

from svlogrotate.naming import DEV_NULL

logger = logging.getLogger(__name__)

SUPERVISOR_LOGS = ("pm2.log", "agent.log")


class SupervisorError(RuntimeError):
    """The supervisor could not be reached or returned something unusable."""


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class ReconnectPolicy:
    max_attempts: int = 3
    delay: float = 1.0


def _log_path(value) -> str:
    if not isinstance(value, str) or value == DEV_NULL:
        return ""
    return value


@dataclass(frozen=True)
class ManagedProcess:
    name: str
    is_module: bool = False
    instances: int = 1
    out_log: str = ""
    err_log: str = ""
    combined_log: str = ""

    @classmethod
    def from_record(cls, record: Mapping) -> "ManagedProcess":
        """Build from one entry of the supervisor's JSON process list."""
        env = record.get("pm2_env") or {}
        axm_options = env.get("axm_options") or {}
        try:
            instances = int(env.get("instances", 1))
        except (TypeError, ValueError):
            instances = 1
        return cls(
            name=str(record.get("name") or env.get("name") or ""),
            is_module="isModule" in axm_options,
            instances=instances,
            out_log=_log_path(env.get("pm_out_log_path")),
            err_log=_log_path(env.get("pm_err_log_path")),
            combined_log=_log_path(env.get("pm_log_path")),
        )

    def log_paths(self) -> list[str]:
        """Distinct, non-empty log paths: stdout, stderr, combined."""
        paths: list[str] = []
        for path in (self.out_log, self.err_log, self.combined_log):
            if path and path not in paths:
                paths.append(path)
        return paths

    def same_logs(self, other: "ManagedProcess | None") -> bool:
        if other is None:
            return False
        return (
            self.out_log == other.out_log
            and self.err_log == other.err_log
            and self.combined_log == other.combined_log
        )


def resolve_supervisor_home(env: Mapping[str, str] | None = None) -> str:
    """Supervisor home directory: PM2_HOME, else ~/.pm2, else empty."""
    env = os.environ if env is None else env
    if env.get("PM2_HOME"):
        return env["PM2_HOME"]
    home = env.get("HOME")
    homepath = env.get("HOMEPATH")
    if home and not homepath:
        return os.path.abspath(os.path.join(home, ".pm2"))
    if home or homepath:
        return os.path.abspath(
            os.path.join(env.get("HOMEDRIVE", ""), home or homepath, ".pm2")
        )
    return ""


def supervisor_log_paths(home: str) -> list[str]:
    """The supervisor's own log files."""
    return [os.path.join(home, name) for name in SUPERVISOR_LOGS]


class Pm2Client:
    """Session with a PM2 daemon, reconnecting on demand."""

    def __init__(
        self,
        command: str = "pm2",
        home: str | None = None,
        timeout: float = 30.0,
        policy: ReconnectPolicy | None = None,
    ) -> None:
        self.command = command
        self.home = home
        self.timeout = timeout
        self.policy = policy or ReconnectPolicy()
        self.state = ConnectionState.DISCONNECTED

    async def _exec(self, *args: str) -> bytes:
        env = os.environ.copy()
        if self.home:
            env["PM2_HOME"] = self.home
        try:
            proc = await asyncio.create_subprocess_exec(
                self.command,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as exc:
            raise SupervisorError(f"cannot run {self.command}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), self.timeout)
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise SupervisorError(f"{self.command} {' '.join(args)} timed out") from exc

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()[:200]
            raise SupervisorError(
                f"{self.command} {' '.join(args)} exited with {proc.returncode}: {detail}"
            )
        return stdout

    async def connect(self) -> None:
        """Open the session. Raises SupervisorError if the daemon is unreachable."""
        self.state = ConnectionState.CONNECTING
        try:
            await self._exec("ping")
        except SupervisorError:
            self.state = ConnectionState.DISCONNECTED
            raise
        self.state = ConnectionState.CONNECTED
        logger.debug("Connected to %s", self.command)

    async def reconnect(self) -> None:
        last_exc: SupervisorError | None = None
        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                await self.connect()
                return
            except SupervisorError as exc:
                last_exc = exc
                logger.warning(
                    "Reconnect attempt %d/%d failed: %s", attempt, self.policy.max_attempts, exc
                )
                if attempt < self.policy.max_attempts:
                    await asyncio.sleep(self.policy.delay)
        raise SupervisorError(f"supervisor unreachable: {last_exc}")

    async def list_processes(self) -> list[ManagedProcess]:
        if self.state is not ConnectionState.CONNECTED:
            await self.reconnect()
        try:
            raw = await self._exec("jlist")
        except SupervisorError:
            self.state = ConnectionState.DISCONNECTED
            raise
        return parse_process_list(raw)


def parse_process_list(raw: bytes | str) -> list[ManagedProcess]:
    """Parse ``pm2 jlist`` output."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    # jlist output may be preceded by daemon banner lines such as "[PM2] Spawning..."
    offset = 0
    for line in raw.splitlines(keepends=True):
        if line.lstrip().startswith("["):
            try:
                records = json.loads(raw[offset:])
            except json.JSONDecodeError:
                pass
            else:
                if isinstance(records, list):
                    return [ManagedProcess.from_record(r) for r in records if isinstance(r, dict)]
        offset += len(line)
    raise SupervisorError("process list is not a JSON array")
