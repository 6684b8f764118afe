"""Tests for the trigger engine."""

import asyncio
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from svlogrotate.config import ConfigError, RotateConfig
from svlogrotate.rotation import Rotator
from svlogrotate.scheduler import RotationService, next_cron_fire, seconds_until
from svlogrotate.supervisor import ManagedProcess, SupervisorError

FIXED = datetime(2024, 1, 15, 0, 0, 0)


class FakeClient:
    def __init__(self, processes=None, list_error=None, connect_error=None):
        self.processes = processes or []
        self.list_error = list_error
        self.connect_error = connect_error
        self.connected = False

    async def connect(self):
        if self.connect_error:
            raise self.connect_error
        self.connected = True

    async def list_processes(self):
        if self.list_error:
            raise self.list_error
        return self.processes


def _service(tmp_path: Path, client: FakeClient, **overrides) -> RotationService:
    config = RotateConfig(**{"max_size": 100, **overrides})
    home = tmp_path / "home"
    home.mkdir(exist_ok=True)
    return RotationService(
        config,
        client,
        rotator=Rotator(config, clock=lambda: FIXED),
        supervisor_home=str(home),
    )


class TestNextCronFire:
    def test_daily_midnight(self) -> None:
        fire = next_cron_fire("0 0 * * *", now=datetime(2024, 1, 15, 13, 30))
        assert fire == datetime(2024, 1, 16, 0, 0)

    def test_in_zone(self) -> None:
        fire = next_cron_fire("0 0 * * *", tz="UTC")
        assert fire.tzinfo is not None
        assert (fire.hour, fire.minute) == (0, 0)


class TestSecondsUntil:
    def test_across_spring_forward(self) -> None:
        zone = ZoneInfo("America/New_York")
        now = datetime(2024, 3, 10, 0, 0, tzinfo=zone)
        fire = datetime(2024, 3, 11, 0, 0, tzinfo=zone)
        assert seconds_until(fire, now) == 23 * 3600

    def test_across_fall_back(self) -> None:
        zone = ZoneInfo("America/New_York")
        now = datetime(2024, 11, 3, 0, 0, tzinfo=zone)
        fire = datetime(2024, 11, 4, 0, 0, tzinfo=zone)
        assert seconds_until(fire, now) == 25 * 3600

    def test_past_instant_is_zero(self) -> None:
        assert seconds_until(datetime(2024, 1, 1), datetime(2024, 1, 2)) == 0.0


class TestRunPass:
    @pytest.mark.asyncio
    async def test_rotates_app_and_supervisor_logs(self, tmp_path: Path) -> None:
        app_log = tmp_path / "web-out.log"
        app_log.write_bytes(b"x" * 150)
        client = FakeClient([ManagedProcess(name="web", out_log=str(app_log))])
        service = _service(tmp_path, client)
        (tmp_path / "home" / "pm2.log").write_bytes(b"y" * 150)

        rotated = await service.run_pass(force=False, trigger="interval")

        assert rotated == [str(app_log), str(tmp_path / "home" / "pm2.log")]
        assert (tmp_path / "web-out__2024-01-15_00-00-00.log").exists()
        assert (tmp_path / "home" / "pm2__2024-01-15_00-00-00.log").exists()
        assert service.stats.passes == 1

    @pytest.mark.asyncio
    async def test_forced_pass_rotates_small_files(self, tmp_path: Path) -> None:
        app_log = tmp_path / "web-out.log"
        app_log.write_bytes(b"small")
        client = FakeClient([ManagedProcess(name="web", out_log=str(app_log))])
        service = _service(tmp_path, client)

        assert await service.run_pass(force=False) == []
        assert await service.run_pass(force=True) == [str(app_log)]

    @pytest.mark.asyncio
    async def test_supervisor_error_skips_apps_only(self, tmp_path: Path) -> None:
        service = _service(tmp_path, FakeClient(list_error=SupervisorError("down")))
        (tmp_path / "home" / "agent.log").write_bytes(b"z" * 10)

        rotated = await service.run_pass(force=True, trigger="cron")

        assert rotated == [str(tmp_path / "home" / "agent.log")]

    @pytest.mark.asyncio
    async def test_shared_cluster_log_rotated_once(self, tmp_path: Path) -> None:
        shared = tmp_path / "api.log"
        shared.write_bytes(b"x" * 500)
        procs = [
            ManagedProcess(name="api", instances=2, out_log=str(shared), err_log=str(shared)),
            ManagedProcess(name="api", instances=2, out_log=str(shared), err_log=str(shared)),
        ]
        service = _service(tmp_path, FakeClient(procs))

        assert await service.run_pass(force=False) == [str(shared)]
        assert service.stats.rotations == 1


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_invalid_cron_fails_before_connect(self, tmp_path: Path) -> None:
        client = FakeClient()
        service = _service(tmp_path, client, rotate_interval="not a cron")
        with pytest.raises(ConfigError):
            await service.start()
        assert client.connected is False

    @pytest.mark.asyncio
    async def test_connect_failure_is_fatal(self, tmp_path: Path) -> None:
        service = _service(tmp_path, FakeClient(connect_error=SupervisorError("unreachable")))
        with pytest.raises(SupervisorError):
            await service.run()

    @pytest.mark.asyncio
    async def test_interval_trigger_fires(self, tmp_path: Path) -> None:
        app_log = tmp_path / "web-out.log"
        app_log.write_bytes(b"x" * 150)
        client = FakeClient([ManagedProcess(name="web", out_log=str(app_log))])
        service = _service(tmp_path, client, worker_interval=0.01)

        await service.start()
        try:
            for _ in range(100):
                if service.stats.rotations:
                    break
                await asyncio.sleep(0.01)
        finally:
            await service.stop()

        assert service.stats.passes >= 1
        assert service.stats.rotations == 1
        assert app_log.stat().st_size == 0

    @pytest.mark.asyncio
    async def test_cron_trigger_forces_rotation(self, tmp_path: Path) -> None:
        app_log = tmp_path / "web-out.log"
        app_log.write_bytes(b"x" * 10)
        client = FakeClient([ManagedProcess(name="web", out_log=str(app_log))])
        # every second; the size trigger never fires during the test
        service = _service(tmp_path, client, rotate_interval="* * * * * *", worker_interval=3600)

        await service.start()
        try:
            for _ in range(300):
                if service.stats.rotations:
                    break
                await asyncio.sleep(0.01)
        finally:
            await service.stop()

        assert service.stats.rotations == 1
        assert app_log.stat().st_size == 0
        assert (tmp_path / "web-out__2024-01-15_00-00-00.log").read_bytes() == b"x" * 10

    @pytest.mark.asyncio
    async def test_stop_cancels_triggers(self, tmp_path: Path) -> None:
        service = _service(tmp_path, FakeClient())
        await service.start()
        triggers = list(service._triggers)
        await service.stop()
        assert all(t.done() for t in triggers)
