"""Tests for archive pruning."""

from pathlib import Path

import pytest

from svlogrotate.retention import prune, select_expired
from svlogrotate.stats import RotationStats


def _touch(directory: Path, *names: str) -> None:
    for name in names:
        (directory / name).write_text("x")


class TestSelectExpired:
    def test_keeps_newest(self) -> None:
        names = [
            "app__2024-01-02_00-00-00.log",
            "app__2024-01-01_00-00-00.log",
            "app__2024-01-03_00-00-00.log",
            "app.log",
        ]
        assert select_expired(names, "app__", 2) == ["app__2024-01-01_00-00-00.log"]

    def test_fewer_than_retain(self) -> None:
        assert select_expired(["app__1.log"], "app__", 5) == []

    def test_prefix_does_not_match_sibling(self) -> None:
        names = ["app-worker__2024-01-01.log", "app__2024-01-01.log"]
        assert select_expired(names, "app__", 0) == ["app__2024-01-01.log"]


class TestPrune:
    @pytest.mark.asyncio
    async def test_retain_two_of_three(self, tmp_path: Path) -> None:
        _touch(
            tmp_path,
            "app.log",
            "app__2024-01-01_00-00-00.log",
            "app__2024-01-02_00-00-00.log",
            "app__2024-01-03_00-00-00.log",
        )
        stats = RotationStats()
        deleted = await prune(str(tmp_path / "app.log"), 2, stats=stats)

        assert [Path(p).name for p in deleted] == ["app__2024-01-01_00-00-00.log"]
        remaining = sorted(p.name for p in tmp_path.iterdir())
        assert remaining == [
            "app.log",
            "app__2024-01-02_00-00-00.log",
            "app__2024-01-03_00-00-00.log",
        ]
        assert stats.deletions == 1

    @pytest.mark.asyncio
    async def test_deletes_n_minus_r(self, tmp_path: Path) -> None:
        names = [f"app__2024-01-{day:02d}_00-00-00.log.gz" for day in range(1, 11)]
        _touch(tmp_path, *names)
        deleted = await prune(str(tmp_path / "app.log"), 3)
        assert len(deleted) == 7
        remaining = sorted(p.name for p in tmp_path.iterdir())
        assert remaining == sorted(names)[-3:]

    @pytest.mark.asyncio
    async def test_dev_null_never_pruned(self) -> None:
        assert await prune("/dev/null", 0) == []

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path: Path) -> None:
        assert await prune(str(tmp_path / "gone" / "app.log"), 1) == []

    @pytest.mark.asyncio
    async def test_failed_delete_does_not_stop_others(self, tmp_path: Path, monkeypatch) -> None:
        _touch(
            tmp_path,
            "app__2024-01-01_00-00-00.log",
            "app__2024-01-02_00-00-00.log",
            "app__2024-01-03_00-00-00.log",
        )
        import os

        real_unlink = os.unlink

        def flaky_unlink(path, *args, **kwargs):
            if path.endswith("01-02_00-00-00.log"):
                raise PermissionError("denied")
            return real_unlink(path, *args, **kwargs)

        monkeypatch.setattr(os, "unlink", flaky_unlink)
        deleted = await prune(str(tmp_path / "app.log"), 1)

        assert [Path(p).name for p in deleted] == ["app__2024-01-01_00-00-00.log"]
        assert (tmp_path / "app__2024-01-02_00-00-00.log").exists()


class TestSiblingApps:
    def test_other_app_with_longer_name_not_selected(self) -> None:
        names = [
            "api-out__2024-01-01_00-00-00.log",
            "my-api-out__2024-01-02_00-00-00.log",
            "web-api-out__2024-01-03_00-00-00.log",
        ]
        assert select_expired(names, "api-out__", 0) == ["api-out__2024-01-01_00-00-00.log"]

    @pytest.mark.asyncio
    async def test_prune_keeps_other_apps_archives(self, tmp_path: Path) -> None:
        _touch(
            tmp_path,
            "api-out.log",
            "api-out__2024-01-01_00-00-00.log",
            "my-api-out__2024-01-02_00-00-00.log",
            "my-api-out__2024-01-03_00-00-00.log",
        )
        deleted = await prune(str(tmp_path / "api-out.log"), 1)

        assert deleted == []
        assert sorted(p.name for p in tmp_path.iterdir()) == [
            "api-out.log",
            "api-out__2024-01-01_00-00-00.log",
            "my-api-out__2024-01-02_00-00-00.log",
            "my-api-out__2024-01-03_00-00-00.log",
        ]
