"""Config loading, defaults, validation, and the immutable runtime config."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from croniter import croniter

from svlogrotate.migration import CURRENT_VERSION, migrate_config
from svlogrotate.naming import DELIMITER, format_timestamp, resolve_timezone
from svlogrotate.utils import deep_merge, load_mapping, save_json

logger = logging.getLogger(__name__)

CONFIG_DIR = ".svlogrotate"
CONFIG_NAMES = ("config.json", "config.yaml", "config.yml")

DEFAULT_CONFIG: dict = {
    "version": CURRENT_VERSION,
    "max_size": "10M",
    "worker_interval": 30,
    "rotate_interval": "0 0 * * *",
    "retain": None,
    "compress": False,
    "date_format": "YYYY-MM-DD_HH-mm-ss",
    "tz": None,
    "rotate_module": True,
    "supervisor_home": None,
    "supervisor_command": "pm2",
    "alerts_path": None,
}

_SIZE_RE = re.compile(r"^\s*(\d+)\s*([KMG]?)\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}
# Instant with distinct fields, used to render date_format samples.
_SAMPLE_TIME = datetime(2024, 1, 15, 13, 45, 30)


class ConfigError(ValueError):
    """Raised when the configuration cannot be turned into a RotateConfig."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors))


@dataclass(frozen=True)
class RotateConfig:
    max_size: int = 10 * 1024 * 1024
    worker_interval: float = 30.0
    rotate_interval: str = "0 0 * * *"
    retain: int | None = None
    compress: bool = False
    date_format: str = "YYYY-MM-DD_HH-mm-ss"
    tz: str | None = None
    rotate_module: bool = True
    supervisor_home: str | None = None
    supervisor_command: str = "pm2"
    alerts_path: str | None = None


def parse_size(value: str | int) -> int:
    """Parse ``"10M"``, ``"512K"``, ``"1G"`` or a plain byte count.

    Raises ValueError on anything else, including negative or empty values.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid size: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"invalid size: {value!r}")
        return value
    match = _SIZE_RE.match(str(value))
    if not match:
        raise ValueError(f"invalid size: {value!r}")
    number, unit = match.groups()
    return int(number) * _SIZE_UNITS[unit.upper()]


def get_config_path(start_dir: Path | None = None) -> Path:
    """Find .svlogrotate/config.{json,yaml,yml} by walking up from start_dir."""
    search = start_dir or Path.cwd()
    for d in [search, *search.parents]:
        for name in CONFIG_NAMES:
            candidate = d / CONFIG_DIR / name
            if candidate.exists():
                return candidate
    return search / CONFIG_DIR / CONFIG_NAMES[0]


def load_config(start_dir: Path | None = None) -> dict:
    """Load the config file (if any), migrated and merged with defaults.

    Raises ConfigError if the file exists but does not hold a mapping.
    """
    config_path = get_config_path(start_dir)
    if config_path.exists():
        user_config = load_mapping(config_path)
        if not user_config:
            raise ConfigError([f"could not load {config_path} (empty or malformed)"])
        return deep_merge(DEFAULT_CONFIG, migrate_config(user_config))
    return DEFAULT_CONFIG.copy()


def save_config(config: dict, target_dir: Path | None = None) -> Path:
    """Save config to .svlogrotate/config.json."""
    target = target_dir or Path.cwd()
    config_path = target / CONFIG_DIR / CONFIG_NAMES[0]
    save_json(config_path, config)
    return config_path


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config(config: dict) -> list[str]:
    """Validate config, returning list of error messages (empty if valid)."""
    errors = []

    if not _is_int(config.get("version")):
        errors.append(f"version: must be an integer, got {config.get('version')!r}")

    try:
        parse_size(config.get("max_size"))
    except ValueError as exc:
        errors.append(f"max_size: {exc}")

    interval = config.get("worker_interval")
    if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
        errors.append(f"worker_interval: must be a positive number of seconds, got {interval!r}")

    cron = config.get("rotate_interval")
    if not isinstance(cron, str) or not croniter.is_valid(cron):
        errors.append(f"rotate_interval: invalid cron expression {cron!r}")

    retain = config.get("retain")
    if retain is not None and (not _is_int(retain) or retain < 0):
        errors.append(f"retain: must be a non-negative integer or null, got {retain!r}")

    for key in ("compress", "rotate_module"):
        if not isinstance(config.get(key), bool):
            errors.append(f"{key}: must be true or false, got {config.get(key)!r}")

    date_format = config.get("date_format")
    if not isinstance(date_format, str) or not date_format:
        errors.append("date_format: must be a non-empty string")
    else:
        sample = format_timestamp(date_format, _SAMPLE_TIME)
        if DELIMITER in sample:
            errors.append(f"date_format: must not produce '{DELIMITER}' (got {sample!r})")
        elif format_timestamp(date_format, _SAMPLE_TIME + timedelta(seconds=1)) == sample:
            errors.append(
                f"date_format: must change every second, {date_format!r} does not"
            )

    for key in ("tz", "supervisor_home", "alerts_path"):
        value = config.get(key)
        if value is not None and not isinstance(value, str):
            errors.append(f"{key}: must be a string or null")

    command = config.get("supervisor_command")
    if not isinstance(command, str) or not command.strip():
        errors.append("supervisor_command: must be a non-empty string")

    return errors


def build_config(config: dict) -> RotateConfig:
    """Turn a validated config dict into a RotateConfig, raising ConfigError otherwise."""
    errors = validate_config(config)
    if errors:
        raise ConfigError(errors)

    tz = config.get("tz") or None
    if tz and resolve_timezone(tz) is None:
        logger.warning("Unknown timezone %r, local time will be used", tz)

    return RotateConfig(
        max_size=parse_size(config["max_size"]),
        worker_interval=float(config["worker_interval"]),
        rotate_interval=config["rotate_interval"],
        retain=config.get("retain"),
        compress=config["compress"],
        date_format=config["date_format"],
        tz=tz,
        rotate_module=config["rotate_module"],
        supervisor_home=config.get("supervisor_home") or None,
        supervisor_command=config["supervisor_command"],
        alerts_path=config.get("alerts_path") or None,
    )
