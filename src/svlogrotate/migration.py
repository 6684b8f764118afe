"""Config schema versioning and migration."""

from __future__ import annotations

CURRENT_VERSION = 2

# Module-conf keys used by version 1 files, mapped to their v2 names.
_V1_KEYS = {
    "max_size": "max_size",
    "retain": "retain",
    "compress": "compress",
    "dateFormat": "date_format",
    "workerInterval": "worker_interval",
    "rotateInterval": "rotate_interval",
    "TZ": "tz",
    "rotateModule": "rotate_module",
}


def migrate_config(config: dict) -> dict:
    """Auto-upgrade config from older schema versions to current (v2).

    Returns a new config dict at the current schema version.
    """
    config = config.copy()
    version = config.get("version", 1)
    if not isinstance(version, int) or isinstance(version, bool):
        # left for validate_config to report
        return config

    if version < 2:
        config = _migrate_v1_to_v2(config)

    return config


def _migrate_v1_to_v2(config: dict) -> dict:
    """Migrate from v1 to v2 schema.

    v1 files hold the supervisor module settings as they are stored by the
    supervisor itself: camelCase keys, with booleans and numbers often
    serialized as strings ("true", "30"). Empty strings meant "use default".
    """
    migrated: dict = {}
    for key, value in config.items():
        if key == "version":
            continue
        new_key = _V1_KEYS.get(key, key)
        if value == "":
            continue
        migrated[new_key] = _coerce(new_key, value)

    migrated["version"] = CURRENT_VERSION
    return migrated


def _coerce(key: str, value):
    if not isinstance(value, str):
        return value

    text = value.strip()
    if key in ("compress", "rotate_module"):
        lowered = text.lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        return value
    if key in ("retain", "worker_interval"):
        if text.lower() in ("all", "none", "null"):
            return None if key == "retain" else value
        try:
            return int(text)
        except ValueError:
            return value
    return value
