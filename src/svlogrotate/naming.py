"""Archive naming: timestamps, timezones, base names."""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DELIMITER = "__"
GZIP_SUFFIX = ".gz"
DEV_NULL = "/dev/null"


def _offset(when: datetime, sep: str) -> str:
    aware = when if when.tzinfo is not None else when.astimezone()
    minutes = int(aware.utcoffset().total_seconds() // 60)
    sign = "-" if minutes < 0 else "+"
    hours, minutes = divmod(abs(minutes), 60)
    return f"{sign}{hours:02d}{sep}{minutes:02d}"


def _ordinal(day: int) -> str:
    if 10 <= day % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def _hour12(when: datetime) -> int:
    return when.hour % 12 or 12


# moment.js date tokens. Matched longest first so "YYYY" wins over "YY",
# "MMMM" over "M" and "Do" over "D".
_MOMENT_TOKENS: dict[str, Callable[[datetime], str]] = {
    "YYYY": lambda d: f"{d.year:04d}",
    "YY": lambda d: f"{d.year % 100:02d}",
    "MMMM": lambda d: d.strftime("%B"),
    "MMM": lambda d: d.strftime("%b"),
    "MM": lambda d: f"{d.month:02d}",
    "M": lambda d: str(d.month),
    "DDDD": lambda d: f"{d.timetuple().tm_yday:03d}",
    "DDD": lambda d: str(d.timetuple().tm_yday),
    "DD": lambda d: f"{d.day:02d}",
    "Do": lambda d: _ordinal(d.day),
    "D": lambda d: str(d.day),
    "dddd": lambda d: d.strftime("%A"),
    "ddd": lambda d: d.strftime("%a"),
    "d": lambda d: str(d.isoweekday() % 7),
    "HH": lambda d: f"{d.hour:02d}",
    "H": lambda d: str(d.hour),
    "hh": lambda d: f"{_hour12(d):02d}",
    "h": lambda d: str(_hour12(d)),
    "mm": lambda d: f"{d.minute:02d}",
    "m": lambda d: str(d.minute),
    "ss": lambda d: f"{d.second:02d}",
    "s": lambda d: str(d.second),
    "SSS": lambda d: f"{d.microsecond // 1000:03d}",
    "A": lambda d: "AM" if d.hour < 12 else "PM",
    "a": lambda d: "am" if d.hour < 12 else "pm",
    "ZZ": lambda d: _offset(d, ""),
    "Z": lambda d: _offset(d, ":"),
    "X": lambda d: str(int(d.timestamp())),
    "x": lambda d: str(int(d.timestamp() * 1000)),
}
_TOKEN_RE = re.compile(
    r"\[[^\]]*\]|" + "|".join(sorted(_MOMENT_TOKENS, key=len, reverse=True))
)


def render_moment(date_format: str, when: datetime) -> str:
    """Render a moment-style date format (``YYYY-MM-DD_HH-mm-ss``).

    Text inside square brackets is kept literally, brackets removed.
    """
    def _render(match: re.Match) -> str:
        token = match.group(0)
        if token.startswith("["):
            return token[1:-1]
        return _MOMENT_TOKENS[token](when)

    return _TOKEN_RE.sub(_render, date_format)


def resolve_timezone(tz_name: str | None) -> ZoneInfo | None:
    """Return the named zone, or None (local time) if unset or unknown."""
    if not tz_name:
        return None
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug("Unknown timezone %r, using local time", tz_name)
        return None


def current_time(tz_name: str | None = None) -> datetime:
    """Wall-clock time in the configured zone, local time as fallback."""
    zone = resolve_timezone(tz_name)
    if zone is None:
        return datetime.now()
    return datetime.now(zone)


def format_timestamp(date_format: str, when: datetime) -> str:
    """Render ``when`` with a moment-style format.

    A format that contains ``%`` directives is taken as strftime instead.
    """
    if "%" in date_format:
        return when.strftime(date_format)
    return render_moment(date_format, when)


def base_name(path: str) -> str:
    """Path without its final extension, with the archive delimiter appended.

    ``/var/log/app.out.log`` -> ``/var/log/app.out__``
    """
    root, _ext = os.path.splitext(path)
    return root + DELIMITER


def archive_name(path: str, timestamp: str, compress: bool = False) -> str:
    """Full path of the archive produced by rotating ``path``."""
    _root, ext = os.path.splitext(path)
    name = base_name(path) + timestamp + ext
    if compress:
        name += GZIP_SUFFIX
    return name
