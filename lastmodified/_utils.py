from __future__ import annotations

import calendar
import math
import re
import time
import typing as tp
from datetime import datetime, timezone
from email.utils import formatdate, parsedate_tz
from pathlib import Path

HEADERS_ENCODING = "iso-8859-1"

TRUTHY_VALUES = ("1", "true", "yes", "on")

# MySQL-style "never set" markers stored by content management systems
_ZERO_DATE = re.compile(r"^0{4}-0{2}-0{2}([ T]0{2}:0{2}(:0{2})?)?$")

# 9999-12-31T23:59:59Z, the last instant an HTTP date can express
MAX_TIMESTAMP = 253402300799


def parse_date(date: str) -> tp.Optional[int]:
    try:
        expires = parsedate_tz(date)
        if expires is None:
            return None
        timestamp = calendar.timegm(expires[:6])
    except (ValueError, TypeError, IndexError, OverflowError):
        return None
    if expires[9] is not None:
        timestamp -= expires[9]
    return timestamp


def parse_timestamp(value: tp.Any) -> tp.Optional[int]:
    """
    Convert a stored or client-supplied date value into a Unix timestamp.

    Accepts `datetime` objects (naive values are treated as UTC), int/float
    timestamps, numeric strings, HTTP dates (RFC 1123, RFC 850, asctime) and
    ISO-8601 dates or date-times.

    Returns:
        Whole seconds since the epoch, or None when the value is unset or cannot be parsed.

    Examples:
        >>> parse_timestamp("Wed, 10 Jan 2024 12:00:00 GMT")
        1704888000
        >>> parse_timestamp("2024-01-10 12:00:00")
        1704888000
        >>> parse_timestamp("0000-00-00 00:00:00") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        timestamp = int(value.timestamp())
        return timestamp if timestamp > 0 else None

    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) and 0 < value <= MAX_TIMESTAMP else None

    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text or _ZERO_DATE.match(text):
        return None

    try:
        number = float(text)
    except ValueError:
        pass
    else:
        return parse_timestamp(number)

    timestamp = parse_date(text)
    if timestamp is not None:
        return timestamp if timestamp > 0 else None

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parse_timestamp(parsed)


def format_http_date(timestamp: tp.Union[int, float]) -> str:
    """
    Format a Unix timestamp as an RFC 1123 date in GMT.

    Example output: 'Wed, 10 Jan 2024 12:00:00 GMT'
    """
    return formatdate(timeval=timestamp, localtime=False, usegmt=True)


def is_truthy(value: tp.Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_VALUES
    return bool(value)


def split_csv(value: str) -> tp.List[str]:
    """
    Split a comma-separated option into normalized, non-empty items.

    Example:
        ```python
        split_csv(" SessionA, token ,,")
        # ['sessiona', 'token']
        ```
    """
    return [item.strip().lower() for item in value.split(",") if item.strip()]


def ensure_cache_dict(base_path: Path | None = None) -> Path:
    _base_path = base_path if base_path is not None else Path(".cache/lastmodified")
    _gitignore_file = _base_path / ".gitignore"

    _base_path.mkdir(parents=True, exist_ok=True)

    if not _gitignore_file.is_file():
        with open(_gitignore_file, "w", encoding="utf-8") as f:
            f.write("# Automatically created by lastmodified\n*")
    return _base_path


def float_seconds_to_int_milliseconds(seconds: float) -> int:
    return int(seconds * 1000)


def now() -> float:
    return time.time()
