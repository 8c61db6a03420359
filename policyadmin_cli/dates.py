"""Lenient-but-strict date parsing for filter flags.

Accepts the common spellings people type on a command line (``2022/03/14``,
``2022-03-14T10:00:00Z``, ``March 14, 2022`` ...). Day/month orderings that
cannot be told apart (``03/04/2022``) are rejected instead of guessed.
Values without an offset are interpreted as UTC.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone


class DateParseError(ValueError):
    pass


_FORMATS = (
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y.%m.%d",
    "%Y%m%d",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d-%b-%Y",
)

_NUMERIC_YEAR_LAST = re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})(?:[ T](\d{1,2}):(\d{2})(?::(\d{2}))?)?$")


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_year_last(m: re.Match[str], raw: str) -> datetime:
    first, second, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
    if first <= 12 and second <= 12 and first != second:
        raise DateParseError(f"ambiguous date {raw!r}: cannot tell month from day, use YYYY/MM/DD")
    if first > 12:
        day, month = first, second
    else:
        month, day = first, second
    hour = int(m.group(4) or 0)
    minute = int(m.group(5) or 0)
    second_ = int(m.group(6) or 0)
    try:
        return datetime(year, month, day, hour, minute, second_, tzinfo=timezone.utc)
    except ValueError as e:
        raise DateParseError(f"invalid date {raw!r}: {e}") from e


def parse_strict(raw: str) -> datetime:
    s = (raw or "").strip()
    if not s:
        raise DateParseError("empty date string")

    m = _NUMERIC_YEAR_LAST.match(s)
    if m:
        return _parse_year_last(m, s)

    iso = s[:-1] + "+00:00" if s.endswith(("Z", "z")) else s
    try:
        return _as_utc(datetime.fromisoformat(iso))
    except ValueError:
        pass

    for fmt in _FORMATS:
        try:
            return _as_utc(datetime.strptime(s, fmt))
        except ValueError:
            continue

    if s.isdigit() and len(s) >= 9:
        try:
            return datetime.fromtimestamp(int(s), tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise DateParseError(f"invalid unix timestamp {raw!r}: {e}") from e

    raise DateParseError(f"unrecognized date format {raw!r}")


def format_rfc3339(dt: datetime) -> str:
    return _as_utc(dt).astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
