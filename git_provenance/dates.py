"""
git's date rendering, as used by the time column of ``git blame``.

Names of days and months are always English, whatever the locale, because
git prints them from its own tables.  ``blame_date_width`` is the column
width git pads every timestamp to for a given mode.

No external dependencies — stdlib only.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


WEEKDAYS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
          "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# Prefixes in the order git tries them.
_TYPE_PREFIXES = (
    ("relative", "relative"),
    ("iso8601-strict", "iso-strict"),
    ("iso-strict", "iso-strict"),
    ("iso8601", "iso"),
    ("iso", "iso"),
    ("rfc2822", "rfc"),
    ("rfc", "rfc"),
    ("short", "short"),
    ("default", "normal"),
    ("human", "human"),
    ("raw", "raw"),
    ("unix", "unix"),
    ("format", "strftime"),
)

# Reference strings whose length fixes the blame column width.
_WIDTH_SAMPLES = {
    "rfc": "Thu, 19 Oct 2006 16:00:04 -0700",
    "iso-strict": "2006-10-19T16:00:04-07:00",
    "iso": "2006-10-19 16:00:04 -0700",
    "raw": "1161298804 -0700",
    "unix": "1161298804",
    "short": "2006-10-19",
    "relative": "4 years, 11 months ago",
    "human": "Thu Oct 19 16:00",
    "normal": "Thu Oct 19 16:00:04 2006 -0700",
}


@dataclass(frozen=True)
class DateMode:
    kind: str
    local: bool = False
    strftime: str | None = None


ISO = DateMode("iso")


def parse_date_mode(text: str) -> DateMode:
    """Parse a ``--date`` argument.  Raises ValueError for formats git rejects."""
    if text.startswith("auto:"):
        text = "default"
    if text == "local":
        text = "default-local"
    for prefix, kind in _TYPE_PREFIXES:
        if text.startswith(prefix):
            rest = text[len(prefix):]
            break
    else:
        raise ValueError(f"unknown date format {text}")

    local = False
    if rest.startswith("-local"):
        local = True
        rest = rest[len("-local"):]
    if kind == "strftime":
        if not rest.startswith(":"):
            raise ValueError(f"date format missing colon separator: {text}")
        return DateMode(kind, local, rest[1:])
    if rest:
        raise ValueError(f"unknown date format {text}")
    return DateMode(kind, local)


# -------------------------------------------------------------------
# Time zones
# -------------------------------------------------------------------

def tz_to_int(tz: str) -> int:
    """``"+0530"`` -> 530, ``"-0700"`` -> -700 (git's decimal hhmm form)."""
    try:
        return int(tz)
    except ValueError:
        return 0


def _tz_minutes(tz: int) -> int:
    minutes = abs(tz)
    minutes = (minutes // 100) * 60 + minutes % 100
    return -minutes if tz < 0 else minutes


def local_tz_offset(timestamp: int) -> int:
    offset = time.localtime(timestamp).tm_gmtoff // 60
    sign = -1 if offset < 0 else 1
    offset = abs(offset)
    return sign * ((offset // 60) * 100 + offset % 60)


def format_tz(tz: int) -> str:
    return f"{tz:+05d}"


def _broken_down(timestamp: int, tz: int) -> datetime:
    return datetime(1970, 1, 1) + timedelta(seconds=timestamp + _tz_minutes(tz) * 60)


def _wday(dt: datetime) -> str:
    return WEEKDAYS[(dt.weekday() + 1) % 7]


# -------------------------------------------------------------------
# Rendering
# -------------------------------------------------------------------

def show_date_relative(timestamp: int, now: int) -> str:
    if now < timestamp:
        return "in the future"
    diff = now - timestamp
    if diff < 90:
        return _plural(diff, "second") + " ago"
    diff = (diff + 30) // 60
    if diff < 90:
        return _plural(diff, "minute") + " ago"
    diff = (diff + 30) // 60
    if diff < 36:
        return _plural(diff, "hour") + " ago"
    diff = (diff + 12) // 24
    if diff < 14:
        return _plural(diff, "day") + " ago"
    if diff < 70:
        return _plural((diff + 3) // 7, "week") + " ago"
    if diff < 365:
        return _plural((diff + 15) // 30, "month") + " ago"
    if diff < 1825:
        total_months = (diff * 12 * 2 + 365) // (365 * 2)
        years, months = divmod(total_months, 12)
        if months:
            return f"{_plural(years, 'year')}, {_plural(months, 'month')} ago"
        return _plural(years, "year") + " ago"
    return _plural((diff + 183) // 365, "year") + " ago"


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def _show_date_human(timestamp: int, dt: datetime, tz: int, now: int, local: bool) -> str:
    human_tz = local_tz_offset(now)
    human = _broken_down(now, human_tz)

    hide_tz = local or tz == human_tz
    hide_year = dt.year == human.year
    hide_date = hide_wday = False
    if hide_year and dt.month == human.month:
        if dt.day > human.day:
            pass
        elif dt.day == human.day:
            hide_date = hide_wday = True
        elif dt.day + 5 > human.day:
            hide_date = True

    if hide_wday:
        return show_date_relative(timestamp, now)

    hide_tz = hide_tz or not hide_date
    hide_wday = hide_time = not hide_year

    out = ""
    if not hide_wday:
        out += f"{_wday(dt)} "
    if not hide_date:
        out += f"{MONTHS[dt.month - 1]} {dt.day} "
    if not hide_time:
        out += f"{dt.hour:02d}:{dt.minute:02d}"
    else:
        out = out.rstrip()
    if not hide_year:
        out += f" {dt.year}"
    if not hide_tz:
        out += f" {format_tz(tz)}"
    return out


def _strftime(fmt: str, dt: datetime, tz: int, local: bool) -> str:
    aware = dt.replace(tzinfo=timezone(timedelta(minutes=_tz_minutes(tz))))
    fmt = fmt.replace("%z", format_tz(tz))
    if not local:
        fmt = fmt.replace("%Z", "")
    return aware.strftime(fmt)


def show_date(timestamp: int, tz: int, mode: DateMode, now: int | None = None) -> str:
    """Render ``timestamp`` (seconds) in zone ``tz`` the way git's ``show_date`` does."""
    if mode.kind == "unix":
        return str(timestamp)
    if mode.local:
        tz = local_tz_offset(timestamp)
    if mode.kind == "raw":
        return f"{timestamp} {format_tz(tz)}"
    if now is None:
        now = int(time.time())
    if mode.kind == "relative":
        return show_date_relative(timestamp, now)

    dt = _broken_down(timestamp, tz)
    if mode.kind == "human":
        return _show_date_human(timestamp, dt, tz, now, mode.local)
    if mode.kind == "short":
        return f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"
    if mode.kind == "iso":
        return (f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d} "
                f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} {format_tz(tz)}")
    if mode.kind == "iso-strict":
        sign = "+" if tz >= 0 else "-"
        return (f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}T"
                f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}"
                f"{sign}{abs(tz) // 100:02d}:{abs(tz) % 100:02d}")
    if mode.kind == "rfc":
        return (f"{_wday(dt)}, {dt.day} {MONTHS[dt.month - 1]} {dt.year} "
                f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} {format_tz(tz)}")
    if mode.kind == "strftime":
        return _strftime(mode.strftime or "", dt, tz, mode.local)

    out = (f"{_wday(dt)} {MONTHS[dt.month - 1]} {dt.day} "
           f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} {dt.year}")
    if not mode.local:
        out += f" {format_tz(tz)}"
    return out


def blame_date_width(mode: DateMode) -> int:
    if mode.kind == "strftime":
        return len(show_date(0, 0, mode))
    return len(_WIDTH_SAMPLES[mode.kind])


def rendered_by_git(mode: DateMode) -> bool:
    """Modes whose output differs across git versions or locales.

    Committed lines in these modes take their date string from git itself
    (``%ad``) instead of from ``show_date``.
    """
    return mode.kind in ("strftime", "iso-strict")
