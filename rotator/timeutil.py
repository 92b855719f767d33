from __future__ import annotations
import time as _time
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

DAY_SECONDS = 24 * 60 * 60
US_LONG_FMT = "%I:%M%p %b %d %Y"   # e.g., 10:00PM Oct 25 2025
US_DATE_FMT = "%m/%d/%Y"           # e.g., 10/25/2025


# ---------- Clock ----------

def now_seconds() -> int:
    return int(_time.time())


def from_seconds(ts: int) -> datetime:
    return datetime.fromtimestamp(int(ts), tz=timezone.utc)


# ---------- Local time ----------

def resolve_tz(name: str | None) -> tzinfo | None:
    """Return a ZoneInfo for `name`, or None meaning the system local zone."""
    if not name:
        return None
    return ZoneInfo(name)


def to_local(dt: datetime, tz: tzinfo | None = None) -> datetime:
    return dt.astimezone(tz) if tz is not None else dt.astimezone()


def fmt_local_long(ts: int, tz: tzinfo | None = None) -> str:
    s = to_local(from_seconds(ts), tz).strftime(US_LONG_FMT)
    return s.lstrip("0")  # remove leading 0 hour


def fmt_local_date(ts: int, tz: tzinfo | None = None) -> str:
    return to_local(from_seconds(ts), tz).strftime(US_DATE_FMT)


def local_yyyy_mm_dd(ts: int, tz: tzinfo | None = None) -> str:
    return to_local(from_seconds(ts), tz).strftime("%Y-%m-%d")


def _local_midnight(day: date, tz: tzinfo | None) -> int:
    # a naive datetime resolves against the system zone
    return int(datetime.combine(day, time(), tzinfo=tz).timestamp())


def local_day_bounds(ts: int, tz: tzinfo | None = None, days_back: int = 0) -> tuple[int, int]:
    """Inclusive [start, end] seconds of the local day containing `ts`.

    With `days_back` the range starts that many local days earlier. Both
    ends sit on local midnights, so DST days are 23 or 25 hours long.
    """
    day = to_local(from_seconds(ts), tz).date()
    start = _local_midnight(day - timedelta(days=days_back), tz)
    end = _local_midnight(day + timedelta(days=1), tz) - 1
    return start, end


# ---------- Formatting ----------

def seconds_to_hms(total: int) -> str:
    h, r = divmod(int(total), 3600)
    m, s = divmod(r, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


def format_duration(seconds: int) -> str:
    """Compact duration, e.g. `1h 5m`, `4m 10s`, `9s`."""
    seconds = max(0, int(seconds))
    h = seconds // 3600
    m = (seconds % 3600) // 60
    s = seconds % 60
    if h > 0:
        return f"{h}h {m}m"
    if m > 0:
        return f"{m}m {s}s"
    return f"{s}s"


def truncate_name(name: str, max_len: int = 10) -> str:
    return name[:max_len] + "…" if len(name) > max_len else name
