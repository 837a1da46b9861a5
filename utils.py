# utils.py
"""
FILE: utils.py
DESCRIPTION:
  Shared helper functions used across the project.
  - is_number(): Loose numeric check used on raw log values.
  - round_half_up(): Rounds the way the concentrator's web UI does (0.005 -> 0.01).
  - host_tz_offset(): "UTC minus local" offset of this host, in seconds.
  - iso_utc(): ISO-8601 rendering used for the last-update topic.
  - split_csv(): Comma list parsing for settings.
"""
import math
from datetime import datetime, timezone


def is_number(value):
    """True for strings/numbers that parse as a float (not NaN, no "_" separators)."""
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return not math.isnan(value)
    s = str(value).strip()
    if s == "" or "_" in s:
        return False
    try:
        return not math.isnan(float(s))
    except ValueError:
        return False


def round_half_up(value, digits=2):
    factor = 10 ** digits
    scaled = value * factor
    if not math.isfinite(scaled):
        return value
    return math.floor(scaled + 0.5) / factor


def integral(value):
    """Avoid publishing floats for integer-like readings."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def host_tz_offset(now=None):
    """Return UTC minus local time, in seconds, for this host (e.g. -3600 in CET)."""
    now = now or datetime.now()
    local = now.astimezone()
    offset = local.utcoffset()
    if offset is None:
        return 0
    return -int(offset.total_seconds())


def iso_utc(ts):
    """2024-01-31T10:00:00.000Z"""
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def split_csv(value):
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [s.strip() for s in str(value).split(",") if s.strip()]
