from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from typing import Optional

import pytz


_ALIASES = {
    "pst": "America/Los_Angeles",
    "pdt": "America/Los_Angeles",
    "est": "America/New_York",
    "edt": "America/New_York",
    "cst": "America/Chicago",
    "cdt": "America/Chicago",
    "mst": "America/Denver",
    "mdt": "America/Denver",
    "ist": "Asia/Kolkata",
    "gmt": "Etc/UTC",
    "utc": "Etc/UTC",
}


def normalize_timezone(value: Optional[str], *, default: Optional[str]) -> Optional[str]:
    """Return a pytz-valid IANA tz name (best-effort)."""
    v = (value or "").strip()
    if not v:
        return default

    v_low = v.lower()
    if v_low in _ALIASES:
        return _ALIASES[v_low]

    if v in pytz.all_timezones:
        return v

    # Some users paste "America/Los_Angeles " with spaces
    v2 = re.sub(r"\s+", "", v)
    if v2 in pytz.all_timezones:
        return v2

    return default


def utc_now() -> datetime:
    return datetime.now(tz=pytz.UTC)


def _finite(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def local_today(
    now: Optional[datetime] = None,
    *,
    iana_timezone: Optional[str] = None,
    tz_offset_minutes: Optional[float] = None,
    legacy_offset: Optional[float] = None,
) -> date:
    """Resolve the member's local calendar date.

    Preference order:
      1. ``iana_timezone`` (DST-aware through pytz)
      2. ``tz_offset_minutes`` with ``getTimezoneOffset()`` semantics (UTC-8 -> +480)
      3. ``legacy_offset`` with the old inverted sign (UTC-8 -> -480)
      4. the server's UTC date
    """
    now = now or utc_now()
    if now.tzinfo is None:
        now = pytz.UTC.localize(now)

    if iana_timezone:
        try:
            return now.astimezone(pytz.timezone(iana_timezone)).date()
        except pytz.UnknownTimeZoneError:
            pass

    minutes: Optional[float] = None
    if _finite(tz_offset_minutes):
        minutes = float(tz_offset_minutes)
    elif _finite(legacy_offset):
        minutes = -float(legacy_offset)

    utc = now.astimezone(pytz.UTC)
    if minutes is not None:
        return (utc - timedelta(minutes=minutes)).date()
    return utc.date()
