# aspectengine/core/timescales.py
# -----------------------------------------------------------------------------
# Calendar <-> Julian Day (UTC), ERFA aligned.
#
# Public API:
#   to_julian_day(dt)   -> float
#   from_julian_day(jd) -> datetime (tz-aware UTC)
#
# Guarantees:
#   • Calendar → JD via erfa.cal2jd (date part) + exact day fraction.
#   • JD → calendar via erfa.jd2cal, rounded to the nearest millisecond.
#     A single float JD near 2.4e6 resolves ~40 µs, so millisecond rounding
#     is the finest grid on which the round trip is exact.
#   • Naive datetimes are read as UTC; aware ones are converted to UTC.
# -----------------------------------------------------------------------------
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Tuple

import erfa  # pyERFA

from aspectengine.core.errors import InvalidInput

__all__ = [
    "to_julian_day",
    "from_julian_day",
    "julian_day_parts",
    "parse_instant",
    "J2000",
]

J2000 = 2451545.0
_SEC_PER_DAY = 86400.0
_MS_PER_DAY = 86_400_000


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def julian_day_parts(dt: datetime) -> Tuple[float, float]:
    """Two-part JD (date part at 0h, day fraction) for extra precision."""
    if not isinstance(dt, datetime):
        raise InvalidInput("expected a datetime", value=repr(dt))
    u = _as_utc(dt)
    try:
        djm0, djm = erfa.cal2jd(u.year, u.month, u.day)
    except erfa.ErfaError as e:
        raise InvalidInput(f"date outside supported range: {e}", date=u.date().isoformat())
    secs = u.hour * 3600 + u.minute * 60 + u.second + u.microsecond / 1e6
    return float(djm0) + float(djm), secs / _SEC_PER_DAY


def to_julian_day(dt: datetime) -> float:
    day0, frac = julian_day_parts(dt)
    return day0 + frac


def from_julian_day(jd: float) -> datetime:
    try:
        jdf = float(jd)
    except (TypeError, ValueError):
        raise InvalidInput("julian day must be a number", value=repr(jd))
    try:
        iy, im, iday, fd = erfa.jd2cal(jdf, 0.0)
    except erfa.ErfaError as e:
        raise InvalidInput(f"julian day outside supported range: {e}", jd=jdf)
    ms = int(round(float(fd) * _MS_PER_DAY))
    base = datetime(int(iy), int(im), int(iday), tzinfo=timezone.utc)
    # ms may equal a full day after rounding; timedelta carries it
    return base + timedelta(milliseconds=ms)


def parse_instant(value) -> float:
    """
    Accept a JD number or an ISO-8601 string and return a UTC JD.

    Strings ending in 'Z' are accepted; strings without an offset are UTC.
    """
    if isinstance(value, bool):
        raise InvalidInput("instant must be a JD number or ISO-8601 string", value=value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        return to_julian_day(value)
    if isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            return to_julian_day(datetime.fromisoformat(s))
        except ValueError:
            raise InvalidInput(f"cannot parse instant '{value}'", value=value)
    raise InvalidInput("instant must be a JD number or ISO-8601 string", value=repr(value))
