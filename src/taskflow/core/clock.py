# src/taskflow/core/clock.py

from __future__ import annotations

import time as _time
from datetime import datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

_EPOCH = datetime(1970, 1, 1)


def _local_stamp(dt: datetime) -> float:
    return _time.mktime((dt.year, dt.month, dt.day, dt.hour, dt.minute, dt.second, 0, 0, -1))


class LocalZone(tzinfo):
    """
    The host's local time zone, DST rules included.

    Unlike `datetime.now().astimezone()`, which attaches today's fixed
    offset, the offset is looked up per instant from the C library, so
    dates on the other side of a DST switch convert correctly.
    Follows TZ changes made with time.tzset().
    """

    def utcoffset(self, dt: datetime | None) -> timedelta:
        if dt is None:
            return timedelta(seconds=-_time.timezone)
        return timedelta(seconds=_time.localtime(_local_stamp(dt)).tm_gmtoff)

    def dst(self, dt: datetime | None) -> timedelta:
        if dt is None or _time.localtime(_local_stamp(dt)).tm_isdst <= 0:
            return timedelta(0)
        return self.utcoffset(dt) - timedelta(seconds=-_time.timezone)

    def tzname(self, dt: datetime | None) -> str:
        if dt is None:
            return _time.tzname[0]
        return _time.localtime(_local_stamp(dt)).tm_zone

    def fromutc(self, dt: datetime) -> datetime:
        stamp = (dt.replace(tzinfo=None) - _EPOCH).total_seconds()
        local = _time.localtime(stamp)
        return datetime(*local[:6], microsecond=dt.microsecond, tzinfo=self)

    def __repr__(self) -> str:
        return "LocalZone()"


class SystemClock:
    """
    Wall clock.

    With tz=None returns the host's local time in LocalZone; date-relative
    rules (start of day, calendar-day differences) follow that zone,
    including its DST changes.
    """

    def __init__(self, tz: tzinfo | None = None) -> None:
        self._tz = tz if tz is not None else LocalZone()

    @classmethod
    def from_name(cls, name: str | None) -> SystemClock:
        if not name:
            return cls()
        return cls(ZoneInfo(name))

    def now(self) -> datetime:
        return datetime.now(self._tz)
