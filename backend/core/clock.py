"""Clock / timezone adapter — resolves "now" and expiry instants in an account timezone."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.exceptions import ConfigurationError


def resolve_timezone(name: str) -> ZoneInfo:
    """Look up an IANA zone, raising ConfigurationError for unknown names."""
    if not name or not isinstance(name, str):
        raise ConfigurationError(f"Invalid timezone: {name!r}")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Invalid timezone: {name!r}") from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Clock:
    """
    Timezone-aware clock.

    ``now_fn`` must return an aware datetime; it is injectable so ticks can be
    evaluated at a fixed instant in tests.
    """

    def __init__(self, tz_name: str = "UTC", now_fn: Callable[[], datetime] | None = None):
        self.tz_name = tz_name
        self.tz = resolve_timezone(tz_name)
        self._now_fn = now_fn or _utcnow

    def now(self) -> datetime:
        current = self._now_fn()
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        return current.astimezone(self.tz)

    def with_timezone(self, tz_name: str) -> Clock:
        """Same time source, different zone (per-account settings)."""
        if tz_name == self.tz_name:
            return self
        return Clock(tz_name, now_fn=self._now_fn)

    def localize(self, value: date | datetime) -> datetime:
        """Turn a date or datetime into an aware instant in this clock's zone."""
        return to_instant(value, self.tz)

    def local_date(self, value: datetime) -> date:
        return value.astimezone(self.tz).date()


def to_instant(value: date | datetime, tz: tzinfo) -> datetime:
    """
    Date-only values mean the start of that calendar day in ``tz``; naive
    datetimes are wall-clock times in ``tz``; aware datetimes pass through.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=tz)
        return value
    return datetime.combine(value, time.min, tzinfo=tz)


def parse_timestamp(raw: object, tz: tzinfo) -> datetime | None:
    """Parse an ISO date/datetime (or date/datetime object). Returns None when unparseable."""
    if raw is None:
        return None
    if isinstance(raw, (date, datetime)):
        return to_instant(raw, tz)
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        if len(text) == 10:
            return to_instant(date.fromisoformat(text), tz)
        return to_instant(datetime.fromisoformat(text), tz)
    except ValueError:
        return None


def elapsed(start: datetime, end: datetime) -> timedelta:
    """
    Real time from ``start`` to ``end``.

    Aware datetimes sharing one ZoneInfo subtract by wall clock, which is off
    by the DST shift on transition days; both sides are normalised to UTC.
    """
    return end.astimezone(timezone.utc) - start.astimezone(timezone.utc)
