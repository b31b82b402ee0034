"""Provider timestamp interpretation.

Every instant leaves the normalizer as an aware UTC ``datetime``:

* Epoch seconds are UTC by definition.
* Local wall-clock strings (``"2024-05-01 14:30"``) are interpreted in the
  IANA zone the provider reports; an unknown zone falls back to UTC.
* Date-only strings are UTC midnight.
* ISO-8601 strings with an offset are converted; naive ones are taken as UTC.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..clock import to_datetime
from .units import as_float


# Latest instant datetime can represent (9999-12-31T23:59:59Z).
MAX_EPOCH_SECONDS = 253_402_300_799


def from_epoch_seconds(value: Any) -> Optional[datetime]:
    """Epoch seconds as UTC; ``None`` for non-numbers and out-of-range values."""
    seconds = as_float(value)
    if seconds is None or not 0 <= seconds <= MAX_EPOCH_SECONDS:
        return None
    return to_datetime(int(seconds * 1000))


def _zone(name: Optional[str]):
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def parse_local(text: Any, zone_name: Optional[str] = None) -> Optional[datetime]:
    """Parse a provider wall-clock string in ``zone_name`` and return UTC."""
    if not isinstance(text, str) or not text.strip():
        return None
    value = text.strip()
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=_zone(zone_name))
    return moment.astimezone(timezone.utc)


def parse_date(text: Any) -> Optional[date]:
    if isinstance(text, date) and not isinstance(text, datetime):
        return text
    if not isinstance(text, str):
        return None
    try:
        return date.fromisoformat(text.strip()[:10])
    except ValueError:
        return None


def date_to_utc(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def local_date(epoch_seconds: Any, offset_seconds: Any = 0) -> Optional[date]:
    """Calendar date of an epoch instant at a fixed UTC offset."""
    moment = from_epoch_seconds(epoch_seconds)
    if moment is None:
        return None
    offset = as_float(offset_seconds) or 0.0
    return (moment + timedelta(seconds=offset)).date()


__all__ = ["from_epoch_seconds", "parse_local", "parse_date", "date_to_utc", "local_date"]
