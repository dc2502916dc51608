import calendar
from datetime import datetime, timezone
from typing import Iterable, Dict, Any, Optional


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise aware datetimes to naive UTC so they compare with stored values."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 string (accepting a trailing Z) into naive UTC."""
    if not value:
        return None
    return to_naive_utc(datetime.fromisoformat(value.replace('Z', '+00:00')))


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def count_by(items: Iterable[Any], key: str, values: Iterable[str]) -> Dict[str, int]:
    """
    Count items per attribute value, e.g. documents per status.
    Enum attributes are compared by their value.
    """
    counts = {v: 0 for v in values}
    for item in items:
        raw = getattr(item, key, None)
        raw = getattr(raw, "value", raw)
        if raw in counts:
            counts[raw] += 1
    return counts


def add_months(value: datetime, months: int) -> datetime:
    """Shift a datetime by whole months, clamping the day to the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
