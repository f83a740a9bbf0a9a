"""
Half-open time intervals and calendar-week arithmetic.

Every instant handled by the engine is a timezone-aware UTC datetime.
Naive datetimes are refused rather than guessed at.
"""
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from scheduling.errors import BadRequest, InvalidInterval


def is_aware(value: datetime) -> bool:
    return value.tzinfo is not None and value.utcoffset() is not None


def to_utc(value: datetime) -> datetime:
    if not isinstance(value, datetime):
        raise BadRequest("Expected a datetime")
    if not is_aware(value):
        raise BadRequest("Timestamps must carry a timezone offset")
    return value.astimezone(timezone.utc)


def parse_instant(value, field: str = "timestamp") -> datetime:
    # Expect ISO format with an offset, e.g. "2026-01-20T18:00:00+01:00" or "...Z"
    if isinstance(value, datetime):
        return to_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise BadRequest(f"{field} is required", {"field": field})

    raw = value.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise BadRequest(
            f"Invalid {field}. Use ISO 8601 with an offset, e.g. 2026-01-20T18:00:00+01:00",
            {"field": field},
        )
    if not is_aware(parsed):
        raise BadRequest(f"{field} must include a timezone offset", {"field": field})
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class Interval:
    """``[start, end)`` in UTC."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if not isinstance(self.start, datetime) or not isinstance(self.end, datetime):
            raise InvalidInterval("Interval bounds must be datetimes")
        if not is_aware(self.start) or not is_aware(self.end):
            raise InvalidInterval("Interval bounds must be timezone-aware")
        object.__setattr__(self, "start", self.start.astimezone(timezone.utc))
        object.__setattr__(self, "end", self.end.astimezone(timezone.utc))
        if self.end <= self.start:
            raise InvalidInterval(
                "End time must be later than start time",
                {"start": self.start.isoformat(), "end": self.end.isoformat()},
            )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "Interval") -> bool:
        return overlaps(self, other)

    def contains(self, instant: datetime) -> bool:
        return self.start <= to_utc(instant) < self.end

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def overlaps(a: Interval, b: Interval) -> bool:
    # touching bounds (a.end == b.start) do not overlap
    return a.start < b.end and b.start < a.end


def week_bounds(instant: datetime, tz) -> Interval:
    """
    Calendar week (Sunday 00:00 to the next Sunday 00:00, studio local
    time) containing ``instant``, returned in UTC.

    Both bounds are resolved in wall-clock time before conversion, so a
    week containing a DST change is 167 or 169 hours long.
    """
    if isinstance(tz, str):
        tz = ZoneInfo(tz)
    local = to_utc(instant).astimezone(tz)
    days_since_sunday = (local.weekday() + 1) % 7
    first_day = local.date() - timedelta(days=days_since_sunday)

    start_local = datetime.combine(first_day, time.min, tzinfo=tz)
    end_local = datetime.combine(first_day + timedelta(days=7), time.min, tzinfo=tz)
    return Interval(start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc))


def day_bounds(day, tz) -> Interval:
    if isinstance(tz, str):
        tz = ZoneInfo(tz)
    start_local = datetime.combine(day, time.min, tzinfo=tz)
    end_local = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return Interval(start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc))
