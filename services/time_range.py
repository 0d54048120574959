"""Half-open time ranges on a calendar day."""

from dataclasses import dataclass
from datetime import date, datetime, time

from services.errors import InvalidRange


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def _from_minutes(total: int) -> time:
    return time(total // 60, total % 60)


def parse_date(value: str) -> date:
    if not isinstance(value, str):
        raise InvalidRange("Invalid date. Use YYYY-MM-DD")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise InvalidRange("Invalid date. Use YYYY-MM-DD")


def parse_time(value: str) -> time:
    if not isinstance(value, str):
        raise InvalidRange("Invalid time. Use HH:MM")
    try:
        parsed = datetime.strptime(value.strip(), "%H:%M")
    except ValueError:
        raise InvalidRange("Invalid time. Use HH:MM")
    return parsed.time()


@dataclass(frozen=True, order=True)
class TimeRange:
    """``[start, end)`` on ``date``. Never crosses midnight."""

    date: date
    start: time
    end: time

    def __post_init__(self) -> None:
        if self.start.second or self.start.microsecond or self.end.second or self.end.microsecond:
            raise InvalidRange("Times must be whole minutes")
        if self.start >= self.end:
            raise InvalidRange("end must be after start")

    @classmethod
    def parse(cls, date_str: str, start_str: str, end_str: str) -> "TimeRange":
        return cls(parse_date(date_str), parse_time(start_str), parse_time(end_str))

    @property
    def duration_minutes(self) -> int:
        return _minutes(self.end) - _minutes(self.start)

    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start)

    def ends_at(self) -> datetime:
        return datetime.combine(self.date, self.end)

    def overlaps(self, other: "TimeRange") -> bool:
        if self.date != other.date:
            return False
        return self.start < other.end and other.start < self.end

    def is_aligned(self, granularity_minutes: int) -> bool:
        return (
            _minutes(self.start) % granularity_minutes == 0
            and _minutes(self.end) % granularity_minutes == 0
        )

    def require_aligned(self, granularity_minutes: int) -> None:
        if not self.is_aligned(granularity_minutes):
            raise InvalidRange(f"Times must fall on {granularity_minutes}-minute boundaries")

    def sub_slots(self, granularity_minutes: int) -> list["TimeRange"]:
        """Cut the range into consecutive slots of ``granularity_minutes``."""
        self.require_aligned(granularity_minutes)
        out = []
        cursor = _minutes(self.start)
        stop = _minutes(self.end)
        while cursor < stop:
            out.append(TimeRange(self.date, _from_minutes(cursor), _from_minutes(cursor + granularity_minutes)))
            cursor += granularity_minutes
        return out

    def within(self, opening: time, closing: time) -> bool:
        return opening <= self.start and self.end <= closing

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "start": self.start.strftime("%H:%M"),
            "end": self.end.strftime("%H:%M"),
        }


def day_window(day: date, opening: time, closing: time) -> TimeRange:
    return TimeRange(day, opening, closing)
