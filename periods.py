from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional, Union


@dataclass(frozen=True, order=True)
class MonthBucket:
    year: int
    month: int

    @classmethod
    def of(cls, day: date) -> "MonthBucket":
        return cls(day.year, day.month)

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


class InvalidRangeError(ValueError):
    def __init__(self, start: date, end: date) -> None:
        super().__init__(
            f"End date {end.isoformat()} precedes start date {start.isoformat()}"
        )
        self.start = start
        self.end = end


def _parse_date(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value!r}") from exc


@dataclass(frozen=True)
class TimeWindow:
    """Date filter of a chart.

    Only an explicit window (both dates set) is enumerated month by month;
    anything else falls back to the trailing window ending at "today".
    """

    start: Optional[date] = None
    end: Optional[date] = None

    @classmethod
    def from_strings(cls, start: Optional[str], end: Optional[str]) -> "TimeWindow":
        return cls(_parse_date(start), _parse_date(end))

    @property
    def is_explicit(self) -> bool:
        return self.start is not None and self.end is not None


MonthLike = Union[date, MonthBucket]


def add_months(bucket: MonthBucket, count: int) -> MonthBucket:
    month_index = (bucket.year * 12) + (bucket.month - 1) + count
    return MonthBucket(month_index // 12, (month_index % 12) + 1)


def month_difference(start: MonthLike, end: MonthLike) -> int:
    return (end.year - start.year) * 12 + (end.month - start.month)


def resolve_buckets(
    window: TimeWindow,
    *,
    today: date,
    trailing_months: int = 12,
) -> list[MonthBucket]:
    if window.is_explicit:
        diff = month_difference(window.start, window.end)
        if diff < 0:
            raise InvalidRangeError(window.start, window.end)
        first = MonthBucket.of(window.start)
        return [add_months(first, offset) for offset in range(diff + 1)]

    last = MonthBucket.of(today)
    return [
        add_months(last, -offset) for offset in range(trailing_months - 1, -1, -1)
    ]
