"""
Interval math over inclusive date ranges.

All ranges are closed on both ends: an allocation ending on day D and one
starting on day D share day D.
"""

from datetime import date, timedelta
from typing import Iterable, Iterator, List, Optional, Tuple

from .errors import ValidationError

ONE_DAY = timedelta(days=1)


class DateRange:
    """Every calendar day from ``start`` to ``end`` inclusive.

    Unlike a generator it can be iterated any number of times and knows its
    length without walking the days.
    """

    __slots__ = ("start", "end")

    def __init__(self, start: date, end: date):
        self.start = start
        self.end = end

    def __iter__(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += ONE_DAY

    def __len__(self) -> int:
        return max((self.end - self.start).days + 1, 0)

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.start <= day <= self.end

    def __repr__(self) -> str:
        return f"DateRange({self.start.isoformat()}, {self.end.isoformat()})"


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """True iff the closed intervals [a_start, a_end] and [b_start, b_end] intersect."""
    return a_start <= b_end and b_start <= a_end


def overlap_window(
    a_start: date, a_end: date, b_start: date, b_end: date
) -> Optional[Tuple[date, date]]:
    """Return the shared days of two ranges, or None when they are disjoint."""
    if not overlaps(a_start, a_end, b_start, b_end):
        return None
    return max(a_start, b_start), min(a_end, b_end)


def days_in_range(start: date, end: date) -> DateRange:
    return DateRange(start, end)


def day_count(start: date, end: date) -> int:
    """Number of calendar days in the inclusive range, never less than 1."""
    return max((end - start).days + 1, 1)


def daily_hours(allocated_hours: float, start: date, end: date) -> float:
    """Spread ``allocated_hours`` evenly over the days of the range."""
    return allocated_hours / day_count(start, end)


def validate_range(
    start: Optional[date],
    end: Optional[date],
    max_days: Optional[int] = None,
) -> None:
    """Reject missing dates, inverted ranges and ranges longer than ``max_days``."""
    if start is None:
        raise ValidationError("Start date is required", field="start_date")
    if end is None:
        raise ValidationError("End date is required", field="end_date")
    if end < start:
        raise ValidationError(
            f"End date {end.isoformat()} is before start date {start.isoformat()}",
            field="end_date",
        )
    if max_days is not None and day_count(start, end) > max_days:
        raise ValidationError(
            f"Date range of {day_count(start, end)} days exceeds the supported "
            f"maximum of {max_days} days",
            field="end_date",
        )


def consecutive_windows(days: Iterable[date]) -> List[Tuple[date, date]]:
    """Group dates into maximal runs of consecutive days.

    >>> consecutive_windows([date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 5)])
    [(datetime.date(2024, 1, 1), datetime.date(2024, 1, 2)), (datetime.date(2024, 1, 5), datetime.date(2024, 1, 5))]
    """
    windows: List[Tuple[date, date]] = []
    for day in sorted(set(days)):
        if windows and windows[-1][1] + ONE_DAY == day:
            windows[-1] = (windows[-1][0], day)
        else:
            windows.append((day, day))
    return windows
