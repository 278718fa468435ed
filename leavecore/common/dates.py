"""Date selections — contiguous ranges and explicit date lists.

A leave request, a WFH assignment or a holiday plan may cover either a
contiguous range or a scattered set of dates (skipping weekends, holidays).
Both shapes normalise to a date set via :func:`to_date_set`, which is what
day counting and conflict detection operate on.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Annotated, Iterable, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class DateRange(BaseModel):
    """Inclusive calendar range."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["range"] = "range"
    start: date
    end: date

    @model_validator(mode="after")
    def _end_not_before_start(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("end must be on or after start")
        return self


class ExplicitDates(BaseModel):
    """Non-consecutive dates; stored sorted and de-duplicated."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["dates"] = "dates"
    dates: tuple[date, ...] = Field(..., min_length=1)

    @field_validator("dates")
    @classmethod
    def _normalise(cls, value: tuple[date, ...]) -> tuple[date, ...]:
        return tuple(sorted(set(value)))


DateSelection = Annotated[Union[DateRange, ExplicitDates], Field(discriminator="kind")]


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def to_date_set(selection: DateRange | ExplicitDates) -> frozenset[date]:
    """Normalise either representation to the set of covered dates."""
    if isinstance(selection, DateRange):
        return frozenset(iter_days(selection.start, selection.end))
    return frozenset(selection.dates)


def span(selection: DateRange | ExplicitDates) -> tuple[date, date]:
    """First and last covered date."""
    if isinstance(selection, DateRange):
        return selection.start, selection.end
    return selection.dates[0], selection.dates[-1]


def working_dates(
    selection: DateRange | ExplicitDates,
    weekend_days: set[int],
    blocked: Iterable[date] = (),
) -> list[date]:
    """Dates that count as leave days: not a weekend, not a blocked holiday."""
    blocked_set = set(blocked)
    return sorted(
        d
        for d in to_date_set(selection)
        if d.weekday() not in weekend_days and d not in blocked_set
    )


def split_by_year(dates: Iterable[date]) -> dict[int, Decimal]:
    """Count of dates per calendar year."""
    counts: dict[int, Decimal] = defaultdict(lambda: Decimal("0"))
    for d in dates:
        counts[d.year] += Decimal("1")
    return dict(sorted(counts.items()))


def days_in_year(year: int) -> int:
    return (date(year, 12, 31) - date(year, 1, 1)).days + 1


def business_days_between(start: date, end: date, weekend_days: set[int]) -> int:
    """Working days strictly after ``start`` up to and including ``end``."""
    if end <= start:
        return 0
    return sum(
        1
        for d in iter_days(start + timedelta(days=1), end)
        if d.weekday() not in weekend_days
    )


def group_runs(dates: Iterable[date]) -> list[tuple[date, date]]:
    """Collapse dates into inclusive runs of consecutive days."""
    runs: list[tuple[date, date]] = []
    for d in sorted(set(dates)):
        if runs and d - runs[-1][1] == timedelta(days=1):
            runs[-1] = (runs[-1][0], d)
        else:
            runs.append((d, d))
    return runs


def describe(dates: Iterable[date]) -> str:
    """Compact human-readable listing, e.g. ``2025-07-10..2025-07-12, 2025-07-15``."""
    parts = []
    for start, end in group_runs(dates):
        parts.append(start.isoformat() if start == end else f"{start.isoformat()}..{end.isoformat()}")
    return ", ".join(parts)
