from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

PERIOD_SLUGS = (
    "week",
    "month",
    "this_month",
    "year",
    "last_month",
    "last_30_days",
    "all",
    "custom",
)

# Dates outside this window are treated as typos.
EARLIEST_DAY = date(1970, 1, 1)
LATEST_DAY = date(2100, 12, 31)


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    @property
    def days(self) -> int:
        if self.end < self.start:
            return 0
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def each_day(self) -> list[date]:
        return [self.start + timedelta(days=i) for i in range(self.days)]


def week_bounds(today: date) -> tuple[date, date]:
    start = today - timedelta(days=today.weekday())
    return start, start + timedelta(days=6)


def month_bounds(today: date) -> tuple[date, date]:
    first = today.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return first, next_month - date.resolution


def year_bounds(today: date) -> tuple[date, date]:
    return date(today.year, 1, 1), date(today.year, 12, 31)


def resolve_period(
    period: Optional[str],
    start: Optional[str] = None,
    end: Optional[str] = None,
    *,
    today: Optional[date] = None,
) -> Period:
    """Map a period slug to concrete inclusive bounds.

    "all" is open-ended: callers narrow it to the span of their data.
    """
    today = today or date.today()
    if period and period not in PERIOD_SLUGS:
        raise ValueError(f"Unknown period: {period}")
    if not period or period in ("month", "this_month"):
        first, last = month_bounds(today)
        return Period("month", first, last)
    if period == "all":
        return Period("all", EARLIEST_DAY, today)
    if period == "week":
        first, last = week_bounds(today)
        return Period("week", first, last)
    if period == "year":
        first, last = year_bounds(today)
        return Period("year", first, last)
    if period == "last_month":
        first_this = today.replace(day=1)
        last_month_end = first_this - date.resolution
        last_month_start = last_month_end.replace(day=1)
        return Period("last_month", last_month_start, last_month_end)
    if period == "last_30_days":
        return Period("last_30_days", today - timedelta(days=29), today)
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        if start_date < EARLIEST_DAY or end_date > LATEST_DAY:
            raise ValueError(
                f"Custom period must lie between {EARLIEST_DAY} and {LATEST_DAY}"
            )
        return Period("custom", start_date, end_date)
    raise ValueError(f"Unknown period: {period}")
