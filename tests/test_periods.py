from datetime import date

import pytest

from periods import resolve_period


def test_week_starts_on_monday() -> None:
    period = resolve_period("week", today=date(2024, 1, 20))
    assert period.start == date(2024, 1, 15)
    assert period.end == date(2024, 1, 21)
    assert period.days == 7


def test_month_is_default_and_handles_december() -> None:
    period = resolve_period(None, today=date(2023, 12, 5))
    assert period.slug == "month"
    assert period.start == date(2023, 12, 1)
    assert period.end == date(2023, 12, 31)

    leap = resolve_period("this_month", today=date(2024, 2, 10))
    assert leap.end == date(2024, 2, 29)
    assert leap.days == 29


def test_year_and_last_month() -> None:
    year = resolve_period("year", today=date(2024, 6, 1))
    assert (year.start, year.end) == (date(2024, 1, 1), date(2024, 12, 31))

    last = resolve_period("last_month", today=date(2024, 1, 20))
    assert (last.start, last.end) == (date(2023, 12, 1), date(2023, 12, 31))


def test_last_30_days_includes_today() -> None:
    period = resolve_period("last_30_days", today=date(2024, 3, 1))
    assert period.end == date(2024, 3, 1)
    assert period.days == 30
    assert len(period.each_day()) == 30


def test_custom_period_validation() -> None:
    period = resolve_period("custom", "2024-01-01", "2024-01-10")
    assert period.days == 10

    with pytest.raises(ValueError):
        resolve_period("custom", "2024-01-10", "2024-01-01")
    with pytest.raises(ValueError):
        resolve_period("custom", "2024-01-10", None)


def test_unknown_period_is_rejected() -> None:
    with pytest.raises(ValueError):
        resolve_period("fortnight", today=date(2024, 1, 1))


def test_custom_period_must_stay_within_supported_dates() -> None:
    with pytest.raises(ValueError):
        resolve_period("custom", "0001-01-01", "2024-01-01")
    with pytest.raises(ValueError):
        resolve_period("custom", "2024-01-01", "9999-12-31")
