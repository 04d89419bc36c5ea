import random
from datetime import date, datetime
from zoneinfo import ZoneInfo

from aggregation import (
    aggregate,
    budget_progress,
    budget_utilization,
    category_normalizer,
)
from models import BudgetPeriod


JAN_20 = datetime(2024, 1, 20, 12, 0)


def scenario_a() -> list[dict]:
    return [
        {"type": "income", "amount": 1000, "category": "Salary", "date": "2024-01-01"},
        {"type": "expense", "amount": 200, "category": "Food", "date": "2024-01-02"},
        {"type": "expense", "amount": 50, "category": "Food", "date": "2024-01-15"},
    ]


def test_month_summary_matches_hand_computed_totals() -> None:
    summary = aggregate(scenario_a(), now=JAN_20, period="month")

    assert summary.period.start == date(2024, 1, 1)
    assert summary.period.end == date(2024, 1, 31)
    assert summary.period_income_cents == 100_000
    assert summary.period_expense_cents == 25_000
    assert summary.period_balance_cents == 75_000
    assert summary.balance_cents == 75_000
    assert summary.savings_rate == 75.0
    assert summary.expenses_by_category == {"Food": 25_000}
    assert summary.income_by_category == {"Salary": 100_000}


def test_empty_transaction_list_yields_zero_metrics() -> None:
    summary = aggregate([], now=JAN_20, period="month")

    assert summary.total_income_cents == 0
    assert summary.total_expense_cents == 0
    assert summary.balance_cents == 0
    assert summary.period_balance_cents == 0
    assert summary.savings_rate == 0.0
    assert summary.expenses_by_category == {}
    assert summary.daily_average_cents == 0
    assert summary.weekly_projection_cents == 0
    assert summary.monthly_projection_cents == 0
    assert summary.burn_rate_cents == 0
    assert summary.budget_days_left == 0
    assert all(p.income_cents == 0 and p.expense_cents == 0 for p in summary.daily_series)


def test_savings_rate_is_zero_without_income() -> None:
    for expense in (0, 10, 12_345):
        txns = [
            {"type": "expense", "amount": expense, "category": "Rent", "date": "2024-01-03"}
        ]
        summary = aggregate(txns, now=JAN_20, period="month")
        assert summary.savings_rate == 0.0


def test_balance_and_category_partition_hold_for_random_lists() -> None:
    rng = random.Random(42)
    categories = ["Food", "Rent", "Fun", "food ", ""]
    for _ in range(25):
        txns = [
            {
                "type": rng.choice(["income", "expense"]),
                "amount": round(rng.uniform(0, 500), 2),
                "category": rng.choice(categories),
                "date": date(2024, rng.randint(1, 3), rng.randint(1, 28)).isoformat(),
            }
            for _ in range(rng.randint(0, 40))
        ]
        for period in ("week", "month", "year", "all"):
            summary = aggregate(txns, now=datetime(2024, 2, 14, 9, 0), period=period)
            assert (
                summary.total_income_cents - summary.total_expense_cents
                == summary.balance_cents
            )
            assert (
                sum(summary.expenses_by_category.values())
                == summary.period_expense_cents
            )
            assert (
                sum(p.expense_cents for p in summary.daily_series)
                == summary.period_expense_cents
            )


def test_aggregate_is_repeatable_for_same_input_and_now() -> None:
    txns = scenario_a()
    first = aggregate(txns, now=JAN_20, period="month")
    second = aggregate(txns, now=JAN_20, period="month")
    assert first == second


def test_malformed_records_are_absorbed() -> None:
    txns = scenario_a() + [
        {"type": "expense", "amount": "abc", "category": "Food", "date": "2024-01-03"},
        {"type": "expense", "amount": None, "category": "Food", "date": "2024-01-03"},
        {"type": "expense", "amount": -40, "category": "Food", "date": "2024-01-03"},
        {"type": "expense", "amount": "NaN", "category": "Food", "date": "2024-01-03"},
        {"type": "expense", "amount": "12,50", "category": "Coffee", "date": "2024-01-04"},
        {"type": "expense", "amount": 30, "category": "Books", "date": "someday"},
        {"type": "gift", "amount": 99, "category": "Food", "date": "2024-01-05"},
        {"amount": 5},
    ]
    summary = aggregate(txns, now=JAN_20, period="month")

    assert summary.expenses_by_category == {"Food": 25_000, "Coffee": 1_250}
    assert summary.total_expense_cents == 25_000 + 1_250 + 3_000
    assert summary.skipped_dates == 2
    assert summary.transaction_count == len(txns)


def test_daily_series_covers_every_day_of_period() -> None:
    summary = aggregate(scenario_a(), now=JAN_20, period="month")

    assert len(summary.daily_series) == 31
    by_day = {p.day: p for p in summary.daily_series}
    assert by_day[date(2024, 1, 1)].income_cents == 100_000
    assert by_day[date(2024, 1, 2)].expense_cents == 20_000
    assert by_day[date(2024, 1, 15)].expense_cents == 5_000
    assert by_day[date(2024, 1, 3)].expense_cents == 0


def test_utc_timestamps_are_bucketed_by_local_day() -> None:
    berlin = ZoneInfo("Europe/Berlin")
    txns = [
        {
            "type": "expense",
            "amount": 20,
            "category": "Dinner",
            "date": "2024-01-31T23:30:00Z",
        }
    ]

    january = aggregate(
        txns, now=datetime(2024, 1, 31, 20, 0, tzinfo=berlin), period="month", tz=berlin
    )
    february = aggregate(
        txns, now=datetime(2024, 2, 10, 12, 0, tzinfo=berlin), period="month", tz=berlin
    )

    assert january.period_expense_cents == 0
    assert february.period_expense_cents == 2_000
    assert february.daily_series[0].day == date(2024, 2, 1)
    assert february.daily_series[0].expense_cents == 2_000


def test_daily_average_and_projections_use_period_length() -> None:
    txns = [
        {"type": "expense", "amount": 70, "category": "Food", "date": "2024-01-15"},
        {"type": "expense", "amount": 70, "category": "Food", "date": "2024-01-17"},
    ]
    summary = aggregate(txns, now=JAN_20, period="week")

    assert summary.period.start == date(2024, 1, 15)
    assert summary.period.end == date(2024, 1, 21)
    assert summary.daily_average_cents == 2_000
    assert summary.weekly_projection_cents == 14_000
    assert summary.monthly_projection_cents == 60_000


def test_burn_rate_and_week_to_date_figures() -> None:
    summary = aggregate(scenario_a(), now=JAN_20, period="month")

    assert summary.burn_rate_cents == 833
    assert summary.week_to_date_expense_cents == 5_000
    assert summary.today_expense_cents == 0
    assert summary.budget_days_left == 93


def test_all_period_spans_dated_transactions() -> None:
    summary = aggregate(scenario_a(), now=JAN_20, period="all")

    assert summary.period.start == date(2024, 1, 1)
    assert summary.period.end == date(2024, 1, 15)
    assert len(summary.daily_series) == 15
    assert summary.period_expense_cents == 25_000
    assert summary.daily_average_cents == 1_667


def test_all_period_without_dated_transactions_has_empty_series() -> None:
    summary = aggregate(
        [{"type": "income", "amount": 10, "category": "Gift"}], now=JAN_20, period="all"
    )
    assert summary.daily_series == []
    assert summary.daily_average_cents == 0
    assert summary.total_income_cents == 1_000


def test_categories_are_raw_strings_unless_normalized() -> None:
    txns = [
        {"type": "expense", "amount": 10, "category": "Food", "date": "2024-01-02"},
        {"type": "expense", "amount": 5, "category": " food", "date": "2024-01-03"},
    ]
    raw = aggregate(txns, now=JAN_20, period="month")
    folded = aggregate(
        txns,
        now=JAN_20,
        period="month",
        normalize_category=category_normalizer("casefold"),
    )

    assert raw.expenses_by_category == {"Food": 1_000, " food": 500}
    assert folded.expenses_by_category == {"food": 1_500}
    assert category_normalizer("none") is None


def test_budget_utilization_flags_overspend() -> None:
    budget = {"category": "Food", "amount": 200, "period": "monthly"}
    result = budget_utilization(budget, {"Food": 25_000})

    assert result.amount_cents == 20_000
    assert result.spent_cents == 25_000
    assert result.remaining_cents == 0
    assert result.is_over_budget is True
    assert result.percentage == 125.0


def test_budget_utilization_for_unused_category() -> None:
    result = budget_utilization({"category": "Travel", "amount": 100}, {"Food": 500})

    assert result.period == BudgetPeriod.monthly
    assert result.spent_cents == 0
    assert result.remaining_cents == 10_000
    assert result.is_over_budget is False


def test_budget_progress_scopes_each_budget_to_its_period() -> None:
    txns = scenario_a() + [
        {"type": "expense", "amount": 400, "category": "Food", "date": "2023-06-01"},
    ]
    budgets = [
        {"category": "Food", "amount": 100, "period": "weekly"},
        {"category": "Food", "amount": 300, "period": "monthly"},
        {"category": "Food", "amount": 1000, "period": "yearly"},
    ]
    progress = budget_progress(txns, budgets, now=JAN_20)

    assert [p.spent_cents for p in progress] == [5_000, 25_000, 25_000]
    assert [p.remaining_cents for p in progress] == [5_000, 5_000, 75_000]


def test_oversized_amounts_count_as_zero() -> None:
    txns = scenario_a() + [
        {"type": "expense", "amount": 1e30, "category": "Typo", "date": "2024-01-03"},
        {"type": "expense", "amount": "1e999999", "category": "Typo", "date": "2024-01-03"},
    ]
    summary = aggregate(txns, now=JAN_20, period="month")

    assert summary.period_expense_cents == 25_000
    assert summary.expenses_by_category["Typo"] == 0


def test_far_out_dates_are_skipped_not_spanned() -> None:
    txns = scenario_a() + [
        {"type": "expense", "amount": 10, "category": "Food", "date": "0001-01-01"},
        {"type": "expense", "amount": 10, "category": "Food", "date": "9999-12-31"},
        {"type": "expense", "amount": 10, "category": "Food", "date": "0001-01-01T00:30:00+05:00"},
    ]
    summary = aggregate(txns, now=JAN_20, period="all")

    assert summary.period.start == date(2024, 1, 1)
    assert summary.period.end == date(2024, 1, 15)
    assert len(summary.daily_series) == 15
    assert summary.skipped_dates == 3
    assert summary.total_expense_cents == 25_000 + 3_000
