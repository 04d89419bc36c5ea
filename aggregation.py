"""Financial metrics computed from a user's transaction list.

Everything here is a pure function of its inputs plus a reference instant.
Malformed records never abort a computation: an amount that cannot be parsed
counts as zero and a record without a usable date only contributes to the
all-time totals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union
from zoneinfo import ZoneInfo

from csv_utils import parse_amount
from models import BudgetPeriod, TransactionType
from periods import EARLIEST_DAY, LATEST_DAY, Period, resolve_period, week_bounds

logger = logging.getLogger(__name__)

CategoryNormalizer = Callable[[str], str]
Record = Union[Mapping[str, Any], Any]


def category_normalizer(mode: Optional[str]) -> Optional[CategoryNormalizer]:
    mode = (mode or "none").lower()
    if mode == "none":
        return None
    if mode == "trim":
        return str.strip
    if mode == "casefold":
        return lambda value: value.strip().casefold()
    raise ValueError(f"Unknown category normalization: {mode}")


@dataclass(frozen=True)
class LedgerEntry:
    type: Optional[TransactionType]
    amount_cents: int
    category: str
    day: Optional[date]


@dataclass(frozen=True)
class DailyPoint:
    day: date
    income_cents: int
    expense_cents: int


@dataclass(frozen=True)
class BudgetUtilization:
    category: str
    period: BudgetPeriod
    amount_cents: int
    spent_cents: int
    remaining_cents: int
    is_over_budget: bool
    percentage: float


@dataclass(frozen=True)
class FinancialSummary:
    period: Period
    total_income_cents: int
    total_expense_cents: int
    balance_cents: int
    period_income_cents: int
    period_expense_cents: int
    period_balance_cents: int
    savings_rate: float
    expenses_by_category: dict[str, int]
    income_by_category: dict[str, int]
    daily_series: list[DailyPoint]
    daily_average_cents: int
    weekly_projection_cents: int
    monthly_projection_cents: int
    burn_rate_cents: int
    today_expense_cents: int
    week_to_date_expense_cents: int
    budget_days_left: int
    transaction_count: int
    skipped_dates: int = field(default=0)

    def as_dict(self) -> dict[str, object]:
        return {
            "period": {
                "slug": self.period.slug,
                "start": self.period.start.isoformat(),
                "end": self.period.end.isoformat(),
            },
            "total_income_cents": self.total_income_cents,
            "total_expense_cents": self.total_expense_cents,
            "balance_cents": self.balance_cents,
            "period_income_cents": self.period_income_cents,
            "period_expense_cents": self.period_expense_cents,
            "period_balance_cents": self.period_balance_cents,
            "savings_rate": self.savings_rate,
            "expenses_by_category": dict(self.expenses_by_category),
            "income_by_category": dict(self.income_by_category),
            "daily_series": [
                {
                    "date": p.day.isoformat(),
                    "income_cents": p.income_cents,
                    "expense_cents": p.expense_cents,
                }
                for p in self.daily_series
            ],
            "daily_average_cents": self.daily_average_cents,
            "weekly_projection_cents": self.weekly_projection_cents,
            "monthly_projection_cents": self.monthly_projection_cents,
            "burn_rate_cents": self.burn_rate_cents,
            "today_expense_cents": self.today_expense_cents,
            "week_to_date_expense_cents": self.week_to_date_expense_cents,
            "budget_days_left": self.budget_days_left,
            "transaction_count": self.transaction_count,
            "skipped_dates": self.skipped_dates,
        }


def _field(record: Record, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _coerce_type(value: Any) -> Optional[TransactionType]:
    if isinstance(value, TransactionType):
        return value
    try:
        return TransactionType(str(value).strip().lower())
    except ValueError:
        return None


def _coerce_amount(value: Any) -> int:
    try:
        return parse_amount(value)
    except ValueError:
        logger.debug(f"aggregation_input_ignored: amount={value!r}")
        return 0


def _coerce_day(value: Any, tz: tzinfo) -> Optional[date]:
    """Truncate a transaction date to the local calendar day.

    Aware datetimes are shifted into ``tz`` first so that a late-evening
    entry stored in UTC lands on the user's day, not the UTC one. Days
    outside ``EARLIEST_DAY``..``LATEST_DAY`` count as unparseable.
    """
    day = _parse_day(value, tz)
    if day is None or not EARLIEST_DAY <= day <= LATEST_DAY:
        return None
    return day


def _parse_day(value: Any, tz: tzinfo) -> Optional[date]:
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        return value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if len(text) == 10:
            try:
                return date.fromisoformat(text)
            except ValueError:
                return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if moment.tzinfo is not None:
        try:
            moment = moment.astimezone(tz)
        except OverflowError:
            return None
    return moment.date()


def coerce_entry(
    record: Record,
    tz: tzinfo,
    normalize: Optional[CategoryNormalizer] = None,
) -> LedgerEntry:
    category = _field(record, "category")
    category = "" if category is None else str(category)
    if normalize is not None:
        category = normalize(category)
    return LedgerEntry(
        type=_coerce_type(_field(record, "type")),
        amount_cents=_coerce_amount(_field(record, "amount")),
        category=category,
        day=_coerce_day(_field(record, "date"), tz),
    )


def _divide(numerator: int, denominator: int) -> int:
    if denominator <= 0:
        return 0
    quotient = Decimal(numerator) / Decimal(denominator)
    return int(quotient.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _savings_rate(balance_cents: int, income_cents: int) -> float:
    # No income reports a rate of 0.
    if income_cents <= 0:
        return 0.0
    rate = Decimal(balance_cents) / Decimal(income_cents) * 100
    return float(rate.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _sum_in(
    entries: Iterable[LedgerEntry], start: date, end: date, txn_type: TransactionType
) -> int:
    return sum(
        e.amount_cents
        for e in entries
        if e.type == txn_type and e.day is not None and start <= e.day <= end
    )


def _by_category(
    entries: Iterable[LedgerEntry], period: Period, txn_type: TransactionType
) -> dict[str, int]:
    totals: dict[str, int] = {}
    for e in entries:
        if e.type != txn_type or e.day is None or not period.contains(e.day):
            continue
        totals[e.category] = totals.get(e.category, 0) + e.amount_cents
    return totals


def _local_today(now: Optional[datetime], tz: tzinfo) -> date:
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is not None:
        return now.astimezone(tz).date()
    return now.date()


def _resolve_tz(tz: Union[str, tzinfo, None]) -> tzinfo:
    if tz is None:
        return ZoneInfo("UTC")
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


def aggregate(
    transactions: Sequence[Record],
    *,
    now: Optional[datetime] = None,
    period: Union[str, Period, None] = "month",
    start: Optional[str] = None,
    end: Optional[str] = None,
    tz: Union[str, tzinfo, None] = None,
    burn_rate_window_days: int = 30,
    normalize_category: Optional[CategoryNormalizer] = None,
) -> FinancialSummary:
    zone = _resolve_tz(tz)
    today = _local_today(now, zone)
    entries = [coerce_entry(r, zone, normalize_category) for r in transactions]

    if isinstance(period, Period):
        scope = period
    else:
        scope = resolve_period(period, start, end, today=today)

    dated_days = [e.day for e in entries if e.day is not None]
    series_days: list[date] = []
    if scope.slug == "all":
        if dated_days:
            scope = Period("all", min(dated_days), max(dated_days))
            series_days = scope.each_day()
    else:
        series_days = scope.each_day()

    total_income = sum(
        e.amount_cents for e in entries if e.type == TransactionType.income
    )
    total_expense = sum(
        e.amount_cents for e in entries if e.type == TransactionType.expense
    )

    expenses_by_category = _by_category(entries, scope, TransactionType.expense)
    income_by_category = _by_category(entries, scope, TransactionType.income)
    period_income = sum(income_by_category.values())
    period_expense = sum(expenses_by_category.values())
    period_balance = period_income - period_expense

    daily: dict[date, list[int]] = {day: [0, 0] for day in series_days}
    for e in entries:
        if e.day is None or e.day not in daily:
            continue
        if e.type == TransactionType.income:
            daily[e.day][0] += e.amount_cents
        elif e.type == TransactionType.expense:
            daily[e.day][1] += e.amount_cents
    daily_series = [
        DailyPoint(day=day, income_cents=inc, expense_cents=exp)
        for day, (inc, exp) in daily.items()
    ]

    days = len(series_days)
    daily_average = _divide(period_expense, days)

    window_start = today - timedelta(days=max(burn_rate_window_days, 1) - 1)
    burn_rate = _divide(
        _sum_in(entries, window_start, today, TransactionType.expense),
        burn_rate_window_days,
    )
    week_start, _ = week_bounds(today)

    budget_days_left = 0
    if period_income > 0 and period_expense > 0 and period_balance > 0:
        budget_days_left = (period_balance * days) // period_expense

    return FinancialSummary(
        period=scope,
        total_income_cents=total_income,
        total_expense_cents=total_expense,
        balance_cents=total_income - total_expense,
        period_income_cents=period_income,
        period_expense_cents=period_expense,
        period_balance_cents=period_balance,
        savings_rate=_savings_rate(period_balance, period_income),
        expenses_by_category=expenses_by_category,
        income_by_category=income_by_category,
        daily_series=daily_series,
        daily_average_cents=daily_average,
        weekly_projection_cents=_divide(period_expense * 7, days),
        monthly_projection_cents=_divide(period_expense * 30, days),
        burn_rate_cents=burn_rate,
        today_expense_cents=_sum_in(entries, today, today, TransactionType.expense),
        week_to_date_expense_cents=_sum_in(
            entries, week_start, today, TransactionType.expense
        ),
        budget_days_left=budget_days_left,
        transaction_count=len(entries),
        skipped_dates=len(entries) - len(dated_days),
    )


def budget_utilization(
    budget: Record,
    expenses_by_category: Mapping[str, int],
    normalize_category: Optional[CategoryNormalizer] = None,
) -> BudgetUtilization:
    category = str(_field(budget, "category") or "")
    if normalize_category is not None:
        category = normalize_category(category)
    try:
        budget_period = BudgetPeriod(_field(budget, "period") or BudgetPeriod.monthly)
    except ValueError:
        budget_period = BudgetPeriod.monthly
    amount = _coerce_amount(_field(budget, "amount"))
    spent = int(expenses_by_category.get(category, 0))
    percentage = 0.0
    if amount > 0:
        percentage = float(
            (Decimal(spent) / Decimal(amount) * 100).quantize(
                Decimal("0.1"), rounding=ROUND_HALF_UP
            )
        )
    return BudgetUtilization(
        category=category,
        period=budget_period,
        amount_cents=amount,
        spent_cents=spent,
        remaining_cents=max(0, amount - spent),
        is_over_budget=spent > amount,
        percentage=percentage,
    )


_BUDGET_PERIOD_SLUGS = {
    BudgetPeriod.weekly: "week",
    BudgetPeriod.monthly: "month",
    BudgetPeriod.yearly: "year",
}


def budget_progress(
    transactions: Sequence[Record],
    budgets: Sequence[Record],
    *,
    now: Optional[datetime] = None,
    tz: Union[str, tzinfo, None] = None,
    normalize_category: Optional[CategoryNormalizer] = None,
) -> list[BudgetUtilization]:
    """Utilization of each budget against the current window of its own period."""
    zone = _resolve_tz(tz)
    today = _local_today(now, zone)
    entries = [coerce_entry(r, zone, normalize_category) for r in transactions]

    spent_by_period: dict[BudgetPeriod, dict[str, int]] = {}
    results: list[BudgetUtilization] = []
    for budget in budgets:
        try:
            budget_period = BudgetPeriod(_field(budget, "period") or "monthly")
        except ValueError:
            budget_period = BudgetPeriod.monthly
        if budget_period not in spent_by_period:
            scope = resolve_period(_BUDGET_PERIOD_SLUGS[budget_period], today=today)
            spent_by_period[budget_period] = _by_category(
                entries, scope, TransactionType.expense
            )
        results.append(
            budget_utilization(
                budget, spent_by_period[budget_period], normalize_category
            )
        )
    return results
