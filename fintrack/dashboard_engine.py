from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass, field
from datetime import MAXYEAR, MINYEAR, date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Sequence

ZERO = Decimal("0")
HUNDRED = Decimal("100")
RECENT_LIMIT = 10
QUARTER_MONTHS = 3
UNCATEGORIZED = "Uncategorized"
SUPPORTED_PERIODS = {"monthly", "quarterly", "yearly"}
PERIOD_ALIASES = {
    "mensal": "monthly",
    "month": "monthly",
    "trimestral": "quarterly",
    "quarter": "quarterly",
    "anual": "yearly",
    "annual": "yearly",
    "year": "yearly",
}
MONTH_LABELS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)
COLOR_PALETTE = (
    "#4ADE80",
    "#F87171",
    "#60A5FA",
    "#FBBF24",
    "#A78BFA",
    "#FB923C",
    "#38BDF8",
    "#2DD4BF",
    "#F472B6",
)


@dataclass(frozen=True)
class DashboardTransaction:
    amount: Decimal
    type: str
    date: date
    realized: bool = True
    category: Optional[str] = None
    category_color: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class DashboardFilter:
    month: int
    year: int
    period: str = "monthly"


@dataclass
class Summary:
    incomes: Decimal = ZERO
    expenses: Decimal = ZERO
    balance: Decimal = ZERO
    receivable: Decimal = ZERO
    payable: Decimal = ZERO
    previous_month_balance: Decimal = ZERO


@dataclass(frozen=True)
class LineSeries:
    labels: List[str] = field(default_factory=list)
    incomes: List[Decimal] = field(default_factory=list)
    expenses: List[Decimal] = field(default_factory=list)


@dataclass(frozen=True)
class PieSeries:
    categories: List[str] = field(default_factory=list)
    values: List[Decimal] = field(default_factory=list)
    colors: List[str] = field(default_factory=list)
    percentages: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class Dashboard:
    summary: Summary
    line_chart: LineSeries
    expense_pie: PieSeries
    income_pie: PieSeries
    recent_transactions: List[DashboardTransaction]


def normalize_period(value: str) -> str:
    normalized = value.strip().lower()
    normalized = PERIOD_ALIASES.get(normalized, normalized)
    if normalized not in SUPPORTED_PERIODS:
        raise ValueError("Period must be monthly, quarterly, or yearly.")
    return normalized


def build_dashboard(
    transactions: Sequence[DashboardTransaction],
    dashboard_filter: DashboardFilter,
) -> Dashboard:
    if not 1 <= dashboard_filter.month <= 12:
        raise ValueError("Month must be between 1 and 12.")
    if not MINYEAR <= dashboard_filter.year <= MAXYEAR:
        raise ValueError(f"Year must be between {MINYEAR} and {MAXYEAR}.")
    period = normalize_period(dashboard_filter.period)
    normalized_filter = DashboardFilter(
        month=dashboard_filter.month, year=dashboard_filter.year, period=period
    )
    month_transactions = [
        txn
        for txn in transactions
        if (txn.date.year, txn.date.month) == (normalized_filter.year, normalized_filter.month)
    ]
    return Dashboard(
        summary=summarize(transactions, normalized_filter),
        line_chart=line_chart(transactions, normalized_filter),
        expense_pie=pie_chart(month_transactions, "expense"),
        income_pie=pie_chart(month_transactions, "income"),
        recent_transactions=recent_transactions(transactions),
    )


def summarize(
    transactions: Iterable[DashboardTransaction], dashboard_filter: DashboardFilter
) -> Summary:
    period_months = set(_period_months(dashboard_filter))
    previous_month = _shift_month(dashboard_filter.year, dashboard_filter.month, -1)

    summary = Summary()
    previous_incomes = ZERO
    previous_expenses = ZERO
    for txn in transactions:
        amount = _coerce_amount(txn.amount)
        is_income = _is_income(txn)
        key = (txn.date.year, txn.date.month)
        if key in period_months:
            if is_income:
                if txn.realized:
                    summary.incomes += amount
                else:
                    summary.receivable += amount
            elif txn.realized:
                summary.expenses += amount
            else:
                summary.payable += amount
        if key == previous_month and txn.realized:
            if is_income:
                previous_incomes += amount
            else:
                previous_expenses += amount

    summary.balance = summary.incomes - summary.expenses
    summary.previous_month_balance = previous_incomes - previous_expenses
    return summary


def line_chart(
    transactions: Iterable[DashboardTransaction], dashboard_filter: DashboardFilter
) -> LineSeries:
    period = normalize_period(dashboard_filter.period)
    realized = [txn for txn in transactions if txn.realized]

    if period == "monthly":
        days_in_month = monthrange(dashboard_filter.year, dashboard_filter.month)[1]
        incomes = [ZERO] * days_in_month
        expenses = [ZERO] * days_in_month
        for txn in realized:
            if (txn.date.year, txn.date.month) != (dashboard_filter.year, dashboard_filter.month):
                continue
            _add_to_bucket(txn, txn.date.day - 1, incomes, expenses)
        labels = [str(day) for day in range(1, days_in_month + 1)]
        return LineSeries(labels=labels, incomes=incomes, expenses=expenses)

    if period == "quarterly":
        months = _period_months(dashboard_filter)
        positions = {key: index for index, key in enumerate(months)}
        incomes = [ZERO] * len(months)
        expenses = [ZERO] * len(months)
        for txn in realized:
            index = positions.get((txn.date.year, txn.date.month))
            if index is None:
                continue
            _add_to_bucket(txn, index, incomes, expenses)
        labels = [MONTH_LABELS[month - 1] for _, month in months]
        return LineSeries(labels=labels, incomes=incomes, expenses=expenses)

    incomes = [ZERO] * 12
    expenses = [ZERO] * 12
    for txn in realized:
        if txn.date.year != dashboard_filter.year:
            continue
        _add_to_bucket(txn, txn.date.month - 1, incomes, expenses)
    return LineSeries(labels=list(MONTH_LABELS), incomes=incomes, expenses=expenses)


def pie_chart(transactions: Iterable[DashboardTransaction], txn_type: str) -> PieSeries:
    totals: dict[str, Decimal] = {}
    colors: dict[str, str] = {}
    for txn in transactions:
        if txn.type.strip().lower() != txn_type:
            continue
        name = txn.category or UNCATEGORIZED
        if name not in totals:
            colors[name] = txn.category_color or COLOR_PALETTE[len(totals) % len(COLOR_PALETTE)]
            totals[name] = ZERO
        totals[name] += _coerce_amount(txn.amount)

    if not totals:
        return PieSeries()

    grand_total = sum(totals.values(), ZERO)
    percentages = [
        _round_percentage(value, grand_total) for value in totals.values()
    ]
    return PieSeries(
        categories=list(totals.keys()),
        values=list(totals.values()),
        colors=[colors[name] for name in totals],
        percentages=percentages,
    )


def recent_transactions(
    transactions: Iterable[DashboardTransaction], limit: int = RECENT_LIMIT
) -> List[DashboardTransaction]:
    return sorted(transactions, key=lambda txn: txn.date, reverse=True)[:limit]


def _period_months(dashboard_filter: DashboardFilter) -> list[tuple[int, int]]:
    period = normalize_period(dashboard_filter.period)
    if period == "monthly":
        return [(dashboard_filter.year, dashboard_filter.month)]
    if period == "quarterly":
        return [
            _shift_month(dashboard_filter.year, dashboard_filter.month, offset)
            for offset in range(-(QUARTER_MONTHS - 1), 1)
        ]
    return [(dashboard_filter.year, month) for month in range(1, 13)]


def _shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    month_index = year * 12 + month - 1 + months
    return month_index // 12, month_index % 12 + 1


def _add_to_bucket(
    txn: DashboardTransaction, index: int, incomes: list[Decimal], expenses: list[Decimal]
) -> None:
    if _is_income(txn):
        incomes[index] += _coerce_amount(txn.amount)
    else:
        expenses[index] += _coerce_amount(txn.amount)


def _is_income(txn: DashboardTransaction) -> bool:
    return txn.type.strip().lower() == "income"


def _round_percentage(value: Decimal, total: Decimal) -> int:
    if total <= ZERO:
        return 0
    return int((value / total * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
