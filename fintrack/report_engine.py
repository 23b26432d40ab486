from __future__ import annotations

import csv
import io
from calendar import monthrange
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from fintrack.formatters import format_date

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")
REPORT_PERIODS = {"current_month", "last_3_months", "last_6_months", "current_year", "custom"}
REPORT_TYPES = {"all", "income", "expense"}
PERIOD_MONTHS = {"current_month": 1, "last_3_months": 3, "last_6_months": 6}
EXPORT_COLUMNS = ("Date", "Description", "Category", "Type", "Method", "Amount", "Realized")


@dataclass(frozen=True)
class ReportTransaction:
    amount: Decimal
    type: str
    date: date
    realized: bool = True
    name: str = ""
    category: Optional[str] = None
    method: Optional[str] = None


@dataclass(frozen=True)
class ReportSummary:
    total_balance: Decimal
    total_income: Decimal
    total_expense: Decimal
    pending_receivables: Decimal
    pending_payables: Decimal
    transaction_count: int


@dataclass(frozen=True)
class Trend:
    value: Decimal
    is_positive: bool


@dataclass(frozen=True)
class ReportTrends:
    income: Trend
    expense: Trend
    balance: Trend


def normalize_report_period(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in REPORT_PERIODS:
        raise ValueError(
            "Period must be current_month, last_3_months, last_6_months, current_year, or custom."
        )
    return normalized


def normalize_report_type(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in REPORT_TYPES:
        raise ValueError("Type must be all, income, or expense.")
    return normalized


def resolve_report_range(
    period: str,
    today: date,
    start_date: date | None = None,
    end_date: date | None = None,
) -> tuple[date | None, date | None]:
    """Date window covered by a report period.

    Rolling periods include the current month and end on its last day. Custom
    periods use the given dates; a missing bound leaves that side open.
    """
    normalized = normalize_report_period(period)
    if normalized == "custom":
        if start_date and end_date and start_date > end_date:
            raise ValueError("start_date must be on or before end_date.")
        return start_date, end_date
    if normalized == "current_year":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    months = PERIOD_MONTHS[normalized]
    return _month_start(today, -(months - 1)), _month_end(today, 0)


def previous_report_range(period: str, today: date) -> tuple[date, date] | None:
    normalized = normalize_report_period(period)
    if normalized == "custom":
        return None
    if normalized == "current_year":
        return date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)
    months = PERIOD_MONTHS[normalized]
    return _month_start(today, -(2 * months - 1)), _month_end(today, -months)


def summarize(transactions: Iterable[ReportTransaction]) -> ReportSummary:
    total_income = ZERO
    total_expense = ZERO
    pending_receivables = ZERO
    pending_payables = ZERO
    count = 0
    for txn in transactions:
        count += 1
        amount = _coerce_amount(txn.amount)
        if txn.type.strip().lower() == "income":
            total_income += amount
            if not txn.realized:
                pending_receivables += amount
        else:
            total_expense += amount
            if not txn.realized:
                pending_payables += amount
    return ReportSummary(
        total_balance=total_income - total_expense,
        total_income=total_income,
        total_expense=total_expense,
        pending_receivables=pending_receivables,
        pending_payables=pending_payables,
        transaction_count=count,
    )


def percent_change(current: Decimal, previous: Decimal) -> Decimal:
    if previous == ZERO:
        return HUNDRED if current > ZERO else ZERO
    change = (current - previous) / previous * HUNDRED
    return change.quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_trends(current: ReportSummary, previous: ReportSummary) -> ReportTrends:
    return ReportTrends(
        income=Trend(
            value=percent_change(current.total_income, previous.total_income),
            is_positive=current.total_income >= previous.total_income,
        ),
        expense=Trend(
            value=percent_change(current.total_expense, previous.total_expense),
            is_positive=current.total_expense <= previous.total_expense,
        ),
        balance=Trend(
            value=percent_change(current.total_balance, previous.total_balance),
            is_positive=current.total_balance >= previous.total_balance,
        ),
    )


def export_csv(transactions: Iterable[ReportTransaction]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_COLUMNS)
    for txn in transactions:
        writer.writerow(
            [
                format_date(txn.date),
                txn.name,
                txn.category or "",
                txn.type,
                txn.method or "",
                f"{_coerce_amount(txn.amount):.2f}",
                "yes" if txn.realized else "no",
            ]
        )
    return buffer.getvalue()


def _month_start(value: date, months: int) -> date:
    month_index = (value.year * 12 + value.month - 1) + months
    return date(month_index // 12, month_index % 12 + 1, 1)


def _month_end(value: date, months: int) -> date:
    start = _month_start(value, months)
    return start.replace(day=monthrange(start.year, start.month)[1])


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
