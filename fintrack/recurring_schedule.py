from __future__ import annotations

from dataclasses import dataclass
from calendar import monthrange
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List

WEEKLY_DAYS = 7
SUPPORTED_FREQUENCIES = {"weekly", "monthly", "yearly"}
SUPPORTED_TYPES = {"income", "expense"}

FREQUENCY_ALIASES = {
    "semanal": "weekly",
    "mensal": "monthly",
    "anual": "yearly",
    "annual": "yearly",
}


@dataclass(frozen=True)
class RecurringTemplate:
    amount: Decimal
    start_date: date
    frequency: str = "monthly"
    type: str = "expense"
    end_date: date | None = None
    last_execution: date | None = None
    is_active: bool = True
    name: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class ProjectedOccurrence:
    date: date
    amount: Decimal
    transaction_type: str
    name: str | None = None
    recurring_id: int | None = None


def normalize_frequency(value: str) -> str:
    normalized = "".join(ch for ch in value.strip().lower() if ch.isalnum())
    normalized = FREQUENCY_ALIASES.get(normalized, normalized)
    if normalized not in SUPPORTED_FREQUENCIES:
        raise ValueError("Only weekly, monthly, or yearly recurring transactions are supported.")
    return normalized


def should_execute(template: RecurringTemplate, today: date) -> bool:
    """Decide whether ``template`` must produce a transaction dated ``today``."""
    if not template.is_active:
        return False
    if today < template.start_date:
        return False
    if template.end_date is not None and today > template.end_date:
        return False

    last = template.last_execution
    if last is None:
        return True

    frequency = normalize_frequency(template.frequency)
    if frequency == "weekly":
        return last + timedelta(days=WEEKLY_DAYS) <= today
    if frequency == "monthly":
        if (today.year, today.month) == (last.year, last.month):
            return False
        if (today.year, today.month) < (last.year, last.month):
            return False
        return today.day >= _clamp_day(last.day, today.year, today.month)
    # yearly
    if today.year <= last.year:
        return False
    if today.month != last.month:
        return today.month > last.month
    return today.day >= _clamp_day(last.day, today.year, today.month)


def project_upcoming(
    template: RecurringTemplate,
    range_start: date,
    range_end: date,
) -> List[ProjectedOccurrence]:
    if range_start > range_end:
        raise ValueError("range_start must be on or before range_end.")
    if template.amount <= 0:
        raise ValueError("template.amount must be greater than zero.")
    frequency = normalize_frequency(template.frequency)
    transaction_type = _validate_type(template.type)
    if not template.is_active:
        return []

    anchor = template.last_execution or template.start_date
    step = 1 if template.last_execution is not None else 0
    last_date = range_end
    if template.end_date is not None and template.end_date < last_date:
        last_date = template.end_date

    projections: List[ProjectedOccurrence] = []
    current_date = _occurrence(anchor, frequency, step)
    while current_date <= last_date:
        if current_date >= range_start and current_date >= template.start_date:
            projections.append(
                ProjectedOccurrence(
                    date=current_date,
                    amount=_coerce_amount(template.amount),
                    transaction_type=transaction_type,
                    name=template.name,
                    recurring_id=template.id,
                )
            )
        step += 1
        current_date = _occurrence(anchor, frequency, step)

    return projections


def project_upcoming_for_all(
    templates: Iterable[RecurringTemplate],
    range_start: date,
    range_end: date,
) -> List[ProjectedOccurrence]:
    projections: List[ProjectedOccurrence] = []
    for template in templates:
        projections.extend(project_upcoming(template, range_start, range_end))
    projections.sort(key=lambda entry: entry.date)
    return projections


def _validate_type(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in SUPPORTED_TYPES:
        raise ValueError("Only income or expense recurring transactions are supported.")
    return normalized


def _occurrence(anchor: date, frequency: str, step: int) -> date:
    if frequency == "weekly":
        return anchor + timedelta(days=WEEKLY_DAYS * step)
    if frequency == "monthly":
        return _add_months(anchor, step, anchor.day)
    return _add_months(anchor, 12 * step, anchor.day)


def _clamp_day(anchor_day: int, year: int, month: int) -> int:
    return min(anchor_day, monthrange(year, month)[1])


def _add_months(start_date: date, months: int, anchor_day: int) -> date:
    total_month = start_date.month - 1 + months
    year = start_date.year + total_month // 12
    month = total_month % 12 + 1
    return date(year, month, _clamp_day(anchor_day, year, month))


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
