from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from fintrack.formatters import format_currency

ZERO = Decimal("0")
HUNDRED = Decimal("100")
WARNING_PERCENTAGE = Decimal("90")
ALERT_WINDOW = Decimal("5")
SUPPORTED_GOAL_TYPES = {"category", "card", "general"}
SUPPORTED_PERIODS = {"monthly", "yearly", "custom"}
DEFAULT_ALERT_LEVELS = (70, 90, 100)


@dataclass(frozen=True)
class Transaction:
    amount: Decimal
    type: str
    date: date
    category_id: Optional[int] = None
    card_id: Optional[int] = None


@dataclass(frozen=True)
class Goal:
    name: str
    goal_type: str
    target_value: Decimal
    period: str
    is_percentage: bool = False
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category_id: Optional[int] = None
    card_id: Optional[int] = None
    alerts_enabled: bool = False
    alert_levels: Tuple[int, ...] = field(default=DEFAULT_ALERT_LEVELS)


@dataclass(frozen=True)
class GoalProgress:
    current_value: Decimal
    target_value: Decimal
    percentage: Decimal
    status: str
    remaining_value: Decimal
    period_start: date
    period_end: date


def goal_period(goal: Goal, today: date) -> tuple[date, date]:
    period = goal.period.strip().lower()
    if period == "monthly":
        last_day = monthrange(today.year, today.month)[1]
        return today.replace(day=1), today.replace(day=last_day)
    if period == "yearly":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    if period == "custom":
        return goal.start_date or today, goal.end_date or today
    raise ValueError(f"Unsupported goal period: {goal.period}")


def evaluate_goal(
    transactions: Iterable[Transaction],
    goal: Goal,
    start_date: date,
    end_date: date,
) -> GoalProgress:
    if start_date > end_date:
        raise ValueError("start_date must be on or before end_date.")
    if goal.target_value <= ZERO:
        raise ValueError("goal.target_value must be greater than zero.")

    goal_type = goal.goal_type.strip().lower()
    filtered = [
        txn
        for txn in transactions
        if start_date <= txn.date <= end_date
    ]

    if goal_type == "category":
        if goal.category_id is None:
            raise ValueError("category goals require a category_id.")
        current_value = _sum_expenses(filtered, category_id=goal.category_id)
    elif goal_type == "card":
        if goal.card_id is None:
            raise ValueError("card goals require a card_id.")
        current_value = _sum_expenses(filtered, card_id=goal.card_id)
    elif goal_type == "general":
        current_value = _sum_expenses(filtered)
    else:
        raise ValueError(f"Unsupported goal_type: {goal.goal_type}")

    target_value = _coerce_amount(goal.target_value)
    if goal.is_percentage:
        target_value = _sum_income(filtered) * target_value / HUNDRED

    percentage = current_value / target_value * HUNDRED if target_value > ZERO else ZERO
    return GoalProgress(
        current_value=current_value,
        target_value=target_value,
        percentage=percentage,
        status=_status_for(percentage),
        remaining_value=max(ZERO, target_value - current_value),
        period_start=start_date,
        period_end=end_date,
    )


def should_alert(goal: Goal, progress: GoalProgress) -> bool:
    """True when the progress sits just past one of the goal's alert levels.

    Each level opens a window of five percentage points: [level, level + 5).
    """
    if not goal.alerts_enabled or not goal.alert_levels:
        return False
    return any(
        Decimal(level) <= progress.percentage < Decimal(level) + ALERT_WINDOW
        for level in goal.alert_levels
    )


def format_alert_message(goal: Goal, progress: GoalProgress) -> str:
    lines: List[str] = [
        "*Goal alert*",
        "",
        f"*Goal:* {goal.name}",
        f"*Spent:* {format_currency(progress.current_value)}",
        f"*Limit:* {format_currency(progress.target_value)}",
        f"*Progress:* {progress.percentage:.1f}%",
        "",
    ]
    if progress.percentage >= HUNDRED:
        lines.append("*WARNING:* goal exceeded!")
        lines.append(
            f"*Over by:* {format_currency(progress.current_value - progress.target_value)}"
        )
    elif progress.percentage >= WARNING_PERCENTAGE:
        lines.append("*CAREFUL:* you are close to the limit.")
        lines.append(f"*Remaining:* {format_currency(progress.remaining_value)}")
    else:
        lines.append("Goal still within the limit.")
    return "\n".join(lines)


def _status_for(percentage: Decimal) -> str:
    if percentage >= HUNDRED:
        return "exceeded"
    if percentage >= WARNING_PERCENTAGE:
        return "warning"
    return "ok"


def _sum_expenses(
    transactions: Iterable[Transaction],
    *,
    category_id: Optional[int] = None,
    card_id: Optional[int] = None,
) -> Decimal:
    total = ZERO
    for txn in transactions:
        txn_type = txn.type.strip().lower()
        if txn_type != "expense":
            continue
        if category_id is not None and txn.category_id != category_id:
            continue
        if card_id is not None and txn.card_id != card_id:
            continue
        total += _coerce_amount(txn.amount)
    return total


def _sum_income(transactions: Iterable[Transaction]) -> Decimal:
    total = ZERO
    for txn in transactions:
        txn_type = txn.type.strip().lower()
        if txn_type != "income":
            continue
        total += _coerce_amount(txn.amount)
    return total


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
