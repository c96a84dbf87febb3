"""Aggregations behind the analytics endpoint.

Everything here works on already-fetched rows so it can be unit tested
without a database.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date, timedelta
from typing import Any, Literal

from expense_api.models.budget import Budget
from expense_api.models.expense import Expense
from expense_api.services.periods import (
    days_in_month,
    first_day_of_month,
    last_day_of_month,
    months_spanned,
    shift_months,
)

AnalyticsPeriod = Literal["month", "year", "custom"]

TOP_EXPENSES_LIMIT = 10
PROJECTION_WINDOW_DAYS = 30


class InvalidPeriodError(ValueError):
    pass


def _enum_value(value: Any) -> str:
    return value.value if hasattr(value, "value") else str(value)


def resolve_period(
    period: AnalyticsPeriod,
    today: date,
    start_date: date | None = None,
    end_date: date | None = None,
) -> tuple[date, date]:
    if period == "month":
        return first_day_of_month(today), last_day_of_month(today)
    if period == "year":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    if start_date is None or end_date is None:
        raise InvalidPeriodError("Custom period requires start_date and end_date")
    if start_date > end_date:
        raise InvalidPeriodError("start_date must be on or before end_date")
    return start_date, end_date


def budget_months(period: AnalyticsPeriod, start: date, end: date) -> int:
    if period == "month":
        return 1
    if period == "year":
        return 12
    return months_spanned(start, end)


def spending_by_category(expenses: Iterable[Expense]) -> list[dict[str, Any]]:
    totals: dict[str, float] = defaultdict(float)
    for expense in expenses:
        totals[_enum_value(expense.category)] += float(expense.amount)

    grand_total = sum(totals.values())
    return [
        {
            "category": category,
            "amount": round(amount, 2),
            "percentage": round(amount / grand_total * 100, 2) if grand_total > 0 else 0.0,
        }
        for category, amount in sorted(totals.items(), key=lambda item: item[1], reverse=True)
    ]


def spending_trends(
    expenses: Iterable[Expense],
    granularity: Literal["day", "month"],
) -> list[dict[str, Any]]:
    key_format = "%Y-%m-%d" if granularity == "day" else "%Y-%m"
    totals: dict[str, float] = defaultdict(float)
    for expense in expenses:
        totals[expense.expense_date.strftime(key_format)] += float(expense.amount)
    return [
        {"date": key, "amount": round(amount, 2)}
        for key, amount in sorted(totals.items())
    ]


def budget_performance(
    budgets: Iterable[Budget],
    expenses: Sequence[Expense],
    months: int,
) -> list[dict[str, Any]]:
    spent_by_category: dict[str, float] = defaultdict(float)
    for expense in expenses:
        spent_by_category[_enum_value(expense.category)] += float(expense.amount)

    rows: list[dict[str, Any]] = []
    for budget in budgets:
        if not budget.is_active:
            continue
        category = _enum_value(budget.category)
        budgeted = round(float(budget.monthly_limit) * months, 2)
        spent = round(spent_by_category.get(category, 0.0), 2)
        rows.append(
            {
                "category": category,
                "budgeted": budgeted,
                "spent": spent,
                "remaining": round(budgeted - spent, 2),
            }
        )
    return sorted(rows, key=lambda row: row["category"])


def top_expenses(expenses: Iterable[Expense], limit: int = TOP_EXPENSES_LIMIT) -> list[dict[str, Any]]:
    ranked = sorted(
        expenses,
        key=lambda expense: (float(expense.amount), expense.expense_date),
        reverse=True,
    )
    return [
        {
            "id": str(expense.id),
            "title": expense.title,
            "amount": round(float(expense.amount), 2),
            "date": str(expense.expense_date),
            "category": _enum_value(expense.category),
        }
        for expense in ranked[:limit]
    ]


def projection_window(today: date) -> tuple[date, date]:
    return today - timedelta(days=PROJECTION_WINDOW_DAYS - 1), today


def predict_spending(
    recent_expenses: Iterable[Expense],
    budgets: Iterable[Budget],
    today: date,
) -> dict[str, Any]:
    """Linear projection of the trailing window's daily average onto next month."""
    next_month_days = days_in_month(shift_months(today, 1))
    total = 0.0
    by_category: dict[str, float] = defaultdict(float)
    for expense in recent_expenses:
        amount = float(expense.amount)
        total += amount
        by_category[_enum_value(expense.category)] += amount

    def project(amount: float) -> float:
        return amount / PROJECTION_WINDOW_DAYS * next_month_days

    alerts: list[dict[str, Any]] = []
    for budget in budgets:
        if not budget.is_active:
            continue
        category = _enum_value(budget.category)
        overspend = project(by_category.get(category, 0.0)) - float(budget.monthly_limit)
        if overspend > 0:
            alerts.append({"category": category, "projected_overspend": round(overspend, 2)})

    alerts.sort(key=lambda alert: alert["projected_overspend"], reverse=True)
    return {
        "next_month_spending": round(project(total), 2),
        "budget_alerts": alerts,
    }
