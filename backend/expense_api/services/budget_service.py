"""Keeps the denormalized ``Budget.current_spent`` column in step with expenses.

An expense counts against its owner's budget for its category when it is
APPROVED and its ``expense_date`` falls inside the current calendar month.
Inactive budgets are never adjusted; they are recomputed when re-activated.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, date, datetime
from uuid import UUID

from sqlalchemy import case, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from expense_api.models.budget import Budget
from expense_api.models.expense import Expense, ExpenseCategory, ExpenseStatus
from expense_api.services.periods import first_day_of_month, last_day_of_month

_EPSILON = 1e-9


def _current_time() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _today() -> date:
    return datetime.now(UTC).date()


@dataclass(frozen=True)
class ExpenseFootprint:
    """The fields of an expense that decide its budget contribution."""

    category: ExpenseCategory
    amount: float
    status: ExpenseStatus
    expense_date: date

    @classmethod
    def of(cls, expense: Expense) -> ExpenseFootprint:
        return cls(
            category=ExpenseCategory(expense.category),
            amount=float(expense.amount),
            status=ExpenseStatus(expense.status),
            expense_date=expense.expense_date,
        )

    def contribution(self, today: date) -> float:
        if self.status != ExpenseStatus.APPROVED:
            return 0.0
        if not first_day_of_month(today) <= self.expense_date <= last_day_of_month(today):
            return 0.0
        return self.amount


@dataclass(frozen=True)
class BudgetChange:
    budget: Budget
    previous_spent: float

    @property
    def crossed_alert_threshold(self) -> bool:
        limit = float(self.budget.monthly_limit)
        if limit <= 0:
            return False
        threshold = float(self.budget.alert_threshold)
        before = self.previous_spent / limit * 100
        after = float(self.budget.current_spent) / limit * 100
        return before < threshold <= after


def budget_deltas(
    before: ExpenseFootprint | None,
    after: ExpenseFootprint | None,
    today: date,
) -> dict[ExpenseCategory, float]:
    deltas: dict[ExpenseCategory, float] = defaultdict(float)
    if before is not None:
        deltas[before.category] -= before.contribution(today)
    if after is not None:
        deltas[after.category] += after.contribution(today)
    return {
        category: round(delta, 2)
        for category, delta in deltas.items()
        if abs(delta) > _EPSILON
    }


async def _apply_delta(
    session: AsyncSession,
    *,
    user_id: UUID,
    category: ExpenseCategory,
    delta: float,
) -> BudgetChange | None:
    # Adjusted in SQL so concurrent writers do not overwrite each other.
    next_spent = Budget.current_spent + delta
    await session.execute(
        update(Budget)
        .where(
            Budget.user_id == user_id,
            Budget.category == category,
            Budget.is_active.is_(True),
        )
        .values(
            current_spent=case((next_spent < 0, 0.0), else_=next_spent),
            updated_at=_current_time(),
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(
        select(Budget)
        .where(
            Budget.user_id == user_id,
            Budget.category == category,
            Budget.is_active.is_(True),
        )
        .execution_options(populate_existing=True)
    )
    budget = result.scalar_one_or_none()
    if budget is None:
        return None
    return BudgetChange(budget=budget, previous_spent=max(0.0, budget.current_spent - delta))


async def apply_expense_change(
    session: AsyncSession,
    *,
    user_id: UUID,
    before: ExpenseFootprint | None,
    after: ExpenseFootprint | None,
    today: date | None = None,
) -> list[BudgetChange]:
    """Move budget totals from an expense's old footprint to its new one.

    Pass ``before=None`` for a new expense and ``after=None`` for a deleted one.
    Nothing is committed here.
    """
    changes: list[BudgetChange] = []
    for category, delta in budget_deltas(before, after, today or _today()).items():
        change = await _apply_delta(session, user_id=user_id, category=category, delta=delta)
        if change is not None:
            changes.append(change)
    return changes


async def calculate_month_spent(
    session: AsyncSession,
    *,
    user_id: UUID,
    category: ExpenseCategory,
    today: date | None = None,
) -> float:
    reference = today or _today()
    result = await session.execute(
        select(func.coalesce(func.sum(Expense.amount), 0.0)).where(
            Expense.user_id == user_id,
            Expense.category == category,
            Expense.status == ExpenseStatus.APPROVED,
            Expense.expense_date >= first_day_of_month(reference),
            Expense.expense_date <= last_day_of_month(reference),
        )
    )
    return round(float(result.scalar_one() or 0.0), 2)


async def reconcile_budget(
    session: AsyncSession,
    budget: Budget,
    today: date | None = None,
) -> bool:
    """Recompute ``current_spent`` from expenses; return True when it drifted."""
    spent = await calculate_month_spent(
        session,
        user_id=budget.user_id,
        category=ExpenseCategory(budget.category),
        today=today,
    )
    if abs(float(budget.current_spent) - spent) <= _EPSILON:
        return False
    budget.current_spent = spent
    budget.updated_at = _current_time()
    session.add(budget)
    return True
