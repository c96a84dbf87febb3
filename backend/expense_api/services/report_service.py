import secrets
from collections import defaultdict
from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta
from typing import Any
from uuid import UUID

from expense_api.models.expense import Expense, ExpenseCategory
from expense_api.models.report import ReportType

REPORT_RETENTION_DAYS: dict[ReportType, int] = {
    ReportType.MONTHLY: 60,
    ReportType.YEARLY: 365,
    ReportType.CUSTOM: 30,
}


def report_expires_at(report_type: ReportType, generated_at: datetime) -> datetime:
    return generated_at + timedelta(days=REPORT_RETENTION_DAYS[report_type])


def build_report_file_url(
    base_url: str,
    *,
    user_id: UUID,
    report_type: ReportType,
    generated_at: datetime,
) -> str:
    stamp = int(generated_at.replace(tzinfo=UTC).timestamp() * 1000)
    return (
        f"{base_url}/reports/{user_id.hex}_{stamp}_{secrets.token_hex(4)}_"
        f"{report_type.value.lower()}.pdf"
    )


def summarize_expenses(
    expenses: Iterable[Expense],
    *,
    date_from: date,
    date_to: date,
    categories: list[ExpenseCategory] | None,
    include_team_expenses: bool,
) -> dict[str, Any]:
    """Filter criteria plus the statistics persisted on a report row."""
    total_amount = 0.0
    total_expenses = 0
    category_breakdown: dict[str, dict[str, Any]] = {}
    status_breakdown: dict[str, int] = defaultdict(int)

    for expense in expenses:
        amount = float(expense.amount)
        total_amount += amount
        total_expenses += 1
        category = expense.category.value if hasattr(expense.category, "value") else str(expense.category)
        bucket = category_breakdown.setdefault(category, {"count": 0, "amount": 0.0})
        bucket["count"] += 1
        bucket["amount"] = round(bucket["amount"] + amount, 2)
        status = expense.status.value if hasattr(expense.status, "value") else str(expense.status)
        status_breakdown[status] += 1

    return {
        "date_from": date_from.isoformat(),
        "date_to": date_to.isoformat(),
        "categories": [category.value for category in categories] if categories else None,
        "include_team_expenses": include_team_expenses,
        "total_expenses": total_expenses,
        "total_amount": round(total_amount, 2),
        "category_breakdown": category_breakdown,
        "status_breakdown": dict(status_breakdown),
    }
