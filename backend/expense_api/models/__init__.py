from expense_api.models.budget import Budget
from expense_api.models.expense import (
    Expense,
    ExpenseCategory,
    ExpenseStatus,
    RecurringFrequency,
)
from expense_api.models.notification import Notification, NotificationType
from expense_api.models.report import Report, ReportType
from expense_api.models.team import Team, TeamMember
from expense_api.models.user import User, UserRole

__all__ = [
    "Budget",
    "Expense",
    "ExpenseCategory",
    "ExpenseStatus",
    "Notification",
    "NotificationType",
    "RecurringFrequency",
    "Report",
    "ReportType",
    "Team",
    "TeamMember",
    "User",
    "UserRole",
]
