from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from expense_api.core.logging_config import get_logger
from expense_api.models.budget import Budget
from expense_api.models.expense import Expense, ExpenseStatus
from expense_api.models.notification import Notification, NotificationType

logger = get_logger(__name__)


def _category_label(value: str) -> str:
    return value.replace("_", " ").title()


def create_notification(
    session: AsyncSession,
    *,
    user_id: UUID,
    type: NotificationType,
    title: str,
    message: str,
    related_expense_id: UUID | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title.strip(),
        message=message.strip(),
        related_expense_id=related_expense_id,
    )
    session.add(notification)
    logger.info(
        "notification.created",
        user_id=str(user_id),
        type=type.value,
        related_expense_id=str(related_expense_id) if related_expense_id else None,
    )
    return notification


def notify_expense_decision(session: AsyncSession, expense: Expense) -> Notification:
    approved = expense.status == ExpenseStatus.APPROVED
    verdict = "approved" if approved else "rejected"
    return create_notification(
        session,
        user_id=expense.user_id,
        type=NotificationType.EXPENSE_APPROVAL,
        title=f"Expense {verdict}",
        message=f"Your expense '{expense.title}' ({expense.amount:.2f}) was {verdict}.",
        related_expense_id=expense.id,
    )


def notify_budget_alert(
    session: AsyncSession,
    budget: Budget,
    related_expense_id: UUID | None = None,
) -> Notification:
    limit = float(budget.monthly_limit)
    percentage = float(budget.current_spent) / limit * 100 if limit > 0 else 0.0
    category = _category_label(str(getattr(budget.category, "value", budget.category)))
    return create_notification(
        session,
        user_id=budget.user_id,
        type=NotificationType.BUDGET_ALERT,
        title=f"{category} budget at {percentage:.0f}%",
        message=(
            f"You have spent {budget.current_spent:.2f} of your "
            f"{limit:.2f} monthly {category} budget."
        ),
        related_expense_id=related_expense_id,
    )
