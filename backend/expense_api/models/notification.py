from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


def utc_now_naive() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class NotificationType(str, Enum):
    BUDGET_ALERT = "BUDGET_ALERT"
    EXPENSE_APPROVAL = "EXPENSE_APPROVAL"
    EXPENSE_REMINDER = "EXPENSE_REMINDER"
    SYSTEM_UPDATE = "SYSTEM_UPDATE"


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    user_id: UUID = Field(foreign_key="users.id", nullable=False, index=True)
    type: NotificationType = Field(nullable=False)
    title: str = Field(nullable=False, max_length=200)
    message: str = Field(nullable=False, max_length=2000)
    is_read: bool = Field(default=False, nullable=False, index=True)
    related_expense_id: UUID | None = Field(default=None, foreign_key="expenses.id")
    created_at: datetime = Field(default_factory=utc_now_naive, nullable=False)
