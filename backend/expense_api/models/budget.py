from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from expense_api.models.expense import ExpenseCategory


def utc_now_naive() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


DEFAULT_ALERT_THRESHOLD = 80


class Budget(SQLModel, table=True):
    __tablename__ = "budgets"
    __table_args__ = (
        UniqueConstraint("user_id", "category", name="uq_budgets_user_category"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    user_id: UUID = Field(foreign_key="users.id", nullable=False, index=True)
    category: ExpenseCategory = Field(nullable=False)
    monthly_limit: float = Field(nullable=False)
    current_spent: float = Field(default=0.0, nullable=False)
    alert_threshold: int = Field(default=DEFAULT_ALERT_THRESHOLD, nullable=False)
    is_active: bool = Field(default=True, nullable=False)
    created_at: datetime = Field(default_factory=utc_now_naive, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now_naive, nullable=False)
